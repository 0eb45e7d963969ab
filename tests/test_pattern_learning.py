"""Tests for learning and applying partner patterns."""

import pytest

from ledgermatch.domain.entities import (
    LearnedPattern,
    ManualFileRemoval,
    ManualRemoval,
    PartnerSuggestion,
)
from ledgermatch.domain.errors import NotFoundError, ValidationError
from ledgermatch.domain.partner_matching import PartnerMatchingService
from ledgermatch.domain.pattern_learning import (
    PatternLearningService,
    derive_pattern,
    is_generic_pattern,
    reinforce_or_add,
)


@pytest.fixture
def learning(ctx):
    return PatternLearningService(ctx)


@pytest.fixture
def matching(ctx):
    return PartnerMatchingService(ctx)


@pytest.mark.parametrize(
    "label,expected",
    [
        ("PayPal Europe S.a.r.l. 1002345", "*paypal*europe*"),
        ("NETFLIX.COM", "*netflix*"),
        ("Müller Bau GmbH", "*mueller*bau*"),
        ("SEPA Lastschrift 4711", None),
        ("", None),
        (None, None),
    ],
)
def test_derive_pattern(label, expected):
    assert derive_pattern(label) == expected


@pytest.mark.parametrize(
    "pattern,generic",
    [
        ("*rechnung*", True),
        ("*sepa*lastschrift*", True),
        ("*", True),
        ("*netflix*", False),
        ("*sepa*netflix*", False),
    ],
)
def test_is_generic_pattern(pattern, generic):
    assert is_generic_pattern(pattern) is generic


def test_reinforce_or_add(settings):
    patterns = reinforce_or_add((), "*Netflix*", settings, transaction_id="tx-1")
    assert patterns[0].pattern == "*netflix*"
    assert patterns[0].confidence == 60
    assert patterns[0].source_transaction_ids == ("tx-1",)

    patterns = reinforce_or_add(patterns, "*netflix*", settings, transaction_id="tx-2")
    assert len(patterns) == 1
    assert patterns[0].confidence == 70
    assert patterns[0].usage_count == 2
    assert patterns[0].source_transaction_ids == ("tx-1", "tx-2")


def test_reinforcement_is_capped(settings):
    patterns = (LearnedPattern(pattern="*netflix*", confidence=95),)
    assert reinforce_or_add(patterns, "*netflix*", settings)[0].confidence == 100


def test_learn_from_transaction(learning, matching, memory_repo, add_transaction, add_partner):
    partner = add_partner("Netflix")
    first = add_transaction(name="NETFLIX.COM 866-579-7172")
    second = add_transaction(name="NETFLIX.COM 555-0199")
    matching.assign_partner(first.id, partner.id)
    matching.assign_partner(second.id, partner.id)

    learned = learning.learn_from_transaction(first.id)
    assert learned.pattern == "*netflix*"
    assert learned.confidence == 60

    learned = learning.learn_from_transaction(second.id)
    assert learned.confidence == 70
    stored = memory_repo.get_partner(partner.id).learned_patterns
    assert len(stored) == 1
    assert stored[0].source_transaction_ids == (first.id, second.id)


def test_learn_prefers_partner_label(learning, matching, add_transaction, add_partner):
    partner = add_partner("PayPal")
    transaction = add_transaction(name="1002345 PP.7011", partner="PayPal Europe S.a.r.l.")
    matching.assign_partner(transaction.id, partner.id)

    assert learning.learn_from_transaction(transaction.id).pattern == "*paypal*europe*"


def test_pattern_matching_removed_record_is_rejected(
    learning, matching, memory_repo, add_transaction, add_partner
):
    partner = add_partner(
        "Netflix",
        manual_removals=(ManualRemoval(transaction_id="old", name="NETFLIX DVD RENTAL"),),
    )
    transaction = add_transaction(name="NETFLIX.COM")
    matching.assign_partner(transaction.id, partner.id)

    assert learning.learn_from_transaction(transaction.id) is None
    assert memory_repo.get_partner(partner.id).learned_patterns == ()


def test_generic_label_learns_nothing(learning, matching, memory_repo, add_transaction, add_partner):
    partner = add_partner("Finanzamt")
    transaction = add_transaction(name="SEPA Überweisung")
    matching.assign_partner(transaction.id, partner.id)

    assert learning.learn_from_transaction(transaction.id) is None
    assert memory_repo.get_partner(partner.id).learned_patterns == ()


def test_global_partners_do_not_learn(learning, matching, memory_repo, add_transaction, add_partner):
    partner = add_partner("Netflix", user_id=None)
    transaction = add_transaction()
    matching.assign_partner(transaction.id, partner.id)

    assert learning.learn_from_transaction(transaction.id) is None
    assert memory_repo.get_partner(partner.id).learned_patterns == ()


def test_learn_requires_assigned_partner(learning, add_transaction):
    transaction = add_transaction()
    with pytest.raises(ValidationError):
        learning.learn_from_transaction(transaction.id)


def test_learn_from_file(learning, matching, memory_repo, add_file, add_partner):
    partner = add_partner("Adobe")
    file = add_file(extracted_partner="Adobe Systems Software Ireland Ltd")
    matching.assign_file_partner(file.id, partner.id)

    learned = learning.learn_from_file(file.id)

    assert learned.pattern == "*adobe*systems*"
    assert learned.source_file_ids == (file.id,)


def test_apply_patterns_is_idempotent(learning, memory_repo, add_transaction, add_partner):
    partner = add_partner(
        "Netflix", learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=95),)
    )
    netflix = [add_transaction(name="NETFLIX.COM"), add_transaction(name="Netflix Abo")]
    other = add_transaction(name="Spotify")

    result = learning.apply_patterns()

    assert (result.processed, result.matched, result.failed) == (3, 2, 0)
    assert not result.truncated
    for transaction in netflix:
        stored = memory_repo.get_transaction(transaction.id)
        assert stored.partner_id == partner.id
        assert stored.partner_matched_by == "auto"
        assert stored.partner_suggestions[0].source == "pattern"
    assert memory_repo.get_transaction(other.id).partner_id is None

    writes = memory_repo.write_count
    second = learning.apply_patterns()
    assert (second.processed, second.matched) == (1, 0)
    assert memory_repo.write_count == writes


def test_apply_patterns_keeps_other_suggestions(learning, memory_repo, add_transaction, add_partner):
    add_partner("Streaming", learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=70),))
    by_name = PartnerSuggestion(
        partner_id="netflix", partner_type="global", confidence=86, source="name"
    )
    transaction = add_transaction(name="NETFLIX.COM", partner_suggestions=(by_name,))

    result = learning.apply_patterns()

    assert result.matched == 0
    stored = memory_repo.get_transaction(transaction.id)
    assert stored.partner_id is None
    assert [s.confidence for s in stored.partner_suggestions] == [86, 70]
    assert stored.partner_suggestions[0] == by_name


def test_apply_patterns_respects_manual_removal(learning, memory_repo, add_transaction, add_partner):
    removed = add_transaction(name="NETFLIX.COM")
    kept = add_transaction(name="NETFLIX.COM 555-0199")
    partner = add_partner(
        "Netflix",
        learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=100),),
        manual_removals=(ManualRemoval(removed.id, name="NETFLIX.COM"),),
    )

    result = learning.apply_patterns()

    assert (result.processed, result.matched) == (2, 1)
    stored = memory_repo.get_transaction(removed.id)
    assert stored.partner_id is None
    assert stored.partner_suggestions == ()
    assert memory_repo.get_transaction(kept.id).partner_id == partner.id


def test_file_match_respects_manual_file_removal(matching, memory_repo, add_file, add_partner):
    file = add_file(extracted_partner="Netflix International B.V.")
    add_partner(
        "Netflix",
        learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=100),),
        manual_file_removals=(ManualFileRemoval(file.id, extracted_partner="Netflix"),),
    )

    _, after = matching.match_file(file.id)

    assert after.partner_id is None
    assert after.partner_suggestions == ()
    assert memory_repo.get_file(file.id).partner_id is None


def test_apply_patterns_without_patterns(learning, add_transaction):
    add_transaction()
    result = learning.apply_patterns()
    assert result.processed == 0


def test_delete_pattern_and_cascade(learning, matching, memory_repo, add_transaction, add_partner):
    partner = add_partner(
        "Netflix", learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=95),)
    )
    auto = add_transaction(name="NETFLIX.COM")
    manual = add_transaction(name="NETFLIX.COM")
    matching.assign_partner(manual.id, partner.id)
    learning.apply_patterns()
    assert memory_repo.get_transaction(auto.id).partner_id == partner.id

    before, after = learning.delete_pattern(partner.id, "*Netflix*")
    assert len(before.learned_patterns) == 1
    assert after.learned_patterns == ()

    assert learning.cascade_unassign(partner.id) == 1
    assert memory_repo.get_transaction(auto.id).partner_id is None
    assert memory_repo.get_transaction(manual.id).partner_id == partner.id


def test_delete_unknown_pattern(learning, add_partner):
    partner = add_partner("Netflix")
    with pytest.raises(NotFoundError):
        learning.delete_pattern(partner.id, "*netflix*")

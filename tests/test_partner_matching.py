"""Tests for partner matching of transactions and files."""

from datetime import date

import pytest

from ledgermatch.domain.entities import LearnedPattern, ManualRemoval
from ledgermatch.domain.errors import NotFoundError, ValidationError
from ledgermatch.domain.partner_matching import (
    PartnerMatchingService,
    match_partners,
    name_confidence,
    subject_from_transaction,
)


@pytest.fixture
def service(ctx):
    return PartnerMatchingService(ctx)


def test_iban_match_auto_assigns(service, memory_repo, add_transaction, add_partner):
    partner = add_partner("Netflix International B.V.", ibans=("NL22ABNA0123456789",))
    transaction = add_transaction(name="Lastschrift", partner_iban="NL22 ABNA 0123 4567 89")

    before, after = service.match_transaction(transaction.id)

    assert before.partner_id is None
    assert after.partner_id == partner.id
    assert after.partner_matched_by == "auto"
    assert after.partner_match_confidence == 100
    assert after.partner_suggestions[0].source == "iban"
    assert memory_repo.get_transaction(transaction.id) == after


def test_name_in_text_is_suggested_but_not_applied(service, add_transaction, add_partner):
    partner = add_partner("Netflix")
    transaction = add_transaction(name="NETFLIX.COM 866-579-7172")

    _, after = service.match_transaction(transaction.id)

    assert after.partner_id is None
    suggestion = after.partner_suggestions[0]
    assert suggestion.partner_id == partner.id
    assert suggestion.confidence == 86
    assert suggestion.source == "name"


def test_website_in_text(service, add_transaction, add_partner):
    partner = add_partner("Streaming Provider", website="https://www.netflix.com/")
    transaction = add_transaction(name="NETFLIX.COM 866-579-7172")

    _, after = service.match_transaction(transaction.id)

    assert after.partner_id == partner.id
    assert after.partner_match_confidence == 90
    assert after.partner_suggestions[0].source == "website"


@pytest.mark.parametrize("confidence,applied", [(89, True), (88, False)])
def test_auto_apply_threshold(service, add_transaction, add_partner, confidence, applied):
    partner = add_partner(
        "Streaming Provider",
        learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=confidence),),
    )
    transaction = add_transaction(name="NETFLIX.COM")

    _, after = service.match_transaction(transaction.id)

    assert (after.partner_id == partner.id) is applied
    assert after.partner_suggestions[0].confidence == confidence


def test_pattern_exclusions(service, add_transaction, add_partner):
    add_partner(
        "Amazon",
        user_id=None,
        learned_patterns=(
            LearnedPattern(pattern="*amzn*", confidence=95, exclude=("*amzn*prime*video*",)),
        ),
    )
    excluded = add_transaction(name="AMZN PRIME VIDEO")

    _, after = service.match_transaction(excluded.id)

    assert after.partner_suggestions == ()


def test_manual_removal_suppresses_partner(service, add_transaction, add_partner):
    transaction = add_transaction(partner_iban="NL22ABNA0123456789")
    add_partner(
        "Netflix",
        ibans=("NL22ABNA0123456789",),
        manual_removals=(ManualRemoval(transaction_id=transaction.id, name="NETFLIX.COM"),),
    )

    _, after = service.match_transaction(transaction.id)

    assert after.partner_id is None
    assert after.partner_suggestions == ()


def test_manual_assignment_is_never_overridden(service, memory_repo, add_transaction, add_partner):
    chosen = add_partner("My Streaming")
    add_partner("Netflix", ibans=("NL22ABNA0123456789",))
    transaction = add_transaction(partner_iban="NL22ABNA0123456789")
    service.assign_partner(transaction.id, chosen.id)
    writes = memory_repo.write_count

    before, after = service.match_transaction(transaction.id)

    assert before == after
    assert after.partner_id == chosen.id
    assert after.partner_matched_by == "manual"
    assert memory_repo.write_count == writes


def test_user_partner_wins_ties(ctx, add_transaction, add_partner):
    pattern = (LearnedPattern(pattern="*netflix*", confidence=95),)
    global_partner = add_partner("Alpha Streaming", user_id=None, learned_patterns=pattern)
    user_partner = add_partner("Zeta Streaming", learned_patterns=pattern)
    transaction = add_transaction(name="NETFLIX.COM")

    matches = match_partners(
        subject_from_transaction(transaction),
        [global_partner, user_partner],
        ctx.settings,
    )

    assert [m.partner_id for m in matches] == [user_partner.id, global_partner.id]
    assert [m.partner_type for m in matches] == ["user", "global"]


def test_higher_confidence_beats_user_preference(ctx, add_transaction, add_partner):
    global_partner = add_partner("Netflix", user_id=None, ibans=("NL22ABNA0123456789",))
    user_partner = add_partner(
        "Streaming", learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=80),)
    )
    transaction = add_transaction(partner_iban="NL22ABNA0123456789")

    matches = match_partners(
        subject_from_transaction(transaction), [user_partner, global_partner], ctx.settings
    )

    assert matches[0].partner_id == global_partner.id


def test_suggestions_are_limited(ctx, add_transaction, add_partner):
    pattern = (LearnedPattern(pattern="*netflix*", confidence=70),)
    partners = [add_partner(f"Partner {i}", learned_patterns=pattern) for i in range(5)]
    transaction = add_transaction(name="NETFLIX.COM")

    matches = match_partners(subject_from_transaction(transaction), partners, ctx.settings)

    assert len(matches) == ctx.settings.max_partner_suggestions


def test_remove_partner_records_snapshot(service, memory_repo, add_transaction, add_partner):
    partner = add_partner("Netflix", ibans=("NL22ABNA0123456789",))
    transaction = add_transaction(
        name="NETFLIX.COM", reference="Abo März", partner_iban="NL22ABNA0123456789"
    )
    service.match_transaction(transaction.id)

    _, after = service.remove_partner(transaction.id)

    assert after.partner_id is None
    assert after.partner_matched_by is None
    assert all(s.partner_id != partner.id for s in after.partner_suggestions)
    removal = memory_repo.get_partner(partner.id).manual_removals[0]
    assert removal.transaction_id == transaction.id
    assert removal.name == "NETFLIX.COM"
    assert removal.reference == "Abo März"

    _, rematched = service.match_transaction(transaction.id)
    assert rematched.partner_id is None
    assert rematched.partner_suggestions == ()


def test_remove_partner_requires_assignment(service, add_transaction):
    transaction = add_transaction()
    with pytest.raises(ValidationError):
        service.remove_partner(transaction.id)


def test_assign_partner_validates_ownership(service, add_transaction, add_partner):
    transaction = add_transaction()
    foreign = add_partner("Someone Else's", user_id="user-2")
    global_partner = add_partner("Deutsche Bahn", user_id=None)

    with pytest.raises(ValidationError):
        service.assign_partner(transaction.id, foreign.id)
    with pytest.raises(NotFoundError):
        service.assign_partner(transaction.id, "missing")

    _, after = service.assign_partner(transaction.id, global_partner.id)
    assert after.partner_type == "global"


def test_create_partner(service, memory_repo):
    partner = service.create_partner(" Netflix ", ibans=["NL22ABNA0123456789"], is_global=True)
    assert partner.name == "Netflix"
    assert partner.user_id is None
    assert memory_repo.get_partner(partner.id) == partner

    with pytest.raises(ValidationError):
        service.create_partner("   ")


def test_file_vat_match_and_removal(service, memory_repo, add_file, add_partner):
    partner = add_partner("Adobe", vat_id="IE6364992H")
    file = add_file("adobe.pdf", extracted_partner="Adobe Systems", extracted_vat_id="ie 6364992h")

    _, matched = service.match_file(file.id)
    assert matched.partner_id == partner.id
    assert matched.partner_match_confidence == 95
    assert matched.partner_suggestions[0].source == "vatId"

    _, removed = service.remove_file_partner(file.id)
    assert removed.partner_id is None
    stored = memory_repo.get_partner(partner.id)
    assert stored.manual_file_removals[0].file_id == file.id
    assert stored.manual_file_removals[0].extracted_partner == "Adobe Systems"

    _, rematched = service.match_file(file.id)
    assert rematched.partner_id is None
    assert all(s.partner_id != partner.id for s in rematched.partner_suggestions)


def test_file_sender_domain(service, add_file, add_partner):
    partner = add_partner("Streaming Provider", email_domains=("netflix.com",))
    file = add_file("receipt.pdf", email_from="info@mailer.netflix.com")

    _, matched = service.match_file(file.id)

    assert matched.partner_id == partner.id
    assert matched.partner_suggestions[0].source == "emailDomain"


def test_match_unknown_transaction(service):
    with pytest.raises(NotFoundError):
        service.match_transaction("missing")


@pytest.mark.parametrize("similarity,confidence", [(60, 60), (80, 75), (95, 86), (100, 90)])
def test_name_confidence_scale(similarity, confidence):
    assert name_confidence(similarity) == confidence


def test_transaction_subject_text(add_transaction):
    transaction = add_transaction(
        name="NETFLIX.COM", partner="Netflix Intl", booking_date=date(2024, 1, 1)
    )
    subject = subject_from_transaction(transaction)
    assert subject.text == "netflix.com netflix intl"
    assert subject.label == "Netflix Intl"

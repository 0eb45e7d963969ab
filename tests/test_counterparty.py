"""Tests for counterparty resolution on invoices."""

import pytest

from ledgermatch.domain.counterparty import (
    CounterpartyService,
    apply_counterparty,
    determine_counterparty,
    determine_invoice_direction,
    entity_matches_user_data,
    user_data_changed,
)
from ledgermatch.domain.entities import ExtractedEntity, UserData
from ledgermatch.domain.errors import ValidationError

USER = "user-1"


@pytest.fixture
def service(ctx):
    return CounterpartyService(ctx)


def test_issuer_vat_match_is_outgoing():
    issuer = ExtractedEntity(vat_id="ATU12345678")
    recipient = ExtractedEntity(name="Acme")
    result = determine_counterparty(
        issuer, recipient, UserData(user_id=USER, vat_ids=("ATU12345678",))
    )
    assert result.invoice_direction == "outgoing"
    assert result.counterparty == recipient
    assert result.matched_user_account == "issuer"


def test_recipient_vat_match_is_incoming():
    issuer = ExtractedEntity(name="Foo GmbH")
    recipient = ExtractedEntity(vat_id="ATU99999999")
    result = determine_counterparty(
        issuer, recipient, UserData(user_id=USER, vat_ids=("ATU99999999",))
    )
    assert result.invoice_direction == "incoming"
    assert result.counterparty == issuer
    assert result.matched_user_account == "recipient"


def test_no_match_defaults_to_issuer():
    issuer = ExtractedEntity(name="Foo GmbH", vat_id="DE123456789")
    recipient = ExtractedEntity(name="Bar AG")
    result = determine_counterparty(
        issuer, recipient, UserData(user_id=USER, name="Jane Doe", vat_ids=("ATU12345678",))
    )
    assert result.invoice_direction == "unknown"
    assert result.counterparty == issuer
    assert result.matched_user_account is None


def test_both_parties_matching_is_a_self_invoice():
    issuer = ExtractedEntity(name="Jane Doe Consulting")
    recipient = ExtractedEntity(name="Jane Doe")
    result = determine_counterparty(issuer, recipient, UserData(user_id=USER, name="Jane Doe"))
    assert result.invoice_direction == "outgoing"
    assert result.counterparty == recipient


def test_missing_user_data_is_unknown():
    issuer = ExtractedEntity(name="Foo GmbH")
    result = determine_counterparty(issuer, None, None)
    assert result.invoice_direction == "unknown"
    assert result.counterparty == issuer


@pytest.mark.parametrize(
    "entity",
    [
        ExtractedEntity(vat_id="atu 1234 5678"),
        ExtractedEntity(iban="AT48 3200 0000 1234 5864"),
        ExtractedEntity(iban="AT611904300234573201"),
        ExtractedEntity(email=" Jane@Example.com "),
        ExtractedEntity(name="Doe Consulting e.U."),
        ExtractedEntity(name="JD Design"),
    ],
)
def test_entity_signals(entity):
    user_data = UserData(
        user_id=USER,
        name="Jane Doe",
        company_name="Doe Consulting",
        aliases=("JD Design",),
        vat_ids=("ATU12345678",),
        ibans=("AT483200000012345864",),
        own_emails=("jane@example.com",),
    )
    assert entity_matches_user_data(entity, user_data, source_ibans=["AT611904300234573201"])


def test_entity_without_signals_does_not_match():
    user_data = UserData(user_id=USER, name="Jane Doe")
    assert not entity_matches_user_data(ExtractedEntity(name="  "), user_data)
    assert not entity_matches_user_data(None, user_data)


def test_direction_from_partner_name_only():
    user_data = UserData(user_id=USER, company_name="Doe Consulting")
    assert determine_invoice_direction("Doe Consulting", user_data) == "outgoing"
    assert determine_invoice_direction("Adobe", user_data) == "incoming"
    assert determine_invoice_direction(None, user_data) == "unknown"
    assert determine_invoice_direction("Adobe", None) == "unknown"


def test_apply_counterparty_copies_fields(add_file):
    file = add_file()
    result = determine_counterparty(
        ExtractedEntity(name="Foo GmbH", vat_id="ATU11111111", iban="AT026000000001349870"),
        ExtractedEntity(vat_id="ATU99999999"),
        UserData(user_id=USER, vat_ids=("ATU99999999",)),
    )
    updated = apply_counterparty(file, result)
    assert updated.extracted_partner == "Foo GmbH"
    assert updated.extracted_vat_id == "ATU11111111"
    assert updated.extracted_iban == "AT026000000001349870"
    assert updated.invoice_direction == "incoming"
    assert updated.matched_user_account == "recipient"


def test_user_data_changed():
    base = UserData(user_id=USER, name="Jane Doe")
    assert user_data_changed(None, base)
    assert not user_data_changed(base, UserData(user_id=USER, name="Jane Doe"))
    assert user_data_changed(base, UserData(user_id=USER, name="Jane Doe", own_emails=("a@b.c",)))


def test_update_user_data(service, memory_repo):
    before, after = service.update_user_data(name="Jane Doe", vat_ids=[" ATU12345678 ", ""])
    assert before == UserData(user_id=USER)
    assert after.vat_ids == ("ATU12345678",)
    assert memory_repo.get_user_data(USER) == after

    writes = memory_repo.write_count
    service.update_user_data(name="Jane Doe")
    assert memory_repo.write_count == writes

    with pytest.raises(ValidationError):
        service.update_user_data(user_id="someone-else")


def test_resolve_file_uses_source_ibans(service, sample_source, add_file):
    service.update_user_data(name="Jane Doe")
    file = add_file(
        extracted_issuer=ExtractedEntity(name="Foo GmbH"),
        extracted_recipient=ExtractedEntity(iban="AT61 1904 3002 3457 3201"),
    )
    result = service.resolve_file(file)
    assert result.invoice_direction == "incoming"
    assert result.counterparty.name == "Foo GmbH"


def test_reevaluate_files(service, memory_repo, add_file):
    outgoing = add_file(
        extracted_issuer=ExtractedEntity(name="Doe Consulting"),
        extracted_recipient=ExtractedEntity(name="Client AG", vat_id="ATU55555555"),
    )
    untouched = add_file(extracted_partner="Adobe")
    not_invoice = add_file(
        is_not_invoice=True,
        extracted_issuer=ExtractedEntity(name="Doe Consulting"),
        extracted_recipient=ExtractedEntity(name="Client AG"),
    )
    service.update_user_data(company_name="Doe Consulting GmbH")

    result = service.reevaluate_files()

    assert (result.processed, result.matched, result.failed) == (2, 1, 0)
    stored = memory_repo.get_file(outgoing.id)
    assert stored.invoice_direction == "outgoing"
    assert stored.matched_user_account == "issuer"
    assert stored.extracted_partner == "Client AG"
    assert stored.extracted_vat_id == "ATU55555555"
    assert memory_repo.get_file(untouched.id) == untouched
    assert memory_repo.get_file(not_invoice.id) == not_invoice

    writes = memory_repo.write_count
    again = service.reevaluate_files()
    assert again.matched == 0
    assert memory_repo.write_count == writes

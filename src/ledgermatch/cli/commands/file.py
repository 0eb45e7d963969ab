"""Receipt and invoice file commands."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.attachment_scoring import (
    AttachmentMatchingService,
    candidate_from_file,
    score_attachments,
)
from ledgermatch.domain.counterparty import CounterpartyService, apply_counterparty
from ledgermatch.domain.entities import ExtractedEntity
from ledgermatch.domain.errors import DomainError, NotFoundError, transaction_not_found
from ledgermatch.domain.partner_matching import PartnerMatchingService
from ledgermatch.utils.amount_parser import AMOUNT_FORMATS, DEFAULT_AMOUNT_FORMAT, parse_amount
from ledgermatch.utils.date_parser import parse_date


def _entity(name, vat_id, iban, email) -> ExtractedEntity | None:
    if not any((name, vat_id, iban, email)):
        return None
    return ExtractedEntity(name=name, vat_id=vat_id, iban=iban, email=email)


@click.group()
def file_group():
    """Manage receipt and invoice files."""
    pass


@file_group.command("add")
@click.argument("file_name")
@click.option("--amount", help="Invoice total, e.g. 12,50")
@click.option(
    "--amount-format",
    type=click.Choice(sorted(AMOUNT_FORMATS)),
    default=DEFAULT_AMOUNT_FORMAT,
    show_default=True,
)
@click.option("--currency", default="EUR", show_default=True)
@click.option("--date", "date_str", help="Invoice date")
@click.option("--partner", help="Partner name printed on the invoice")
@click.option("--vat-id", help="Partner VAT id")
@click.option("--iban", help="Partner IBAN")
@click.option("--website", help="Partner website")
@click.option("--email-from", help="Sender address of the e-mail the file came with")
@click.option("--email-subject", help="Subject of that e-mail")
@click.option("--issuer-name")
@click.option("--issuer-vat-id")
@click.option("--issuer-iban")
@click.option("--issuer-email")
@click.option("--recipient-name")
@click.option("--recipient-vat-id")
@click.option("--recipient-iban")
@click.option("--recipient-email")
@click.pass_context
def add_file(ctx, file_name: str, amount, amount_format, currency, date_str, **options):
    """Register a file with its extracted invoice data.

    Issuer and recipient decide which party is the counterparty; the
    partner fields are filled from it.
    """
    ops = ctx.obj["ops"]
    cents = None
    if amount:
        cents = parse_amount(amount, amount_format)
        if cents is None:
            handle_domain_error(ctx, ValueError(f"Invalid amount '{amount}'"))
    file_date = None
    if date_str:
        file_date = parse_date(date_str)
        if file_date is None:
            handle_domain_error(ctx, ValueError(f"Invalid date '{date_str}'"))

    issuer = _entity(
        options["issuer_name"], options["issuer_vat_id"], options["issuer_iban"], options["issuer_email"]
    )
    recipient = _entity(
        options["recipient_name"],
        options["recipient_vat_id"],
        options["recipient_iban"],
        options["recipient_email"],
    )

    service = AttachmentMatchingService(ops)
    try:
        created = service.add_file(
            file_name,
            mime_type="application/pdf" if file_name.lower().endswith(".pdf") else None,
            extracted_amount=cents,
            extracted_currency=currency.upper(),
            extracted_date=file_date,
            extracted_partner=options["partner"],
            extracted_vat_id=options["vat_id"],
            extracted_iban=options["iban"],
            extracted_website=options["website"],
            extracted_issuer=issuer,
            extracted_recipient=recipient,
            email_from=options["email_from"],
            email_subject=options["email_subject"],
            extraction_complete=True,
        )
        result = CounterpartyService(ops).resolve_file(created)
        resolved = apply_counterparty(created, result)
        if resolved != created:
            ops.repo.save_file(resolved)
        click.echo(f"Added file '{file_name}' (ID: {created.id}, {resolved.invoice_direction})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@file_group.command("match")
@click.argument("file_id")
@click.pass_context
def match_file(ctx, file_id: str):
    """Match a file to a partner and to transactions."""
    ops = ctx.obj["ops"]
    try:
        _, after = PartnerMatchingService(ops).match_file(file_id)
        if after.partner_id:
            click.echo(f"Partner: {after.partner_id} ({after.partner_match_confidence}%)")
        suggestions = AttachmentMatchingService(ops).match_file(file_id)
        if not suggestions:
            click.echo("No matching transactions found.")
            return
        connected = AttachmentMatchingService(ops).get_file(file_id).transaction_ids
        click.echo("\nTransactions:")
        for s in suggestions:
            mark = " (connected)" if s.transaction_id in connected else ""
            click.echo(f"{s.transaction_id} | {s.confidence:3d} | {s.label or '-'}{mark}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@file_group.command("connect")
@click.argument("file_id")
@click.argument("transaction_id")
@click.option("--disconnect", is_flag=True, help="Remove the connection instead")
@click.pass_context
def connect_file(ctx, file_id: str, transaction_id: str, disconnect: bool):
    """Connect a file to a transaction (or disconnect it)."""
    service = AttachmentMatchingService(ctx.obj["ops"])
    try:
        if disconnect:
            service.disconnect(file_id, transaction_id)
            click.echo(f"Disconnected file {file_id} from transaction {transaction_id}")
        else:
            service.connect(file_id, transaction_id)
            click.echo(f"Connected file {file_id} to transaction {transaction_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@click.command("score-files")
@click.argument("transaction_id")
@click.argument("file_ids", nargs=-1)
@click.pass_context
def score_files(ctx, transaction_id: str, file_ids: tuple[str, ...]):
    """Score files against a transaction.

    Without FILE_IDS all files of the user are scored.
    """
    ops = ctx.obj["ops"]
    service = AttachmentMatchingService(ops)
    try:
        transaction = ops.repo.get_transaction(transaction_id)
        if transaction is None or transaction.user_id != ops.user_id:
            raise NotFoundError(transaction_not_found(transaction_id))
        files = (
            [service.get_file(f) for f in file_ids] if file_ids else ops.repo.list_files(ops.user_id)
        )
        partner = ops.repo.get_partner(transaction.partner_id) if transaction.partner_id else None
        scores = score_attachments(
            [candidate_from_file(f) for f in files], transaction, partner, ops.settings
        )
        if not scores:
            click.echo("No files found.")
            return
        for scored in scores:
            click.echo(f"{scored.key} | {scored.score:3d} | {scored.label or '-'}")
            for reason in scored.reasons:
                click.echo(f"    {reason}")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register file commands with main CLI."""
    cli.add_command(file_group, name="file")
    cli.add_command(score_files)

"""User identity commands."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.bulk import BulkResult
from ledgermatch.domain.counterparty import CounterpartyService
from ledgermatch.domain.errors import DomainError
from ledgermatch.domain.handlers import EffectRunner


@click.group()
def user_group():
    """Manage the user's own identity (name, VAT ids, IBANs, e-mails)."""
    pass


@user_group.command("set")
@click.option("--name", help="Personal name")
@click.option("--company-name", help="Company name")
@click.option("--alias", "aliases", multiple=True, help="Alternative name (repeatable)")
@click.option("--vat-id", "vat_ids", multiple=True, help="Own VAT id (repeatable)")
@click.option("--iban", "ibans", multiple=True, help="Own IBAN (repeatable)")
@click.option("--email", "own_emails", multiple=True, help="Own e-mail address (repeatable)")
@click.pass_context
def set_user(ctx, name, company_name, aliases, vat_ids, ibans, own_emails):
    """Update the user's identity.

    Only the given options are changed. Invoices are re-evaluated to decide
    which party is the counterparty.
    """
    ops = ctx.obj["ops"]
    fields = {}
    if name is not None:
        fields["name"] = name
    if company_name is not None:
        fields["company_name"] = company_name
    for key, values in (
        ("aliases", aliases),
        ("vat_ids", vat_ids),
        ("ibans", ibans),
        ("own_emails", own_emails),
    ):
        if values:
            fields[key] = values

    if not fields:
        click.echo("Nothing to update.")
        return

    try:
        before, after = CounterpartyService(ops).update_user_data(**fields)
        click.echo("Updated user data")
        for _, result in EffectRunner(ops).user_data_changed(before, after):
            if isinstance(result, BulkResult):
                click.echo(f"Re-evaluated {result.processed} files, {result.matched} changed")
    except DomainError as e:
        handle_domain_error(ctx, e)


@user_group.command("show")
@click.pass_context
def show_user(ctx):
    """Show the user's identity."""
    data = CounterpartyService(ctx.obj["ops"]).get_user_data()
    click.echo(f"Name:         {data.name or '-'}")
    click.echo(f"Company:      {data.company_name or '-'}")
    click.echo(f"Aliases:      {', '.join(data.aliases) or '-'}")
    click.echo(f"VAT ids:      {', '.join(data.vat_ids) or '-'}")
    click.echo(f"IBANs:        {', '.join(data.ibans) or '-'}")
    click.echo(f"E-mails:      {', '.join(data.own_emails) or '-'}")


@click.command("reevaluate-counterparties")
@click.pass_context
def reevaluate_counterparties(ctx):
    """Re-run counterparty resolution over all extracted invoices."""
    result = CounterpartyService(ctx.obj["ops"]).reevaluate_files()
    click.echo(f"Processed: {result.processed}")
    click.echo(f"Changed: {result.matched}")
    if result.truncated:
        click.echo("Stopped early; run again to continue.")


def register_commands(cli):
    """Register user commands with main CLI."""
    cli.add_command(user_group, name="user")
    cli.add_command(reevaluate_counterparties)

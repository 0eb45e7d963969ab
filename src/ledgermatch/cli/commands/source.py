"""Source management commands."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.errors import DomainError
from ledgermatch.domain.source import SourceService
from ledgermatch.utils.normalization import format_iban


@click.group()
def source_group():
    """Manage transaction sources (bank accounts)."""
    pass


@source_group.command("add")
@click.argument("name", metavar="SOURCE_NAME")
@click.option("--iban", help="Account IBAN")
@click.option("--currency", default="EUR", show_default=True, help="Account currency")
@click.pass_context
def add_source(ctx, name: str, iban: str | None, currency: str):
    """Add a new source.

    Examples:
        ledgermatch source add "Business Account" --iban "AT61 1904 3002 3457 3201"
        ledgermatch source add "Credit Card" --currency USD
    """
    service = SourceService(ctx.obj["ops"])
    try:
        created = service.create_source(name=name, iban=iban, currency=currency)
        click.echo(f"Created source '{created.name}' (ID: {created.id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@source_group.command("list")
@click.pass_context
def list_sources(ctx):
    """List all sources."""
    service = SourceService(ctx.obj["ops"])

    sources = service.list_sources()
    if not sources:
        click.echo("No sources found.")
        return

    click.echo("\nSources:")
    click.echo("-" * 80)
    for src in sources:
        click.echo(f"{src.id} | {src.name:20s} | {src.currency} | IBAN: {format_iban(src.iban)}")


def register_commands(cli):
    """Register source commands with main CLI."""
    cli.add_command(source_group, name="source")

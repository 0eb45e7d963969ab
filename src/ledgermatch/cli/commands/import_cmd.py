"""CSV import command."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.category_matching import CategoryMatchingService
from ledgermatch.domain.source import SourceService
from ledgermatch.domain.transaction_import import DEFAULT_COLUMNS, TransactionImportService
from ledgermatch.utils.amount_parser import AMOUNT_FORMATS, DEFAULT_AMOUNT_FORMAT


def _parse_columns(ctx, values: tuple[str, ...]) -> dict[str, str]:
    columns = {}
    for value in values:
        field, sep, column = value.partition("=")
        if not sep or field not in DEFAULT_COLUMNS:
            handle_domain_error(
                ctx,
                ValueError(
                    f"Invalid column mapping '{value}', expected FIELD=COLUMN with FIELD in "
                    f"{', '.join(DEFAULT_COLUMNS)}"
                ),
            )
        columns[field] = column
    return columns


@click.command("import")
@click.argument("csv_file", type=click.Path(exists=True))
@click.option("--source", "source_ref", required=True, help="Source name or ID")
@click.option(
    "--amount-format",
    type=click.Choice(sorted(AMOUNT_FORMATS)),
    default=DEFAULT_AMOUNT_FORMAT,
    show_default=True,
    help="How amounts are written in the file",
)
@click.option("--month-first", is_flag=True, help="Read ambiguous dates as month/day/year")
@click.option(
    "--column",
    "column_overrides",
    multiple=True,
    help="Column mapping FIELD=COLUMN, e.g. --column date=Buchungsdatum",
)
@click.option("--no-match", is_flag=True, help="Skip partner matching after import")
@click.pass_context
def import_csv(
    ctx,
    csv_file: str,
    source_ref: str,
    amount_format: str,
    month_first: bool,
    column_overrides: tuple[str, ...],
    no_match: bool,
):
    """Import transactions from a CSV file.

    Transactions already imported (same date, amount, account and reference)
    are skipped.
    """
    ops = ctx.obj["ops"]
    columns = _parse_columns(ctx, column_overrides)

    try:
        src = SourceService(ops).find_source(source_ref)
        result = TransactionImportService(ops).import_csv(
            csv_file_path=csv_file,
            source_id=src.id,
            amount_format=amount_format,
            dayfirst=not month_first,
            columns=columns,
            match_partners=not no_match,
        )
        if result["matched"]:
            CategoryMatchingService(ops).apply_category_patterns()
        click.echo("\nImport complete:")
        click.echo(f"  Imported: {result['imported']} transactions")
        click.echo(f"  Skipped: {result['skipped']} duplicates")
        click.echo(f"  Matched: {result['matched']} to partners")
        if result["errors"]:
            click.echo(f"  Errors: {len(result['errors'])}")
            for error in result["errors"]:
                click.echo(f"    {error}", err=True)
    except (ValueError, FileNotFoundError) as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_csv)

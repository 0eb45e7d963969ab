"""Main CLI entry point."""

import logging

import click

from ledgermatch.config import get_settings
from ledgermatch.context import OperationsContext
from ledgermatch.database.factories import create_sqlite_repository

# Import and register all commands at module level
from ledgermatch.cli.commands import (
    category,
    file,
    import_cmd,
    match,
    partner,
    source,
    user,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides LEDGERMATCH_DB_PATH environment variable)",
    envvar="LEDGERMATCH_DB_PATH",
)
@click.option(
    "--user",
    "user_id",
    default="local",
    show_default=True,
    envvar="LEDGERMATCH_USER",
    help="User whose data the command works on",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (defaults to LEDGERMATCH_LOG_LEVEL or WARNING)",
)
@click.pass_context
def cli(ctx, db_path: str | None, user_id: str, log_level: str | None):
    """Ledgermatch - match bank transactions to partners, receipts and categories.

    Import bank transactions, keep a list of partners and let learned
    patterns assign them automatically.
    """
    ctx.ensure_object(dict)
    settings = get_settings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize the repository only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        repo = create_sqlite_repository(database_path=db_path or settings.db_path)
        repo.connect()
        ctx.obj["repo"] = repo
        ctx.obj["ops"] = OperationsContext(repo=repo, user_id=user_id, settings=settings)
        ctx.call_on_close(repo.disconnect)


# Register all commands
source.register_commands(cli)
import_cmd.register_commands(cli)
partner.register_commands(cli)
match.register_commands(cli)
category.register_commands(cli)
file.register_commands(cli)
user.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

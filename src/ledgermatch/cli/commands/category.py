"""No-receipt category commands."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.category_matching import CategoryMatchingService
from ledgermatch.domain.errors import DomainError, NotFoundError, category_not_found
from ledgermatch.domain.handlers import EffectRunner


@click.group()
def category_group():
    """Manage no-receipt categories."""
    pass


@category_group.command("init")
@click.pass_context
def init_categories(ctx):
    """Create the default no-receipt categories.

    Categories that already exist are left unchanged.
    """
    service = CategoryMatchingService(ctx.obj["ops"])
    result = service.initialize_categories()
    click.echo(f"Created {result['created']} categories, {result['skipped']} already existed")


@category_group.command("list")
@click.pass_context
def list_categories(ctx):
    """List no-receipt categories."""
    service = CategoryMatchingService(ctx.obj["ops"])

    categories = service.list_categories()
    if not categories:
        click.echo("No categories found. Run 'ledgermatch category init' first.")
        return

    click.echo("\nCategories:")
    click.echo("-" * 90)
    for c in categories:
        status = "" if c.is_active else " (inactive)"
        click.echo(
            f"{c.id} | {c.template_id:28s} | {c.name:30s} | "
            f"{c.transaction_count} transactions{status}"
        )


def _resolve_category(service: CategoryMatchingService, ref: str):
    category = service.find_by_template(ref)
    if category is not None:
        return category
    return service.get_category(ref)


@category_group.command("assign")
@click.argument("transaction_id")
@click.argument("category", metavar="CATEGORY")
@click.pass_context
def assign_category(ctx, transaction_id: str, category: str):
    """Assign a category to a transaction.

    CATEGORY can be a template id (e.g. bank-fees) or a category ID.
    """
    ops = ctx.obj["ops"]
    service = CategoryMatchingService(ops)
    try:
        target = _resolve_category(service, category)
        if target is None:
            raise NotFoundError(category_not_found(category))
        before, after = service.assign_category(transaction_id, target.id)
        click.echo(f"Assigned '{target.name}' to transaction {transaction_id}")
        EffectRunner(ops).transaction_changed(before, after)
    except DomainError as e:
        handle_domain_error(ctx, e)


@category_group.command("remove")
@click.argument("transaction_id")
@click.pass_context
def remove_category(ctx, transaction_id: str):
    """Remove the category from a transaction."""
    service = CategoryMatchingService(ctx.obj["ops"])
    try:
        before, _ = service.remove_category(transaction_id)
        click.echo(
            f"Removed category {before.no_receipt_category_template_id} "
            f"from transaction {transaction_id}"
        )
    except DomainError as e:
        handle_domain_error(ctx, e)


@category_group.command("apply")
@click.pass_context
def apply_categories(ctx):
    """Match all uncategorized transactions without receipts to categories."""
    service = CategoryMatchingService(ctx.obj["ops"])
    result = service.apply_category_patterns()
    click.echo(f"Processed: {result.processed}")
    click.echo(f"Categorized: {result.matched}")
    if result.failed:
        click.echo(f"Failed: {result.failed}", err=True)


def register_commands(cli):
    """Register category commands with main CLI."""
    cli.add_command(category_group, name="category")

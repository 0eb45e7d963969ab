"""Partner matching commands."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.category_matching import CategoryMatchingService
from ledgermatch.domain.errors import DomainError
from ledgermatch.domain.partner_matching import PartnerMatchingService
from ledgermatch.domain.pattern_learning import PatternLearningService
from ledgermatch.utils.normalization import format_cents


@click.command("match")
@click.argument("transaction_ids", nargs=-1)
@click.pass_context
def match_transactions(ctx, transaction_ids: tuple[str, ...]):
    """Match transactions to partners.

    Without TRANSACTION_IDS all transactions without a partner are matched.
    """
    ops = ctx.obj["ops"]
    service = PartnerMatchingService(ops)
    try:
        if not transaction_ids:
            transaction_ids = tuple(
                t.id for t in ops.repo.list_transactions(ops.user_id) if t.partner_id is None
            )
        partners = service.candidate_partners()
        names = {p.id: p.name for p in partners}
        assigned = 0
        for transaction_id in transaction_ids:
            before, after = service.match_transaction(transaction_id, partners)
            label = f"{after.date} {format_cents(after.amount):>12s} {after.name[:30]:30s}"
            if after.partner_id and before.partner_id is None:
                assigned += 1
                click.echo(
                    f"{label} -> {names.get(after.partner_id, after.partner_id)} "
                    f"({after.partner_match_confidence}%)"
                )
            elif after.partner_suggestions:
                top = after.partner_suggestions[0]
                click.echo(
                    f"{label} ?  {names.get(top.partner_id, top.partner_id)} ({top.confidence}%)"
                )
        if assigned:
            CategoryMatchingService(ops).apply_category_patterns()
        click.echo(f"\nAssigned {assigned} of {len(transaction_ids)} transactions")
    except DomainError as e:
        handle_domain_error(ctx, e)


@click.command("apply-patterns")
@click.pass_context
def apply_patterns(ctx):
    """Apply all learned patterns to unassigned transactions."""
    ops = ctx.obj["ops"]
    result = PatternLearningService(ops).apply_patterns()
    if result.matched:
        CategoryMatchingService(ops).apply_category_patterns()
    click.echo(f"Processed: {result.processed}")
    click.echo(f"Matched: {result.matched}")
    if result.failed:
        click.echo(f"Failed: {result.failed}", err=True)
    if result.truncated:
        click.echo("Stopped early; run again to continue.")


def register_commands(cli):
    """Register matching commands with main CLI."""
    cli.add_command(match_transactions)
    cli.add_command(apply_patterns)

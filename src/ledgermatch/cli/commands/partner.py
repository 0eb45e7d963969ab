"""Partner management and assignment commands."""

import click

from ledgermatch.cli.error_handling import handle_domain_error
from ledgermatch.domain.bulk import BulkResult
from ledgermatch.domain.entities import LearnedPattern
from ledgermatch.domain.errors import DomainError
from ledgermatch.domain.handlers import EffectRunner
from ledgermatch.domain.partner_matching import PartnerMatchingService
from ledgermatch.domain.pattern_learning import PatternLearningService


@click.group()
def partner_group():
    """Manage partners and partner assignments."""
    pass


@partner_group.command("add")
@click.argument("name", metavar="PARTNER_NAME")
@click.option("--alias", "aliases", multiple=True, help="Alternative name (repeatable)")
@click.option("--vat-id", help="VAT identification number")
@click.option("--iban", "ibans", multiple=True, help="IBAN (repeatable)")
@click.option("--website", help="Website domain, e.g. netflix.com")
@click.option("--email-domain", "email_domains", multiple=True, help="Sender domain (repeatable)")
@click.option("--global", "is_global", is_flag=True, help="Create a partner shared by all users")
@click.pass_context
def add_partner(
    ctx,
    name: str,
    aliases: tuple[str, ...],
    vat_id: str | None,
    ibans: tuple[str, ...],
    website: str | None,
    email_domains: tuple[str, ...],
    is_global: bool,
):
    """Add a new partner.

    Examples:
        ledgermatch partner add "Netflix" --website netflix.com
        ledgermatch partner add "A1 Telekom Austria AG" --alias A1 --vat-id ATU62895905
    """
    service = PartnerMatchingService(ctx.obj["ops"])
    try:
        created = service.create_partner(
            name=name,
            aliases=aliases,
            vat_id=vat_id,
            ibans=ibans,
            website=website,
            email_domains=email_domains,
            is_global=is_global,
        )
        click.echo(f"Created {created.partner_type} partner '{created.name}' (ID: {created.id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@partner_group.command("list")
@click.pass_context
def list_partners(ctx):
    """List user and global partners."""
    service = PartnerMatchingService(ctx.obj["ops"])

    partners = service.candidate_partners()
    if not partners:
        click.echo("No partners found.")
        return

    click.echo("\nPartners:")
    click.echo("-" * 80)
    for p in partners:
        click.echo(
            f"{p.id} | {p.name:30s} | {p.partner_type:6s} | "
            f"{len(p.learned_patterns)} patterns"
        )


@partner_group.command("assign")
@click.argument("transaction_id")
@click.argument("partner_id")
@click.pass_context
def assign_partner(ctx, transaction_id: str, partner_id: str):
    """Assign a partner to a transaction manually.

    A pattern is learned from the transaction and applied to all
    unassigned transactions.
    """
    ops = ctx.obj["ops"]
    try:
        before, after = PartnerMatchingService(ops).assign_partner(transaction_id, partner_id)
        click.echo(f"Assigned partner {partner_id} to transaction {transaction_id}")
        for effect, result in EffectRunner(ops).transaction_changed(before, after):
            if isinstance(result, LearnedPattern):
                click.echo(f"Learned pattern '{result.pattern}' ({result.confidence}%)")
            elif isinstance(result, BulkResult):
                click.echo(f"Pattern pass matched {result.matched} of {result.processed} transactions")
    except DomainError as e:
        handle_domain_error(ctx, e)


@partner_group.command("remove")
@click.argument("transaction_id")
@click.pass_context
def remove_partner(ctx, transaction_id: str):
    """Remove the partner from a transaction.

    The partner will not be suggested for this transaction again.
    """
    service = PartnerMatchingService(ctx.obj["ops"])
    try:
        before, _ = service.remove_partner(transaction_id)
        click.echo(f"Removed partner {before.partner_id} from transaction {transaction_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@partner_group.command("patterns")
@click.argument("partner_id")
@click.pass_context
def show_patterns(ctx, partner_id: str):
    """Show the learned patterns of a partner."""
    ops = ctx.obj["ops"]
    partner = ops.repo.get_partner(partner_id)
    if partner is None:
        click.echo(f"Error: Partner {partner_id} not found", err=True)
        ctx.exit(1)

    if not partner.learned_patterns:
        click.echo(f"No learned patterns for '{partner.name}'.")
        return

    click.echo(f"\nPatterns for '{partner.name}':")
    click.echo("-" * 60)
    for learned in sorted(partner.learned_patterns, key=lambda p: -p.confidence):
        click.echo(
            f"{learned.pattern:30s} | {learned.confidence:3d}% | used {learned.usage_count}x"
        )


@partner_group.command("delete-pattern")
@click.argument("partner_id")
@click.argument("pattern")
@click.pass_context
def delete_pattern(ctx, partner_id: str, pattern: str):
    """Delete a learned pattern.

    Transactions auto-assigned by this pattern that no other pattern matches
    are unassigned.
    """
    ops = ctx.obj["ops"]
    try:
        before, after = PatternLearningService(ops).delete_pattern(partner_id, pattern)
        click.echo(f"Deleted pattern '{pattern}'")
        for effect, result in EffectRunner(ops).partner_changed(before, after):
            if isinstance(result, int):
                click.echo(f"Unassigned {result} transactions")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register partner commands with main CLI."""
    cli.add_command(partner_group, name="partner")

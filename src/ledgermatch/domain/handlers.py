"""Change handlers.

Handlers look at the state of a record before and after a change and return
the follow-up work as effect values. They do no I/O, so each rule can be
tested on plain entities. EffectRunner executes effects against the
services.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from ledgermatch.context import OperationsContext
from ledgermatch.domain.category_matching import CategoryMatchingService, is_eligible
from ledgermatch.domain.counterparty import CounterpartyService, user_data_changed
from ledgermatch.domain.entities import Partner, Transaction, UserData
from ledgermatch.domain.pattern_learning import PatternLearningService
from ledgermatch.utils.glob import pattern_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchCategories:
    transaction_id: str


@dataclass(frozen=True)
class LearnPartnerPattern:
    transaction_id: Optional[str] = None
    file_id: Optional[str] = None


@dataclass(frozen=True)
class ApplyPartnerPatterns:
    pass


@dataclass(frozen=True)
class LearnCategoryPattern:
    transaction_id: str


@dataclass(frozen=True)
class CascadeUnassign:
    partner_id: str


@dataclass(frozen=True)
class ReevaluateCounterparties:
    pass


Effect = Union[
    MatchCategories,
    LearnPartnerPattern,
    ApplyPartnerPatterns,
    LearnCategoryPattern,
    CascadeUnassign,
    ReevaluateCounterparties,
]


def on_transaction_updated(before: Optional[Transaction], after: Optional[Transaction]) -> list[Effect]:
    """Follow-up work after a transaction changed.

    - A newly set or changed partner on a transaction without category and
      files re-runs category matching.
    - A manually set partner is learned from and the patterns re-applied.
    - A manually set category is learned from.
    """
    if after is None:
        return []
    effects: list[Effect] = []
    previous_partner = before.partner_id if before else None
    if after.partner_id is not None and after.partner_id != previous_partner:
        if is_eligible(after):
            effects.append(MatchCategories(after.id))
        if after.partner_matched_by == "manual":
            effects.append(LearnPartnerPattern(transaction_id=after.id))
            effects.append(ApplyPartnerPatterns())

    if after.no_receipt_category_id is not None and after.no_receipt_category_matched_by == "manual":
        was_manual_same = (
            before is not None
            and before.no_receipt_category_id == after.no_receipt_category_id
            and before.no_receipt_category_matched_by == "manual"
        )
        if not was_manual_same:
            effects.append(LearnCategoryPattern(after.id))
    return effects


def on_partner_updated(before: Optional[Partner], after: Optional[Partner]) -> list[Effect]:
    """Removed patterns cascade; new or reinforced patterns are re-applied."""
    if after is None:
        return []
    old = {pattern_key(p.pattern): p for p in (before.learned_patterns if before else ())}
    new = {pattern_key(p.pattern): p for p in after.learned_patterns}

    effects: list[Effect] = []
    if set(old) - set(new):
        effects.append(CascadeUnassign(after.id))
    grown = any(
        key not in old or learned.confidence > old[key].confidence
        for key, learned in new.items()
    )
    if grown:
        effects.append(ApplyPartnerPatterns())
    return effects


def on_user_data_updated(before: Optional[UserData], after: Optional[UserData]) -> list[Effect]:
    """Identity changes re-run counterparty resolution over all files."""
    if after is not None and user_data_changed(before, after):
        return [ReevaluateCounterparties()]
    return []


class EffectRunner:
    """Executes effects against the matching services."""

    def __init__(self, ctx: OperationsContext):
        self.ctx = ctx
        self.categories = CategoryMatchingService(ctx)
        self.learning = PatternLearningService(ctx)
        self.counterparties = CounterpartyService(ctx)

    def run(self, effects: list[Effect]) -> list[tuple[Effect, Any]]:
        """Run effects in order. Duplicate effects run once.

        Returns:
            (effect, result) pairs
        """
        results = []
        seen = set()
        for effect in effects:
            if effect in seen:
                continue
            seen.add(effect)
            logger.debug("Running %s", effect)
            results.append((effect, self._run_one(effect)))
        return results

    def _run_one(self, effect: Effect) -> Any:
        if isinstance(effect, MatchCategories):
            return self.categories.match_transaction(effect.transaction_id)
        if isinstance(effect, LearnPartnerPattern):
            if effect.file_id is not None:
                return self.learning.learn_from_file(effect.file_id)
            return self.learning.learn_from_transaction(effect.transaction_id)
        if isinstance(effect, ApplyPartnerPatterns):
            result = self.learning.apply_patterns()
            if result.matched:
                # Newly assigned partners can make category links apply
                self.categories.apply_category_patterns()
            return result
        if isinstance(effect, LearnCategoryPattern):
            return self.categories.learn_from_transaction(effect.transaction_id)
        if isinstance(effect, CascadeUnassign):
            return self.learning.cascade_unassign(effect.partner_id)
        if isinstance(effect, ReevaluateCounterparties):
            return self.counterparties.reevaluate_files()
        raise TypeError(f"Unknown effect: {effect!r}")

    def transaction_changed(self, before: Optional[Transaction], after: Optional[Transaction]):
        """Dispatch the handler for a transaction change."""
        return self.run(on_transaction_updated(before, after))

    def partner_changed(self, before: Optional[Partner], after: Optional[Partner]):
        """Dispatch the handler for a partner change."""
        return self.run(on_partner_updated(before, after))

    def user_data_changed(self, before: Optional[UserData], after: Optional[UserData]):
        """Dispatch the handler for a user data change."""
        return self.run(on_user_data_updated(before, after))

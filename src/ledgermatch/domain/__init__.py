"""Domain layer for ledgermatch.

Services are imported lazily: the storage layer imports entities from this
package, and services import the storage layer.
"""

_SERVICES = {
    "AttachmentMatchingService": "ledgermatch.domain.attachment_scoring",
    "CategoryMatchingService": "ledgermatch.domain.category_matching",
    "CounterpartyService": "ledgermatch.domain.counterparty",
    "EffectRunner": "ledgermatch.domain.handlers",
    "PartnerMatchingService": "ledgermatch.domain.partner_matching",
    "PatternLearningService": "ledgermatch.domain.pattern_learning",
    "SourceService": "ledgermatch.domain.source",
    "TransactionImportService": "ledgermatch.domain.transaction_import",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        import importlib

        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

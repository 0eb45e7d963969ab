"""Matching configuration.

Thresholds below were tuned against real user data. They are kept as named
constants and exposed as settings defaults so a deployment (or a test) can
override them without touching the matching code.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Partner matching
PARTNER_AUTO_APPLY_THRESHOLD = 89
MAX_PARTNER_SUGGESTIONS = 3
NAME_MATCH_MIN_SIMILARITY = 60
TRANSACTION_NAME_MIN_SIMILARITY = 70

# Pattern learning
NEW_PATTERN_CONFIDENCE = 60
PATTERN_REINFORCEMENT_STEP = 10
MAX_PATTERN_CONFIDENCE = 100

# Bulk passes
BULK_PAGE_SIZE = 500
BULK_MAX_PROCESSED = 10_000
BULK_TIME_BUDGET_SECONDS = 300.0
COUNTERPARTY_BATCH_SIZE = 500
COUNTERPARTY_MAX_FILES = 500

# Category matching
CATEGORY_SUGGESTION_THRESHOLD = 60
CATEGORY_AUTO_APPLY_THRESHOLD = 89
CATEGORY_PARTNER_CONFIDENCE = 89
COMBINED_MATCH_BONUS = 15
MAX_CATEGORY_SUGGESTIONS = 3
USAGE_BOOST_MAX = 10

# Attachment scoring
STRONG_LABEL_THRESHOLD = 80
LIKELY_LABEL_THRESHOLD = 50
ATTACHMENT_AUTO_CONNECT_THRESHOLD = 85
ATTACHMENT_DATE_WINDOW_DAYS = 30
MAX_TRANSACTION_SUGGESTIONS = 5

# Currency
CURRENCY_FALLBACK_MONTHS = 3


class MatchingSettings(BaseSettings):
    """Settings loaded from LEDGERMATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERMATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Optional[str] = None
    log_level: str = "WARNING"

    partner_auto_apply_threshold: int = PARTNER_AUTO_APPLY_THRESHOLD
    max_partner_suggestions: int = MAX_PARTNER_SUGGESTIONS
    name_match_min_similarity: int = NAME_MATCH_MIN_SIMILARITY
    transaction_name_min_similarity: int = TRANSACTION_NAME_MIN_SIMILARITY

    new_pattern_confidence: int = NEW_PATTERN_CONFIDENCE
    pattern_reinforcement_step: int = PATTERN_REINFORCEMENT_STEP
    max_pattern_confidence: int = MAX_PATTERN_CONFIDENCE

    bulk_page_size: int = BULK_PAGE_SIZE
    bulk_max_processed: int = BULK_MAX_PROCESSED
    bulk_time_budget_seconds: float = BULK_TIME_BUDGET_SECONDS
    counterparty_batch_size: int = COUNTERPARTY_BATCH_SIZE
    counterparty_max_files: int = COUNTERPARTY_MAX_FILES

    category_suggestion_threshold: int = CATEGORY_SUGGESTION_THRESHOLD
    category_auto_apply_threshold: int = CATEGORY_AUTO_APPLY_THRESHOLD
    category_partner_confidence: int = CATEGORY_PARTNER_CONFIDENCE
    combined_match_bonus: int = COMBINED_MATCH_BONUS
    max_category_suggestions: int = MAX_CATEGORY_SUGGESTIONS
    usage_boost_max: int = USAGE_BOOST_MAX

    strong_label_threshold: int = STRONG_LABEL_THRESHOLD
    likely_label_threshold: int = LIKELY_LABEL_THRESHOLD
    attachment_auto_connect_threshold: int = ATTACHMENT_AUTO_CONNECT_THRESHOLD
    attachment_date_window_days: int = ATTACHMENT_DATE_WINDOW_DAYS
    max_transaction_suggestions: int = MAX_TRANSACTION_SUGGESTIONS

    currency_fallback_months: int = CURRENCY_FALLBACK_MONTHS


@lru_cache()
def get_settings() -> MatchingSettings:
    """Cached settings instance."""
    return MatchingSettings()

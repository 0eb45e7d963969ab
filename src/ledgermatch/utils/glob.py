"""Glob-style pattern matching for learned text patterns.

Patterns use `*` for any run of characters and are matched case-insensitively
against the whole match text. A pattern without wildcards therefore has to
equal the text; "*netflix*" matches anywhere.
"""

import re
from functools import lru_cache
from typing import Optional

from ledgermatch.utils.normalization import fold_umlauts


def build_match_text(*parts: Optional[str]) -> str:
    """Join the matchable fields of a record into one lowercased string."""
    return " ".join(part.strip() for part in parts if part and part.strip()).lower()


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern:
    pieces = fold_umlauts(pattern.strip()).split("*")
    return re.compile("^" + ".*".join(re.escape(piece) for piece in pieces) + "$", re.DOTALL)


def glob_match(pattern: Optional[str], text: Optional[str]) -> bool:
    """Check whether a glob pattern matches the text.

    Empty patterns and empty texts never match.
    """
    if not pattern or not pattern.strip() or not text:
        return False
    return _compile(pattern).match(fold_umlauts(text)) is not None


def pattern_key(pattern: str) -> str:
    """Identity of a pattern for reinforcement (case and padding ignored)."""
    return pattern.strip().lower()

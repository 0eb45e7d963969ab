"""Fuzzy company name matching."""

from typing import Iterable, Optional

from rapidfuzz import fuzz

from ledgermatch.utils.normalization import normalize_company_name

EXACT_SCORE = 100
PHONETIC_SCORE = 92
CONTAINMENT_BASE = 75
CONTAINMENT_RANGE = 25
MIN_CONTAINMENT_LENGTH = 3


def _cologne_code(char: str, prev: str, nxt: str, is_first: bool) -> str:
    if char in "aeijouy":
        return "0"
    if char == "h":
        return ""
    if char == "b":
        return "1"
    if char == "p":
        return "3" if nxt == "h" else "1"
    if char in "dt":
        return "8" if nxt in ("c", "s", "z") else "2"
    if char in "fvw":
        return "3"
    if char in "gkq":
        return "4"
    if char == "c":
        if is_first:
            return "4" if nxt in "ahkloqrux" and nxt else "8"
        if nxt and nxt in "ahkoqux" and prev not in ("s", "z"):
            return "4"
        return "8"
    if char == "x":
        return "8" if prev in ("c", "k", "q") else "48"
    if char == "l":
        return "5"
    if char in "mn":
        return "6"
    if char == "r":
        return "7"
    if char in "sz":
        return "8"
    return ""


def cologne_phonetic(text: str) -> str:
    """Cologne phonetics (Koelner Phonetik) code for a string.

    Words are encoded separately and joined with spaces; non-letters are
    ignored.
    """
    codes = []
    for word in text.lower().split():
        letters = [c for c in word if "a" <= c <= "z"]
        raw = []
        for i, char in enumerate(letters):
            prev = letters[i - 1] if i > 0 else ""
            nxt = letters[i + 1] if i + 1 < len(letters) else ""
            raw.append(_cologne_code(char, prev, nxt, i == 0))
        digits = "".join(raw)
        collapsed = []
        for digit in digits:
            if not collapsed or collapsed[-1] != digit:
                collapsed.append(digit)
        if not collapsed:
            continue
        code = collapsed[0] + "".join(d for d in collapsed[1:] if d != "0")
        codes.append(code)
    return " ".join(codes)


def calculate_company_name_similarity(a: Optional[str], b: Optional[str]) -> int:
    """Similarity of two company names on a 0-100 scale.

    Both names are normalized first, so legal suffixes, case and umlaut
    spelling do not matter. Scoring ladder:
    - identical normalized names: 100
    - same Cologne phonetic code: 92
    - one name contained in the other: 75-100 depending on coverage
    - otherwise the best of rapidfuzz ratio and token_sort_ratio
    """
    na = normalize_company_name(a)
    nb = normalize_company_name(b)
    if not na or not nb:
        return 0
    if na == nb:
        return EXACT_SCORE

    phonetic_a = cologne_phonetic(na)
    if len(phonetic_a.replace(" ", "")) >= 2 and phonetic_a == cologne_phonetic(nb):
        return PHONETIC_SCORE

    shorter, longer = sorted((na, nb), key=len)
    if len(shorter) >= MIN_CONTAINMENT_LENGTH and shorter in longer:
        coverage = len(shorter) / len(longer)
        return round(CONTAINMENT_BASE + coverage * CONTAINMENT_RANGE)

    return round(max(fuzz.ratio(na, nb), fuzz.token_sort_ratio(na, nb)))


def find_best_name_match(
    query: Optional[str], candidates: Iterable[str], min_score: int = 60
) -> Optional[tuple[str, int]]:
    """Return the candidate most similar to query with its score.

    Args:
        query: Name to look up
        candidates: Names to compare against (e.g. a partner name and aliases)
        min_score: Minimum similarity to accept

    Returns:
        (candidate, score) or None if nothing reaches min_score
    """
    if not query:
        return None
    best: Optional[tuple[str, int]] = None
    for candidate in candidates:
        if not candidate:
            continue
        score = calculate_company_name_similarity(query, candidate)
        if score >= min_score and (best is None or score > best[1]):
            best = (candidate, score)
    return best

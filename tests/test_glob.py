"""Tests for glob pattern matching."""

import pytest

from ledgermatch.utils.glob import build_match_text, glob_match, pattern_key


@pytest.mark.parametrize(
    "pattern,text,expected",
    [
        ("*netflix*", "NETFLIX.COM 866-579-7172", True),
        ("netflix*", "netflix.com", True),
        ("netflix", "netflix.com", False),
        ("*paypal*europe*", "paypal (europe) s.a.r.l. et cie", True),
        ("*europe*paypal*", "paypal (europe) s.a.r.l.", False),
        ("*müller*", "MUELLER BAU GMBH", True),
        ("*a.b*", "axb", False),
        ("*", "anything", True),
    ],
)
def test_glob_match(pattern, text, expected):
    assert glob_match(pattern, text) is expected


@pytest.mark.parametrize("pattern,text", [("", "netflix"), ("  ", "netflix"), ("*", ""), (None, "x")])
def test_empty_pattern_or_text_never_matches(pattern, text):
    assert glob_match(pattern, text) is False


def test_build_match_text_joins_fields_holistically():
    text = build_match_text("NETFLIX.COM", None, " Netflix International B.V. ", "")
    assert text == "netflix.com netflix international b.v."
    assert glob_match("*netflix.com*international*", text)


def test_pattern_key_ignores_case_and_padding():
    assert pattern_key(" *Netflix* ") == "*netflix*"

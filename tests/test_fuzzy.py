"""Tests for fuzzy company name matching."""

from ledgermatch.utils.fuzzy import (
    calculate_company_name_similarity,
    cologne_phonetic,
    find_best_name_match,
)


def test_identical_names_ignore_case_and_legal_suffix():
    assert calculate_company_name_similarity("Netflix", "NETFLIX Inc.") == 100
    assert calculate_company_name_similarity("Müller GmbH", "Mueller") == 100


def test_phonetic_equivalents():
    assert cologne_phonetic("Meier") == cologne_phonetic("Mayer") == "67"
    assert calculate_company_name_similarity("Meier", "Mayer") == 92


def test_containment_scores_high():
    score = calculate_company_name_similarity("Amazon", "Amazon Marketplace")
    assert 75 <= score < 100


def test_unrelated_names_score_low():
    assert calculate_company_name_similarity("Netflix", "Deutsche Bahn") < 50


def test_more_shared_tokens_score_higher():
    closer = calculate_company_name_similarity("Mueller Bau", "Mueller Bau Holding")
    further = calculate_company_name_similarity("Mueller Bau", "Mueller Holding")
    assert closer > further


def test_empty_names_score_zero():
    assert calculate_company_name_similarity("", "Netflix") == 0
    assert calculate_company_name_similarity(None, None) == 0


def test_find_best_name_match_returns_best_candidate():
    assert find_best_name_match("Netflix", ["Amazon", "Netflix Inc"]) == ("Netflix Inc", 100)


def test_find_best_name_match_respects_min_score():
    assert find_best_name_match("Zalando", ["Amazon"], min_score=60) is None
    assert find_best_name_match(None, ["Amazon"]) is None

"""Tests for the HTTP entry points."""

from ledgermatch.domain.entities import LearnedPattern

HEADERS = {"X-User-Id": "user-1"}

TRANSACTION = {
    "date": "2024-03-10",
    "amount": -4999,
    "currency": "EUR",
    "name": "ADOBE SYSTEMS SOFTWARE",
    "partnerIban": "IE29AIBK93115212345678",
}


def test_score_files_ranks_candidates(api_client):
    response = api_client.post(
        "/score-files",
        headers=HEADERS,
        json={
            "transaction": TRANSACTION,
            "attachments": [
                {"key": "far", "amount": 20000, "documentDate": "2024-03-10"},
                {"key": "exact", "amount": 4999, "documentDate": "2024-03-10"},
            ],
        },
    )

    assert response.status_code == 200
    scores = response.json()["scores"]
    assert [s["key"] for s in scores] == ["exact", "far"]
    assert scores[0]["score"] == 80
    assert scores[0]["label"] == "Strong"
    assert "Exact amount match" in scores[0]["reasons"]


def test_score_files_uses_partner_context(api_client):
    response = api_client.post(
        "/score-files",
        headers=HEADERS,
        json={
            "transaction": TRANSACTION,
            "partner": {"name": "Adobe", "vatId": "IE6364992H", "emailDomains": ["adobe.com"]},
            "attachments": [
                {"key": "mail", "vatId": "IE 6364992 H", "emailFrom": "message@mail.adobe.com"}
            ],
        },
    )

    assert response.status_code == 200
    assert response.json()["scores"][0]["score"] == 90


def test_score_files_without_attachments(api_client):
    response = api_client.post(
        "/score-files", headers=HEADERS, json={"transaction": TRANSACTION, "attachments": []}
    )
    assert response.status_code == 200
    assert response.json() == {"scores": []}


def test_missing_user_header_is_rejected(api_client):
    response = api_client.post("/apply-patterns")
    assert response.status_code == 422


def test_blank_user_header_is_unauthorized(api_client):
    response = api_client.post("/apply-patterns", headers={"X-User-Id": "  "})
    assert response.status_code == 401


def test_apply_patterns(api_client, memory_repo, add_partner, add_transaction):
    partner = add_partner(
        "Netflix", learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=95),)
    )
    matched = add_transaction(name="NETFLIX.COM 866-579-7172")
    add_transaction(name="Miete Januar")

    response = api_client.post("/apply-patterns", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"processed": 2, "matched": 1, "failed": 0, "truncated": False}
    assert memory_repo.get_transaction(matched.id).partner_id == partner.id


def test_apply_patterns_only_touches_calling_user(api_client, memory_repo, add_partner, add_transaction):
    add_partner("Netflix", learned_patterns=(LearnedPattern(pattern="*netflix*", confidence=95),))
    add_transaction(name="NETFLIX.COM")

    response = api_client.post("/apply-patterns", headers={"X-User-Id": "user-2"})

    assert response.json()["processed"] == 0

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from fakes import InMemoryRepository
from scholarship_gateway.main import app
from scholarship_gateway.services.repository import get_repository


@pytest.fixture
def newsletter_client() -> Iterator[tuple[TestClient, InMemoryRepository]]:
    repository = InMemoryRepository()
    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as client:
        yield client, repository

    app.dependency_overrides.clear()


def test_subscribe_normalizes_email(newsletter_client) -> None:
    client, repository = newsletter_client

    response = client.post("/newsletter/subscribe", json={"email": "  Reader@Example.COM "})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Successfully subscribed to newsletter"
    assert body["data"]["email"] == "reader@example.com"
    assert body["data"]["is_active"] is True
    assert list(repository.subscribers) == ["reader@example.com"]


def test_subscribe_twice_is_idempotent(newsletter_client) -> None:
    client, repository = newsletter_client
    client.post("/newsletter/subscribe", json={"email": "reader@example.com"})

    response = client.post("/newsletter/subscribe", json={"email": "READER@example.com"})

    assert response.status_code == 200
    assert response.json()["message"] == "You are already subscribed"
    assert len(repository.subscribers) == 1


def test_unsubscribe_then_resubscribe_reactivates(newsletter_client) -> None:
    client, repository = newsletter_client
    client.post("/newsletter/subscribe", json={"email": "reader@example.com"})

    response = client.post("/newsletter/unsubscribe", json={"email": "reader@example.com"})
    assert response.status_code == 200
    assert response.json()["message"] == "Successfully unsubscribed from newsletter"
    assert response.json()["data"]["is_active"] is False
    assert response.json()["data"]["unsubscribed_at"] is not None

    response = client.post("/newsletter/subscribe", json={"email": "reader@example.com"})
    assert response.json()["message"] == "Welcome back! Your subscription has been reactivated"
    assert response.json()["data"]["unsubscribed_at"] is None
    assert repository.subscribers["reader@example.com"]["is_active"] is True


def test_second_unsubscribe_keeps_first_timestamp(newsletter_client) -> None:
    client, _ = newsletter_client
    client.post("/newsletter/subscribe", json={"email": "reader@example.com"})

    first = client.post("/newsletter/unsubscribe", json={"email": "reader@example.com"}).json()
    second = client.post("/newsletter/unsubscribe", json={"email": "reader@example.com"})

    assert second.status_code == 200
    assert second.json()["data"]["unsubscribed_at"] == first["data"]["unsubscribed_at"]


def test_unsubscribe_unknown_email_is_not_found(newsletter_client) -> None:
    client, _ = newsletter_client

    response = client.post("/newsletter/unsubscribe", json={"email": "stranger@example.com"})

    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({}, "Email is required"),
        ({"email": "   "}, "Email is required"),
        ({"email": "not-an-email"}, "A valid email address is required"),
        ({"email": "reader@localhost"}, "A valid email address is required"),
        ({"email": "a@@b.com"}, "A valid email address is required"),
        ({"email": "a@b..com"}, "A valid email address is required"),
        ({"email": "<x>@b.com"}, "A valid email address is required"),
        ({"email": "a@.com"}, "A valid email address is required"),
    ],
)
def test_subscribe_rejects_missing_or_malformed_email(newsletter_client, payload, message) -> None:
    client, repository = newsletter_client

    response = client.post("/newsletter/subscribe", json=payload)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": message}
    assert repository.subscribers == {}


def test_unsubscribe_rejects_malformed_email(newsletter_client) -> None:
    client, _ = newsletter_client

    response = client.post("/newsletter/unsubscribe", json={"email": "a@@b.com"})

    assert response.status_code == 400
    assert response.json()["message"] == "A valid email address is required"

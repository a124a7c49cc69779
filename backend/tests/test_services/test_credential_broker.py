"""
Unit tests for CredentialBroker

Token lifecycle (fast path, proactive refresh, refresh-token rotation),
concurrent refresh handling and the 401 retry wrapper.
"""
import asyncio
from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import API_BASE, NOW, TOKEN_URL, FakeCredentialStore, fixed_clock, make_record
from stockbridge.core.exceptions import (
    AuthRejectedAfterRefresh,
    CredentialConflict,
    CredentialsMissing,
    RefreshFailed,
)
from stockbridge.services.credential_broker import REFRESH_MARGIN, CredentialBroker, RetryPolicy


def make_broker(store, transport, **kwargs) -> CredentialBroker:
    return CredentialBroker(
        store=store,
        http_client=transport.client(),
        client_id="123456",
        client_secret="s3cret",
        token_url=TOKEN_URL,
        clock=fixed_clock,
        **kwargs,
    )


def form_of(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


class TestGetValidAccessToken:
    """Proactive refresh around the expiry margin"""

    def test_fresh_token_returned_without_network(self, transport, credential_store):
        """A token with more than the margin left is handed out as-is"""
        broker = make_broker(credential_store, transport)

        token = asyncio.run(broker.get_valid_access_token())

        assert token == "APP_USR-old-access"
        assert transport.requests == []
        assert credential_store.writes == []

    def test_token_inside_margin_is_refreshed(self, transport):
        """Expiring within the margin triggers exactly one refresh and one write"""
        # Arrange
        store = FakeCredentialStore(make_record(expires_at=NOW + timedelta(seconds=60)))
        transport.add("POST", "/oauth/token", json={
            "access_token": "APP_USR-new-access",
            "refresh_token": "TG-new-refresh",
            "expires_in": 21600,
        })
        broker = make_broker(store, transport)

        # Act
        token = asyncio.run(broker.get_valid_access_token())

        # Assert
        assert token == "APP_USR-new-access"
        assert len(transport.calls("POST", "/oauth/token")) == 1
        assert len(store.writes) == 1
        assert store.record.expires_at == NOW + timedelta(seconds=21600)
        assert store.record.updated_at == NOW
        assert store.record.version == 4

    def test_token_exactly_at_margin_is_refreshed(self, transport):
        store = FakeCredentialStore(make_record(expires_at=NOW + REFRESH_MARGIN))
        transport.add("POST", "/oauth/token", json={"access_token": "fresh", "expires_in": 600})

        token = asyncio.run(make_broker(store, transport).get_valid_access_token())

        assert token == "fresh"

    def test_refresh_request_is_form_encoded(self, transport):
        store = FakeCredentialStore(make_record(expires_at=NOW - timedelta(minutes=1)))
        transport.add("POST", "/oauth/token", json={"access_token": "fresh", "expires_in": 600})

        asyncio.run(make_broker(store, transport).get_valid_access_token())

        request = transport.requests[0]
        assert str(request.url) == TOKEN_URL
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert form_of(request) == {
            "grant_type": "refresh_token",
            "client_id": "123456",
            "client_secret": "s3cret",
            "refresh_token": "TG-old-refresh",
        }

    def test_refresh_keeps_old_refresh_token_when_not_rotated(self, transport):
        store = FakeCredentialStore(make_record(expires_at=NOW))
        transport.add("POST", "/oauth/token", json={"access_token": "fresh", "expires_in": 600})

        asyncio.run(make_broker(store, transport).get_valid_access_token())

        assert store.record.refresh_token == "TG-old-refresh"

    def test_refresh_replaces_rotated_refresh_token(self, transport):
        store = FakeCredentialStore(make_record(expires_at=NOW))
        transport.add("POST", "/oauth/token", json={
            "access_token": "fresh",
            "refresh_token": "TG-rotated",
            "expires_in": 600,
        })

        asyncio.run(make_broker(store, transport).get_valid_access_token())

        assert store.record.refresh_token == "TG-rotated"

    def test_missing_record_raises_without_network(self, transport):
        broker = make_broker(FakeCredentialStore(), transport)

        with pytest.raises(CredentialsMissing):
            asyncio.run(broker.get_valid_access_token())

        assert transport.requests == []

    def test_rejected_refresh_raises_and_keeps_record(self, transport):
        stored = make_record(expires_at=NOW)
        store = FakeCredentialStore(stored)
        transport.add("POST", "/oauth/token", status_code=400, json={"error": "invalid_grant"})

        with pytest.raises(RefreshFailed) as exc_info:
            asyncio.run(make_broker(store, transport).get_valid_access_token())

        assert exc_info.value.status == 400
        assert "invalid_grant" in exc_info.value.body
        assert store.record == stored
        assert store.writes == []


class TestConcurrentRefresh:
    """Versioned writes when another caller refreshed first"""

    def test_loser_adopts_winner_record(self, transport):
        # Arrange: another writer stores version 4 while our refresh is in flight
        store = FakeCredentialStore(make_record(expires_at=NOW))
        winner = make_record(access_token="winner-access", version=4, expires_at=NOW + timedelta(hours=6))

        def concurrent_write(s):
            s.record = winner

        store.before_swap = concurrent_write
        transport.add("POST", "/oauth/token", json={"access_token": "loser-access", "expires_in": 600})

        # Act
        token = asyncio.run(make_broker(store, transport).get_valid_access_token())

        # Assert: the winner's write is not overwritten
        assert token == "winner-access"
        assert store.record == winner
        assert store.writes == []

    def test_conflict_without_newer_record_raises(self, transport):
        store = FakeCredentialStore(make_record(expires_at=NOW))

        def record_deleted(s):
            s.record = None

        store.before_swap = record_deleted
        transport.add("POST", "/oauth/token", json={"access_token": "fresh", "expires_in": 600})

        with pytest.raises(CredentialConflict):
            asyncio.run(make_broker(store, transport).get_valid_access_token())


class TestPerformAuthenticatedWrite:
    """401 retry bound"""

    def build_put(self, broker):
        def build_request(token):
            return broker._http.build_request(
                "PUT",
                f"{API_BASE}/items/MLC1",
                json={"available_quantity": 1},
                headers={"Authorization": f"Bearer {token}"},
            )
        return build_request

    def test_401_forces_one_refresh_and_one_resend(self, transport, credential_store):
        # Arrange
        transport.add("PUT", "/items/MLC1", status_code=401)
        transport.add("PUT", "/items/MLC1", status_code=200, json={"id": "MLC1"})
        transport.add("POST", "/oauth/token", json={"access_token": "after-401", "expires_in": 600})
        broker = make_broker(credential_store, transport)

        # Act
        response = asyncio.run(broker.perform_authenticated_write(self.build_put(broker)))

        # Assert
        assert response.status_code == 200
        puts = transport.calls("PUT", "/items/MLC1")
        assert len(puts) == 2
        assert puts[0].headers["authorization"] == "Bearer APP_USR-old-access"
        assert puts[1].headers["authorization"] == "Bearer after-401"
        assert len(transport.calls("POST", "/oauth/token")) == 1

    def test_second_401_raises_without_third_attempt(self, transport, credential_store):
        transport.add("PUT", "/items/MLC1", status_code=401, text="unauthorized")
        transport.add("POST", "/oauth/token", json={"access_token": "after-401", "expires_in": 600})
        broker = make_broker(credential_store, transport)

        with pytest.raises(AuthRejectedAfterRefresh) as exc_info:
            asyncio.run(broker.perform_authenticated_write(self.build_put(broker)))

        assert exc_info.value.status == 401
        assert len(transport.calls("PUT", "/items/MLC1")) == 2
        assert len(transport.calls("POST", "/oauth/token")) == 1

    def test_other_errors_are_returned_unretried(self, transport, credential_store):
        transport.add("PUT", "/items/MLC1", status_code=500, text="boom")
        broker = make_broker(credential_store, transport)

        response = asyncio.run(broker.perform_authenticated_write(self.build_put(broker)))

        assert response.status_code == 500
        assert len(transport.requests) == 1

    def test_single_attempt_policy_never_refreshes(self, transport, credential_store):
        transport.add("PUT", "/items/MLC1", status_code=401)
        broker = make_broker(credential_store, transport, retry_policy=RetryPolicy(max_attempts=1))

        with pytest.raises(AuthRejectedAfterRefresh):
            asyncio.run(broker.perform_authenticated_write(self.build_put(broker)))

        assert transport.calls("POST", "/oauth/token") == []

    def test_policy_needs_at_least_one_attempt(self, transport, credential_store):
        with pytest.raises(ValueError):
            make_broker(credential_store, transport, retry_policy=RetryPolicy(max_attempts=0))

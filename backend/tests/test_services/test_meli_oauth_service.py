"""
Unit tests for MeliOAuthService
"""
import asyncio
from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import NOW, TOKEN_URL, FakeCredentialStore, fixed_clock, make_record
from stockbridge.core.exceptions import TokenExchangeFailed
from stockbridge.services.meli_oauth_service import MeliOAuthService, with_query

REDIRECT_URI = "https://stock.example.com/meli/callback"


def make_service(store, transport):
    return MeliOAuthService(
        store=store,
        http_client=transport.client(),
        client_id="123456",
        client_secret="s3cret",
        redirect_uri=REDIRECT_URI,
        token_url=TOKEN_URL,
        auth_base="https://auth.mercadolibre.cl",
        clock=fixed_clock,
    )


def exchange(service, code):
    """Token request followed by the store, as the OAuth callback does it"""
    grant = asyncio.run(service.request_tokens(code))
    return service.store_grant(grant)


class TestAuthorizationUrl:

    def test_url_carries_scope_and_state(self, transport):
        result = make_service(FakeCredentialStore(), transport).build_authorization_url()

        url = urlsplit(result["auth_url"])
        query = parse_qs(url.query)
        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://auth.mercadolibre.cl/authorization"
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["123456"]
        assert query["redirect_uri"] == [REDIRECT_URI]
        assert query["scope"] == ["offline_access read write"]
        assert query["state"] == [result["state"]]

    def test_state_is_fresh_per_call(self, transport):
        service = make_service(FakeCredentialStore(), transport)

        states = {service.build_authorization_url()["state"] for _ in range(5)}

        assert len(states) == 5


class TestExchangeCode:

    def test_stores_new_record(self, transport):
        # Arrange
        store = FakeCredentialStore()
        transport.add("POST", "/oauth/token", json={
            "access_token": "APP_USR-first",
            "refresh_token": "TG-first",
            "expires_in": 21600,
            "user_id": 987,
        })

        # Act
        record = exchange(make_service(store, transport), "TG-code")

        # Assert
        assert store.record == record
        assert record.access_token == "APP_USR-first"
        assert record.expires_at == NOW + timedelta(seconds=21600)
        assert record.version == 1
        form = parse_qs(transport.requests[0].content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["TG-code"]
        assert form["redirect_uri"] == [REDIRECT_URI]

    def test_reauthorization_overwrites_and_bumps_version(self, transport, credential_store):
        transport.add("POST", "/oauth/token", json={
            "access_token": "APP_USR-again",
            "refresh_token": "TG-again",
            "expires_in": 21600,
        })

        record = exchange(make_service(credential_store, transport), "TG-code")

        assert record.version == 4
        assert credential_store.record.refresh_token == "TG-again"

    def test_rejected_code_raises(self, transport):
        store = FakeCredentialStore()
        transport.add("POST", "/oauth/token", status_code=400, json={"error": "invalid_grant"})

        with pytest.raises(TokenExchangeFailed) as exc_info:
            exchange(make_service(store, transport), "bad")

        assert exc_info.value.status == 400
        assert store.writes == []

    def test_grant_without_refresh_token_keeps_stored_one(self, transport):
        store = FakeCredentialStore(make_record())
        transport.add("POST", "/oauth/token", json={"access_token": "APP_USR-x", "expires_in": 600})

        record = exchange(make_service(store, transport), "TG-code")

        assert record.refresh_token == "TG-old-refresh"


class TestWithQuery:

    def test_appends_to_existing_query(self):
        url = with_query("http://localhost:5173/admin?ml=error", {"reason": "missing_code", "detail": "a b"})

        assert url == "http://localhost:5173/admin?ml=error&reason=missing_code&detail=a+b"

    def test_skips_none_values(self):
        assert with_query("http://x/admin?ml=connected", {"state": None}) == "http://x/admin?ml=connected"

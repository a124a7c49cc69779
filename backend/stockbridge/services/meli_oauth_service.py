"""
Mercado Libre OAuth Service
Authorization-code flow: consent URL, code exchange, initial credential record
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from stockbridge.core.exceptions import TokenExchangeFailed
from stockbridge.domain.credentials import CredentialRecord, TokenGrant
from stockbridge.services.credential_broker import utc_now

logger = logging.getLogger(__name__)

OAUTH_SCOPE = "offline_access read write"


def with_query(url: str, params: Dict[str, Optional[str]]) -> str:
    """Append query parameters to a URL that may already carry a query string"""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunsplit(parts._replace(query=urlencode(query)))


class MeliOAuthService:
    """
    Starts and completes the Mercado Libre OAuth consent flow

    The resulting credential record is written by account_id, so
    re-authorizing overwrites the previous record.
    """

    def __init__(
        self,
        store,
        http_client: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_url: str,
        auth_base: str = "https://auth.mercadolibre.com",
        account_id: str = "default",
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._http = http_client
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._token_url = token_url
        self._auth_base = auth_base.rstrip('/')
        self.account_id = account_id
        self._clock = clock

    def build_authorization_url(self) -> Dict[str, str]:
        """
        Consent URL plus a fresh anti-forgery state token

        Returns:
            {"auth_url": ..., "state": ...}
        """
        state = secrets.token_urlsafe(24)
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "scope": OAUTH_SCOPE,
            "state": state,
        }
        return {
            "auth_url": f"{self._auth_base}/authorization?{urlencode(params)}",
            "state": state,
        }

    async def request_tokens(self, code: str) -> TokenGrant:
        """
        Exchange an authorization code at the token endpoint

        Raises:
            TokenExchangeFailed: Non-success response
        """
        response = await self._http.post(
            self._token_url,
            data={
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": self._redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        if not 200 <= response.status_code < 300:
            logger.error(f"ML code exchange failed: {response.status_code} - {response.text}")
            raise TokenExchangeFailed(response.status_code, response.text)

        logger.info("Exchanged ML authorization code for tokens")
        return TokenGrant(**response.json())

    def store_grant(self, grant: TokenGrant) -> CredentialRecord:
        """Persist a grant as the account's credential record"""
        now = self._clock()
        current = self._store.get_latest(self.account_id)

        refresh_token = grant.refresh_token
        if not refresh_token:
            logger.warning("Authorization grant carried no refresh_token")
            refresh_token = current.refresh_token if current else ""

        record = CredentialRecord(
            account_id=self.account_id,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=grant.expires_in),
            updated_at=now,
            version=(current.version + 1) if current else 1,
        )
        return self._store.upsert(record)

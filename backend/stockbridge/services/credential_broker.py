"""
Credential Broker - Mercado Libre OAuth2 token lifecycle

Owns the credential record of one marketplace account and guarantees that
every outbound marketplace call carries a usable bearer token:

- Proactive refresh: a stored token is only handed out while it has more than
  REFRESH_MARGIN left before expires_at.
- Reactive refresh: a write rejected with 401 forces one refresh and is sent
  again once, as bounded by AUTH_RETRY_POLICY.

Refresh writes are a versioned compare-and-swap on the stored record. When two
callers refresh at the same time, the loser keeps the winner's record instead
of overwriting it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, FrozenSet

import httpx

from stockbridge.core.exceptions import (
    AuthRejectedAfterRefresh,
    CredentialConflict,
    CredentialsMissing,
    RefreshFailed,
)
from stockbridge.domain.credentials import CredentialRecord, TokenGrant

logger = logging.getLogger(__name__)

# Absorbs clock skew and in-flight latency so a token never expires mid-request
REFRESH_MARGIN = timedelta(seconds=120)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times an authenticated write may be sent, and on which statuses to retry"""

    max_attempts: int = 2
    retry_on_status: FrozenSet[int] = field(default_factory=lambda: frozenset({401}))


AUTH_RETRY_POLICY = RetryPolicy()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


class CredentialBroker:
    """
    Hands out valid Mercado Libre access tokens and performs authenticated writes

    Args:
        store: Credential store with get_latest / compare_and_swap
            (see CredentialsRepository)
        http_client: Shared async HTTP client used for the token endpoint and
            for the wrapped marketplace requests
        client_id: OAuth application id
        client_secret: OAuth application secret
        token_url: Provider token endpoint
        account_id: Key of the credential record this broker owns
        clock: Returns the current UTC instant
        refresh_margin: Minimum remaining lifetime for a stored token to be reused
        retry_policy: Bound on authenticated write attempts
    """

    def __init__(
        self,
        store,
        http_client: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        token_url: str,
        account_id: str = "default",
        clock: Callable[[], datetime] = utc_now,
        refresh_margin: timedelta = REFRESH_MARGIN,
        retry_policy: RetryPolicy = AUTH_RETRY_POLICY,
    ):
        if retry_policy.max_attempts < 1:
            raise ValueError("retry_policy.max_attempts must be at least 1")

        self._store = store
        self._http = http_client
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self.account_id = account_id
        self._clock = clock
        self._refresh_margin = refresh_margin
        self._retry_policy = retry_policy

    # ==================== TOKENS ====================

    async def get_valid_access_token(self) -> str:
        """
        Access token that stays valid for at least refresh_margin

        Returns the stored token without any network call while it is fresh,
        otherwise refreshes (one token-endpoint call, one persisted write).

        Raises:
            CredentialsMissing: No record is stored for the account
            RefreshFailed: The token endpoint rejected the refresh
        """
        record = self._load()

        if record.is_usable_at(self._clock(), self._refresh_margin):
            return record.access_token

        logger.info(
            f"ML access token for account {self.account_id} expires at "
            f"{record.expires_at.isoformat()}, refreshing"
        )
        refreshed = await self._refresh(record)
        return refreshed.access_token

    async def force_refresh(self) -> CredentialRecord:
        """Refresh regardless of the stored expiry and return the resulting record"""
        record = self._load()
        return await self._refresh(record)

    def _load(self) -> CredentialRecord:
        record = self._store.get_latest(self.account_id)
        if record is None:
            raise CredentialsMissing(self.account_id)
        return record

    async def _request_refresh_grant(self, refresh_token: str) -> TokenGrant:
        data = {
            'grant_type': 'refresh_token',
            'client_id': self._client_id,
            'client_secret': self._client_secret,
            'refresh_token': refresh_token,
        }
        response = await self._http.post(
            self._token_url,
            data=data,
            headers={'Accept': 'application/json'},
        )

        if not _is_success(response):
            logger.error(f"Token refresh failed: {response.status_code} - {response.text}")
            raise RefreshFailed(response.status_code, response.text)

        return TokenGrant(**response.json())

    async def _refresh(self, current: CredentialRecord) -> CredentialRecord:
        grant = await self._request_refresh_grant(current.refresh_token)
        now = self._clock()

        refreshed = CredentialRecord(
            account_id=self.account_id,
            access_token=grant.access_token,
            # Providers may or may not rotate the refresh token
            refresh_token=grant.refresh_token or current.refresh_token,
            expires_at=now + timedelta(seconds=grant.expires_in),
            updated_at=now,
            version=current.version + 1,
        )

        if self._store.compare_and_swap(refreshed, expected_version=current.version):
            logger.info(
                f"ML access token refreshed for account {self.account_id}, "
                f"expires at {refreshed.expires_at.isoformat()}"
            )
            return refreshed

        winner = self._store.get_latest(self.account_id)
        if winner is None or winner.version <= current.version:
            raise CredentialConflict(self.account_id, current.version)

        logger.warning(
            f"Concurrent ML token refresh for account {self.account_id}; "
            f"keeping stored version {winner.version}"
        )
        return winner

    # ==================== WRITES ====================

    async def perform_authenticated_write(
        self,
        build_request: Callable[[str], httpx.Request],
    ) -> httpx.Response:
        """
        Send a marketplace request with a valid bearer token

        On 401 the token is force-refreshed and the request rebuilt and sent
        again, up to retry_policy.max_attempts sends in total. Any other status,
        success or not, is returned as-is.

        Args:
            build_request: Builds the request for a given bearer token

        Raises:
            AuthRejectedAfterRefresh: The last allowed attempt was also rejected
        """
        policy = self._retry_policy
        token = await self.get_valid_access_token()

        for attempt in range(1, policy.max_attempts + 1):
            request = build_request(token)
            response = await self._http.send(request)

            if response.status_code not in policy.retry_on_status:
                return response

            if attempt == policy.max_attempts:
                logger.error(
                    f"{request.method} {request.url} rejected with {response.status_code} "
                    f"after {attempt} attempts"
                )
                raise AuthRejectedAfterRefresh(response.status_code, response.text)

            logger.warning(
                f"{request.method} {request.url} returned {response.status_code}, "
                f"forcing token refresh (attempt {attempt}/{policy.max_attempts})"
            )
            token = (await self.force_refresh()).access_token

        # max_attempts >= 1, so the loop always returns or raises
        raise AssertionError("unreachable")

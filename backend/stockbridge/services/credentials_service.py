"""
Credentials Service - admin operations on the stored Mercado Libre credentials

Features:
- Connection health (expiry, minutes left)
- Manual credential entry, with expires_at normalization
- Forced token refresh from the dashboard
- Alerts on the alert bus for every admin action
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from stockbridge.core.exceptions import MercadoLibreError
from stockbridge.domain.alert import AlertType
from stockbridge.domain.credentials import CredentialRecord
from stockbridge.services.alert_bus import AlertBus
from stockbridge.services.credential_broker import CredentialBroker, utc_now

logger = logging.getLogger(__name__)

ALERT_CHANNEL = "ml"

# Epoch values above this are milliseconds, below are seconds
_EPOCH_MS_THRESHOLD = 1e12


def normalize_expires_at(value: Union[str, int, float, datetime]) -> datetime:
    """
    Parse an expiry given as epoch seconds, epoch milliseconds or ISO-8601

    Naive values are taken as UTC.

    Raises:
        ValueError: The value cannot be interpreted as an instant
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("expires_at is empty")
        try:
            value = float(text)
        except ValueError:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"expires_at is not a finite number: {value}")

    seconds = number / 1000 if number > _EPOCH_MS_THRESHOLD else number
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ValueError(f"expires_at out of range: {value}") from e


def _mask(token: Optional[str]) -> Optional[str]:
    if not token:
        return token
    return f"{token[:8]}..." if len(token) > 8 else "***"


class CredentialsService:
    """Dashboard-facing operations on the Mercado Libre credential record"""

    def __init__(
        self,
        store,
        broker: CredentialBroker,
        alerts: AlertBus,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._broker = broker
        self._alerts = alerts
        self._clock = clock

    @property
    def account_id(self) -> str:
        return self._broker.account_id

    def get_health(self) -> Dict[str, Any]:
        """
        Connection status of the Mercado Libre account

        Returns:
            Dict with connected flag, reason when disconnected, and expiry info
        """
        now = self._clock()
        record = self._store.get_latest(self.account_id)

        if record is None:
            return {
                "connected": False,
                "reason": "no_credentials",
                "now_ms": int(now.timestamp() * 1000),
            }

        expires_at_ms = int(record.expires_at.timestamp() * 1000)
        now_ms = int(now.timestamp() * 1000)
        connected = now < record.expires_at

        health = {
            "connected": connected,
            "expires_at": record.expires_at.isoformat(),
            "expires_at_ms": expires_at_ms,
            "now_ms": now_ms,
            "minutes_left": (expires_at_ms - now_ms) // 60000,
            "updated_at": record.updated_at.isoformat() if record.updated_at else None,
        }
        if not connected:
            health["reason"] = "expired"
        return health

    def get_current(self) -> Optional[Dict[str, Any]]:
        """Stored record with tokens masked, or None"""
        record = self._store.get_latest(self.account_id)
        if record is None:
            return None
        return {
            "account_id": record.account_id,
            "access_token": _mask(record.access_token),
            "refresh_token": _mask(record.refresh_token),
            "expires_at": record.expires_at.isoformat(),
            "updated_at": record.updated_at.isoformat() if record.updated_at else None,
            "version": record.version,
        }

    def save_manual(
        self,
        access_token: str,
        refresh_token: str,
        expires_at: Union[str, int, float, datetime],
    ) -> CredentialRecord:
        """
        Store credentials typed in by an admin

        Raises:
            ValueError: A field is missing or expires_at cannot be parsed
        """
        if not access_token or not refresh_token or expires_at in (None, ""):
            raise ValueError("access_token, refresh_token and expires_at are required")

        try:
            normalized = normalize_expires_at(expires_at)
            current = self._store.get_latest(self.account_id)
            record = CredentialRecord(
                account_id=self.account_id,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=normalized,
                updated_at=self._clock(),
                version=(current.version + 1) if current else 1,
            )
            self._store.upsert(record)
        except Exception as e:
            self._alerts.emit_alert(AlertType.ERROR, f"Error saving ML credentials: {e}", channel=ALERT_CHANNEL)
            raise

        self._alerts.emit_alert(AlertType.SYNC, "ML credentials saved", channel=ALERT_CHANNEL)
        return record

    async def refresh(self) -> Dict[str, Any]:
        """
        Force a token refresh

        Returns:
            New expiry information (tokens are not echoed back)
        """
        try:
            record = await self._broker.force_refresh()
        except MercadoLibreError as e:
            self._alerts.emit_alert(AlertType.ERROR, f"Could not refresh the ML token: {e}", channel=ALERT_CHANNEL)
            raise

        self._alerts.emit_alert(AlertType.SYNC, "ML token refreshed", channel=ALERT_CHANNEL)
        expires_in = int((record.expires_at - self._clock()).total_seconds())
        return {
            "ok": True,
            "expires_at": record.expires_at.isoformat(),
            "expires_in": max(expires_in, 0),
        }

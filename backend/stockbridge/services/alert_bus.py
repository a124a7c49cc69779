"""
Alert Bus - publish/subscribe channel for dashboard alerts

Producers call emit_alert(); subscribers registered for ALERT_EVENT receive
the typed AppAlert payload. Every alert is also persisted to the alerts table
so the alert feed survives reloads.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from stockbridge.domain.alert import ALERT_EVENT, ALERTS_REFRESH_EVENT, AlertType, AppAlert
from stockbridge.services.credential_broker import utc_now

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

EVENTS = (ALERT_EVENT, ALERTS_REFRESH_EVENT)


class AlertBus:
    """
    In-process alert channel

    Delivery is synchronous and in subscription order. A subscriber that
    raises is logged and skipped; the remaining subscribers still run.
    """

    def __init__(self, repository=None, clock: Callable[[], datetime] = utc_now):
        """
        Args:
            repository: Alert store with insert() (see AlertRepository), or None
                to keep alerts in-process only
            clock: Returns the current UTC instant
        """
        self._repository = repository
        self._clock = clock
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event

        Returns:
            A callable that removes the handler again
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown alert event: {event}")

        self._subscribers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers[event]:
                self._subscribers[event].remove(handler)

        return unsubscribe

    def with_repository(self, repository) -> "AlertBus":
        """Bus sharing this one's subscribers that persists through the given repository"""
        bus = AlertBus(repository=repository, clock=self._clock)
        bus._subscribers = self._subscribers
        return bus

    def _publish(self, event: str, payload: Any) -> None:
        for handler in list(self._subscribers[event]):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Alert subscriber {handler!r} failed on {event}")

    def emit_alert(
        self,
        type: Union[AlertType, str],
        message: str,
        channel: Optional[str] = None,
        read: bool = False,
    ) -> AppAlert:
        """Publish an alert to subscribers, then persist it"""
        alert = AppAlert(
            id=str(uuid.uuid4()),
            type=AlertType(type),
            message=message,
            date=self._clock(),
            read=read,
            channel=channel,
        )

        self._publish(ALERT_EVENT, alert)

        if self._repository is not None:
            try:
                self._repository.insert(alert)
            except Exception:
                logger.exception(f"Failed to persist alert {alert.id}: {message}")

        return alert

    def emit_alerts_refresh(self) -> None:
        """Ask alert-feed subscribers to reload"""
        self._publish(ALERTS_REFRESH_EVENT, None)

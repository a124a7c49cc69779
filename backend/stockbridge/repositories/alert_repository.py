"""
Alert Repository - Data access for the alerts table
"""
from typing import List, Optional, Tuple

from supabase import Client

from stockbridge.domain.alert import AlertType, AppAlert, StoredAlert


class AlertRepository:
    """
    Persisted dashboard alerts

    Handles:
    - Insert from the alert bus
    - Paginated listing, newest first, filtered by unread or type
    - Marking alerts read
    """

    TABLE = "alerts"

    def __init__(self, client: Client):
        self._client = client

    def insert(self, alert: AppAlert) -> None:
        self._client.table(self.TABLE).insert({
            "id": alert.id,
            "created_at": alert.date.isoformat(),
            "type": alert.type.value,
            "message": alert.message,
            "channel": alert.channel,
            "read": alert.read,
        }).execute()

    def list_page(
        self,
        page: int = 1,
        page_size: int = 10,
        only_unread: bool = False,
        alert_type: Optional[AlertType] = None,
    ) -> Tuple[List[StoredAlert], int]:
        """
        One page of alerts

        Args:
            page: 1-based page number
            page_size: Rows per page
            only_unread: Restrict to unread alerts
            alert_type: Restrict to one alert type

        Returns:
            (alerts, total matching rows)
        """
        start = (page - 1) * page_size
        end = start + page_size - 1

        query = (
            self._client.table(self.TABLE)
            .select("id, type, message, channel, read, created_at", count="exact")
            .order("created_at", desc=True)
            .range(start, end)
        )
        if only_unread:
            query = query.eq("read", False)
        elif alert_type is not None:
            query = query.eq("type", alert_type.value)

        response = query.execute()
        rows = response.data or []
        alerts = [StoredAlert(**{**row, "id": str(row["id"])}) for row in rows]
        return alerts, response.count or 0

    def mark_read(self, alert_id: str) -> bool:
        response = self._client.table(self.TABLE).update({"read": True}).eq("id", alert_id).execute()
        return bool(response.data)

    def mark_all_read(self) -> int:
        response = self._client.table(self.TABLE).update({"read": True}).eq("read", False).execute()
        return len(response.data or [])

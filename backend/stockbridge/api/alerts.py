"""
Alerts API Endpoints
Dashboard alert feed backed by the alerts table
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from stockbridge.api.deps import get_alert_bus, get_alert_repository
from stockbridge.domain.alert import AlertType
from stockbridge.repositories import AlertRepository
from stockbridge.services.alert_bus import AlertBus

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_alerts(
    filter: str = Query("all", description="all | unread | an alert type"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    repository: AlertRepository = Depends(get_alert_repository),
):
    """One page of alerts, newest first"""
    only_unread = filter == "unread"
    alert_type = None
    if filter not in ("all", "unread"):
        try:
            alert_type = AlertType(filter)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown alert filter: {filter}")

    alerts, total = repository.list_page(page, page_size, only_unread=only_unread, alert_type=alert_type)
    return {
        "data": [alert.model_dump(mode="json") for alert in alerts],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.post("/read-all")
async def mark_all_read(
    repository: AlertRepository = Depends(get_alert_repository),
    alerts: AlertBus = Depends(get_alert_bus),
):
    updated = repository.mark_all_read()
    logger.info(f"Marked {updated} alerts as read")
    alerts.emit_alerts_refresh()
    return {"ok": True, "updated": updated}


@router.post("/{alert_id}/read")
async def mark_read(
    alert_id: str,
    repository: AlertRepository = Depends(get_alert_repository),
    alerts: AlertBus = Depends(get_alert_bus),
):
    if not repository.mark_read(alert_id):
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    alerts.emit_alerts_refresh()
    return {"ok": True}

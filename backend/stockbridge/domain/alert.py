"""
Alert Domain Models

Payload published on the alert bus and stored in the alerts table.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# Event names are part of the dashboard contract; do not rename.
ALERT_EVENT = "app:alert"
ALERTS_REFRESH_EVENT = "app:alerts-refresh"


class AlertType(str, Enum):
    LOW_STOCK = "low-stock"
    ERROR = "error"
    SYNC = "sync"
    INFO = "info"
    B2B = "b2b"


class AppAlert(BaseModel):
    """Alert as delivered to subscribers"""

    id: str = Field(..., description="Alert id (uuid4)")
    type: AlertType
    message: str
    date: datetime = Field(..., description="When the alert was raised")
    read: bool = False
    channel: Optional[str] = Field(None, description="Origin area: stock, ml, usuarios, ...")


class StoredAlert(BaseModel):
    """Alert as read back from the alerts table"""

    id: str
    type: AlertType
    message: str
    channel: Optional[str] = None
    read: bool = False
    created_at: Optional[datetime] = None

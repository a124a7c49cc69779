"""
Domain Layer - Business Entities

Pydantic models for the records the integration reads and writes.
"""
from stockbridge.domain.alert import ALERT_EVENT, ALERTS_REFRESH_EVENT, AlertType, AppAlert, StoredAlert
from stockbridge.domain.credentials import CredentialRecord, TokenGrant
from stockbridge.domain.listing import ProductRow, SkuLink
from stockbridge.domain.woo import SyncDownResult, WooItem

__all__ = [
    'ALERT_EVENT',
    'ALERTS_REFRESH_EVENT',
    'AlertType',
    'AppAlert',
    'StoredAlert',
    'CredentialRecord',
    'TokenGrant',
    'ProductRow',
    'SkuLink',
    'SyncDownResult',
    'WooItem',
]

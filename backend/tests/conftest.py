"""
Pytest fixtures and configuration for StockBridge backend tests

Provides in-memory stand-ins for the Supabase-backed repositories and a
recording httpx transport, so services and endpoints run without a network
or a database.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Tuple

import httpx
import pytest

from stockbridge.domain.credentials import CredentialRecord
from stockbridge.domain.listing import ProductRow, SkuLink

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
API_BASE = "https://api.mercadolibre.com"
TOKEN_URL = f"{API_BASE}/oauth/token"


def fixed_clock():
    return NOW


def make_record(**overrides) -> CredentialRecord:
    """Credential record that is valid for another hour by default"""
    fields = {
        "account_id": "default",
        "access_token": "APP_USR-old-access",
        "refresh_token": "TG-old-refresh",
        "expires_at": NOW + timedelta(hours=1),
        "updated_at": NOW - timedelta(hours=5),
        "version": 3,
    }
    fields.update(overrides)
    return CredentialRecord(**fields)


# =====================================================================
# In-memory stores
# =====================================================================

class FakeCredentialStore:
    """ml_credentials stand-in with the repository's versioned write semantics"""

    def __init__(self, record: CredentialRecord = None):
        self.record = record
        self.writes: List[CredentialRecord] = []
        # Runs once right before the next compare_and_swap (simulates a concurrent writer)
        self.before_swap = None

    def get_latest(self, account_id):
        if self.record is None or self.record.account_id != account_id:
            return None
        return self.record

    def upsert(self, record):
        self.record = record
        self.writes.append(record)
        return record

    def compare_and_swap(self, record, expected_version):
        if self.before_swap is not None:
            hook, self.before_swap = self.before_swap, None
            hook(self)

        if self.record is None or self.record.version != expected_version:
            return False
        self.record = record
        self.writes.append(record)
        return True


class FakeLinkStore:
    def __init__(self, *links: SkuLink):
        self.links: Dict[str, SkuLink] = {link.sku: link for link in links}

    def get_by_sku(self, sku):
        return self.links.get(sku)

    def upsert(self, link):
        self.links[link.sku] = link
        return link


class FakeProductStore:
    def __init__(self, *products: ProductRow):
        self.products: Dict[str, ProductRow] = {product.sku: product for product in products}

    def find_by_sku(self, sku):
        return self.products.get(sku)


class FakeAlertRepository:
    def __init__(self):
        self.inserted = []

    def insert(self, alert):
        self.inserted.append(alert)


# =====================================================================
# HTTP
# =====================================================================

class RecordingTransport:
    """
    Routes requests by (method, path) to queued canned responses

    Each queued entry is used once; the last entry of a route repeats.
    Unrouted requests fail the test.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], list] = {}

    def add(self, method: str, path: str, status_code: int = 200, **response_kwargs) -> "RecordingTransport":
        self._routes.setdefault((method, path), []).append((status_code, response_kwargs))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            raise AssertionError(f"Unexpected request {request.method} {request.url}")

        status_code, kwargs = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status_code, **kwargs)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


# =====================================================================
# Fixtures
# =====================================================================

@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def credential_store():
    return FakeCredentialStore(make_record())


@pytest.fixture
def alert_repository():
    return FakeAlertRepository()


@pytest.fixture
def sample_product():
    return ProductRow(
        sku="OT-HD-001",
        name="Polera Hombre Negra",
        price=12990,
        stockml=7,
        categoria="Poleras",
        talla="M",
    )

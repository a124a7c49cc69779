"""
API tests for the alerts feed
"""
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from stockbridge.api import deps
from stockbridge.domain.alert import ALERT_EVENT, ALERTS_REFRESH_EVENT, AlertType, StoredAlert
from stockbridge.main import app
from stockbridge.services.alert_bus import AlertBus


@pytest.fixture
def repository():
    repo = Mock()
    repo.list_page.return_value = (
        [StoredAlert(id="1", type=AlertType.LOW_STOCK, message="OT-HD-001 bajo mínimo", channel="stock")],
        11,
    )
    app.dependency_overrides[deps.get_alert_repository] = lambda: repo
    yield repo
    app.dependency_overrides.clear()


@pytest.fixture
def bus():
    app.state.alert_bus = AlertBus()
    return app.state.alert_bus


@pytest.fixture
def client(repository, bus):
    return TestClient(app)


class TestAlertsApi:

    def test_list_defaults(self, client, repository):
        response = client.get("/api/v1/alerts")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 11
        assert body["data"][0]["type"] == "low-stock"
        repository.list_page.assert_called_once_with(1, 10, only_unread=False, alert_type=None)

    def test_unread_filter(self, client, repository):
        client.get("/api/v1/alerts?filter=unread&page=2&page_size=5")

        repository.list_page.assert_called_once_with(2, 5, only_unread=True, alert_type=None)

    def test_type_filter(self, client, repository):
        client.get("/api/v1/alerts?filter=b2b")

        repository.list_page.assert_called_once_with(1, 10, only_unread=False, alert_type=AlertType.B2B)

    def test_unknown_filter_is_400(self, client):
        assert client.get("/api/v1/alerts?filter=bogus").status_code == 400

    def test_mark_read(self, client, repository):
        repository.mark_read.return_value = True

        response = client.post("/api/v1/alerts/1/read")

        assert response.status_code == 200
        repository.mark_read.assert_called_once_with("1")

    def test_mark_read_missing_is_404(self, client, repository):
        repository.mark_read.return_value = False

        assert client.post("/api/v1/alerts/99/read").status_code == 404

    def test_mark_all_read(self, client, repository):
        repository.mark_all_read.return_value = 4

        response = client.post("/api/v1/alerts/read-all")

        assert response.json() == {"ok": True, "updated": 4}

    def test_marking_read_asks_feed_to_reload(self, client, repository, bus):
        repository.mark_read.return_value = True
        repository.mark_all_read.return_value = 2
        refreshes = []
        bus.subscribe(ALERTS_REFRESH_EVENT, refreshes.append)

        client.post("/api/v1/alerts/1/read")
        client.post("/api/v1/alerts/read-all")

        assert refreshes == [None, None]

    def test_missing_alert_does_not_refresh(self, client, repository, bus):
        repository.mark_read.return_value = False
        refreshes = []
        bus.subscribe(ALERTS_REFRESH_EVENT, refreshes.append)

        client.post("/api/v1/alerts/99/read")

        assert refreshes == []


class TestSharedAlertBus:

    def test_alerts_raised_in_requests_reach_app_subscribers(self, repository, bus):
        received = []
        bus.subscribe(ALERT_EVENT, received.append)
        request = Mock()
        request.app.state.alert_bus = bus

        deps.get_alert_bus(request, repository).emit_alert(AlertType.INFO, "hola", channel="stock")
        deps.get_alert_bus(request, repository).emit_alert(AlertType.B2B, "pedido", channel="b2b")

        assert [alert.message for alert in received] == ["hola", "pedido"]
        assert repository.insert.call_count == 2

    def test_lifespan_creates_bus_and_closes_client(self):
        with TestClient(app):
            assert isinstance(app.state.alert_bus, AlertBus)
            http_client = app.state.http_client

        assert http_client.is_closed

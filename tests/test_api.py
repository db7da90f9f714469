"""
Tests for the monitoring REST API.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from netwarden.analysis.models import TrafficProfile
from netwarden.errors import CapturePermissionError, InvalidTargetError
from netwarden.main import app
from netwarden.monitoring.scheduler import ScanResult
from netwarden.monitoring.service import get_monitoring_service


@pytest.fixture
def service():
    mock = MagicMock()
    mock.start_monitoring = AsyncMock(return_value="10.0.0.5")
    mock.stop_monitoring = AsyncMock(return_value=True)
    mock.run_once_scan = AsyncMock()
    mock.list_monitored_ips.return_value = []
    mock.reset_baseline.return_value = True
    return mock


@pytest.fixture
def client(service):
    app.dependency_overrides[get_monitoring_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestMonitoringRoutes:
    """Tests for /api/monitoring."""

    def test_start(self, client, service):
        response = client.post("/api/monitoring/start", json={"ip": "10.0.0.5", "interval": 2})

        assert response.status_code == 200
        assert response.json()["status"] == "monitoring"
        service.start_monitoring.assert_awaited_once_with("10.0.0.5", 2)

    def test_start_invalid_ip(self, client, service):
        service.start_monitoring.side_effect = InvalidTargetError("bogus")

        response = client.post("/api/monitoring/start", json={"ip": "bogus", "interval": 2})

        assert response.status_code == 400
        assert "Invalid IP address" in response.json()["detail"]

    def test_stop(self, client, service):
        response = client.delete("/api/monitoring/10.0.0.5")

        assert response.status_code == 200
        assert response.json()["status"] == "stopped"

    def test_stop_unknown(self, client, service):
        service.stop_monitoring.return_value = False

        response = client.delete("/api/monitoring/10.0.0.9")

        assert response.status_code == 200
        assert response.json()["status"] == "not_monitored"

    def test_list(self, client, service):
        target = MagicMock()
        target.to_dict.return_value = {"ip": "10.0.0.5", "state": "active"}
        service.list_monitored_ips.return_value = ["10.0.0.5"]
        service.get_target.return_value = target

        response = client.get("/api/monitoring/")

        assert response.status_code == 200
        assert response.json()["ips"] == ["10.0.0.5"]
        assert response.json()["targets"][0]["state"] == "active"

    def test_scan(self, client, service):
        service.run_once_scan.return_value = ScanResult(
            target_ip="8.8.8.8",
            timestamp=datetime(2024, 1, 1),
            profile=TrafficProfile(packets_per_second=55.0),
            baseline=TrafficProfile(packets_per_second=10.0),
            anomalies=["High packet rate: 55.00 packets/sec (baseline: 10.00 packets/sec)"],
        )

        response = client.post("/api/monitoring/scan/8.8.8.8")

        assert response.status_code == 200
        assert response.json()["suspicious"] is True

    def test_scan_configuration_error(self, client, service):
        service.run_once_scan.side_effect = CapturePermissionError("Permission denied capturing on eth0")

        response = client.post("/api/monitoring/scan/8.8.8.8")

        assert response.status_code == 409

    def test_scan_invalid_ip(self, client, service):
        service.run_once_scan.side_effect = InvalidTargetError("nope")

        response = client.post("/api/monitoring/scan/nope")

        assert response.status_code == 400

    def test_reset_baseline(self, client, service):
        response = client.post("/api/monitoring/10.0.0.5/reset-baseline")

        assert response.status_code == 200
        assert response.json()["status"] == "baseline_reset"


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self):
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["service"] == "netwarden"


class TestLifespan:
    """Tests for startup and shutdown."""

    def test_shutdown_stops_targets_and_closes_classifier_client(self, service):
        service.shutdown = AsyncMock()

        with patch("netwarden.main.get_monitoring_service", return_value=service), patch(
            "netwarden.main.close_openrouter_client", new_callable=AsyncMock
        ) as close_client:
            with TestClient(app):
                close_client.assert_not_awaited()

        service.shutdown.assert_awaited_once()
        close_client.assert_awaited_once()

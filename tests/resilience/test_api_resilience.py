"""Tests for the resilience admin API."""

from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from prometheus_client.parser import text_string_to_metric_families

from integrix.resilience.main import app
from integrix.resilience.services.resilience_facade import ResilienceFacade


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def facade_client(
    client: TestClient,
    facade: ResilienceFacade,
) -> Generator[TestClient, None, None]:
    """Test client with the router bound to a fake-time facade."""
    with patch("integrix.resilience.routers.resilience._facade", facade):
        yield client


def timeout() -> str:
    raise TimeoutError("RFC call timed out")


def test_health_check(client: TestClient) -> None:
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "resilience-admin"


def test_metrics_endpoint(client: TestClient, facade: ResilienceFacade) -> None:
    """Test Prometheus metrics endpoint exposes the facade registry."""
    facade.execute("http", "svc-A", lambda: "ok")

    with patch("integrix.resilience.main.facade", facade):
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")
    samples = [
        sample
        for family in text_string_to_metric_families(response.text)
        for sample in family.samples
        if sample.name == "integrix_retry_calls_total"
    ]
    assert [(s.labels, s.value) for s in samples] == [
        ({"adapter_type": "http", "adapter_id": "svc-A", "result": "success"}, 1.0)
    ]


def test_uninitialized_facade(client: TestClient) -> None:
    """Test endpoints answer 503 before startup wiring."""
    response = client.get("/api/v1/resilience/circuit-breakers")

    assert response.status_code == 503
    assert response.json()["detail"] == "Resilience facade not initialized"


class TestCircuitBreakerEndpoints:
    """Circuit breaker inspection and operator overrides."""

    def test_list_circuit_breakers(
        self,
        facade_client: TestClient,
        facade: ResilienceFacade,
    ) -> None:
        facade.execute("http", "svc-A", lambda: "ok")

        response = facade_client.get("/api/v1/resilience/circuit-breakers")

        assert response.status_code == 200
        data = response.json()
        assert list(data) == ["http-svc-A"]
        assert data["http-svc-A"]["state"] == "closed"
        assert data["http-svc-A"]["successful_calls"] == 1
        assert data["http-svc-A"]["failure_rate"] == -1.0

    def test_open_breaker_status_and_reset(
        self,
        facade_client: TestClient,
        facade: ResilienceFacade,
    ) -> None:
        """Test an operator can see and reset an ERP breaker that stays open."""
        for _ in range(5):
            with pytest.raises(TimeoutError):
                facade.circuit_breakers.execute_with_circuit_breaker("sap-like", "erp-1", timeout)

        response = facade_client.get("/api/v1/resilience/circuit-breakers/sap-like/erp-1")
        assert response.status_code == 200
        assert response.json()["state"] == "open"
        assert response.json()["failure_rate"] == 100.0

        response = facade_client.post("/api/v1/resilience/circuit-breakers/sap-like/erp-1/reset")
        assert response.status_code == 200
        assert response.json()["state"] == "closed"
        assert response.json()["buffered_calls"] == 0

    def test_force_open(self, facade_client: TestClient, facade: ResilienceFacade) -> None:
        response = facade_client.post("/api/v1/resilience/circuit-breakers/http/svc-A/force-open")

        assert response.status_code == 200
        assert response.json()["state"] == "forced_open"
        assert facade.circuit_breakers.is_open("http", "svc-A")

    def test_disable(self, facade_client: TestClient, facade: ResilienceFacade) -> None:
        response = facade_client.post("/api/v1/resilience/circuit-breakers/http/svc-A/disable")

        assert response.status_code == 200
        assert response.json()["state"] == "disabled"
        assert not facade.circuit_breakers.is_open("http", "svc-A")


class TestRetryEndpoints:
    def test_list_and_get_retries(
        self,
        facade_client: TestClient,
        facade: ResilienceFacade,
    ) -> None:
        facade.execute("kafka", "orders", lambda: "ok")

        listing = facade_client.get("/api/v1/resilience/retries")
        single = facade_client.get("/api/v1/resilience/retries/kafka/orders")

        assert listing.status_code == 200
        assert set(listing.json()) == {"kafka-orders"}
        assert single.json()["successful_calls_without_retry"] == 1
        assert single.json()["adapter_type"] == "kafka"


class TestBulkheadEndpoints:
    def test_bulkhead_status(self, facade_client: TestClient, facade: ResilienceFacade) -> None:
        facade.execute("http", "svc-A", lambda: "ok")
        assert facade.bulkheads.execute_async("http", "svc-A", lambda: "ok").result(5.0) == "ok"

        listing = facade_client.get("/api/v1/resilience/bulkheads")
        single = facade_client.get("/api/v1/resilience/bulkheads/http/svc-A")

        assert set(listing.json()) == {"http-svc-A"}
        data = single.json()
        assert single.status_code == 200
        assert data["metrics"]["max_allowed_concurrent_calls"] == 50
        assert data["metrics"]["available_concurrent_calls"] == 50
        assert data["utilization_percentage"] == 0.0
        assert data["has_available_capacity"] is True
        assert data["thread_pool"]["max_thread_pool_size"] == 20
        assert data["thread_pool"]["queue_capacity"] == 100


class TestPolicyEndpoints:
    """Resolved tuning per adapter type."""

    def test_critical_system_policies(self, facade_client: TestClient) -> None:
        response = facade_client.get("/api/v1/resilience/policies/sap")

        assert response.status_code == 200
        data = response.json()
        assert data["adapter_type"] == "sap"
        assert data["category"] == "sap"
        assert data["circuit_breaker"]["automatic_transition_from_open_to_half_open"] is False
        assert data["circuit_breaker"]["sliding_window_size"] == 10
        assert data["retry"]["max_attempts"] == 3
        assert data["bulkhead"]["max_concurrent_calls"] == 3
        assert data["thread_pool_bulkhead"]["queue_capacity"] == 10

    def test_http_policies(self, facade_client: TestClient) -> None:
        data = facade_client.get("/api/v1/resilience/policies/http").json()

        assert data["retry"]["max_retries"] == 3
        assert data["retry"]["wait_seconds"] == 0.5
        assert "ValueError" in data["circuit_breaker"]["ignore_exceptions"]
        assert data["circuit_breaker"]["record_exceptions"] == ["Exception"]

    def test_unknown_type_resolves_to_default(self, facade_client: TestClient) -> None:
        response = facade_client.get("/api/v1/resilience/policies/carrier-pigeon")

        assert response.status_code == 200
        data = response.json()
        assert data["category"] == "default"
        assert data["retry"]["category"] == "default"
        assert data["bulkhead"]["max_concurrent_calls"] == 2


class TestUnknownUnits:
    """Reads never create live units."""

    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/resilience/circuit-breakers/http/ghost",
            "/api/v1/resilience/retries/http/ghost",
            "/api/v1/resilience/bulkheads/http/ghost",
        ],
    )
    def test_unknown_adapter_is_404(
        self,
        facade_client: TestClient,
        facade: ResilienceFacade,
        path: str,
    ) -> None:
        response = facade_client.get(path)

        assert response.status_code == 404
        assert "http-ghost" in response.json()["detail"]
        assert facade.circuit_breakers.get_all_statuses() == {}
        assert facade.retry.get_all_metrics() == {}
        assert facade.bulkheads.get_all_metrics() == {}
        assert facade.bulkheads.get_all_thread_pool_metrics() == {}

    def test_bulkhead_without_thread_pool(
        self,
        facade_client: TestClient,
        facade: ResilienceFacade,
    ) -> None:
        facade.execute("kafka", "orders", lambda: "ok")

        data = facade_client.get("/api/v1/resilience/bulkheads/kafka/orders").json()

        assert data["metrics"]["adapter_id"] == "orders"
        assert data["has_available_capacity"] is True
        assert data["thread_pool"] is None
        assert facade.bulkheads.get_all_thread_pool_metrics() == {}

"""Test FastAPI application setup and health endpoints."""
import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from flash_arbitrage.config.settings import Settings
from flash_arbitrage.exceptions import ArbitrageInitializationError
from flash_arbitrage.main import create_app


@pytest.fixture
def service():
    """Initialized service double with running monitor."""
    mock_service = Mock()
    mock_service.is_initialized = True
    mock_service.monitor.is_running = True
    mock_service.get_status.return_value = {
        "initialized": True,
        "monitor": {"hashes_received": 12, "health_checks": 3},
        "nonce": {"current": 7}
    }
    return mock_service


@pytest.fixture
def client(service):
    """Create test client."""
    return TestClient(create_app(service))


def test_app_creation():
    """Test that FastAPI app can be created."""
    app = create_app()
    assert app is not None
    assert app.title == "Flash Arbitrage API"
    assert app.version == "0.1.0"


def test_health_endpoint(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["monitoring"] is True
    assert "timestamp" in data


def test_live_endpoint(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_ready_endpoint(client):
    """Test readiness endpoint."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_ready_endpoint_before_initialization(service):
    service.is_initialized = False
    client = TestClient(create_app(service))

    response = client.get("/health/ready")
    assert response.status_code == 503


def test_stats_endpoint(client):
    response = client.get("/health/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["monitor"]["hashes_received"] == 12
    assert data["nonce"]["current"] == 7


def test_endpoints_without_service():
    client = TestClient(create_app())

    assert client.get("/health").json()["monitoring"] is False
    assert client.get("/health/ready").status_code == 503
    assert client.get("/health/stats").status_code == 503


def test_lifespan_attaches_service(service):
    app = create_app(service)

    with TestClient(app) as client:
        assert client.get("/health/ready").status_code == 200
        assert app.state.service is service


def test_main_exits_nonzero_on_startup_failure():
    from flash_arbitrage import main as entry_point

    failing_run = AsyncMock(side_effect=ArbitrageInitializationError("Missing required configuration"))
    with patch.object(entry_point, "run_bot", failing_run), patch.object(entry_point, "configure_logging"):
        assert entry_point.main() == 1


def test_main_returns_pipeline_exit_code():
    from flash_arbitrage import main as entry_point

    with patch.object(entry_point, "run_bot", AsyncMock(return_value=1)), \
            patch.object(entry_point, "configure_logging"):
        assert entry_point.main() == 1


class TestRunBot:
    """Test the process lifecycle around the pipeline and API server."""

    @pytest.fixture
    def service(self):
        async def run_forever():
            await asyncio.Event().wait()

        stub = Mock()
        stub.initialize = AsyncMock()
        stub.run = AsyncMock(side_effect=run_forever)
        stub.close = AsyncMock()
        return stub

    @pytest.fixture
    def server(self):
        async def serve_forever():
            await asyncio.Event().wait()

        stub = Mock()
        stub.serve = AsyncMock(side_effect=serve_forever)
        return stub

    @pytest.fixture
    def config(self):
        return Settings(_env_file=None)

    @pytest.mark.asyncio
    async def test_pipeline_failure_exits_with_one(self, service, server, config):
        from flash_arbitrage import main as entry_point

        service.run.side_effect = RuntimeError("worker crashed")

        with patch.object(entry_point, "ArbitrageService", return_value=service), \
                patch.object(entry_point.uvicorn, "Server", return_value=server):
            exit_code = await asyncio.wait_for(entry_point.run_bot(config), timeout=5)

        assert exit_code == 1
        service.close.assert_awaited_once()
        assert server.should_exit is True

    @pytest.mark.asyncio
    async def test_unhandled_loop_exception_exits_with_one(self, service, server, config):
        from flash_arbitrage import main as entry_point

        with patch.object(entry_point, "ArbitrageService", return_value=service), \
                patch.object(entry_point.uvicorn, "Server", return_value=server):
            run_task = asyncio.create_task(entry_point.run_bot(config))
            await asyncio.sleep(0.05)
            asyncio.get_running_loop().call_exception_handler({
                "message": "Task exception was never retrieved",
                "exception": RuntimeError("stray task failed")
            })
            exit_code = await asyncio.wait_for(run_task, timeout=5)

        assert exit_code == 1
        service.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_shutdown_exits_cleanly(self, service, server, config):
        from flash_arbitrage import main as entry_point

        server.serve = AsyncMock(return_value=None)

        with patch.object(entry_point, "ArbitrageService", return_value=service), \
                patch.object(entry_point.uvicorn, "Server", return_value=server):
            exit_code = await asyncio.wait_for(entry_point.run_bot(config), timeout=5)

        assert exit_code == 0
        service.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_startup_failure_closes_service(self, service, server, config):
        from flash_arbitrage import main as entry_point

        service.initialize.side_effect = ArbitrageInitializationError("nonce baseline unavailable")

        with patch.object(entry_point, "ArbitrageService", return_value=service), \
                patch.object(entry_point.uvicorn, "Server", return_value=server) as server_cls:
            with pytest.raises(ArbitrageInitializationError):
                await entry_point.run_bot(config)

        service.close.assert_awaited_once()
        server_cls.assert_not_called()
        service.run.assert_not_called()

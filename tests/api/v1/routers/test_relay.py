"""Unit tests for relay router endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from tello_relay.api.v1.errors import app_error_handler
from tello_relay.api.v1.routers.relay import get_relay_controller, router
from tello_relay.domain.relay.controller import RelaySessionController
from tello_relay.schemas import SessionState, SessionStatus
from tello_relay.shared.api import health
from tello_relay.shared.api.utils import validation_exception_handler
from tello_relay.utils.app_errors import AppError

STREAMING = SessionStatus(
    state=SessionState.STREAMING,
    stream_url="http://127.0.0.1:11112",
    relay_session_id=1,
)


@pytest.fixture
def mock_controller() -> MagicMock:
    """Create a mock RelaySessionController."""
    controller = MagicMock(spec=RelaySessionController)
    controller.status = SessionStatus()
    controller.start = AsyncMock(return_value=STREAMING)
    controller.stop = AsyncMock(return_value=SessionStatus())
    return controller


@pytest.fixture
def test_app(mock_controller: MagicMock) -> FastAPI:
    """Create FastAPI test app with dependency overrides."""
    app = FastAPI()

    app.dependency_overrides[get_relay_controller] = lambda: mock_controller

    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]

    app.include_router(router)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(test_app)


class TestGetStatus:
    """Tests for GET /relay/status endpoint."""

    def test_status_idle(self, client: TestClient):
        """Should return the idle status with nothing playable."""
        response = client.get("/relay/status")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["results"] == {
            "state": "idle",
            "error_message": None,
            "stream_url": None,
            "relay_session_id": None,
            "is_playable": False,
        }

    def test_status_streaming(self, client: TestClient, mock_controller: MagicMock):
        """Should expose the stream URL while streaming."""
        mock_controller.status = STREAMING

        response = client.get("/relay/status")

        results = response.json()["results"]
        assert results["state"] == "streaming"
        assert results["stream_url"] == "http://127.0.0.1:11112"
        assert results["is_playable"] is True


class TestStartStop:
    """Tests for POST /relay/start and POST /relay/stop endpoints."""

    def test_start(self, client: TestClient, mock_controller: MagicMock):
        """Should run start() and return the resulting status."""
        response = client.post("/relay/start")

        assert response.status_code == 200
        assert response.json()["results"]["state"] == "streaming"
        mock_controller.start.assert_awaited_once()

    def test_start_failure_is_reported_in_status(self, client: TestClient, mock_controller: MagicMock):
        """Should return 200 with an ERROR status when start() fails."""
        mock_controller.start.return_value = SessionStatus(
            state=SessionState.ERROR,
            error_message="Failed to bind command socket to port 9000: Address already in use",
        )

        response = client.post("/relay/start")

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["state"] == "error"
        assert "port 9000" in results["error_message"]
        assert results["is_playable"] is False

    def test_stop(self, client: TestClient, mock_controller: MagicMock):
        """Should run stop() and return the idle status."""
        response = client.post("/relay/stop")

        assert response.status_code == 200
        assert response.json()["results"]["state"] == "idle"
        mock_controller.stop.assert_awaited_once()


class TestPlaybackEvent:
    """Tests for POST /relay/playback_event endpoint."""

    def test_error_event(self, client: TestClient, mock_controller: MagicMock):
        """Should record a player error."""
        mock_controller.report_playback_error.return_value = STREAMING.model_copy(
            update={"error_message": "Video Player Error: decode failed"}
        )

        response = client.post("/relay/playback_event", json={"event": "error", "message": "decode failed"})

        assert response.status_code == 200
        assert response.json()["results"]["error_message"] == "Video Player Error: decode failed"
        mock_controller.report_playback_error.assert_called_once_with("decode failed")

    def test_loaded_event(self, client: TestClient, mock_controller: MagicMock):
        """Should clear a player error."""
        mock_controller.report_playback_loaded.return_value = STREAMING

        response = client.post("/relay/playback_event", json={"event": "loaded"})

        assert response.status_code == 200
        assert response.json()["results"]["error_message"] is None
        mock_controller.report_playback_loaded.assert_called_once_with()

    def test_error_event_without_message(self, client: TestClient, mock_controller: MagicMock):
        """Should reject an error event that carries no message."""
        response = client.post("/relay/playback_event", json={"event": "error"})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["errcode"] == "E_INVALID_REQUEST"
        mock_controller.report_playback_error.assert_not_called()

    def test_unknown_event(self, client: TestClient):
        """Should fail validation for an unknown event type."""
        response = client.post("/relay/playback_event", json={"event": "paused"})

        assert response.status_code == 422
        assert response.json()["success"] is False


class TestControllerDependency:
    """Tests for get_relay_controller."""

    def test_missing_controller(self):
        """Should return 503 when the application has no controller."""
        app = FastAPI()
        app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
        app.include_router(router)

        response = TestClient(app).get("/relay/status")

        assert response.status_code == 503
        assert response.json()["errcode"] == "E_INTERNAL_ERROR"


class TestHealth:
    """Tests for GET /health endpoint."""

    def test_health_reports_relay_state(self, mock_controller: MagicMock):
        """Should include the current relay state."""
        app = FastAPI()
        app.state.relay_controller = mock_controller
        app.include_router(health.router)

        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["results"] == {"status": "OK", "relay_state": "idle"}

    def test_health_without_controller(self):
        """Should still answer before the controller exists."""
        app = FastAPI()
        app.include_router(health.router)

        response = TestClient(app).get("/health")

        assert response.json()["results"] == {"status": "OK", "relay_state": None}

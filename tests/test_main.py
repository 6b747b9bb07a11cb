"""
Unit tests for FastAPI main application
"""
import base64

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from helpers import FakeModels, face_landmarks
from livecam import main
from livecam.config import Config
from livecam.main import app
from livecam.models.data_models import ModelInitResult
from livecam.services.preview_pipeline import PreviewPipeline

client = TestClient(app)


def jpeg_message(width: int = 64, height: int = 48) -> dict:
    image = np.full((height, width, 3), 120, dtype=np.uint8)
    _, buffer = cv2.imencode('.jpg', image)
    return {
        "type": "video_frame",
        "frame": "data:image/jpeg;base64," + base64.b64encode(buffer).decode('utf-8'),
    }


@pytest.fixture
def fake_models(mocker):
    """Route the preview socket through fake models."""
    models = FakeModels(landmarks=face_landmarks(smiling=True))
    mocker.patch.object(main, "create_pipeline", lambda: PreviewPipeline(models=models))
    return models


def test_root_endpoint():
    """Test root endpoint returns correct response"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Live Preview & Liveness API"
    assert data["status"] == "running"
    assert data["version"] == "1.0.0"


def test_health_check_endpoint():
    """Test health check endpoint returns healthy status"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_challenges_endpoint():
    """Test the catalog is served in detector order"""
    response = client.get("/challenges")
    assert response.status_code == 200
    challenges = response.json()["challenges"]
    assert [c["id"] for c in challenges] == list(range(6))
    assert challenges[0]["label"] == "Blink your eyes"
    assert challenges[5]["key"] == "nod_no"


def test_cors_headers():
    """Test CORS headers are properly configured"""
    response = client.options("/", headers={
        "Origin": "http://localhost:5173",
        "Access-Control-Request-Method": "GET"
    })
    assert response.status_code in [200, 405]


class TestPreviewSocket:
    """Tests for the /ws/preview endpoint"""

    def test_initial_state_sent(self, fake_models):
        with client.websocket_connect("/ws/preview") as websocket:
            message = websocket.receive_json()
            assert message["type"] == "state"
            assert message["data"]["is_verifying"] is False

    def test_video_frame_returns_preview(self, fake_models):
        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()
            websocket.send_json(jpeg_message())

            preview = websocket.receive_json()
            assert preview["type"] == "preview_frame"
            assert preview["data"]["frame"].startswith("data:image/jpeg;base64,")

    def test_verification_flow(self, fake_models, mocker):
        mocker.patch.object(Config, "QUALITY_OVERLAY", False)
        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()

            websocket.send_json({"type": "start_verification"})
            state = websocket.receive_json()
            assert state["type"] == "state"
            assert state["data"]["is_verifying"] is True

            websocket.send_json(jpeg_message())
            assert websocket.receive_json()["type"] == "preview_frame"
            completed = websocket.receive_json()
            assert completed["type"] == "challenge_completed"
            assert completed["data"]["label"] == "Smile"
            state = websocket.receive_json()
            assert state["data"]["completed"] == [3]

            websocket.send_json({"type": "stop_verification"})
            state = websocket.receive_json()
            assert state["data"] == {"is_verifying": False, "completed": [], "is_all_verified": False}

    def test_frames_during_tick_are_dropped(self, mocker):
        """Frames that arrive while a tick is running are dropped, not queued"""
        mocker.patch.object(Config, "QUALITY_OVERLAY", False)
        models = FakeModels(segment_delay=0.3)
        pipelines = []

        def create_pipeline():
            pipeline = PreviewPipeline(models=models)
            pipelines.append(pipeline)
            return pipeline

        mocker.patch.object(main, "create_pipeline", create_pipeline)

        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()
            for _ in range(5):
                websocket.send_json(jpeg_message())

            assert websocket.receive_json()["type"] == "preview_frame"
            # Round trip so every frame above has been read by the server
            websocket.send_json({"type": "stop_verification"})
            assert websocket.receive_json()["type"] == "state"

        assert models.segment_calls == 1
        assert pipelines[0].dropped_ticks == 4

    def test_control_messages_answered_during_tick(self, mocker):
        """The socket keeps reading while a frame is being processed"""
        models = FakeModels()
        release = models.blocking()
        mocker.patch.object(main, "create_pipeline", lambda: PreviewPipeline(models=models))

        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()
            websocket.send_json(jpeg_message())
            websocket.send_text("not json")
            assert websocket.receive_json()["type"] == "error"

            release.set()
            assert websocket.receive_json()["type"] == "preview_frame"

    def test_invalid_message_reports_error(self, fake_models):
        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()
            websocket.send_text("not json")
            error = websocket.receive_json()
            assert error["type"] == "error"

    def test_invalid_params_report_error(self, fake_models):
        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "update_params", "params": {"zoom": 10}})
            error = websocket.receive_json()
            assert error["type"] == "error"
            assert "zoom" in error["message"]

    def test_undecodable_frame_reports_error(self, fake_models):
        with client.websocket_connect("/ws/preview") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "video_frame", "frame": "AAAA"})
            assert websocket.receive_json()["type"] == "error"

    def test_model_init_failure(self, mocker):
        models = FakeModels(open_result=ModelInitResult(ok=False, attempts=4, error="model missing"))
        mocker.patch.object(main, "create_pipeline", lambda: PreviewPipeline(models=models))

        with client.websocket_connect("/ws/preview") as websocket:
            error = websocket.receive_json()
            assert error["type"] == "error"
            assert "model missing" in error["message"]

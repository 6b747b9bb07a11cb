"""
WebSocket handler for the live preview and liveness verification stream.

This module provides the WebSocketHandler class that manages WebSocket connections,
video frame reception, preview delivery and challenge feedback.
"""
from fastapi import WebSocket, WebSocketDisconnect
from typing import Any, Dict, Optional
import logging
import json
import base64
import numpy as np
import cv2

from livecam.models.data_models import (
    ChallengeCompletion,
    ChallengeSnapshot,
    CompositeResult,
    FeedbackType,
    Frame,
    QualityScore,
    VerificationFeedback,
)
from livecam.services.preview_pipeline import encode_jpeg

logger = logging.getLogger(__name__)


class WebSocketHandler:
    """
    Manages WebSocket communication for the preview session.

    This class encapsulates all WebSocket-related functionality including:
    - Connection lifecycle management
    - Client message reception and frame decoding
    - Preview frame, quality and challenge feedback delivery
    """

    MESSAGE_TYPES = {"video_frame", "start_verification", "stop_verification", "update_params"}

    async def handle_connection(
        self,
        websocket: WebSocket,
        session_id: str
    ) -> None:
        """
        Accept the WebSocket connection for a preview session.

        Args:
            websocket: FastAPI WebSocket connection object
            session_id: Unique session identifier
        """
        await websocket.accept()
        logger.info(f"WebSocket connection established for session {session_id}")

    async def receive_message(self, websocket: WebSocket) -> Optional[Dict[str, Any]]:
        """
        Receive one client message.

        Returns:
            The parsed message, or None if it is not valid JSON or has an
            unknown type. Disconnects propagate as WebSocketDisconnect.
        """
        try:
            data = await websocket.receive_text()
            message = json.loads(data)
        except WebSocketDisconnect:
            logger.info("WebSocket disconnected while receiving message")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON received: {e}")
            return None

        if not isinstance(message, dict) or message.get("type") not in self.MESSAGE_TYPES:
            logger.error(f"Unknown message received: {str(message)[:80]}")
            return None
        return message

    def decode_video_frame(self, message: Dict[str, Any]) -> Optional[Frame]:
        """Decode the base64 image carried by a video_frame message."""
        frame_data = message.get("frame")
        if not frame_data:
            return None
        image = self._decode_frame(frame_data)
        if image is None:
            return None
        timestamp = message.get("timestamp")
        return Frame.from_bgr(image, timestamp=float(timestamp) if timestamp is not None else None)

    async def send_preview(self, websocket: WebSocket, composite: CompositeResult) -> None:
        """Send the composited preview frame as a base64 JPEG."""
        encoded = encode_jpeg(composite.image)
        if encoded is None:
            await self.send_error(websocket, "Failed to encode preview frame")
            return
        await self.send_feedback(
            websocket,
            VerificationFeedback(
                type=FeedbackType.PREVIEW_FRAME,
                message="Preview frame",
                data={
                    "frame": "data:image/jpeg;base64," + base64.b64encode(encoded).decode("utf-8"),
                    "width": composite.crop.width,
                    "height": composite.crop.height,
                },
            ),
        )

    async def send_quality(self, websocket: WebSocket, quality: QualityScore) -> None:
        await self.send_feedback(
            websocket,
            VerificationFeedback(
                type=FeedbackType.QUALITY,
                message=f"Camera quality: {quality.quality_label.value}",
                data=quality.to_dict(),
            ),
        )

    async def send_completion(self, websocket: WebSocket, completion: ChallengeCompletion) -> None:
        await self.send_feedback(
            websocket,
            VerificationFeedback(
                type=FeedbackType.CHALLENGE_COMPLETED,
                message=f"Challenge completed: {completion.label}",
                data={
                    "challenge_id": completion.challenge_id,
                    "label": completion.label,
                    "timestamp": completion.timestamp,
                },
            ),
        )

    async def send_state(self, websocket: WebSocket, snapshot: ChallengeSnapshot) -> None:
        message = "Verified!" if snapshot.is_all_verified else (
            "Verifying" if snapshot.is_verifying else "Idle"
        )
        await self.send_feedback(
            websocket,
            VerificationFeedback(type=FeedbackType.STATE, message=message, data=snapshot.to_dict()),
        )

    async def send_error(self, websocket: WebSocket, message: str) -> None:
        await self.send_feedback(websocket, VerificationFeedback(type=FeedbackType.ERROR, message=message))

    async def send_feedback(
        self,
        websocket: WebSocket,
        feedback: VerificationFeedback
    ) -> None:
        """
        Send one feedback message to the client.

        Args:
            websocket: FastAPI WebSocket connection object
            feedback: VerificationFeedback object containing message details
        """
        try:
            feedback_dict = {
                "type": feedback.type.value,
                "message": feedback.message,
                "data": feedback.data
            }
            await websocket.send_json(feedback_dict)
            logger.debug(f"Sent feedback: {feedback.type.value}")

        except Exception as e:
            logger.error(f"Error sending feedback: {e}")
            raise

    async def close_connection(
        self,
        websocket: WebSocket,
        code: int = 1000,
        reason: str = "Normal closure"
    ) -> None:
        """
        Close the WebSocket connection gracefully.

        Args:
            websocket: FastAPI WebSocket connection object
            code: WebSocket close code (default: 1000 for normal closure)
            reason: Human-readable reason for closure
        """
        try:
            await websocket.close(code=code, reason=reason)
            logger.info(f"WebSocket closed: {reason} (code: {code})")
        except Exception as e:
            logger.error(f"Error closing WebSocket: {e}")

    def _decode_frame(self, frame_data: str) -> Optional[np.ndarray]:
        """
        Decode a base64-encoded image (optionally a data URL) to BGR.

        Returns:
            Decoded frame as numpy array (BGR format), or None if decoding fails
        """
        try:
            # Remove data URL prefix if present (e.g., "data:image/jpeg;base64,")
            if "," in frame_data:
                frame_data = frame_data.split(",")[1]

            img_bytes = base64.b64decode(frame_data)
            nparr = np.frombuffer(img_bytes, np.uint8)
            frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

            if frame is None:
                logger.error("Failed to decode frame: cv2.imdecode returned None")
                return None

            return frame

        except Exception as e:
            logger.error(f"Error decoding frame: {e}")
            return None

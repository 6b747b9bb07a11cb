"""Per-camera processing timeline: segmentation, compositing and liveness."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import cv2
import numpy as np

from ..config import config
from ..models.data_models import (
    CompositeResult,
    CompositorParams,
    Frame,
    LivenessThresholds,
    ModelInitResult,
    TickResult,
)
from .frame_compositor import FrameCompositor
from .model_provider import MediaPipeModels
from .verification_session import VerificationSession

logger = logging.getLogger(__name__)

ResultCallback = Callable[[TickResult], Awaitable[None]]


def encode_jpeg(image: np.ndarray, quality: Optional[int] = None) -> Optional[bytes]:
    """Encode an RGBA or RGB buffer as JPEG bytes."""
    try:
        if image.ndim == 3 and image.shape[2] == 4:
            bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)
        else:
            bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
        success, encoded = cv2.imencode(
            ".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), quality or config.JPEG_QUALITY]
        )
        if not success:
            return None
        return encoded.tobytes()
    except cv2.error:
        logger.exception("Failed to encode JPEG frame")
        return None


class PreviewPipeline:
    """
    Single processing timeline for one camera.

    A tick runs segmentation, compositing and (while verifying) landmark
    detection. Ticks never overlap: a frame submitted while another is in
    flight is dropped rather than queued. Verification start/stop take the
    same lock as tick processing so they never interleave with a tick.
    """

    def __init__(
        self,
        models: Optional[MediaPipeModels] = None,
        compositor: Optional[FrameCompositor] = None,
        session: Optional[VerificationSession] = None,
    ) -> None:
        self.models = models or MediaPipeModels()
        self.compositor = compositor or FrameCompositor()
        self.session = session or VerificationSession()
        self.session.evidence_source = self._capture_displayed_frame
        self._lock = asyncio.Lock()
        self._busy = False
        self._displayed: Optional[CompositeResult] = None
        self.dropped_ticks = 0

    async def start(self) -> ModelInitResult:
        result = await self.models.open()
        if not result.ok:
            logger.error("Preview pipeline could not start: %s", result.error)
        return result

    async def stop(self) -> None:
        async with self._lock:
            self.session.stop()
            self._displayed = None
            self.models.close()

    async def start_verification(self) -> None:
        async with self._lock:
            self.session.start()

    async def stop_verification(self) -> None:
        async with self._lock:
            self.session.stop()
            self._displayed = None

    def _drop_frame(self) -> None:
        self.dropped_ticks += 1
        logger.debug("Dropping frame: tick in flight (%s dropped)", self.dropped_ticks)

    async def submit(
        self,
        frame: Frame,
        params: CompositorParams,
        thresholds: Optional[LivenessThresholds] = None,
    ) -> Optional[TickResult]:
        """
        Process one camera frame.

        Returns:
            TickResult, or None if the frame was dropped because a tick was
            already in flight
        """
        if self._busy:
            self._drop_frame()
            return None

        self._busy = True
        return await self._process(frame, params, thresholds, None)

    def schedule(
        self,
        frame: Frame,
        params: CompositorParams,
        thresholds: Optional[LivenessThresholds] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> Optional["asyncio.Task[TickResult]"]:
        """
        Start a tick in the background without waiting for it.

        The caller keeps receiving frames while the tick runs; frames
        scheduled before it finishes (on_result included) are dropped.

        Returns:
            The running task, or None if the frame was dropped
        """
        if self._busy:
            self._drop_frame()
            return None

        self._busy = True
        return asyncio.ensure_future(self._process(frame, params, thresholds, on_result))

    async def _process(
        self,
        frame: Frame,
        params: CompositorParams,
        thresholds: Optional[LivenessThresholds],
        on_result: Optional[ResultCallback],
    ) -> TickResult:
        try:
            async with self._lock:
                result = await self._run_tick(frame, params, thresholds)
            if on_result is not None:
                await on_result(result)
            return result
        finally:
            self._busy = False

    async def _run_tick(
        self,
        frame: Frame,
        params: CompositorParams,
        thresholds: Optional[LivenessThresholds],
    ) -> TickResult:
        if frame.width == 0 or frame.height == 0:
            return TickResult(composite=None, snapshot=self.session.snapshot)

        loop = asyncio.get_running_loop()
        mask = await loop.run_in_executor(None, self.models.segment, frame.image)
        if mask is None:
            mask = np.ones((frame.height, frame.width), dtype=np.float32)

        composite = await loop.run_in_executor(None, self.compositor.render, frame, mask, params)
        completions = []
        try:
            self._displayed = composite
            if self.session.is_verifying:
                landmarks = await loop.run_in_executor(None, self.models.detect_landmarks, frame.image)
                completions = self.session.submit_landmarks(landmarks, thresholds)
        finally:
            self._displayed = None

        return TickResult(composite=composite, completions=completions, snapshot=self.session.snapshot)

    def _capture_displayed_frame(self) -> Optional[bytes]:
        if self._displayed is None:
            return None
        return encode_jpeg(self._displayed.image)

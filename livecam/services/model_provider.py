"""
Session-scoped MediaPipe model handles.

Owns the selfie segmenter and the face landmarker for one preview session.
Models are opened with a bounded retry loop and closed on teardown; there
is no process-wide singleton.
"""
import asyncio
import logging
import os
from typing import Any, Callable, Optional

import mediapipe as mp
import numpy as np

from ..config import config
from ..models.data_models import ModelInitResult

logger = logging.getLogger(__name__)

ModelFactory = Callable[[], Any]


def _to_mp_image(rgba: np.ndarray) -> "mp.Image":
    rgb = np.ascontiguousarray(rgba[..., :3])
    return mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)


def default_segmenter_factory(model_path: Optional[str] = None) -> ModelFactory:
    """Factory for a MediaPipe ImageSegmenter producing confidence masks."""

    def create():
        path = model_path or config.SELFIE_SEGMENTER_MODEL_PATH
        if not os.path.exists(path):
            raise FileNotFoundError(
                f"Selfie segmenter model not found at {path}. "
                "Download it using: python download_mediapipe_model.py"
            )
        options = mp.tasks.vision.ImageSegmenterOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=path),
            running_mode=mp.tasks.vision.RunningMode.IMAGE,
            output_confidence_masks=True,
            output_category_mask=False,
        )
        return mp.tasks.vision.ImageSegmenter.create_from_options(options)

    return create


def default_landmarker_factory(model_path: Optional[str] = None) -> ModelFactory:
    """Factory for a single-face MediaPipe FaceLandmarker."""

    def create():
        path = model_path or config.FACE_LANDMARKER_MODEL_PATH
        if not os.path.exists(path):
            raise FileNotFoundError(
                f"MediaPipe model not found at {path}. "
                "Download it using: python download_mediapipe_model.py"
            )
        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=path),
            running_mode=mp.tasks.vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=0.5,
            min_face_presence_confidence=0.5,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        return mp.tasks.vision.FaceLandmarker.create_from_options(options)

    return create


class MediaPipeModels:
    """
    Segmentation and landmark models owned by one preview session.

    Call open() before use and close() on teardown. Inference failures are
    logged and reported as "no result" so the core only ever sees resolved
    inputs.
    """

    def __init__(
        self,
        segmenter_factory: Optional[ModelFactory] = None,
        landmarker_factory: Optional[ModelFactory] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self._segmenter_factory = segmenter_factory or default_segmenter_factory()
        self._landmarker_factory = landmarker_factory or default_landmarker_factory()
        self.max_retries = config.MODEL_INIT_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = config.MODEL_INIT_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self._segmenter = None
        self._landmarker = None

    @property
    def is_open(self) -> bool:
        return self._segmenter is not None and self._landmarker is not None

    async def open(self) -> ModelInitResult:
        """
        Create both models, retrying with exponential backoff.

        Returns:
            ModelInitResult: ok=True once both models exist, otherwise the
            last error after max_retries + 1 attempts
        """
        if self.is_open:
            return ModelInitResult(ok=True, attempts=0)

        last_error = None
        attempts = 0
        for attempt in range(self.max_retries + 1):
            attempts = attempt + 1
            try:
                if self._segmenter is None:
                    self._segmenter = self._segmenter_factory()
                if self._landmarker is None:
                    self._landmarker = self._landmarker_factory()
                logger.info(f"MediaPipe models ready after {attempts} attempt(s)")
                return ModelInitResult(ok=True, attempts=attempts)
            except Exception as e:
                last_error = str(e)
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Model initialization failed ({attempts}/{self.max_retries + 1}): {e}; "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        logger.error(f"Model initialization gave up after {attempts} attempts: {last_error}")
        self.close()
        return ModelInitResult(ok=False, attempts=attempts, error=last_error)

    def close(self) -> None:
        """Release both models. Safe to call more than once."""
        for model in (self._segmenter, self._landmarker):
            if model is not None:
                try:
                    model.close()
                except Exception as e:
                    logger.error(f"Error closing MediaPipe model: {e}")
        self._segmenter = None
        self._landmarker = None

    def segment(self, rgba: np.ndarray) -> Optional[np.ndarray]:
        """
        Foreground probability mask (H, W) float32 for an RGBA frame.

        Returns None when the segmenter is unavailable or inference fails.
        """
        if self._segmenter is None:
            return None
        try:
            result = self._segmenter.segment(_to_mp_image(rgba))
        except Exception as e:
            logger.error(f"Segmentation failed: {e}")
            return None

        masks = result.confidence_masks or []
        if not masks:
            return None
        if len(masks) == 1:
            return np.asarray(masks[0].numpy_view(), dtype=np.float32).squeeze()
        # Multi-class models put background first
        background = np.asarray(masks[0].numpy_view(), dtype=np.float32).squeeze()
        return 1.0 - background

    def detect_landmarks(self, rgba: np.ndarray) -> Optional[np.ndarray]:
        """
        Landmarks of the first detected face as an (N, 3) array.

        Returns None when no face is found, the landmarker is unavailable,
        or inference fails.
        """
        if self._landmarker is None:
            return None
        try:
            result = self._landmarker.detect(_to_mp_image(rgba))
        except Exception as e:
            logger.error(f"Landmark detection failed: {e}")
            return None

        if not result.face_landmarks:
            return None
        landmarks = result.face_landmarks[0]
        return np.array([[lm.x, lm.y, lm.z] for lm in landmarks])

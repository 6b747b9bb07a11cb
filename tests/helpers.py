"""
Synthetic face geometry and fake models shared by the test suite
"""
import math
import threading
import time
from typing import Optional

import numpy as np

from livecam.models.data_models import LANDMARK_COUNT, ModelInitResult

EYE_Y = 0.40
EYE_WIDTH = 0.06
EYE_DISTANCE = 0.20
FOREHEAD_Y = 0.20
CHIN_Y = 0.80
FACE_HEIGHT = CHIN_Y - FOREHEAD_Y


def yaw_offset_for_angle(angle_deg: float) -> float:
    """Nose offset (in inter-eye distances) that produces the given yaw angle."""
    return math.tan(math.radians(angle_deg)) / 1.2


def face_landmarks(
    ear: float = 0.30,
    yaw_deg: float = 0.0,
    yaw_offset: Optional[float] = None,
    pitch: float = 0.0,
    smiling: bool = False,
    count: int = LANDMARK_COUNT,
) -> np.ndarray:
    """
    Build a landmark set with the requested eye openness, head pose and smile.

    Only the FaceMesh points used by the detectors are placed; every other
    point stays at the origin.
    """
    landmarks = np.zeros((count, 3))

    def put(index, x, y):
        if index < count:
            landmarks[index] = [x, y, 0.0]

    # Eye corners: left 33-133, right 362-263, each EYE_WIDTH wide
    put(33, 0.40, EYE_Y)
    put(133, 0.46, EYE_Y)
    put(362, 0.54, EYE_Y)
    put(263, 0.60, EYE_Y)

    half_opening = ear * EYE_WIDTH / 2
    for top, bottom, x in ((159, 145, 0.42), (158, 153, 0.44), (386, 374, 0.58), (385, 380, 0.56)):
        put(top, x, EYE_Y - half_opening)
        put(bottom, x, EYE_Y + half_opening)

    put(10, 0.50, FOREHEAD_Y)
    put(152, 0.50, CHIN_Y)

    offset = yaw_offset_for_angle(yaw_deg) if yaw_offset is None else yaw_offset
    nose_x = 0.50 + offset * EYE_DISTANCE
    nose_y = EYE_Y + (pitch / 2 + 0.3) * FACE_HEIGHT
    put(4, nose_x, nose_y)

    if smiling:
        put(61, 0.47, 0.70)
        put(291, 0.53, 0.70)
    else:
        put(61, 0.48, 0.70)
        put(291, 0.52, 0.70)
    put(234, 0.30, 0.60)
    put(454, 0.70, 0.60)

    return landmarks


def rgba_image(width: int, height: int, value=128, alpha=255) -> np.ndarray:
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[..., :3] = value
    image[..., 3] = alpha
    return image


class FakeModels:
    """Stand-in for MediaPipeModels with canned inference results."""

    def __init__(self, mask=None, landmarks=None, open_result=None, segment_delay=0.0):
        self.mask = mask
        self.landmarks = landmarks
        self.open_result = open_result or ModelInitResult(ok=True, attempts=1)
        self.segment_calls = 0
        self.detect_calls = 0
        self.closed = False
        self.block = None
        self.segment_delay = segment_delay

    async def open(self):
        return self.open_result

    def close(self):
        self.closed = True

    def segment(self, rgba):
        self.segment_calls += 1
        if self.block is not None:
            self.block.wait(timeout=5)
        if self.segment_delay:
            time.sleep(self.segment_delay)
        if self.mask is None:
            return np.ones(rgba.shape[:2], dtype=np.float32)
        return self.mask

    def detect_landmarks(self, rgba):
        self.detect_calls += 1
        if callable(self.landmarks):
            return self.landmarks()
        return self.landmarks

    def blocking(self) -> threading.Event:
        self.block = threading.Event()
        return self.block

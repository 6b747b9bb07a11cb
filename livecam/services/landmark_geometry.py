"""
Landmark geometry signals for liveness challenges.

Converts a MediaPipe FaceMesh landmark set into eye openness, head rotation
and smile signals. Every function here accepts partial or malformed input
and falls back to a neutral value instead of raising.
"""
import math
from typing import Any, Optional, Sequence

import numpy as np

from ..models.data_models import (
    FaceGeometrySample,
    HeadRotation,
    LivenessThresholds,
    as_landmark_array,
)

# Key landmark indices (MediaPipe FaceMesh topology)
# Eye order: outer corner, inner corner, top 1, top 2, bottom 1, bottom 2
LEFT_EYE_INDICES = (33, 133, 159, 158, 145, 153)
RIGHT_EYE_INDICES = (362, 263, 386, 385, 374, 380)
NOSE_TIP = 4
LEFT_EYE_CORNER = 33
RIGHT_EYE_CORNER = 263
FOREHEAD = 10
CHIN = 152
LEFT_MOUTH_CORNER = 61
RIGHT_MOUTH_CORNER = 291
LEFT_CHEEK = 234
RIGHT_CHEEK = 454

NEUTRAL_EAR = 0.3
# Empirical lens-projection correction: ~30 deg turn is a 0.5-0.6 offset
YAW_PROJECTION_GAIN = 1.2
PITCH_BASELINE = 0.3
MOUTH_LINE_RATIO = 0.35


def _point(landmarks: Optional[np.ndarray], index: int) -> Optional[np.ndarray]:
    if landmarks is None or index < 0 or index >= landmarks.shape[0]:
        return None
    point = landmarks[index]
    if not np.all(np.isfinite(point[:2])):
        return None
    return point


def _distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(math.hypot(a[0] - b[0], a[1] - b[1]))


def eye_aspect_ratio(landmarks: Any, six_indices: Sequence[int]) -> float:
    """
    Compute the Eye Aspect Ratio (EAR) of one eye.

    EAR is the mean of the two vertical eyelid distances divided by the
    horizontal eye width. Open eyes sit around 0.25-0.35, a closed eye
    drops below 0.2.

    Args:
        landmarks: Landmark set (array, tuples or MediaPipe landmarks)
        six_indices: Outer, inner, top 1, top 2, bottom 1, bottom 2

    Returns:
        float: EAR, or 0.3 (neutral open eye) when it cannot be computed
    """
    if six_indices is None or len(six_indices) < 6:
        return NEUTRAL_EAR
    array = as_landmark_array(landmarks)
    points = [_point(array, index) for index in six_indices[:6]]
    if any(p is None for p in points):
        return NEUTRAL_EAR
    p1, p2, p3, p4, p5, p6 = points

    horizontal = _distance(p1, p2)
    if horizontal == 0:
        return NEUTRAL_EAR
    vertical_1 = _distance(p3, p5)
    vertical_2 = _distance(p4, p6)
    return (vertical_1 + vertical_2) / (2 * horizontal)


def average_eye_aspect_ratio(landmarks: Any) -> float:
    """Mean EAR of both eyes."""
    array = as_landmark_array(landmarks)
    left = eye_aspect_ratio(array, LEFT_EYE_INDICES)
    right = eye_aspect_ratio(array, RIGHT_EYE_INDICES)
    return (left + right) / 2.0


def head_rotation(landmarks: Any) -> HeadRotation:
    """
    Estimate head rotation from the nose tip position.

    When the head turns left the nose tip moves right of the inter-eye
    centre (positive yaw), turning right gives negative yaw.

    Returns:
        HeadRotation: pitch (normalised, ~0 when level), yaw (nose offset
        over inter-eye distance) and yaw angle in degrees. All zero when
        the geometry is degenerate or incomplete.
    """
    array = as_landmark_array(landmarks)
    nose = _point(array, NOSE_TIP)
    left_eye = _point(array, LEFT_EYE_CORNER)
    right_eye = _point(array, RIGHT_EYE_CORNER)
    forehead = _point(array, FOREHEAD)
    chin = _point(array, CHIN)
    if any(p is None for p in (nose, left_eye, right_eye, forehead, chin)):
        return HeadRotation()

    eye_center_x = (left_eye[0] + right_eye[0]) / 2
    eye_center_y = (left_eye[1] + right_eye[1]) / 2
    eye_distance = _distance(left_eye, right_eye)
    face_height = abs(forehead[1] - chin[1])
    if eye_distance == 0 or face_height == 0:
        return HeadRotation()

    yaw = float((nose[0] - eye_center_x) / eye_distance)
    yaw_angle_deg = math.degrees(math.atan(yaw * YAW_PROJECTION_GAIN))

    vertical_offset = (nose[1] - eye_center_y) / face_height
    pitch = float((vertical_offset - PITCH_BASELINE) * 2)

    return HeadRotation(pitch=pitch, yaw=yaw, yaw_angle_deg=yaw_angle_deg)


def detect_smile(landmarks: Any, thresholds: Optional[LivenessThresholds] = None) -> bool:
    """
    Detect a smile from mouth and cheek geometry (works with a closed mouth).

    A smile is any of: mouth corners raised above the mouth line, cheeks
    lifted relative to the corners, or a widened mouth.
    """
    thresholds = thresholds or LivenessThresholds()
    array = as_landmark_array(landmarks)
    left_corner = _point(array, LEFT_MOUTH_CORNER)
    right_corner = _point(array, RIGHT_MOUTH_CORNER)
    left_cheek = _point(array, LEFT_CHEEK)
    right_cheek = _point(array, RIGHT_CHEEK)
    head_top = _point(array, FOREHEAD)
    head_bottom = _point(array, CHIN)
    if any(p is None for p in (left_corner, right_corner, left_cheek, right_cheek, head_top, head_bottom)):
        return False

    mouth_width = _distance(left_corner, right_corner)
    avg_corner_y = (left_corner[1] + right_corner[1]) / 2

    if mouth_width > thresholds.smile_mouth_width:
        return True

    if mouth_width > 0:
        cheek_lift = (left_cheek[1] + right_cheek[1]) / 2 - avg_corner_y
        if cheek_lift / mouth_width > thresholds.smile_cheek_lift:
            return True

    face_height = head_bottom[1] - head_top[1]
    if face_height != 0:
        corner_elevation = (head_top[1] + face_height * MOUTH_LINE_RATIO) - avg_corner_y
        if corner_elevation / face_height > thresholds.smile_corner_elevation:
            return True

    return False


def face_geometry_sample(landmarks: Any, thresholds: Optional[LivenessThresholds] = None) -> FaceGeometrySample:
    """Compute every per-tick geometry signal for one landmark set."""
    array = as_landmark_array(landmarks)
    rotation = head_rotation(array)
    return FaceGeometrySample(
        eye_aspect_ratio=average_eye_aspect_ratio(array),
        head_yaw_deg=rotation.yaw_angle_deg,
        head_pitch=rotation.pitch,
        yaw_offset=rotation.yaw,
        is_smiling=detect_smile(array, thresholds),
    )

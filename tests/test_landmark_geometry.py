"""
Unit tests for landmark geometry signals (EAR, head rotation, smile)
"""
from types import SimpleNamespace

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from helpers import face_landmarks
from livecam.models.data_models import LivenessThresholds, as_landmark_array
from livecam.services.landmark_geometry import (
    LEFT_EYE_INDICES,
    RIGHT_EYE_INDICES,
    average_eye_aspect_ratio,
    detect_smile,
    eye_aspect_ratio,
    face_geometry_sample,
    head_rotation,
)


class TestEyeAspectRatio:
    """Tests for eye_aspect_ratio and average_eye_aspect_ratio"""

    def test_open_eye_ratio(self):
        """EAR matches the eyelid opening of the synthetic face"""
        landmarks = face_landmarks(ear=0.30)
        assert eye_aspect_ratio(landmarks, LEFT_EYE_INDICES) == pytest.approx(0.30)
        assert eye_aspect_ratio(landmarks, RIGHT_EYE_INDICES) == pytest.approx(0.30)

    def test_closed_eye_ratio(self):
        landmarks = face_landmarks(ear=0.10)
        assert average_eye_aspect_ratio(landmarks) == pytest.approx(0.10)

    def test_too_few_indices_returns_neutral(self):
        assert eye_aspect_ratio(face_landmarks(), (33, 133, 159)) == 0.3

    def test_missing_landmarks_returns_neutral(self):
        assert eye_aspect_ratio(None, LEFT_EYE_INDICES) == 0.3
        assert eye_aspect_ratio([], LEFT_EYE_INDICES) == 0.3

    def test_zero_width_eye_returns_neutral(self):
        """Coincident eye corners cannot be divided by"""
        assert eye_aspect_ratio(np.zeros((468, 3)), LEFT_EYE_INDICES) == 0.3

    def test_accepts_mediapipe_style_points(self):
        """Objects exposing x/y/z are read the same as arrays"""
        points = [SimpleNamespace(x=p[0], y=p[1], z=p[2]) for p in face_landmarks(ear=0.28)]
        assert average_eye_aspect_ratio(points) == pytest.approx(0.28)


class TestHeadRotation:
    """Tests for head_rotation"""

    def test_level_face_is_zero(self):
        rotation = head_rotation(face_landmarks())
        assert rotation.yaw == pytest.approx(0.0)
        assert rotation.yaw_angle_deg == pytest.approx(0.0)
        assert rotation.pitch == pytest.approx(0.0)

    @pytest.mark.parametrize("angle", [-45.0, -35.0, -10.0, 10.0, 35.0, 45.0])
    def test_yaw_angle_recovered(self, angle):
        """Nose offset maps back to the yaw angle it was built from"""
        assert head_rotation(face_landmarks(yaw_deg=angle)).yaw_angle_deg == pytest.approx(angle)

    def test_left_turn_is_positive(self):
        """Nose right of the eye centre reads as a left turn"""
        rotation = head_rotation(face_landmarks(yaw_offset=0.5))
        assert rotation.yaw == pytest.approx(0.5)
        assert rotation.yaw_angle_deg > 0

    def test_pitch_recovered(self):
        assert head_rotation(face_landmarks(pitch=0.4)).pitch == pytest.approx(0.4)
        assert head_rotation(face_landmarks(pitch=-0.2)).pitch == pytest.approx(-0.2)

    def test_missing_landmarks_gives_zero(self):
        rotation = head_rotation(None)
        assert (rotation.pitch, rotation.yaw, rotation.yaw_angle_deg) == (0.0, 0.0, 0.0)

    def test_degenerate_geometry_gives_zero(self):
        """Coincident eye corners mean the ratio is undefined"""
        rotation = head_rotation(np.zeros((468, 3)))
        assert (rotation.pitch, rotation.yaw, rotation.yaw_angle_deg) == (0.0, 0.0, 0.0)


class TestDetectSmile:
    """Tests for detect_smile"""

    def test_neutral_mouth_is_not_smiling(self):
        assert detect_smile(face_landmarks()) is False

    def test_wide_mouth_is_smiling(self):
        assert detect_smile(face_landmarks(smiling=True)) is True

    def test_cheek_lift_is_smiling(self):
        landmarks = face_landmarks()
        landmarks[234, 1] = 0.75
        landmarks[454, 1] = 0.75
        assert detect_smile(landmarks) is True

    def test_raised_corners_are_smiling(self):
        """Corners above the mouth line read as a smile with a closed mouth"""
        landmarks = face_landmarks()
        landmarks[61, 1] = 0.35
        landmarks[291, 1] = 0.35
        landmarks[234, 1] = 0.20
        landmarks[454, 1] = 0.20
        assert detect_smile(landmarks) is True

    def test_thresholds_are_honoured(self):
        strict = LivenessThresholds(smile_mouth_width=0.08)
        assert detect_smile(face_landmarks(smiling=True), strict) is False

    def test_missing_landmarks_not_smiling(self):
        assert detect_smile(None) is False
        assert detect_smile(face_landmarks(count=300)) is False


class TestFaceGeometrySample:

    def test_sample_combines_signals(self):
        sample = face_geometry_sample(face_landmarks(ear=0.18, yaw_deg=35, pitch=0.2, smiling=True))
        assert sample.eye_aspect_ratio == pytest.approx(0.18)
        assert sample.head_yaw_deg == pytest.approx(35.0)
        assert sample.head_pitch == pytest.approx(0.2)
        assert sample.is_smiling is True


class TestAsLandmarkArray:

    def test_two_column_input_padded(self):
        array = as_landmark_array([(0.1, 0.2), (0.3, 0.4)])
        assert array.shape == (2, 3)
        assert array[:, 2].tolist() == [0.0, 0.0]

    def test_empty_input(self):
        assert as_landmark_array([]).shape == (0, 3)

    def test_uninterpretable_input(self):
        assert as_landmark_array(None) is None
        assert as_landmark_array(["a", "b"]) is None
        assert as_landmark_array(np.zeros(5)) is None
        assert as_landmark_array(5) is None
        assert as_landmark_array(0.5) is None

    def test_non_iterable_input_uses_defaults(self):
        assert eye_aspect_ratio(7, LEFT_EYE_INDICES) == 0.3
        assert head_rotation(7).yaw == 0.0
        assert detect_smile(7.5) is False


class TestPartialLandmarkProperty:
    """Property-based tests for truncated landmark sets"""

    @given(
        count=st.integers(min_value=0, max_value=150),
        seed=st.integers(min_value=0, max_value=2 ** 16),
    )
    @settings(max_examples=100, deadline=None)
    def test_truncated_sets_fall_back_to_defaults(self, count, seed):
        """
        Property: landmark sets too short for the required indices never
        raise and return the documented neutral values.
        """
        landmarks = np.random.default_rng(seed).random((count, 3))

        assert eye_aspect_ratio(landmarks, LEFT_EYE_INDICES) == 0.3
        assert eye_aspect_ratio(landmarks, RIGHT_EYE_INDICES) == 0.3
        rotation = head_rotation(landmarks)
        assert (rotation.pitch, rotation.yaw, rotation.yaw_angle_deg) == (0.0, 0.0, 0.0)
        assert detect_smile(landmarks) is False

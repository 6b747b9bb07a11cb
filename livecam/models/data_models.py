"""
Data models shared by the liveness engine, compositor and transport layers
"""
import enum
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Sequence

import cv2
import numpy as np


# Number of points in a MediaPipe FaceMesh landmark set
LANDMARK_COUNT = 468


@dataclass(frozen=True)
class ChallengeDefinition:
    """One entry of the fixed challenge catalog."""

    id: int
    key: str
    label: str


# Ordering is load-bearing: detectors address challenges by index
CHALLENGE_CATALOG = (
    ChallengeDefinition(0, "blink", "Blink your eyes"),
    ChallengeDefinition(1, "turn_left", "Turn your head left"),
    ChallengeDefinition(2, "turn_right", "Turn your head right"),
    ChallengeDefinition(3, "smile", "Smile"),
    ChallengeDefinition(4, "nod_yes", "Nod your head Yes"),
    ChallengeDefinition(5, "nod_no", "Nod your head No"),
)


class FeedbackType(str, enum.Enum):
    """Message types sent to preview clients."""

    PREVIEW_FRAME = "preview_frame"
    QUALITY = "quality"
    CHALLENGE_COMPLETED = "challenge_completed"
    STATE = "state"
    ERROR = "error"


class QualityLabel(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass
class Frame:
    """
    A single camera frame.

    Attributes:
        image: RGBA pixel buffer, shape (H, W, 4), dtype uint8
        timestamp: Capture time in seconds
    """

    image: np.ndarray
    timestamp: float = field(default_factory=time.time)

    @property
    def width(self) -> int:
        if self.image is None or self.image.ndim < 2:
            return 0
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        if self.image is None or self.image.ndim < 2:
            return 0
        return int(self.image.shape[0])

    @classmethod
    def from_bgr(cls, image: np.ndarray, timestamp: Optional[float] = None) -> "Frame":
        """Build a frame from an OpenCV BGR or BGRA capture."""
        if image.ndim == 3 and image.shape[2] == 4:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
        else:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
        return cls(image=rgba, timestamp=time.time() if timestamp is None else timestamp)


@dataclass(frozen=True)
class HeadRotation:
    pitch: float = 0.0
    yaw: float = 0.0
    yaw_angle_deg: float = 0.0


@dataclass(frozen=True)
class FaceGeometrySample:
    """Per-tick geometry signals derived from one landmark set."""

    eye_aspect_ratio: float
    head_yaw_deg: float
    head_pitch: float
    yaw_offset: float
    is_smiling: bool


@dataclass
class LivenessThresholds:
    """
    Empirical detector thresholds.

    None of these have a documented derivation and they will not transfer
    across every camera or face, so they are configuration rather than
    constants.
    """

    ear_open: float = 0.25
    ear_closed: float = 0.2
    turn_trigger_deg: float = 30.0
    turn_reset_deg: float = 20.0
    nod_yes_delta: float = 0.3
    nod_no_delta: float = 0.4
    smile_corner_elevation: float = 0.02
    smile_cheek_lift: float = 0.03
    smile_mouth_width: float = 0.045
    history_length: int = 10
    min_history: int = 5

    def __post_init__(self):
        if self.ear_closed >= self.ear_open:
            raise ValueError("ear_closed must be below ear_open")
        if not 0 <= self.turn_reset_deg < self.turn_trigger_deg:
            raise ValueError("turn_reset_deg must be in [0, turn_trigger_deg)")
        if self.history_length < 1 or not 1 <= self.min_history <= self.history_length:
            raise ValueError("min_history must be between 1 and history_length")


@dataclass
class ChallengeState:
    """
    Mutable state of one verification session.

    Owned by LivenessChallengeEngine and replaced wholesale on start/stop.
    """

    is_verifying: bool = False
    completed: List[bool] = field(default_factory=lambda: [False] * len(CHALLENGE_CATALOG))
    captured: List[bool] = field(default_factory=lambda: [False] * len(CHALLENGE_CATALOG))
    pitch_history: Deque[float] = field(default_factory=lambda: deque(maxlen=10))
    yaw_history: Deque[float] = field(default_factory=lambda: deque(maxlen=10))
    left_turn_latched: bool = False
    right_turn_latched: bool = False
    previous_ear: float = 0.0

    @classmethod
    def fresh(cls, is_verifying: bool = False, history_length: int = 10) -> "ChallengeState":
        return cls(
            is_verifying=is_verifying,
            pitch_history=deque(maxlen=history_length),
            yaw_history=deque(maxlen=history_length),
        )


@dataclass(frozen=True)
class ChallengeSnapshot:
    """Read-only view of the challenge state for presentation."""

    is_verifying: bool
    completed: FrozenSet[int]
    is_all_verified: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_verifying": self.is_verifying,
            "completed": sorted(self.completed),
            "is_all_verified": self.is_all_verified,
        }


@dataclass(frozen=True)
class ChallengeCompletion:
    challenge_id: int
    label: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class QualityScore:
    """Instantaneous visual quality of the foreground, each field 0-100."""

    lighting: int = 0
    sharpness: int = 0
    contrast: int = 0
    clarity: int = 0

    @property
    def quality_label(self) -> QualityLabel:
        if self.clarity >= 80:
            return QualityLabel.EXCELLENT
        if self.clarity >= 60:
            return QualityLabel.GOOD
        if self.clarity >= 40:
            return QualityLabel.FAIR
        return QualityLabel.POOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lighting": self.lighting,
            "sharpness": self.sharpness,
            "contrast": self.contrast,
            "clarity": self.clarity,
            "label": self.quality_label.value,
        }


@dataclass(frozen=True)
class CompositorParams:
    """
    Preview settings read fresh on every tick.

    Attributes:
        blur_radius: Background blur in pixels, 0 disables blur
        brightness: Brightness multiplier applied to both layers
        zoom: Uniform scale about the output centre
        target_aspect_ratio: Output width / height
        mirror: Flip horizontally for a selfie view
        quality_overlay: Score the foreground layer each tick
    """

    blur_radius: float = 12.0
    brightness: float = 1.0
    zoom: float = 1.0
    target_aspect_ratio: float = 16 / 9
    mirror: bool = True
    quality_overlay: bool = False

    def __post_init__(self):
        if not 0 <= self.blur_radius <= 50:
            raise ValueError(f"blur_radius must be in [0, 50], got {self.blur_radius}")
        if not 0 <= self.brightness <= 3:
            raise ValueError(f"brightness must be in [0, 3], got {self.brightness}")
        if not 1 <= self.zoom <= 3:
            raise ValueError(f"zoom must be in [1, 3], got {self.zoom}")
        if not self.target_aspect_ratio > 0:
            raise ValueError(f"target_aspect_ratio must be positive, got {self.target_aspect_ratio}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["CompositorParams"] = None) -> "CompositorParams":
        """Build params from a client payload, keeping unspecified fields from base."""
        base = base or cls()
        return cls(
            blur_radius=float(data.get("blur_radius", base.blur_radius)),
            brightness=float(data.get("brightness", base.brightness)),
            zoom=float(data.get("zoom", base.zoom)),
            target_aspect_ratio=float(data.get("target_aspect_ratio", base.target_aspect_ratio)),
            mirror=bool(data.get("mirror", base.mirror)),
            quality_overlay=bool(data.get("quality_overlay", base.quality_overlay)),
        )


@dataclass(frozen=True)
class CropRect:
    x: int
    y: int
    width: int
    height: int


@dataclass
class CompositeResult:
    image: np.ndarray
    crop: CropRect
    quality: Optional[QualityScore] = None


@dataclass(frozen=True)
class EvidenceSnapshot:
    """Displayed frame captured when a challenge completes. In memory only."""

    challenge_id: int
    label: str
    image: bytes
    timestamp: float


@dataclass(frozen=True)
class ModelInitResult:
    ok: bool
    attempts: int
    error: Optional[str] = None


@dataclass
class TickResult:
    composite: Optional[CompositeResult]
    completions: List[ChallengeCompletion] = field(default_factory=list)
    snapshot: Optional[ChallengeSnapshot] = None


@dataclass
class VerificationFeedback:
    type: FeedbackType
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


def as_landmark_array(landmarks: Any) -> Optional[np.ndarray]:
    """
    Normalise a landmark set into an (N, 3) float array.

    Accepts numpy arrays, sequences of (x, y, z) tuples and sequences of
    objects exposing x/y/z (MediaPipe NormalizedLandmark). Returns None for
    anything that cannot be interpreted.
    """
    if landmarks is None:
        return None
    if isinstance(landmarks, np.ndarray):
        array = landmarks
    else:
        try:
            points: Sequence[Any] = list(landmarks)
        except TypeError:
            return None
        if not points:
            return np.zeros((0, 3), dtype=np.float64)
        first = points[0]
        try:
            if hasattr(first, "x") and hasattr(first, "y"):
                array = np.array([[p.x, p.y, getattr(p, "z", 0.0)] for p in points], dtype=np.float64)
            else:
                array = np.asarray(points, dtype=np.float64)
        except (TypeError, ValueError, AttributeError):
            return None
    if array.ndim != 2 or array.shape[1] < 2:
        return None
    if array.shape[1] == 2:
        array = np.hstack([array, np.zeros((array.shape[0], 1))])
    return array.astype(np.float64, copy=False)

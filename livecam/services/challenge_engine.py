"""
Challenge Engine driving the six-step liveness protocol from landmark geometry
"""
import logging
from typing import Any, Callable, List, Optional

from ..models.data_models import (
    CHALLENGE_CATALOG,
    LANDMARK_COUNT,
    ChallengeCompletion,
    ChallengeSnapshot,
    ChallengeState,
    FaceGeometrySample,
    LivenessThresholds,
    as_landmark_array,
)
from .landmark_geometry import face_geometry_sample

logger = logging.getLogger(__name__)

CaptureCallback = Callable[[int, str], None]

BLINK = 0
TURN_LEFT = 1
TURN_RIGHT = 2
SMILE = 3
NOD_YES = 4
NOD_NO = 5

assert [c.id for c in CHALLENGE_CATALOG] == [BLINK, TURN_LEFT, TURN_RIGHT, SMILE, NOD_YES, NOD_NO], \
    "challenge catalog order does not match detector ids"


class LivenessChallengeEngine:
    """
    Tracks blink, head turn, smile and nod challenges across landmark samples.

    The engine consumes one landmark set per tick while verifying. Each
    challenge completes at most once per session; the capture callback
    fires at most once per challenge even if detection repeats.

    States: IDLE -> VERIFYING (start), VERIFYING -> IDLE (stop). "Verified"
    is VERIFYING with every challenge complete.
    """

    CATALOG = CHALLENGE_CATALOG

    def __init__(
        self,
        thresholds: Optional[LivenessThresholds] = None,
        on_capture: Optional[CaptureCallback] = None,
    ):
        """
        Args:
            thresholds: Default detector thresholds (overridable per tick)
            on_capture: Called with (challenge_id, label) the first time
                        each challenge completes in a session
        """
        self.thresholds = thresholds or LivenessThresholds()
        self.on_capture = on_capture
        self._state = ChallengeState.fresh(history_length=self.thresholds.history_length)

    @property
    def state(self) -> ChallengeState:
        return self._state

    @property
    def is_verifying(self) -> bool:
        return self._state.is_verifying

    @property
    def is_all_verified(self) -> bool:
        return all(self._state.completed)

    def snapshot(self) -> ChallengeSnapshot:
        """Read-only view of the session for presentation."""
        completed = frozenset(i for i, done in enumerate(self._state.completed) if done)
        return ChallengeSnapshot(
            is_verifying=self._state.is_verifying,
            completed=completed,
            is_all_verified=len(completed) == len(self.CATALOG),
        )

    def start(self) -> None:
        """Reset every challenge and begin verifying."""
        self._state = ChallengeState.fresh(
            is_verifying=True, history_length=self.thresholds.history_length
        )
        logger.info("Liveness verification started")

    def stop(self) -> None:
        """Reset every challenge and return to idle."""
        self._state = ChallengeState.fresh(history_length=self.thresholds.history_length)
        logger.info("Liveness verification stopped")

    def process_sample(
        self,
        landmarks: Any,
        thresholds: Optional[LivenessThresholds] = None,
    ) -> List[ChallengeCompletion]:
        """
        Run every detector against one landmark sample.

        Absent or partial landmark sets are ignored for this tick: no state
        changes and no completion.

        Args:
            landmarks: 468-point landmark set, or None when no face was found
            thresholds: Thresholds for this tick; defaults to the engine's

        Returns:
            List[ChallengeCompletion]: Challenges newly completed this tick
        """
        if not self._state.is_verifying:
            return []

        array = as_landmark_array(landmarks)
        if array is None or array.shape[0] < LANDMARK_COUNT:
            logger.debug("Skipping landmark sample with %s points", 0 if array is None else array.shape[0])
            return []

        thresholds = thresholds or self.thresholds
        sample = face_geometry_sample(array, thresholds)
        state = self._state
        completions: List[ChallengeCompletion] = []

        # Blink: falling edge from open to closed
        if state.previous_ear > thresholds.ear_open and sample.eye_aspect_ratio < thresholds.ear_closed:
            self._complete(BLINK, completions)
        state.previous_ear = sample.eye_aspect_ratio

        self._update_turns(sample, thresholds, completions)

        if sample.is_smiling:
            self._complete(SMILE, completions)

        state.pitch_history.append(sample.head_pitch)
        if self._history_span(state.pitch_history, thresholds) > thresholds.nod_yes_delta:
            self._complete(NOD_YES, completions)

        state.yaw_history.append(sample.yaw_offset)
        if self._history_span(state.yaw_history, thresholds) > thresholds.nod_no_delta:
            self._complete(NOD_NO, completions)

        return completions

    def _update_turns(
        self,
        sample: FaceGeometrySample,
        thresholds: LivenessThresholds,
        completions: List[ChallengeCompletion],
    ) -> None:
        state = self._state
        angle = sample.head_yaw_deg

        # Positive angle = head turned left (nose moved right of eye centre)
        if angle > thresholds.turn_trigger_deg and not state.left_turn_latched:
            state.left_turn_latched = True
            self._complete(TURN_LEFT, completions)
        if angle < thresholds.turn_reset_deg:
            state.left_turn_latched = False

        if angle < -thresholds.turn_trigger_deg and not state.right_turn_latched:
            state.right_turn_latched = True
            self._complete(TURN_RIGHT, completions)
        if angle > -thresholds.turn_reset_deg:
            state.right_turn_latched = False

    @staticmethod
    def _history_span(history, thresholds: LivenessThresholds) -> float:
        if len(history) < thresholds.min_history:
            return 0.0
        return max(history) - min(history)

    def _complete(self, challenge_id: int, completions: List[ChallengeCompletion]) -> None:
        if not 0 <= challenge_id < len(self.CATALOG):
            raise ValueError(f"Challenge id {challenge_id} is outside the catalog")

        state = self._state
        if state.completed[challenge_id]:
            return
        state.completed[challenge_id] = True

        label = self.CATALOG[challenge_id].label
        completions.append(ChallengeCompletion(challenge_id=challenge_id, label=label))
        logger.info(f"Challenge {challenge_id} completed: {label}")

        if not state.captured[challenge_id]:
            state.captured[challenge_id] = True
            if self.on_capture is not None:
                self.on_capture(challenge_id, label)

"""
Verification session: start/stop control and landmark forwarding.
"""
import logging
import time
from typing import Any, Callable, List, Optional

from ..models.data_models import (
    ChallengeCompletion,
    ChallengeSnapshot,
    EvidenceSnapshot,
    LivenessThresholds,
)
from .challenge_engine import CaptureCallback, LivenessChallengeEngine

logger = logging.getLogger(__name__)

EvidenceSource = Callable[[], Optional[bytes]]


class VerificationSession:
    """
    Thin orchestrator around LivenessChallengeEngine.

    Forwards per-tick landmark samples to the engine while verifying and,
    on each first-time completion, records an in-memory evidence snapshot
    taken from evidence_source (the currently displayed frame).
    """

    def __init__(
        self,
        engine: Optional[LivenessChallengeEngine] = None,
        on_capture: Optional[CaptureCallback] = None,
        evidence_source: Optional[EvidenceSource] = None,
    ):
        self.engine = engine or LivenessChallengeEngine()
        self.engine.on_capture = self._handle_capture
        self.on_capture = on_capture
        self.evidence_source = evidence_source
        self.evidence: List[EvidenceSnapshot] = []

    @property
    def catalog(self):
        return self.engine.CATALOG

    @property
    def is_verifying(self) -> bool:
        return self.engine.is_verifying

    @property
    def snapshot(self) -> ChallengeSnapshot:
        return self.engine.snapshot()

    def start(self) -> None:
        self.evidence = []
        self.engine.start()

    def stop(self) -> None:
        self.engine.stop()

    def submit_landmarks(
        self,
        landmarks: Any,
        thresholds: Optional[LivenessThresholds] = None,
    ) -> List[ChallengeCompletion]:
        """Forward one landmark sample; no-op while idle."""
        if not self.engine.is_verifying:
            return []
        return self.engine.process_sample(landmarks, thresholds)

    def _handle_capture(self, challenge_id: int, label: str) -> None:
        if self.evidence_source is not None:
            image = self.evidence_source()
            if image is not None:
                self.evidence.append(
                    EvidenceSnapshot(
                        challenge_id=challenge_id,
                        label=label,
                        image=image,
                        timestamp=time.time(),
                    )
                )
            else:
                logger.warning(f"No displayed frame available to capture for challenge {challenge_id}")
        if self.on_capture is not None:
            self.on_capture(challenge_id, label)

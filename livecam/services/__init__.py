from .challenge_engine import LivenessChallengeEngine
from .frame_compositor import FrameCompositor
from .model_provider import MediaPipeModels
from .preview_pipeline import PreviewPipeline
from .verification_session import VerificationSession

__all__ = [
    "LivenessChallengeEngine",
    "FrameCompositor",
    "MediaPipeModels",
    "PreviewPipeline",
    "VerificationSession",
]

"""
Configuration management for the application
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from .models.data_models import CompositorParams, LivenessThresholds

load_dotenv()

MODELS_DIR = Path.home() / ".mediapipe_models"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Application configuration"""

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Server Configuration
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', '8000'))
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:5173').split(',')

    # ML Model Configuration
    FACE_LANDMARKER_MODEL_PATH = os.getenv(
        'FACE_LANDMARKER_MODEL_PATH', str(MODELS_DIR / 'face_landmarker.task')
    )
    SELFIE_SEGMENTER_MODEL_PATH = os.getenv(
        'SELFIE_SEGMENTER_MODEL_PATH', str(MODELS_DIR / 'selfie_segmenter_landscape.tflite')
    )
    MODEL_INIT_MAX_RETRIES = int(os.getenv('MODEL_INIT_MAX_RETRIES', '3'))
    MODEL_INIT_RETRY_DELAY_SECONDS = float(os.getenv('MODEL_INIT_RETRY_DELAY_SECONDS', '1.0'))

    # Preview Configuration
    DEFAULT_BLUR_RADIUS = float(os.getenv('DEFAULT_BLUR_RADIUS', '12'))
    DEFAULT_BRIGHTNESS = float(os.getenv('DEFAULT_BRIGHTNESS', '1.0'))
    DEFAULT_ZOOM = float(os.getenv('DEFAULT_ZOOM', '1.0'))
    DEFAULT_ASPECT_RATIO = float(os.getenv('DEFAULT_ASPECT_RATIO', str(16 / 9)))
    DEFAULT_MIRROR = _env_bool('DEFAULT_MIRROR', 'true')
    QUALITY_OVERLAY = _env_bool('QUALITY_OVERLAY', 'true')
    JPEG_QUALITY = int(os.getenv('JPEG_QUALITY', '90'))

    # Liveness thresholds (LIVENESS_<FIELD> overrides each default)
    LIVENESS_EAR_OPEN = float(os.getenv('LIVENESS_EAR_OPEN', '0.25'))
    LIVENESS_EAR_CLOSED = float(os.getenv('LIVENESS_EAR_CLOSED', '0.2'))
    LIVENESS_TURN_TRIGGER_DEG = float(os.getenv('LIVENESS_TURN_TRIGGER_DEG', '30'))
    LIVENESS_TURN_RESET_DEG = float(os.getenv('LIVENESS_TURN_RESET_DEG', '20'))
    LIVENESS_NOD_YES_DELTA = float(os.getenv('LIVENESS_NOD_YES_DELTA', '0.3'))
    LIVENESS_NOD_NO_DELTA = float(os.getenv('LIVENESS_NOD_NO_DELTA', '0.4'))
    LIVENESS_SMILE_CORNER_ELEVATION = float(os.getenv('LIVENESS_SMILE_CORNER_ELEVATION', '0.02'))
    LIVENESS_SMILE_CHEEK_LIFT = float(os.getenv('LIVENESS_SMILE_CHEEK_LIFT', '0.03'))
    LIVENESS_SMILE_MOUTH_WIDTH = float(os.getenv('LIVENESS_SMILE_MOUTH_WIDTH', '0.045'))
    LIVENESS_HISTORY_LENGTH = int(os.getenv('LIVENESS_HISTORY_LENGTH', '10'))
    LIVENESS_MIN_HISTORY = int(os.getenv('LIVENESS_MIN_HISTORY', '5'))

    @classmethod
    def liveness_thresholds(cls) -> LivenessThresholds:
        """Build detector thresholds from the environment"""
        return LivenessThresholds(
            ear_open=cls.LIVENESS_EAR_OPEN,
            ear_closed=cls.LIVENESS_EAR_CLOSED,
            turn_trigger_deg=cls.LIVENESS_TURN_TRIGGER_DEG,
            turn_reset_deg=cls.LIVENESS_TURN_RESET_DEG,
            nod_yes_delta=cls.LIVENESS_NOD_YES_DELTA,
            nod_no_delta=cls.LIVENESS_NOD_NO_DELTA,
            smile_corner_elevation=cls.LIVENESS_SMILE_CORNER_ELEVATION,
            smile_cheek_lift=cls.LIVENESS_SMILE_CHEEK_LIFT,
            smile_mouth_width=cls.LIVENESS_SMILE_MOUTH_WIDTH,
            history_length=cls.LIVENESS_HISTORY_LENGTH,
            min_history=cls.LIVENESS_MIN_HISTORY,
        )

    @classmethod
    def compositor_params(cls) -> CompositorParams:
        """Build the initial preview settings from the environment"""
        return CompositorParams(
            blur_radius=cls.DEFAULT_BLUR_RADIUS,
            brightness=cls.DEFAULT_BRIGHTNESS,
            zoom=cls.DEFAULT_ZOOM,
            target_aspect_ratio=cls.DEFAULT_ASPECT_RATIO,
            mirror=cls.DEFAULT_MIRROR,
            quality_overlay=cls.QUALITY_OVERLAY,
        )


config = Config()

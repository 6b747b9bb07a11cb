"""
Frame compositor for the blurred-background preview.

Each tick crops the raw frame to the requested aspect ratio, renders a
blurred background and a mask-restricted sharp foreground, then composes
them under a single mirror + zoom transform.
"""
import logging
from typing import Optional

import cv2
import numpy as np

from ..models.data_models import (
    CompositeResult,
    CompositorParams,
    CropRect,
    Frame,
    QualityScore,
)
from .quality_scorer import score_region

logger = logging.getLogger(__name__)


def compute_crop(width: int, height: int, target_aspect_ratio: float) -> CropRect:
    """
    Largest centred crop of a width x height frame matching the aspect ratio.
    """
    out_w = float(width)
    out_h = width / target_aspect_ratio
    if out_h > height:
        out_h = float(height)
        out_w = height * target_aspect_ratio

    crop_w = max(1, min(width, int(round(out_w))))
    crop_h = max(1, min(height, int(round(out_h))))
    x = (width - crop_w) // 2
    y = (height - crop_h) // 2
    return CropRect(x=x, y=y, width=crop_w, height=crop_h)


def normalize_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Convert a segmentation mask to uint8 alpha aligned to the frame size.

    Float masks are probabilities in [0, 1]; integer masks are already alpha.
    """
    mask = np.asarray(mask)
    if mask.ndim == 3:
        mask = mask[..., 0]
    if np.issubdtype(mask.dtype, np.floating):
        alpha = np.clip(mask * 255.0, 0, 255).astype(np.uint8)
    else:
        alpha = np.clip(mask, 0, 255).astype(np.uint8)
    if alpha.shape != (height, width):
        alpha = cv2.resize(alpha, (width, height), interpolation=cv2.INTER_NEAREST)
    return alpha


def mirror_zoom_matrix(width: int, height: int, zoom: float, mirror: bool) -> np.ndarray:
    """
    Affine matrix for a uniform zoom about the centre, optionally mirrored.

    Uses pixel-centre coordinates so that zoom 1 with mirror is exactly a
    horizontal flip.
    """
    cx = (width - 1) / 2.0
    cy = (height - 1) / 2.0
    sx = -zoom if mirror else zoom
    return np.array(
        [
            [sx, 0.0, cx - sx * cx],
            [0.0, zoom, cy - zoom * cy],
        ],
        dtype=np.float64,
    )


class FrameCompositor:
    """
    Renders the displayed preview frame from a raw frame and its mask.

    Offscreen surfaces are kept between ticks and only reallocated when the
    crop size changes.
    """

    def __init__(self):
        self._surface_size = None
        self._background: Optional[np.ndarray] = None
        self._foreground: Optional[np.ndarray] = None
        self._alpha: Optional[np.ndarray] = None
        self._inverse_alpha: Optional[np.ndarray] = None
        self._blend: Optional[np.ndarray] = None
        self._composed: Optional[np.ndarray] = None
        self._output: Optional[np.ndarray] = None
        self.surface_allocations = 0
        self.latest_quality: Optional[QualityScore] = None

    def _ensure_surfaces(self, width: int, height: int) -> None:
        if self._surface_size == (width, height):
            return
        self._background = np.zeros((height, width, 3), dtype=np.float32)
        self._foreground = np.zeros((height, width, 3), dtype=np.float32)
        self._alpha = np.zeros((height, width, 1), dtype=np.float32)
        self._inverse_alpha = np.zeros((height, width, 1), dtype=np.float32)
        self._blend = np.zeros((height, width, 3), dtype=np.float32)
        self._composed = np.zeros((height, width, 4), dtype=np.uint8)
        self._output = np.zeros((height, width, 4), dtype=np.uint8)
        self._surface_size = (width, height)
        self.surface_allocations += 1
        logger.debug("Allocated compositor surfaces %sx%s", width, height)

    def render(
        self,
        frame: Frame,
        mask: np.ndarray,
        params: CompositorParams,
    ) -> Optional[CompositeResult]:
        """
        Compose one preview frame.

        Args:
            frame: Raw RGBA camera frame
            mask: Segmentation mask aligned to the frame
            params: Current preview settings

        Returns:
            CompositeResult, or None when the camera is not ready yet
            (zero-sized frame)
        """
        width, height = frame.width, frame.height
        if width == 0 or height == 0:
            logger.debug("Skipping tick: frame not ready")
            return None

        crop = compute_crop(width, height, params.target_aspect_ratio)
        self._ensure_surfaces(crop.width, crop.height)

        rows = slice(crop.y, crop.y + crop.height)
        cols = slice(crop.x, crop.x + crop.width)
        rgb = frame.image[rows, cols, :3]
        alpha = normalize_mask(mask, width, height)[rows, cols]

        # Background: blur then brightness
        np.copyto(self._background, rgb, casting="unsafe")
        if params.blur_radius > 0:
            cv2.GaussianBlur(
                self._background, (0, 0), sigmaX=params.blur_radius,
                dst=self._background, borderType=cv2.BORDER_REPLICATE,
            )
        self._background *= params.brightness

        # Foreground: brightness only, restricted to the mask
        np.copyto(self._foreground, rgb, casting="unsafe")
        self._foreground *= params.brightness
        np.clip(self._foreground, 0, 255, out=self._foreground)
        np.copyto(self._alpha[..., 0], alpha, casting="unsafe")
        self._alpha /= 255.0

        # Source-over blend in place: fg * a + bg * (1 - a)
        np.subtract(1.0, self._alpha, out=self._inverse_alpha)
        np.multiply(self._background, self._inverse_alpha, out=self._background)
        np.multiply(self._foreground, self._alpha, out=self._blend)
        np.add(self._blend, self._background, out=self._blend)
        np.clip(self._blend, 0, 255, out=self._blend)
        np.copyto(self._composed[..., :3], self._blend, casting="unsafe")
        self._composed[..., 3] = 255

        # Cleared target, then one combined mirror + zoom transform
        self._output.fill(0)
        if params.mirror or params.zoom != 1:
            matrix = mirror_zoom_matrix(crop.width, crop.height, params.zoom, params.mirror)
            cv2.warpAffine(
                self._composed, matrix, (crop.width, crop.height), dst=self._output,
                flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0, 0),
            )
        else:
            np.copyto(self._output, self._composed)

        quality = None
        if params.quality_overlay:
            quality = score_region(self.foreground_layer())
            self.latest_quality = quality

        return CompositeResult(image=self._output.copy(), crop=crop, quality=quality)

    def foreground_layer(self) -> np.ndarray:
        """RGBA buffer of the last foreground layer (alpha = mask)."""
        if self._foreground is None:
            return np.zeros((0, 0, 4), dtype=np.uint8)
        layer = np.empty(self._foreground.shape[:2] + (4,), dtype=np.uint8)
        layer[..., :3] = self._foreground.astype(np.uint8)
        layer[..., 3] = np.round(self._alpha[..., 0] * 255.0).astype(np.uint8)
        return layer

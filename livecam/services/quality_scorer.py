"""
Frame quality scoring for the segmented foreground.

All scorers take an RGBA pixel buffer whose alpha channel is the
segmentation mask; pixels with alpha > 20 are treated as foreground.
Scores are integers in [0, 100].
"""
import math
from typing import Tuple

import numpy as np

from ..models.data_models import QualityScore

MASK_ALPHA_THRESHOLD = 20
LIGHTING_MAX_DIM = 120
CONTRAST_MAX_DIM = 120
SHARPNESS_MAX_DIM = 160
MIN_SHARPNESS_PIXELS = 25

# Rec. 709 luma weights
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)


def _round(value: float) -> int:
    # Half-up rounding, not banker's rounding
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> int:
    return max(0, min(100, _round(value)))


def downsample_gray(rgba: np.ndarray, max_dim: int = SHARPNESS_MAX_DIM) -> Tuple[np.ndarray, np.ndarray]:
    """
    Nearest-neighbour downsample to at most max_dim on the long side.

    Args:
        rgba: Pixel buffer (H, W, 4); a 3-channel buffer is treated as fully opaque
        max_dim: Bound on the larger output dimension

    Returns:
        Tuple of luminance (float64, h x w) and alpha (uint8, h x w)
    """
    height, width = rgba.shape[:2]
    if width == 0 or height == 0:
        return np.zeros((0, 0)), np.zeros((0, 0), dtype=np.uint8)

    scale = min(1.0, max_dim / max(width, height))
    new_w = max(1, int(math.floor(width * scale)))
    new_h = max(1, int(math.floor(height * scale)))

    xs = np.floor(np.arange(new_w) * (width / new_w)).astype(np.intp)
    ys = np.floor(np.arange(new_h) * (height / new_h)).astype(np.intp)
    sampled = rgba[ys[:, None], xs[None, :]]

    gray = sampled[..., :3].astype(np.float64) @ LUMA_WEIGHTS
    if sampled.shape[-1] >= 4:
        alpha = sampled[..., 3].astype(np.uint8)
    else:
        alpha = np.full(gray.shape, 255, dtype=np.uint8)
    return gray, alpha


def _valid_luminance(rgba: np.ndarray, max_dim: int) -> np.ndarray:
    gray, alpha = downsample_gray(rgba, max_dim)
    return gray[alpha > MASK_ALPHA_THRESHOLD]


def lighting_score(rgba: np.ndarray) -> int:
    """
    Score exposure from the median luminance of the foreground.

    The desired median is roughly 70-180. Darker frames score 20-80,
    over-exposed frames decay from 95 towards 30, and a mean well above
    the median (glare or hotspots) costs up to 30 more points.
    """
    values = _valid_luminance(rgba, LIGHTING_MAX_DIM)
    if values.size == 0:
        return 0
    median = float(np.median(values))
    mean = float(values.mean())

    if median < 70:
        score = _round(20 + (median / 70) * 60)
    elif median > 180:
        score = _round(max(30, 95 - ((median - 180) / 75) * 60))
    else:
        score = 95

    skew = mean - median
    if skew > 20:
        score = max(30, score - _round((skew / 100) * 30))

    return max(0, min(100, score))


def sharpness_score(rgba: np.ndarray) -> int:
    """
    Score focus from the variance of a 4-neighbour Laplacian.

    Only interior pixels whose four neighbours are also foreground count,
    so the mask edge itself does not read as detail.
    """
    gray, alpha = downsample_gray(rgba, SHARPNESS_MAX_DIM)
    valid = alpha > MASK_ALPHA_THRESHOLD
    if int(valid.sum()) < MIN_SHARPNESS_PIXELS:
        return 0
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0

    center = gray[1:-1, 1:-1]
    laplacian = 4 * center - (gray[:-2, 1:-1] + gray[2:, 1:-1] + gray[1:-1, :-2] + gray[1:-1, 2:])
    usable = (
        valid[1:-1, 1:-1]
        & valid[:-2, 1:-1]
        & valid[2:, 1:-1]
        & valid[1:-1, :-2]
        & valid[1:-1, 2:]
    )
    count = int(usable.sum())
    if count == 0:
        return 0

    variance = float(np.square(laplacian[usable]).sum() / count)
    # log10(var + 1) is roughly 0..2.2 for practical webcam ranges
    mapped = math.log10(variance + 1) / 2.2
    return _clamp_score(mapped * 100)


def contrast_score(rgba: np.ndarray) -> int:
    """Standard deviation of foreground luminance; a std of 60 scores 100."""
    values = _valid_luminance(rgba, CONTRAST_MAX_DIM)
    if values.size == 0:
        return 0
    std = float(values.std())
    return _clamp_score((std / 60) * 100)


def clarity_score(lighting: float, sharpness: float, contrast: float) -> int:
    """Weighted blend favouring sharpness, with a small bonus for crisp frames."""
    combined = lighting * 0.3 + sharpness * 0.6 + contrast * 0.1
    if combined > 86 and sharpness > 85:
        combined = min(100, combined + 4)
    return _clamp_score(combined)


def score_region(rgba: np.ndarray) -> QualityScore:
    """Compute every quality score for one masked foreground buffer."""
    lighting = lighting_score(rgba)
    sharpness = sharpness_score(rgba)
    contrast = contrast_score(rgba)
    return QualityScore(
        lighting=lighting,
        sharpness=sharpness,
        contrast=contrast,
        clarity=clarity_score(lighting, sharpness, contrast),
    )

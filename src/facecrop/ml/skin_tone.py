"""Skin-tone heuristic face estimator.

Samples a downscaled copy of the image on a coarse grid in the upper band
where portraits usually place a face, keeps pixels that look like skin and
puts a face-sized box on their centroid. False positives and negatives are
expected; the result is a best-effort guess.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from facecrop.imaging.geometry import FaceRegion, clamp_region
from facecrop.imaging.raster import PillowRasterSurface

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facecrop.imaging.raster import RasterSurface

logger = logging.getLogger(__name__)

ANALYSIS_MAX_SIZE = 400
SAMPLE_STRIDE = 10

# Scan band as fractions of the analysis canvas.
SCAN_TOP = 0.05
SCAN_BOTTOM = 0.5
SCAN_LEFT = 0.1
SCAN_RIGHT = 0.9

# Face box size relative to the source image height; width:height is 3:4.
FACE_HEIGHT_RATIO = 0.2
FACE_WIDTH_RATIO = 0.75


def skin_tone_mask(pixels: NDArray[np.uint8]) -> NDArray[np.bool_]:
    """Return a boolean mask of pixels whose RGB values look like skin."""
    rgb = pixels.astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    spread = rgb.max(axis=-1) - rgb.min(axis=-1)
    return (r > 95) & (g > 40) & (b > 20) & (r > g) & (g > b) & (spread > 15)


def estimate_face_region(
    image: NDArray[np.uint8],
    raster: RasterSurface | None = None,
    analysis_max_size: int = ANALYSIS_MAX_SIZE,
) -> FaceRegion | None:
    """Estimate where a face is from skin-tone samples.

    Args:
        image: HxWx3 RGB uint8 array.
        raster: Backend used to build the analysis canvas.
        analysis_max_size: Cap for each axis of the analysis canvas. Axes are
            capped independently, so the canvas may not keep the aspect ratio.

    Returns:
        A region in source pixel coordinates, or None when no sample matched.
    """
    raster = raster or PillowRasterSurface()
    image_height, image_width = image.shape[:2]
    canvas_width = min(image_width, analysis_max_size)
    canvas_height = min(image_height, analysis_max_size)
    canvas = raster.read_pixels(image, canvas_width, canvas_height)

    ys = np.arange(int(canvas_height * SCAN_TOP), int(canvas_height * SCAN_BOTTOM), SAMPLE_STRIDE)
    xs = np.arange(int(canvas_width * SCAN_LEFT), int(canvas_width * SCAN_RIGHT), SAMPLE_STRIDE)
    if ys.size == 0 or xs.size == 0:
        return None

    samples = canvas[np.ix_(ys, xs)]
    rows, cols = np.nonzero(skin_tone_mask(samples))
    if rows.size == 0:
        return None

    scale_x = image_width / canvas_width
    scale_y = image_height / canvas_height
    center_x = float(xs[cols].mean()) * scale_x
    center_y = float(ys[rows].mean()) * scale_y

    face_height = image_height * FACE_HEIGHT_RATIO
    face_width = face_height * FACE_WIDTH_RATIO
    logger.debug("%d skin-tone samples, centroid (%.1f, %.1f)", rows.size, center_x, center_y)
    return clamp_region(center_x, center_y, face_width, face_height, image_width, image_height)


class SkinToneFaceDetector:
    """FaceDetector backed by the skin-tone heuristic."""

    def __init__(
        self,
        raster: RasterSurface | None = None,
        analysis_max_size: int = ANALYSIS_MAX_SIZE,
    ) -> None:
        self._raster = raster or PillowRasterSurface()
        self._analysis_max_size = analysis_max_size

    @property
    def model_name(self) -> str:
        return "skin_tone"

    def detect(self, image: NDArray[np.uint8]) -> list[FaceRegion]:
        region = estimate_face_region(image, self._raster, self._analysis_max_size)
        return [] if region is None else [region]

"""Render a crop box to the output size and compress it under a size ceiling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from facecrop.config import MEGABYTE
from facecrop.errors import ImageCropError, ImageProcessingError
from facecrop.imaging.raster import encode_data_url

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from facecrop.imaging.geometry import CropBox
    from facecrop.imaging.raster import RasterSurface

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = 0.7
DEFAULT_SIZE_CEILING = 10 * MEGABYTE
QUALITY_FLOOR = 0.3
QUALITY_STEP = 0.1
MAX_REENCODES = 5


@dataclass(frozen=True)
class EncodedImage:
    """Final JPEG output of the pipeline.

    ``size_bytes`` is the length of the data URL, which is what upload
    callers compare against their limits.
    """

    data_url: str
    width: int
    height: int
    quality: float
    size_bytes: int
    qualities: tuple[float, ...]

    @property
    def size_mb(self) -> float:
        return self.size_bytes / MEGABYTE


def render_and_compress(
    raster: RasterSurface,
    image: NDArray[np.uint8],
    crop_box: CropBox,
    target_width: int,
    target_height: int,
    initial_quality: float = DEFAULT_QUALITY,
    *,
    size_ceiling: int = DEFAULT_SIZE_CEILING,
    quality_floor: float = QUALITY_FLOOR,
    quality_step: float = QUALITY_STEP,
    max_reencodes: int = MAX_REENCODES,
) -> EncodedImage:
    """Draw ``crop_box`` at ``target_width`` x ``target_height`` and JPEG-encode it.

    Quality is lowered by ``quality_step`` while the result is over
    ``size_ceiling``, never below ``quality_floor`` and at most
    ``max_reencodes`` times. An oversized result at the floor is returned
    as-is; callers enforce their own limit.

    Raises:
        ImageProcessingError: If drawing or encoding fails.
    """
    try:
        canvas = raster.draw_region(image, crop_box, target_width, target_height)
    except ImageCropError:
        raise
    except Exception as exc:
        raise ImageProcessingError(f"Could not draw crop box {crop_box}: {exc}") from exc

    quality = initial_quality
    data_url = _encode(raster, canvas, quality)
    qualities = [quality]

    while len(data_url) > size_ceiling and quality > quality_floor and len(qualities) <= max_reencodes:
        # Rounding keeps repeated float subtraction from drifting past the floor.
        quality = max(quality_floor, round(quality - quality_step, 6))
        logger.debug(
            "Encoded size %.2f MB over ceiling, retrying at quality %.2f",
            len(data_url) / MEGABYTE,
            quality,
        )
        data_url = _encode(raster, canvas, quality)
        qualities.append(quality)

    return EncodedImage(
        data_url=data_url,
        width=target_width,
        height=target_height,
        quality=quality,
        size_bytes=len(data_url),
        qualities=tuple(qualities),
    )


def _encode(raster: RasterSurface, canvas: NDArray[np.uint8], quality: float) -> str:
    try:
        return encode_data_url(raster.encode(canvas, quality))
    except ImageCropError:
        raise
    except Exception as exc:
        raise ImageProcessingError(f"Could not encode image at quality {quality:.2f}: {exc}") from exc

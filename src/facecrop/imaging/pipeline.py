"""Face-focused crop pipeline.

decode -> estimate face region -> compute crop box -> render -> compress.
Each call owns its decoded image and canvas; nothing is cached between calls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from facecrop.config import get_settings
from facecrop.errors import ImageCropError, ImageDecodeError, ImageProcessingError
from facecrop.imaging.compression import DEFAULT_QUALITY, render_and_compress
from facecrop.imaging.geometry import compute_crop_box, fallback_face_region
from facecrop.imaging.raster import PillowRasterSurface, parse_data_url
from facecrop.ml.detection_service import FaceDetectionService

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from facecrop.config import Settings
    from facecrop.imaging.compression import EncodedImage
    from facecrop.imaging.geometry import CropBox, FaceRegion
    from facecrop.imaging.raster import RasterSurface

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 1200
DEFAULT_MAX_HEIGHT = 800


class RegionSource(StrEnum):
    DETECTED = "detected"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True)
class CropResult:
    """Output of one pipeline run."""

    image: EncodedImage
    crop_box: CropBox
    region: FaceRegion | None
    region_source: RegionSource

    @property
    def face_detected(self) -> bool:
        return self.region_source is RegionSource.DETECTED


class CropPipeline:
    """Crops images around the most likely face and compresses the result."""

    def __init__(
        self,
        settings: Settings | None = None,
        detection: FaceDetectionService | None = None,
        raster: RasterSurface | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._raster = raster or PillowRasterSurface(self._settings.max_image_pixels)
        self._detection = detection or FaceDetectionService(self._settings, raster=self._raster)

    @property
    def detection(self) -> FaceDetectionService:
        return self._detection

    def close(self) -> None:
        """Release the detection service's model sessions."""
        self._detection.shutdown()

    def process(
        self,
        source_data_url: str,
        max_width: int = DEFAULT_MAX_WIDTH,
        max_height: int = DEFAULT_MAX_HEIGHT,
        quality: float = DEFAULT_QUALITY,
    ) -> CropResult:
        """Run the pipeline on a data URL.

        Raises:
            ValueError: If the output size or quality is out of range.
            ImageDecodeError: If the data URL cannot be decoded.
            ImageProcessingError: If cropping, drawing or encoding fails.
        """
        if max_width < 1 or max_height < 1:
            raise ValueError(f"Output size must be at least 1x1, got {max_width}x{max_height}")
        if not 0 < quality <= 1:
            raise ValueError(f"Quality must be in (0, 1], got {quality}")

        image = self._decode(source_data_url)
        image_height, image_width = image.shape[:2]
        region, source = self._estimate(image)

        try:
            crop_box = compute_crop_box(image_width, image_height, region, max_width, max_height)
            encoded = render_and_compress(
                self._raster,
                image,
                crop_box,
                max_width,
                max_height,
                quality,
                size_ceiling=self._settings.compression_ceiling,
                quality_floor=self._settings.quality_floor,
                quality_step=self._settings.quality_step,
                max_reencodes=self._settings.max_reencodes,
            )
        except ImageCropError as exc:
            raise ImageProcessingError(f"Failed to crop image: {exc.message}") from exc
        except Exception as exc:
            raise ImageProcessingError(f"Failed to crop image: {exc}") from exc

        logger.info(
            "Cropped %dx%d image to %dx%d (box=%s, region=%s, quality=%.2f, %.2f MB)",
            image_width,
            image_height,
            max_width,
            max_height,
            crop_box,
            source,
            encoded.quality,
            encoded.size_mb,
        )
        return CropResult(image=encoded, crop_box=crop_box, region=region, region_source=source)

    def _decode(self, source_data_url: str) -> NDArray[np.uint8]:
        try:
            _, data = parse_data_url(source_data_url)
            return self._raster.decode(data)
        except ImageCropError as exc:
            raise ImageDecodeError(f"Failed to load image: {exc.message}") from exc
        except Exception as exc:
            raise ImageDecodeError(f"Failed to load image: {exc}") from exc

    def _estimate(self, image: NDArray[np.uint8]) -> tuple[FaceRegion | None, RegionSource]:
        """Estimate the face region. Failures degrade to a crop without a region."""
        try:
            region = self._detection.estimate_face_region(image)
        except Exception:
            logger.warning("Face estimation failed, cropping without a region", exc_info=True)
            return None, RegionSource.NONE

        if region is None:
            image_height, image_width = image.shape[:2]
            logger.info("No face detected, using upper-centre fallback region")
            return fallback_face_region(image_width, image_height), RegionSource.FALLBACK

        logger.info("Face detected at (%.0f, %.0f), cropping around it", region.center_x, region.center_y)
        return region, RegionSource.DETECTED


async def crop_image_for_face(
    source_data_url: str,
    max_width: int = DEFAULT_MAX_WIDTH,
    max_height: int = DEFAULT_MAX_HEIGHT,
    quality: float = DEFAULT_QUALITY,
    *,
    pipeline: CropPipeline | None = None,
) -> str:
    """Crop an image around its most likely face and return a JPEG data URL.

    The synchronous pipeline runs in a worker thread. Without ``pipeline``,
    one is built from the environment for this call and closed afterwards,
    so model sessions are not reused; pass a long-lived pipeline when an
    ONNX detector is configured.

    Raises:
        ImageDecodeError: If the data URL cannot be decoded.
        ImageProcessingError: If cropping, drawing or encoding fails.
    """
    if pipeline is not None:
        result = await asyncio.to_thread(pipeline.process, source_data_url, max_width, max_height, quality)
        return result.image.data_url

    owned = CropPipeline()
    try:
        result = await asyncio.to_thread(owned.process, source_data_url, max_width, max_height, quality)
    finally:
        owned.close()
    return result.image.data_url

"""Tests for the end-to-end crop pipeline."""

from __future__ import annotations

import base64
import struct
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest
from conftest import CORRUPT_PPM, decode_data_url, png_data_url, solid_image

from facecrop.config import Settings
from facecrop.errors import ImageDecodeError, ImageProcessingError
from facecrop.imaging.geometry import CropBox, compute_crop_box
from facecrop.imaging.pipeline import CropPipeline, RegionSource, crop_image_for_face
from facecrop.ml.detection_service import FaceDetectionService

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


class BrokenDetection:
    def estimate_face_region(self, image: NDArray[np.uint8]) -> None:
        raise RuntimeError("detector exploded")


@pytest.fixture()
def pipeline() -> CropPipeline:
    return CropPipeline(Settings())


class TestCropPipeline:
    def test_portrait_cropped_around_face(self, pipeline: CropPipeline, portrait: NDArray[np.uint8]) -> None:
        result = pipeline.process(png_data_url(portrait), 1200, 800, 0.7)

        decoded = decode_data_url(result.image.data_url)
        assert decoded.format == "JPEG"
        assert decoded.size == (1200, 800)
        assert result.region_source is RegionSource.DETECTED
        assert result.face_detected
        assert result.region is not None
        assert 800 <= result.region.center_x <= 1000
        assert result.crop_box == compute_crop_box(2000, 1500, result.region, 1200, 800)
        assert result.crop_box.contained_in(2000, 1500)

    def test_no_skin_uses_fallback_region(self, pipeline: CropPipeline) -> None:
        result = pipeline.process(png_data_url(solid_image(1000, 1000)), 1200, 800)

        assert result.region_source is RegionSource.FALLBACK
        assert not result.face_detected
        assert result.crop_box == CropBox(x=0, y=0, width=1000, height=666)

    def test_estimation_failure_crops_without_region(self, portrait: NDArray[np.uint8]) -> None:
        pipeline = CropPipeline(Settings(), detection=BrokenDetection())  # type: ignore[arg-type]
        result = pipeline.process(png_data_url(portrait), 1200, 800)

        assert result.region is None
        assert result.region_source is RegionSource.NONE
        assert result.crop_box == compute_crop_box(2000, 1500, None, 1200, 800)
        assert decode_data_url(result.image.data_url).size == (1200, 800)

    def test_square_output(self, pipeline: CropPipeline, portrait: NDArray[np.uint8]) -> None:
        result = pipeline.process(png_data_url(portrait), 400, 400, 0.8)

        assert decode_data_url(result.image.data_url).size == (400, 400)
        assert result.crop_box.width == result.crop_box.height
        assert result.image.quality == 0.8

    def test_small_image_upscaled_to_target(self, pipeline: CropPipeline) -> None:
        result = pipeline.process(png_data_url(solid_image(30, 20)), 300, 200)
        assert decode_data_url(result.image.data_url).size == (300, 200)

    @pytest.mark.parametrize(
        "data_url",
        ["data:image/png;base64,!!!", "not a data url", "data:image/png;base64,aGVsbG8="],
    )
    def test_undecodable_input(self, pipeline: CropPipeline, data_url: str) -> None:
        with pytest.raises(ImageDecodeError, match="^Failed to load image"):
            pipeline.process(data_url)

    @pytest.mark.parametrize(
        ("width", "height", "quality"),
        [(0, 800, 0.7), (1200, -1, 0.7), (1200, 800, 0.0), (1200, 800, 1.5)],
    )
    def test_invalid_arguments(self, pipeline: CropPipeline, width: int, height: int, quality: float) -> None:
        with pytest.raises(ValueError):
            pipeline.process(png_data_url(solid_image(10, 10)), width, height, quality)

    def test_encoder_failure_reported_as_processing_error(self, portrait: NDArray[np.uint8]) -> None:
        from facecrop.imaging.raster import PillowRasterSurface

        class NoJpegRaster(PillowRasterSurface):
            def encode(self, image: NDArray[np.uint8], quality: float) -> bytes:
                raise OSError("encoder not available")

        pipeline = CropPipeline(Settings(), raster=NoJpegRaster())
        with pytest.raises(ImageProcessingError, match="^Failed to crop image"):
            pipeline.process(png_data_url(portrait))


class TestCropImageForFace:
    async def test_returns_jpeg_data_url(self, portrait: NDArray[np.uint8]) -> None:
        data_url = await crop_image_for_face(png_data_url(portrait), pipeline=CropPipeline(Settings()))

        assert data_url.startswith("data:image/jpeg;base64,")
        assert decode_data_url(data_url).size == (1200, 800)

    async def test_default_pipeline(self) -> None:
        data_url = await crop_image_for_face(png_data_url(solid_image(50, 50)), 40, 40, 0.9)
        assert decode_data_url(data_url).size == (40, 40)

    async def test_decode_error_propagates(self) -> None:
        with pytest.raises(ImageDecodeError):
            await crop_image_for_face("data:image/png;base64,!!!")


class TestDecodeFailures:
    def test_corrupt_ppm_header(self, pipeline: CropPipeline) -> None:
        data_url = "data:image/x-portable-pixmap;base64," + base64.b64encode(CORRUPT_PPM).decode()
        with pytest.raises(ImageDecodeError, match="^Failed to load image"):
            pipeline.process(data_url, 60, 40)

    def test_unexpected_backend_error_is_decode_error(self) -> None:
        from facecrop.imaging.raster import PillowRasterSurface

        class ExplodingRaster(PillowRasterSurface):
            def decode(self, data: bytes) -> NDArray[np.uint8]:
                raise struct.error("unpack requires a buffer of 4 bytes")

        pipeline = CropPipeline(Settings(), raster=ExplodingRaster())
        with pytest.raises(ImageDecodeError, match="^Failed to load image: unpack"):
            pipeline.process(png_data_url(solid_image(10, 10)))


class TestDefaultPipelineLifetime:
    async def test_default_pipeline_closed_after_call(self) -> None:
        with patch.object(CropPipeline, "close", autospec=True) as close:
            await crop_image_for_face(png_data_url(solid_image(20, 20)), 10, 10)
        close.assert_called_once()

    async def test_default_pipeline_closed_on_failure(self) -> None:
        with patch.object(CropPipeline, "close", autospec=True) as close, pytest.raises(ImageDecodeError):
            await crop_image_for_face("data:image/png;base64,!!!")
        close.assert_called_once()

    async def test_given_pipeline_left_open(self) -> None:
        pipeline = CropPipeline(Settings())
        with patch.object(CropPipeline, "close", autospec=True) as close:
            await crop_image_for_face(png_data_url(solid_image(20, 20)), 10, 10, pipeline=pipeline)
        close.assert_not_called()

    def test_close_shuts_down_detection(self) -> None:
        manager = MagicMock()
        settings = Settings(face_detection_model="retinaface_resnet34")
        pipeline = CropPipeline(settings, detection=FaceDetectionService(settings, model_manager=manager))

        pipeline.close()
        manager.shutdown.assert_called_once()

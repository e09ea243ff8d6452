"""Tests for the Pillow raster backend and data URL helpers."""

from __future__ import annotations

import base64
import io

import numpy as np
import pytest
from conftest import CORRUPT_PPM, SKIN, png_data_url, solid_image
from PIL import Image

from facecrop.errors import ImageDecodeError, ImageProcessingError
from facecrop.imaging.geometry import CropBox
from facecrop.imaging.raster import PillowRasterSurface, encode_data_url, parse_data_url


def _png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class TestParseDataUrl:
    def test_round_trip(self) -> None:
        media_type, data = parse_data_url(encode_data_url(b"abc", "image/png"))
        assert media_type == "image/png"
        assert data == b"abc"

    def test_extra_parameters_allowed(self) -> None:
        payload = base64.b64encode(b"xyz").decode()
        media_type, data = parse_data_url(f"data:image/jpeg;name=a.jpg;base64,{payload}")
        assert media_type == "image/jpeg"
        assert data == b"xyz"

    @pytest.mark.parametrize(
        ("data_url", "message"),
        [
            ("image/png;base64,AAAA", "Not a data URL"),
            ("data:image/png;base64", "separator"),
            ("data:image/png,AAAA", "base64"),
            ("data:image/png;base64,!!!", "Invalid base64"),
            ("data:image/png;base64,", "empty"),
        ],
    )
    def test_malformed(self, data_url: str, message: str) -> None:
        with pytest.raises(ImageDecodeError, match=message):
            parse_data_url(data_url)


class TestPillowRasterSurface:
    def test_decode_returns_rgb_array(self) -> None:
        data = _png_bytes(Image.new("RGBA", (30, 20), (10, 20, 30, 128)))
        image = PillowRasterSurface().decode(data)

        assert image.shape == (20, 30, 3)
        assert image.dtype == np.uint8

    def test_decode_applies_exif_orientation(self) -> None:
        source = Image.new("RGB", (40, 10), (200, 100, 50))
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 degrees clockwise
        buffer = io.BytesIO()
        source.save(buffer, format="JPEG", exif=exif.tobytes())

        image = PillowRasterSurface().decode(buffer.getvalue())
        assert image.shape[:2] == (40, 10)

    def test_decode_rejects_garbage(self) -> None:
        with pytest.raises(ImageDecodeError, match="Unsupported or corrupt"):
            PillowRasterSurface().decode(b"not an image")

    def test_decode_rejects_empty(self) -> None:
        with pytest.raises(ImageDecodeError, match="empty"):
            PillowRasterSurface().decode(b"")

    def test_decode_enforces_pixel_limit(self) -> None:
        data = _png_bytes(Image.new("RGB", (100, 100)))
        with pytest.raises(ImageDecodeError, match="limit"):
            PillowRasterSurface(max_image_pixels=5000).decode(data)

    def test_read_pixels_resamples(self) -> None:
        pixels = PillowRasterSurface().read_pixels(solid_image(800, 600, SKIN), 400, 300)
        assert pixels.shape == (300, 400, 3)
        assert np.abs(pixels[150, 200].astype(int) - SKIN).max() <= 1

    def test_draw_region_crops_and_scales(self) -> None:
        image = solid_image(200, 100)
        image[:, 100:] = SKIN
        canvas = PillowRasterSurface().draw_region(image, CropBox(x=100, y=0, width=100, height=100), 50, 50)

        assert canvas.shape == (50, 50, 3)
        assert np.abs(canvas[25, 25].astype(int) - SKIN).max() <= 1

    def test_draw_region_rejects_zero_area(self) -> None:
        with pytest.raises(ImageProcessingError, match="zero area"):
            PillowRasterSurface().draw_region(solid_image(10, 10), CropBox(x=0, y=0, width=0, height=5), 5, 5)

    def test_lower_quality_encodes_smaller(self) -> None:
        rng = np.random.default_rng(0)
        noise = rng.integers(0, 256, size=(200, 200, 3), dtype=np.uint8)
        raster = PillowRasterSurface()
        assert len(raster.encode(noise, 0.3)) < len(raster.encode(noise, 0.9))

    def test_png_data_url_decodes(self) -> None:
        _, data = parse_data_url(png_data_url(solid_image(12, 8)))
        assert PillowRasterSurface().decode(data).shape == (8, 12, 3)

    def test_decode_wraps_plugin_header_errors(self) -> None:
        # The PPM plugin parses the size with int() and raises ValueError.
        with pytest.raises(ImageDecodeError, match="Unsupported or corrupt"):
            PillowRasterSurface().decode(CORRUPT_PPM)


class TestLenientDataUrls:
    def test_base64_marker_is_case_insensitive(self) -> None:
        media_type, data = parse_data_url("data:Image/PNG;BASE64,YWJj")
        assert media_type == "image/png"
        assert data == b"abc"

    def test_line_wrapped_payload(self) -> None:
        payload = base64.b64encode(b"x" * 100).decode()
        wrapped = "\n".join(payload[i : i + 76] for i in range(0, len(payload), 76))
        _, data = parse_data_url(f"data:image/png;base64,{wrapped}\r\n")
        assert data == b"x" * 100

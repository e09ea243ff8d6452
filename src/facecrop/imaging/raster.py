"""Raster backend: decoding, resampling, drawing and JPEG encoding.

The pipeline only talks to the ``RasterSurface`` protocol. Images travel
between stages as HxWx3 RGB uint8 numpy arrays.
"""

from __future__ import annotations

import base64
import binascii
import io
from typing import TYPE_CHECKING, Protocol

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from facecrop.errors import ImageCropError, ImageDecodeError, ImageProcessingError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facecrop.imaging.geometry import CropBox

OUTPUT_MIME_TYPE = "image/jpeg"


class RasterSurface(Protocol):
    """Protocol for raster backends."""

    def decode(self, data: bytes) -> NDArray[np.uint8]:
        """Decode encoded image bytes into an RGB array.

        Raises:
            ImageDecodeError: If the bytes are not a readable image.
        """
        ...

    def read_pixels(self, image: NDArray[np.uint8], width: int, height: int) -> NDArray[np.uint8]:
        """Return the image resampled to exactly ``width`` x ``height``."""
        ...

    def draw_region(
        self, image: NDArray[np.uint8], box: CropBox, width: int, height: int
    ) -> NDArray[np.uint8]:
        """Draw the ``box`` subregion of ``image`` scaled to ``width`` x ``height``."""
        ...

    def encode(self, image: NDArray[np.uint8], quality: float) -> bytes:
        """Encode an RGB array as JPEG at a quality in (0, 1]."""
        ...


class PillowRasterSurface:
    """RasterSurface backed by Pillow."""

    def __init__(self, max_image_pixels: int | None = None) -> None:
        self._max_image_pixels = max_image_pixels

    def decode(self, data: bytes) -> NDArray[np.uint8]:
        if not data:
            raise ImageDecodeError("Image payload is empty")
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                if self._max_image_pixels is not None and width * height > self._max_image_pixels:
                    raise ImageDecodeError(
                        f"Image has {width * height} pixels, limit is {self._max_image_pixels}"
                    )
                # Browsers honour EXIF orientation when drawing, so do we.
                oriented = ImageOps.exif_transpose(img)
                rgb = oriented.convert("RGB")
                return np.asarray(rgb, dtype=np.uint8)
        except ImageCropError:
            raise
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"Unsupported or corrupt image data ({exc})") from exc
        except Exception as exc:
            # Format plugins raise arbitrary errors on malformed headers.
            raise ImageDecodeError(f"Unsupported or corrupt image data ({exc!r})") from exc

    def read_pixels(self, image: NDArray[np.uint8], width: int, height: int) -> NDArray[np.uint8]:
        src = Image.fromarray(image)
        if src.size == (width, height):
            return image
        resized = src.resize((width, height), Image.Resampling.BILINEAR)
        return np.asarray(resized, dtype=np.uint8)

    def draw_region(
        self, image: NDArray[np.uint8], box: CropBox, width: int, height: int
    ) -> NDArray[np.uint8]:
        if box.width <= 0 or box.height <= 0:
            raise ImageProcessingError(f"Crop box has zero area: {box}")
        src = Image.fromarray(image)
        resized = src.resize(
            (width, height),
            Image.Resampling.LANCZOS,
            box=(box.x, box.y, box.x + box.width, box.y + box.height),
        )
        return np.asarray(resized, dtype=np.uint8)

    def encode(self, image: NDArray[np.uint8], quality: float) -> bytes:
        buffer = io.BytesIO()
        # Pillow takes JPEG quality on a 1-100 scale.
        jpeg_quality = max(1, min(100, round(quality * 100)))
        Image.fromarray(image).save(buffer, format="JPEG", quality=jpeg_quality)
        return buffer.getvalue()


# ---------------------------------------------------------------------------
# Data URLs
# ---------------------------------------------------------------------------


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into its media type and decoded payload.

    Raises:
        ImageDecodeError: If the string is not a base64 data URL or the
            payload is empty or malformed.
    """
    if not data_url.startswith("data:"):
        raise ImageDecodeError("Not a data URL")
    header, sep, payload = data_url[len("data:") :].partition(",")
    if not sep:
        raise ImageDecodeError("Data URL has no payload separator")

    params = [param.strip().lower() for param in header.split(";")]
    if "base64" not in params[1:]:
        raise ImageDecodeError("Only base64 data URLs are supported")
    media_type = params[0] or "text/plain"

    # Some clients wrap long base64 payloads across lines.
    payload = "".join(payload.split())
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError(f"Invalid base64 payload ({exc})") from exc
    if not data:
        raise ImageDecodeError("Image payload is empty")
    return media_type, data


def encode_data_url(data: bytes, media_type: str = OUTPUT_MIME_TYPE) -> str:
    """Wrap encoded image bytes in a base64 data URL."""
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"

"""Shared synthetic-image fixtures."""

from __future__ import annotations

import base64
import io
from typing import TYPE_CHECKING

import numpy as np
import pytest
from PIL import Image

if TYPE_CHECKING:
    from numpy.typing import NDArray

SKIN = (224, 172, 140)
BLUE = (20, 40, 220)

# PPM whose width field is not a number; Pillow's plugin raises ValueError.
CORRUPT_PPM = b"P6\n6\xa9 4\n255\n" + b"\x00" * 64


def solid_image(width: int, height: int, color: tuple[int, int, int] = BLUE) -> NDArray[np.uint8]:
    image = np.empty((height, width, 3), dtype=np.uint8)
    image[...] = color
    return image


def portrait_image() -> NDArray[np.uint8]:
    """2000x1500 blue image with a skin-tone block at (800, 100)-(1000, 300)."""
    image = solid_image(2000, 1500)
    image[100:300, 800:1000] = SKIN
    return image


def png_data_url(image: NDArray[np.uint8]) -> str:
    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_data_url(data_url: str) -> Image.Image:
    _, payload = data_url.split(",", 1)
    return Image.open(io.BytesIO(base64.b64decode(payload)))


@pytest.fixture()
def portrait() -> NDArray[np.uint8]:
    return portrait_image()

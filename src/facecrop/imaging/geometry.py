"""Crop-box geometry.

All rectangles are in source-image pixel coordinates with the origin at the
top-left corner.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Fixed upper-centre region used when no face-like pixels are found.
FALLBACK_REGION_X = 0.2
FALLBACK_REGION_Y = 0.05
FALLBACK_REGION_WIDTH = 0.6
FALLBACK_REGION_HEIGHT = 0.35

# Without a region the crop window starts this far down the image.
FALLBACK_TOP_OFFSET = 0.1

# Context kept around a face, as a multiple of the face's larger side.
FACE_PADDING_FACTOR = 2.0


@dataclass(frozen=True)
class FaceRegion:
    """Estimated face rectangle."""

    x: float
    y: float
    width: float
    height: float
    score: float = 1.0

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2


@dataclass(frozen=True)
class CropBox:
    """Integer source rectangle that is rendered into the output image."""

    x: int
    y: int
    width: int
    height: int

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def contained_in(self, image_width: int, image_height: int) -> bool:
        """Return True if the box lies fully inside an image of the given size."""
        return (
            self.x >= 0
            and self.y >= 0
            and self.x + self.width <= image_width
            and self.y + self.height <= image_height
        )


def fallback_face_region(image_width: int, image_height: int) -> FaceRegion:
    """Return the region assumed to hold a face when estimation finds nothing."""
    return FaceRegion(
        x=image_width * FALLBACK_REGION_X,
        y=image_height * FALLBACK_REGION_Y,
        width=image_width * FALLBACK_REGION_WIDTH,
        height=image_height * FALLBACK_REGION_HEIGHT,
        score=0.0,
    )


def clamp_region(
    center_x: float,
    center_y: float,
    width: float,
    height: float,
    image_width: int,
    image_height: int,
    score: float = 1.0,
) -> FaceRegion:
    """Build a region centred on a point, kept inside the image.

    The size is capped to the image; an overflowing origin is shifted inward
    rather than shrinking the region.
    """
    width = min(float(image_width), width)
    height = min(float(image_height), height)
    x = min(max(0.0, center_x - width / 2), image_width - width)
    y = min(max(0.0, center_y - height / 2), image_height - height)
    return FaceRegion(x=x, y=y, width=width, height=height, score=score)


def compute_crop_box(
    image_width: int,
    image_height: int,
    region: FaceRegion | None,
    target_width: int,
    target_height: int,
) -> CropBox:
    """Compute the source rectangle for a crop with the target aspect ratio.

    With a region, the crop encloses the region plus padding of twice its
    larger side and is centred on it. Without one, the crop spans the full
    limiting dimension, is centred horizontally and starts 10% from the top.

    Raises:
        ValueError: If any dimension is smaller than 1.
    """
    if image_width < 1 or image_height < 1:
        raise ValueError(f"Invalid image size {image_width}x{image_height}")
    if target_width < 1 or target_height < 1:
        raise ValueError(f"Invalid target size {target_width}x{target_height}")

    target_aspect = target_width / target_height
    image_aspect = image_width / image_height
    wider_than_target = image_aspect > target_aspect

    if region is not None:
        padding = max(region.width, region.height) * FACE_PADDING_FACTOR
        if wider_than_target:
            crop_height = min(float(image_height), region.height + padding * 2)
            crop_width = crop_height * target_aspect
        else:
            crop_width = min(float(image_width), region.width + padding * 2)
            crop_height = crop_width / target_aspect
        crop_x = region.center_x - crop_width / 2
        crop_y = region.center_y - crop_height / 2
    else:
        if wider_than_target:
            crop_height = float(image_height)
            crop_width = crop_height * target_aspect
        else:
            crop_width = float(image_width)
            crop_height = crop_width / target_aspect
        crop_x = (image_width - crop_width) / 2
        crop_y = image_height * FALLBACK_TOP_OFFSET

    # Shift inward first, then forbid negative origins.
    crop_x = max(0.0, min(crop_x, image_width - crop_width))
    crop_y = max(0.0, min(crop_y, image_height - crop_height))

    return CropBox(
        x=math.floor(crop_x),
        y=math.floor(crop_y),
        width=max(1, math.floor(crop_width)),
        height=max(1, math.floor(crop_height)),
    )

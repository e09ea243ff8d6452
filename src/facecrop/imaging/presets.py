"""Output presets used by the upload forms."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class CropPreset(StrEnum):
    GIG_COVER = "gig_cover"
    AVATAR = "avatar"
    PORTFOLIO = "portfolio"


@dataclass(frozen=True)
class PresetSpec:
    """Output size and starting JPEG quality for one kind of upload."""

    name: CropPreset
    width: int
    height: int
    quality: float
    description: str


PRESET_REGISTRY: dict[CropPreset, PresetSpec] = {
    CropPreset.GIG_COVER: PresetSpec(
        name=CropPreset.GIG_COVER,
        width=1200,
        height=800,
        quality=0.7,
        description="Gig cover image",
    ),
    CropPreset.AVATAR: PresetSpec(
        name=CropPreset.AVATAR,
        width=400,
        height=400,
        quality=0.8,
        description="Profile picture",
    ),
    CropPreset.PORTFOLIO: PresetSpec(
        name=CropPreset.PORTFOLIO,
        width=1200,
        height=800,
        quality=0.7,
        description="Portfolio image",
    ),
}

"""Pydantic request/response schemas for the FaceCrop API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from facecrop.imaging.presets import CropPreset


class CropOptions(BaseModel):
    """Output options; explicit values override the preset's."""

    preset: CropPreset = CropPreset.GIG_COVER
    width: int | None = Field(default=None, ge=1, le=8192, description="Output width in pixels")
    height: int | None = Field(default=None, ge=1, le=8192, description="Output height in pixels")
    quality: float | None = Field(default=None, gt=0.0, le=1.0, description="Initial JPEG quality")


class DataUrlCropRequest(CropOptions):
    """Crop request carrying the image inline."""

    image: str = Field(description="Base64 data URL of the source image")


class CropBoxModel(BaseModel):
    """Source rectangle that was rendered, in source pixels."""

    x: int
    y: int
    width: int
    height: int


class CropResponse(BaseModel):
    """A cropped, compressed image."""

    image: str = Field(description="JPEG data URL")
    width: int
    height: int
    size_bytes: int
    quality: float = Field(description="Final JPEG quality after compression")
    face_detected: bool
    region_source: str = Field(description="'detected', 'fallback', or 'none'")
    crop_box: CropBoxModel


class SkippedFile(BaseModel):
    """An upload that was left out of a batch."""

    filename: str | None
    reason: str


class BatchCropResponse(BaseModel):
    """Results of a sequential multi-image crop."""

    images: list[CropResponse]
    skipped: list[SkippedFile]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    detector: str
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class DetectorInfo(BaseModel):
    """Information about an available face detector."""

    name: str
    kind: str = Field(description="'heuristic' or 'onnx'")
    status: str = Field(description="Detector status: 'active' or 'available'")
    license: str


class DetectorsResponse(BaseModel):
    """Response for the detectors listing endpoint."""

    detectors: list[DetectorInfo]


class PresetInfo(BaseModel):
    """Output size and quality of a crop preset."""

    name: str
    width: int
    height: int
    quality: float
    description: str


class PresetsResponse(BaseModel):
    """Response for the presets listing endpoint."""

    presets: list[PresetInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str

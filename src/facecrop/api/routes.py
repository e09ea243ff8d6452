"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query, Request, UploadFile

from facecrop.api.dependencies import get_pipeline, get_settings, get_worker_pool
from facecrop.api.middleware import verify_api_key
from facecrop.api.schemas import (
    BatchCropResponse,
    CropBoxModel,
    CropOptions,
    CropResponse,
    DataUrlCropRequest,
    DetectorInfo,
    DetectorsResponse,
    ErrorResponse,
    HealthResponse,
    PresetInfo,
    PresetsResponse,
    SkippedFile,
)
from facecrop.config import Settings  # noqa: TC001
from facecrop.errors import ImageDecodeError, OutputTooLargeError, UploadRejectedError
from facecrop.imaging.pipeline import CropPipeline  # noqa: TC001
from facecrop.imaging.presets import PRESET_REGISTRY, CropPreset
from facecrop.imaging.raster import parse_data_url
from facecrop.imaging.uploads import check_output_size, check_upload, to_data_url
from facecrop.ml.model_manager import MODEL_REGISTRY
from facecrop.workers import CropWorkerPool  # noqa: TC001

if TYPE_CHECKING:
    from facecrop.imaging.pipeline import CropResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_CROP_ERRORS: dict[int | str, dict[str, object]] = {
    413: {"model": ErrorResponse},
    415: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _crop_options(
    preset: Annotated[CropPreset, Query()] = CropPreset.GIG_COVER,
    width: Annotated[int | None, Query(ge=1, le=8192)] = None,
    height: Annotated[int | None, Query(ge=1, le=8192)] = None,
    quality: Annotated[float | None, Query(gt=0.0, le=1.0)] = None,
) -> CropOptions:
    return CropOptions(preset=preset, width=width, height=height, quality=quality)


async def _run_pipeline(
    pool: CropWorkerPool,
    pipeline: CropPipeline,
    data_url: str,
    options: CropOptions,
) -> CropResult:
    spec = PRESET_REGISTRY[options.preset]
    width = options.width or spec.width
    height = options.height or spec.height
    quality = options.quality or spec.quality
    return await pool.crop(pipeline, data_url, width, height, quality)


def _to_response(result: CropResult) -> CropResponse:
    box = result.crop_box
    return CropResponse(
        image=result.image.data_url,
        width=result.image.width,
        height=result.image.height,
        size_bytes=result.image.size_bytes,
        quality=result.image.quality,
        face_detected=result.face_detected,
        region_source=str(result.region_source),
        crop_box=CropBoxModel(x=box.x, y=box.y, width=box.width, height=box.height),
    )


@router.post(
    "/crop",
    response_model=CropResponse,
    responses=_CROP_ERRORS,
    summary="Crop an uploaded image around its face",
)
async def crop_upload(
    file: UploadFile,
    options: Annotated[CropOptions, Depends(_crop_options)],
    settings: Annotated[Settings, Depends(get_settings)],
    pool: Annotated[CropWorkerPool, Depends(get_worker_pool)],
    pipeline: Annotated[CropPipeline, Depends(get_pipeline)],
) -> CropResponse:
    """Validate an upload, crop it around the detected face, and compress it."""
    data = await file.read()
    check_upload(file.content_type, len(data), settings.max_upload_size)
    data_url = to_data_url(data, file.content_type or "application/octet-stream")

    result = await _run_pipeline(pool, pipeline, data_url, options)
    check_output_size(result.image.data_url, settings.output_size_limit)
    return _to_response(result)


@router.post(
    "/crop/data-url",
    response_model=CropResponse,
    responses=_CROP_ERRORS,
    summary="Crop an inline data URL image around its face",
)
async def crop_data_url(
    body: DataUrlCropRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    pool: Annotated[CropWorkerPool, Depends(get_worker_pool)],
    pipeline: Annotated[CropPipeline, Depends(get_pipeline)],
) -> CropResponse:
    """Same as ``/crop`` for clients that already hold a data URL."""
    try:
        media_type, payload = parse_data_url(body.image)
    except ImageDecodeError as exc:
        raise ImageDecodeError(f"Failed to load image: {exc.message}") from exc
    check_upload(media_type, len(payload), settings.max_upload_size)

    result = await _run_pipeline(pool, pipeline, body.image, body)
    check_output_size(result.image.data_url, settings.output_size_limit)
    return _to_response(result)


@router.post(
    "/crop/batch",
    response_model=BatchCropResponse,
    responses=_CROP_ERRORS,
    summary="Crop several uploads one after another",
)
async def crop_batch(
    files: list[UploadFile],
    options: Annotated[CropOptions, Depends(_crop_options)],
    settings: Annotated[Settings, Depends(get_settings)],
    pool: Annotated[CropWorkerPool, Depends(get_worker_pool)],
    pipeline: Annotated[CropPipeline, Depends(get_pipeline)],
) -> BatchCropResponse:
    """Crop portfolio images sequentially, one decoded image in memory at a time.

    Uploads that fail the size or type checks are skipped and reported. A
    processing failure fails the whole batch.
    """
    images: list[CropResponse] = []
    skipped: list[SkippedFile] = []
    for upload in files:
        data = await upload.read()
        try:
            check_upload(upload.content_type, len(data), settings.max_upload_size)
        except UploadRejectedError as exc:
            skipped.append(SkippedFile(filename=upload.filename, reason=exc.message))
            continue

        data_url = to_data_url(data, upload.content_type or "application/octet-stream")
        del data
        result = await _run_pipeline(pool, pipeline, data_url, options)
        try:
            check_output_size(result.image.data_url, settings.output_size_limit)
        except OutputTooLargeError as exc:
            skipped.append(SkippedFile(filename=upload.filename, reason=exc.message))
            continue
        images.append(_to_response(result))

    logger.info("Batch crop: %d processed, %d skipped", len(images), len(skipped))
    return BatchCropResponse(images=images, skipped=skipped)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    pool = get_worker_pool(request)
    detection = get_pipeline(request).detection
    return HealthResponse(
        status="ok",
        detector=detection.model_name,
        models_loaded=detection.loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/detectors",
    response_model=DetectorsResponse,
    summary="List available face detectors",
)
async def list_detectors(request: Request) -> DetectorsResponse:
    """Return the face detectors and which one is active."""
    active = get_pipeline(request).detection.model_name

    def _status(name: str) -> str:
        return "active" if name == active else "available"

    detectors = [DetectorInfo(name="skin_tone", kind="heuristic", status=_status("skin_tone"), license="built-in")]
    detectors.extend(
        DetectorInfo(name=spec.name, kind="onnx", status=_status(spec.name), license=spec.license)
        for spec in MODEL_REGISTRY.values()
    )
    return DetectorsResponse(detectors=detectors)


@router.get(
    "/presets",
    response_model=PresetsResponse,
    summary="List crop presets",
)
async def list_presets() -> PresetsResponse:
    """Return the output size and quality of each crop preset."""
    return PresetsResponse(
        presets=[
            PresetInfo(
                name=str(spec.name),
                width=spec.width,
                height=spec.height,
                quality=spec.quality,
                description=spec.description,
            )
            for spec in PRESET_REGISTRY.values()
        ]
    )

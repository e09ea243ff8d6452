"""Accessors for objects the lifespan stores on ``app.state``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from facecrop.config import Settings
    from facecrop.imaging.pipeline import CropPipeline
    from facecrop.workers import CropWorkerPool


def get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_worker_pool(request: Request) -> CropWorkerPool:
    pool: CropWorkerPool = request.app.state.worker_pool
    return pool


def get_pipeline(request: Request) -> CropPipeline:
    pipeline: CropPipeline = request.app.state.pipeline
    return pipeline

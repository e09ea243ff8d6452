"""ONNX detector models: where the files come from and how sessions are kept.

Model files are resolved from ``models_dir`` first and fetched from the
HuggingFace Hub otherwise. Sessions are cached per model and dropped once
they sit idle longer than ``model_ttl`` seconds.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import GraphOptimizationLevel, InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from facecrop.config import Settings

logger = logging.getLogger(__name__)

Provider = str | tuple[str, dict[str, object]]

DETECTOR_MODELS_REPO = "danielcopper/recognizex-models"


class ModelManager(Protocol):
    """What detectors need from a model manager."""

    def ensure_downloaded(self, model_name: str) -> Path: ...

    def get_session(self, model_name: str) -> InferenceSession: ...

    def get_loaded_models(self) -> list[str]: ...

    def unload_idle_models(self) -> None: ...

    def shutdown(self) -> None: ...


@dataclass(frozen=True)
class ModelSpec:
    """Where a detector model lives on the hub, and under which licence."""

    name: str
    repo_id: str
    filename: str
    subfolder: str | None
    license: str


MODEL_REGISTRY: dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        ModelSpec("retinaface_resnet34", DETECTOR_MODELS_REPO, "retinaface_resnet34.onnx", None, "MIT"),
        ModelSpec("retinaface_mobilenetv2", DETECTOR_MODELS_REPO, "retinaface_mobilenetv2.onnx", None, "MIT"),
    )
}


def execution_providers(device: str, gpu_mem_limit: int) -> list[Provider]:
    """Return onnxruntime providers for a device, always ending with CPU."""
    if device == "cuda":
        cuda_options: dict[str, object] = {
            "device_id": 0,
            "gpu_mem_limit": gpu_mem_limit,
            "arena_extend_strategy": "kSameAsRequested",
        }
        return [("CUDAExecutionProvider", cuda_options), "CPUExecutionProvider"]
    if device == "openvino":
        return [("OpenVINOExecutionProvider", {"device_type": "CPU"}), "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


def session_options(settings: Settings) -> SessionOptions:
    options = SessionOptions()
    options.intra_op_num_threads = settings.intra_op_threads
    options.inter_op_num_threads = settings.inter_op_threads
    options.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    options.enable_mem_pattern = True
    options.enable_mem_reuse = True
    if settings.device == "openvino":
        # OpenVINO optimizes the graph itself.
        options.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
    return options


@dataclass
class _LoadedModel:
    session: InferenceSession
    last_used: float


class OnnxModelManager:
    """Thread-safe cache of ONNX sessions for the registry's detectors."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._sessions: dict[str, _LoadedModel] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = execution_providers(settings.device, settings.gpu_mem_limit)
        self._session_options = session_options(settings)

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the model file, downloading it only when no local copy exists.

        Raises:
            KeyError: If the model is not in the registry.
        """
        spec = _lookup(model_name)
        path = self._model_paths.get(model_name)
        if path is None or not path.exists():
            path = self._resolve(spec)
            self._model_paths[model_name] = path
        return path

    def get_session(self, model_name: str) -> InferenceSession:
        """Return the model's session, creating it on first use.

        Every call also evicts sessions that have gone idle.
        """
        self.unload_idle_models()
        with self._lock:
            loaded = self._touch(model_name)
        if loaded is not None:
            return loaded

        session = InferenceSession(
            str(self.ensure_downloaded(model_name)),
            sess_options=self._session_options,
            providers=self._providers,
        )
        with self._lock:
            # A concurrent request may have won the race.
            loaded = self._touch(model_name)
            if loaded is not None:
                return loaded
            self._sessions[model_name] = _LoadedModel(session, time.monotonic())
        logger.info("Loaded %s session (providers=%s)", model_name, self._providers)
        return session

    def get_loaded_models(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def unload_idle_models(self) -> None:
        """Drop sessions idle for longer than ``model_ttl``. A TTL of 0 keeps them forever."""
        ttl = self._settings.model_ttl
        if ttl == 0:
            return
        cutoff = time.monotonic() - ttl
        with self._lock:
            for name in [n for n, loaded in self._sessions.items() if loaded.last_used < cutoff]:
                del self._sessions[name]
                logger.info("Evicted idle %s session", name)

    def shutdown(self) -> None:
        with self._lock:
            self._sessions.clear()
        logger.info("Released all detector sessions")

    def _touch(self, model_name: str) -> InferenceSession | None:
        loaded = self._sessions.get(model_name)
        if loaded is None:
            return None
        loaded.last_used = time.monotonic()
        return loaded.session

    def _resolve(self, spec: ModelSpec) -> Path:
        local_dir = self._models_dir / spec.subfolder if spec.subfolder else self._models_dir
        local = local_dir / spec.filename
        if local.exists():
            logger.info("Using model file %s for %s", local, spec.name)
            return local

        repo_id = self._settings.models_repo or spec.repo_id
        downloaded = Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=spec.filename,
                subfolder=spec.subfolder,
                local_dir=str(self._models_dir),
            )
        )
        logger.info("Downloaded %s from %s to %s", spec.name, repo_id, downloaded)
        return downloaded


def _lookup(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None

"""Face detection service: owns the configured detector and its models."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from facecrop.ml.model_manager import MODEL_REGISTRY, OnnxModelManager
from facecrop.ml.retinaface import RetinaFaceDetector
from facecrop.ml.skin_tone import SkinToneFaceDetector

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from facecrop.config import Settings
    from facecrop.imaging.geometry import FaceRegion
    from facecrop.imaging.raster import RasterSurface
    from facecrop.ml.face_detector import FaceDetector
    from facecrop.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class FaceDetectionService:
    """Runs the configured face detector, falling back to the skin-tone heuristic.

    Built once by the host application and passed to each ``CropPipeline``.
    ONNX detectors get their sessions from the service's model manager, which
    is released by ``shutdown()``.
    """

    def __init__(
        self,
        settings: Settings,
        model_manager: ModelManager | None = None,
        detector: FaceDetector | None = None,
        raster: RasterSurface | None = None,
    ) -> None:
        self._settings = settings
        self._heuristic = SkinToneFaceDetector(raster, settings.analysis_max_size)
        self._model_manager = model_manager

        if detector is not None:
            self._detector: FaceDetector = detector
        elif settings.face_detection_model in MODEL_REGISTRY:
            if self._model_manager is None:
                self._model_manager = OnnxModelManager(settings)
            self._detector = RetinaFaceDetector(
                self._model_manager,
                model_name=settings.face_detection_model,
                threshold=settings.detection_threshold,
            )
        else:
            self._detector = self._heuristic

    @property
    def model_name(self) -> str:
        """Name of the primary detector."""
        return self._detector.model_name

    def load(self) -> None:
        """Warm up the primary detector's model session, if it has one."""
        if isinstance(self._detector, RetinaFaceDetector):
            self._detector.load()
            logger.info("Preloaded face detector %s", self._detector.model_name)

    def loaded_models(self) -> list[str]:
        """Return names of ONNX models with live sessions."""
        if self._model_manager is None:
            return []
        return self._model_manager.get_loaded_models()

    def detect(self, image: NDArray[np.uint8]) -> list[FaceRegion]:
        """Detect faces with the primary detector.

        If the primary detector raises, the error is logged and the
        skin-tone heuristic is used instead. Heuristic errors propagate.
        """
        if self._detector is self._heuristic:
            return self._heuristic.detect(image)
        try:
            return self._detector.detect(image)
        except Exception:
            logger.warning(
                "Face detector %s failed, using skin-tone heuristic",
                self._detector.model_name,
                exc_info=True,
            )
            return self._heuristic.detect(image)

    def estimate_face_region(self, image: NDArray[np.uint8]) -> FaceRegion | None:
        """Return the best face region, or None when nothing was found."""
        regions = self.detect(image)
        return regions[0] if regions else None

    def shutdown(self) -> None:
        """Release model sessions."""
        if self._model_manager is not None:
            self._model_manager.shutdown()


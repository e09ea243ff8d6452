"""Face detection capability.

Implementations: skin-tone heuristic (default), RetinaFace ONNX (opt-in).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from facecrop.imaging.geometry import FaceRegion


class FaceDetector(Protocol):
    """Protocol for face detectors."""

    @property
    def model_name(self) -> str:
        """Return the detector identifier string."""
        ...

    def detect(self, image: NDArray[np.uint8]) -> list[FaceRegion]:
        """Detect faces in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            Regions in source pixel coordinates, best candidate first. Empty
            when nothing face-like was found.
        """
        ...

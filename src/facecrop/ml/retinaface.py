"""RetinaFace face detector running on ONNX Runtime.

Expects the standard RetinaFace export: one BGR input of shape (1, 3, H, W)
with the ImageNet channel means subtracted, and ``loc`` (1, N, 4) plus
``conf`` (1, N, 2, softmaxed) outputs over SSD-style priors. Landmark
outputs, if present, are ignored.
"""

from __future__ import annotations

import itertools
import logging
import math
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from facecrop.imaging.geometry import FaceRegion

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facecrop.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

INPUT_SIZE = 640
BGR_MEAN = np.array([104.0, 117.0, 123.0], dtype=np.float32)
MIN_SIZES: tuple[tuple[int, ...], ...] = ((16, 32), (64, 128), (256, 512))
STEPS: tuple[int, ...] = (8, 16, 32)
VARIANCES = (0.1, 0.2)
NMS_IOU_THRESHOLD = 0.4


def generate_priors(height: int, width: int) -> NDArray[np.float32]:
    """Return prior boxes as (cx, cy, w, h), normalized to the input size."""
    priors: list[list[float]] = []
    for step, min_sizes in zip(STEPS, MIN_SIZES, strict=True):
        rows = math.ceil(height / step)
        cols = math.ceil(width / step)
        for i, j in itertools.product(range(rows), range(cols)):
            for min_size in min_sizes:
                priors.append(
                    [
                        (j + 0.5) * step / width,
                        (i + 0.5) * step / height,
                        min_size / width,
                        min_size / height,
                    ]
                )
    return np.array(priors, dtype=np.float32)


def decode_boxes(loc: NDArray[np.float32], priors: NDArray[np.float32]) -> NDArray[np.float32]:
    """Decode location offsets into normalized (x1, y1, x2, y2) boxes."""
    centers = priors[:, :2] + loc[:, :2] * VARIANCES[0] * priors[:, 2:]
    sizes = priors[:, 2:] * np.exp(loc[:, 2:] * VARIANCES[1])
    top_left = centers - sizes / 2
    return np.concatenate([top_left, top_left + sizes], axis=1)


def nms(boxes: NDArray[np.float32], scores: NDArray[np.float32], iou_threshold: float) -> list[int]:
    """Greedy non-maximum suppression. Returns kept indices, best first."""
    x1, y1, x2, y2 = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]
    areas = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)
    order = scores.argsort()[::-1]

    keep: list[int] = []
    while order.size > 0:
        best = int(order[0])
        keep.append(best)
        rest = order[1:]
        inter_w = np.maximum(0.0, np.minimum(x2[best], x2[rest]) - np.maximum(x1[best], x1[rest]))
        inter_h = np.maximum(0.0, np.minimum(y2[best], y2[rest]) - np.maximum(y1[best], y1[rest]))
        inter = inter_w * inter_h
        union = areas[best] + areas[rest] - inter
        iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)
        order = rest[iou <= iou_threshold]
    return keep


class RetinaFaceDetector:
    """FaceDetector backed by a RetinaFace ONNX model."""

    def __init__(
        self,
        model_manager: ModelManager,
        model_name: str = "retinaface_resnet34",
        threshold: float = 0.8,
        input_size: int = INPUT_SIZE,
    ) -> None:
        self._model_manager = model_manager
        self._model_name = model_name
        self._threshold = threshold
        self._input_size = input_size
        self._priors = generate_priors(input_size, input_size)

    @property
    def model_name(self) -> str:
        return self._model_name

    def load(self) -> None:
        """Create the inference session ahead of the first request."""
        self._model_manager.get_session(self._model_name)

    def detect(self, image: NDArray[np.uint8]) -> list[FaceRegion]:
        image_height, image_width = image.shape[:2]
        session = self._model_manager.get_session(self._model_name)
        input_name = session.get_inputs()[0].name
        loc, conf = session.run(None, {input_name: self._preprocess(image)})[:2]

        scores = conf[0][:, 1]
        candidates = scores > self._threshold
        if not np.any(candidates):
            return []

        boxes = decode_boxes(loc[0][candidates], self._priors[candidates])
        scores = scores[candidates]
        regions: list[FaceRegion] = []
        for index in nms(boxes, scores, NMS_IOU_THRESHOLD):
            x1, y1, x2, y2 = np.clip(boxes[index], 0.0, 1.0)
            width = (x2 - x1) * image_width
            height = (y2 - y1) * image_height
            if width <= 0 or height <= 0:
                continue
            regions.append(
                FaceRegion(
                    x=float(x1 * image_width),
                    y=float(y1 * image_height),
                    width=float(width),
                    height=float(height),
                    score=float(scores[index]),
                )
            )
        logger.debug("%s found %d face(s)", self._model_name, len(regions))
        return regions

    def _preprocess(self, image: NDArray[np.uint8]) -> NDArray[np.float32]:
        resized = Image.fromarray(image).resize((self._input_size, self._input_size), Image.Resampling.BILINEAR)
        bgr = np.asarray(resized, dtype=np.float32)[..., ::-1] - BGR_MEAN
        return np.ascontiguousarray(bgr.transpose(2, 0, 1)[np.newaxis])

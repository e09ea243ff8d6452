"""Exceptions raised by the cropping pipeline and the upload checks.

Every error carries a human-readable ``message`` that callers can show to
users as-is.
"""

from __future__ import annotations


class ImageCropError(Exception):
    """Base class for FaceCrop errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ImageDecodeError(ImageCropError):
    """The input could not be decoded into a raster image."""


class ImageProcessingError(ImageCropError):
    """Drawing or encoding the cropped image failed."""


class UploadRejectedError(ImageCropError):
    """An upload failed the size or type checks before processing."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class OutputTooLargeError(ImageCropError):
    """The processed image is still over the output size limit."""

    def __init__(self, size_mb: float) -> None:
        super().__init__(
            f"Image is still too large ({size_mb:.2f} MB) after processing. Please use a smaller image."
        )
        self.size_mb = size_mb


class WorkersBusyError(ImageCropError):
    """Every crop worker stayed busy for the whole wait limit."""

    def __init__(self) -> None:
        super().__init__("All crop workers are busy, try again shortly")

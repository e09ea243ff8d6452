"""Checks applied to uploads before and after the cropping pipeline."""

from __future__ import annotations

from facecrop.config import MEGABYTE
from facecrop.errors import OutputTooLargeError, UploadRejectedError
from facecrop.imaging.raster import encode_data_url

HTTP_413_CONTENT_TOO_LARGE = 413
HTTP_415_UNSUPPORTED_MEDIA_TYPE = 415


def size_in_mb(data_url: str) -> float:
    return len(data_url) / MEGABYTE


def check_upload(content_type: str | None, size: int, max_size: int) -> None:
    """Reject uploads that are too large or are not images.

    Raises:
        UploadRejectedError: With the 413 or 415 status to report.
    """
    if size > max_size:
        raise UploadRejectedError(
            f"Image size must be less than {max_size / MEGABYTE:g}MB",
            status_code=HTTP_413_CONTENT_TOO_LARGE,
        )
    if not content_type or not content_type.startswith("image/"):
        raise UploadRejectedError(
            "Please upload a valid image file",
            status_code=HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        )


def to_data_url(data: bytes, content_type: str) -> str:
    """Convert raw upload bytes into a data URL for the pipeline."""
    return encode_data_url(data, content_type)


def check_output_size(data_url: str, limit: int) -> None:
    """Reject a processed image that is still over ``limit`` bytes.

    Raises:
        OutputTooLargeError: If the data URL is longer than ``limit``.
    """
    if len(data_url) > limit:
        raise OutputTooLargeError(size_in_mb(data_url))

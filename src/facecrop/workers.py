"""Bounded execution of crop pipeline runs for the API.

Decoding, detection and JPEG encoding are CPU-bound, so each crop runs on a
dedicated thread. At most ``max_concurrent`` crops run at once; a request
that cannot get a slot within the wait limit fails with ``WorkersBusyError``.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from facecrop.errors import WorkersBusyError

if TYPE_CHECKING:
    from facecrop.config import Settings
    from facecrop.imaging.pipeline import CropPipeline, CropResult

logger = logging.getLogger(__name__)

SLOT_WAIT_SECONDS: float = 5.0


class CropWorkerPool:
    """Runs ``CropPipeline.process`` on worker threads, a few crops at a time.

    Counters are only touched from the event loop thread.
    """

    def __init__(self, settings: Settings, slot_wait: float = SLOT_WAIT_SECONDS) -> None:
        self._slot_wait = slot_wait
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="face-crop",
        )
        self._waiting = 0
        self._cropping = 0

    async def crop(
        self,
        pipeline: CropPipeline,
        data_url: str,
        width: int,
        height: int,
        quality: float,
    ) -> CropResult:
        """Crop ``data_url`` with ``pipeline`` once a worker slot is free.

        Raises:
            WorkersBusyError: If every slot stays taken for the wait limit.
            ImageDecodeError, ImageProcessingError: From the pipeline.
        """
        self._waiting += 1
        try:
            async with asyncio.timeout(self._slot_wait):
                await self._slots.acquire()
        except TimeoutError:
            logger.warning(
                "No crop worker free after %.1fs (%d cropping, %d waiting)",
                self._slot_wait,
                self._cropping,
                self._waiting - 1,
            )
            raise WorkersBusyError() from None
        finally:
            self._waiting -= 1

        self._cropping += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, pipeline.process, data_url, width, height, quality)
        finally:
            self._cropping -= 1
            self._slots.release()

    @property
    def active_count(self) -> int:
        """Crops currently running."""
        return self._cropping

    @property
    def queue_depth(self) -> int:
        """Crops waiting for a slot."""
        return self._waiting

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

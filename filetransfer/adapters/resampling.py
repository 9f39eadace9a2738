"""Adapter decorator that resamples images before handing them to the real adapter."""
from typing import Optional
import logging

from ..models import ImageOptions, TransferFile, TransferProgress, TransferResponse
from ..protocols import IImageResampler, IStorageAdapter, ProgressCallback
from .base import notify

logger = logging.getLogger(__name__)

RESAMPLE_PROGRESS_RATIO = 0.1
UPLOAD_PROGRESS_RATIO = 1 - RESAMPLE_PROGRESS_RATIO


class ResamplingAdapter:
    """
    Compose image resampling in front of another storage adapter.

    Progress for images is blended: resampling counts for the first 10%,
    the wrapped upload for the remaining 90%. Other files go through
    untouched. A ResampleError stops the file before any upload.
    """

    def __init__(self, inner: IStorageAdapter, resampler: IImageResampler, options: ImageOptions):
        self._inner = inner
        self._resampler = resampler
        self._options = options

    @property
    def name(self) -> str:
        return self._inner.name

    async def upload(
        self,
        file: TransferFile,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TransferResponse:
        if not self._resampler.is_image(file):
            return await self._inner.upload(file, progress_callback)

        await notify(progress_callback, TransferProgress(0, 100))
        resampled = await self._resampler.resample(file, self._options)
        await notify(progress_callback, TransferProgress(100 * RESAMPLE_PROGRESS_RATIO, 100))
        logger.debug(f"[resample] {file.name} -> {resampled.name}, uploading")

        async def on_upload_progress(progress: TransferProgress):
            percent = 100 * (RESAMPLE_PROGRESS_RATIO + UPLOAD_PROGRESS_RATIO * progress.ratio)
            await notify(progress_callback, TransferProgress(percent, 100))

        return await self._inner.upload(resampled, on_upload_progress)

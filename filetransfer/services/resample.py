"""
Resample Service - Single Responsibility: shrink and re-encode images.

Runs Pillow in a worker thread so the event loop keeps serving the
transfer in flight.
"""
from io import BytesIO
from pathlib import PurePosixPath
from typing import Optional, Tuple
import asyncio
import logging

from PIL import Image, UnidentifiedImageError

from ..errors import ResampleError
from ..models import ImageOptions, TransferFile

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    '.jpg', '.jpeg', '.png', '.webp', '.gif', '.bmp', '.tiff', '.tif',
}

FORMAT_ALIASES = {
    "JPG": "JPEG",
    "IMAGE/JPEG": "JPEG",
    "IMAGE/PNG": "PNG",
    "IMAGE/WEBP": "WEBP",
    "IMAGE/GIF": "GIF",
}

FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
}

FORMAT_CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def normalize_format(value: str) -> str:
    """Accept PIL format names, common aliases and MIME types."""
    key = value.strip().upper()
    return FORMAT_ALIASES.get(key, key)


def format_extension(image_format: str) -> str:
    return FORMAT_EXTENSIONS.get(image_format, f".{image_format.lower()}")


def replace_extension(path: str, image_format: str) -> str:
    return str(PurePosixPath(path).with_suffix(format_extension(image_format)))


class ImageResampleService:
    """
    Service for resampling images before upload.

    Images larger than max_width/max_height are scaled down keeping the
    aspect ratio, then re-encoded in the target format.
    """

    def is_image(self, file: TransferFile) -> bool:
        return PurePosixPath(file.path).suffix.lower() in IMAGE_EXTENSIONS

    async def resample(self, file: TransferFile, options: ImageOptions) -> TransferFile:
        return await asyncio.to_thread(self.resample_sync, file, options)

    def resample_sync(self, file: TransferFile, options: ImageOptions) -> TransferFile:
        image_format = normalize_format(options.format)
        try:
            data, size = self._encode(file.data, image_format, options)
        except (UnidentifiedImageError, OSError, ValueError, KeyError) as exc:
            logger.error(f"[resample] Failed to resample {file.name}: {exc}")
            raise ResampleError(f"Failed to resample {file.name}: {exc}") from exc

        logger.debug(
            f"[resample] {file.name}: {file.size} -> {len(data)} bytes "
            f"({size[0]}x{size[1]} {image_format})"
        )
        return TransferFile(
            path=replace_extension(file.path, image_format),
            data=data,
            size=len(data),
            content_type=FORMAT_CONTENT_TYPES.get(image_format, file.content_type),
        )

    @staticmethod
    def _target_size(size: Tuple[int, int], options: ImageOptions) -> Optional[Tuple[int, int]]:
        width, height = size
        max_width = options.max_width or width
        max_height = options.max_height or height
        if width <= max_width and height <= max_height:
            return None
        return max_width, max_height

    def _encode(self, data: bytes, image_format: str, options: ImageOptions) -> Tuple[bytes, Tuple[int, int]]:
        with Image.open(BytesIO(data)) as img:
            img.load()
            target = self._target_size(img.size, options)
            if target:
                img.thumbnail(target, resample=Image.Resampling.BICUBIC)

            if image_format == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")

            save_kwargs = {}
            if image_format in ("JPEG", "WEBP"):
                save_kwargs["quality"] = options.quality

            output = BytesIO()
            img.save(output, format=image_format, **save_kwargs)
            return output.getvalue(), img.size

"""
Image Compression Utilities
===========================

Shrinks images before they are uploaded as reference or shot images.

Images are scaled so their longer side fits ``max_width_or_height`` and then
re-encoded as JPEG with decreasing quality until the payload fits
``max_size_mb``. Compression is best effort: if Pillow cannot read the input,
the original bytes are returned unchanged.

Dependencies:
-------------
- Pillow (PIL): decoding, resizing and re-encoding
"""

import io
import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ..core import config

logger = logging.getLogger(__name__)

ImageInput = Union[str, Path, bytes]


def _read_bytes(source: ImageInput) -> bytes:
    if isinstance(source, bytes):
        return source
    return Path(source).read_bytes()


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten transparency onto white; JPEG has no alpha channel."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def compress_image(
    source: ImageInput,
    max_size_mb: float = config.COMPRESSION_MAX_SIZE_MB,
    max_width_or_height: int = config.COMPRESSION_MAX_WIDTH_OR_HEIGHT,
) -> bytes:
    """
    Compress one image.

    Args:
        source: Path to an image file or its raw bytes
        max_size_mb: Target upper bound for the encoded size
        max_width_or_height: Longest side after scaling (aspect ratio kept)

    Returns:
        The compressed JPEG bytes, or the original bytes when the image is
        already within both limits or cannot be decoded.
    """
    original = _read_bytes(source)
    max_bytes = int(max_size_mb * 1024 * 1024)

    try:
        with Image.open(io.BytesIO(original)) as img:
            img = ImageOps.exif_transpose(img)
            if len(original) <= max_bytes and max(img.size) <= max_width_or_height:
                logger.debug(f"Image already within limits ({len(original) / 1024:.0f} KB, {img.size})")
                return original

            img = _to_rgb(img)
            img.thumbnail((max_width_or_height, max_width_or_height), Image.Resampling.LANCZOS)

            quality = config.COMPRESSION_START_QUALITY
            while True:
                buffer = io.BytesIO()
                img.save(buffer, format="JPEG", quality=quality, optimize=True)
                data = buffer.getvalue()
                if len(data) <= max_bytes or quality <= config.COMPRESSION_MIN_QUALITY:
                    break
                quality -= 10

    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"Image compression failed, using original: {e}")
        return original

    ratio = (1 - len(data) / len(original)) * 100 if original else 0
    logger.info(
        f"Compressed image {len(original) / 1024 / 1024:.2f}MB -> "
        f"{len(data) / 1024 / 1024:.2f}MB ({ratio:.1f}% smaller, quality {quality})"
    )
    return data


def compress_images(sources: Iterable[ImageInput], **options) -> List[bytes]:
    """Compress several images in order."""
    sources = list(sources)
    if not sources:
        return []

    start = time.time()
    results = [compress_image(source, **options) for source in sources]
    logger.info(f"Compressed {len(results)} image(s) in {time.time() - start:.2f}s")
    return results


def crop_to_16x9(source: ImageInput, target_size: Optional[Tuple[int, int]] = None) -> bytes:
    """
    Center-crop an image to 16:9 and scale it to ``target_size``.

    Returns:
        PNG bytes.
    """
    target_size = target_size or config.CROP_TARGET_SIZE
    target_ratio = 16 / 9

    with Image.open(io.BytesIO(_read_bytes(source))) as img:
        width, height = img.size
        if width / height > target_ratio:
            crop_w, crop_h = height * target_ratio, height
            left, top = (width - crop_w) / 2, 0
        else:
            crop_w, crop_h = width, width / target_ratio
            left, top = 0, (height - crop_h) / 2

        box = (round(left), round(top), round(left + crop_w), round(top + crop_h))
        framed = img.crop(box).resize(target_size, Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        framed.save(buffer, format="PNG")
        return buffer.getvalue()

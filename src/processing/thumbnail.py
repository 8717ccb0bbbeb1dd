"""
Thumbnail generation and optional main-image compression with Pillow.

Both functions are pure (bytes in, bytes out) and CPU-bound; the
orchestrator runs them in an executor.
"""

import io

from PIL import Image, UnidentifiedImageError

from wallup_exceptions import ThumbnailError


THUMBNAIL_WIDTH = 250
THUMBNAIL_QUALITY = 60
THUMBNAIL_MAX_BYTES = 20 * 1024
MIN_THUMBNAIL_QUALITY = 30

MAIN_MAX_WIDTH = 1920
MAIN_MAX_HEIGHT = 1080
MAIN_MAX_BYTES = 250 * 1024
MAIN_START_QUALITY = 85
MIN_MAIN_QUALITY = 50

QUALITY_STEP = 10


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten alpha onto white; JPEG has no transparency."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        _close_converted(rgba, img)
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def _close_converted(converted: Image.Image, source: Image.Image) -> None:
    if converted is not source:
        converted.close()


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def _encode_within(img: Image.Image, quality: int, floor: int, max_bytes: int) -> bytes:
    data = _encode_jpeg(img, quality)
    while len(data) > max_bytes and quality - QUALITY_STEP >= floor:
        quality -= QUALITY_STEP
        data = _encode_jpeg(img, quality)
    return data


def generate_thumbnail(data: bytes, width: int = THUMBNAIL_WIDTH,
                       quality: int = THUMBNAIL_QUALITY,
                       max_bytes: int = THUMBNAIL_MAX_BYTES) -> bytes:
    """Produce a JPEG thumbnail exactly ``width`` pixels wide.

    Args:
        data: Encoded source image
        width: Target width in pixels; height keeps the aspect ratio
        quality: Initial JPEG quality
        max_bytes: Size target; quality is lowered step by step to reach it

    Returns:
        JPEG bytes

    Raises:
        ThumbnailError: If the source cannot be decoded or encoding yields nothing
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            src_w, src_h = img.size
            if src_w <= 0 or src_h <= 0:
                raise ThumbnailError("Image has no pixels")
            height = max(1, round(src_h * width / src_w))
            rgb = _to_rgb(img)
            thumb = None
            try:
                thumb = rgb.resize((width, height), Image.Resampling.LANCZOS)
                result = _encode_within(thumb, quality, MIN_THUMBNAIL_QUALITY, max_bytes)
            finally:
                if thumb is not None:
                    thumb.close()
                _close_converted(rgb, img)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ThumbnailError(f"Could not create thumbnail: {e}") from e

    if not result:
        raise ThumbnailError("Thumbnail encoder produced no data")
    return result


def compress_main_image(data: bytes, max_width: int = MAIN_MAX_WIDTH,
                        max_height: int = MAIN_MAX_HEIGHT,
                        max_bytes: int = MAIN_MAX_BYTES) -> bytes:
    """Downscale to fit max_width x max_height and re-encode as JPEG.

    Quality starts at 85 and drops by 10 (not below 50) while the output is
    larger than ``max_bytes``. Images are never upscaled.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgb = _to_rgb(img)
            try:
                rgb.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
                result = _encode_within(rgb, MAIN_START_QUALITY, MIN_MAIN_QUALITY, max_bytes)
            finally:
                _close_converted(rgb, img)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ThumbnailError(f"Could not compress image: {e}") from e

    if not result:
        raise ThumbnailError("Image encoder produced no data")
    return result

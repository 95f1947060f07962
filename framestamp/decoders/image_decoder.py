from __future__ import annotations

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from framestamp.constants import HEIF_EXTENSIONS, RAW_EXTENSIONS, STANDARD_EXTENSIONS
from framestamp.errors import DecodeError, InputError
from framestamp.models import SourceImage

_HEIF_REGISTERED = False


def _register_heif_opener() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED:
        return True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        return False
    register_heif_opener()
    _HEIF_REGISTERED = True
    return True


def _decode_standard(data: bytes) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return ImageOps.exif_transpose(image).convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"cannot decode image: {exc}") from exc


def _decode_raw_rawpy(data: bytes) -> Image.Image:
    try:
        import rawpy
    except ImportError as exc:
        raise DecodeError("rawpy is not installed; install it with `pip install rawpy`") from exc

    try:
        with rawpy.imread(io.BytesIO(data)) as raw:
            rgb = raw.postprocess(
                use_camera_wb=True,
                no_auto_bright=False,
                output_bps=8,
            )
    except Exception as exc:
        raise DecodeError(f"RAW decode failed: {exc}") from exc
    return Image.fromarray(rgb).convert("RGB")


def _decode_raw(data: bytes, decoder: str) -> Image.Image:
    decoder = decoder.lower()
    if decoder in {"auto", "rawpy"}:
        return _decode_raw_rawpy(data)
    if decoder == "pillow":
        # 部分 DNG 可由 Pillow 直接读取内嵌的 TIFF 数据
        return _decode_standard(data)
    raise ValueError(f"unknown RAW decoder: {decoder}")


def _to_source(image: Image.Image) -> SourceImage:
    if image.width <= 0 or image.height <= 0:
        raise InputError(f"image has no pixels ({image.width}x{image.height})")
    return SourceImage(pixels=image)


def decode_image_bytes(data: bytes, suffix: str = "", decoder: str = "auto") -> SourceImage:
    """Decode raw file bytes into an RGB SourceImage; the suffix picks the backend."""
    if not data:
        raise InputError("image data is empty")
    ext = suffix.lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    if ext in RAW_EXTENSIONS:
        return _to_source(_decode_raw(data, decoder=decoder))
    if ext in HEIF_EXTENSIONS and not _register_heif_opener():
        raise DecodeError("pillow-heif is required to decode HEIF/HEIC/HIF")
    if ext and ext not in STANDARD_EXTENSIONS | HEIF_EXTENSIONS:
        raise DecodeError(f"unsupported image format: {suffix}")
    return _to_source(_decode_standard(data))

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image

LOGGER = logging.getLogger(__name__)


def extract_pillow_metadata(path: Path) -> dict[str, Any]:
    """Read EXIF tags with Pillow; never raises, unreadable files give only SourceFile."""
    metadata: dict[str, Any] = {"SourceFile": str(path)}
    try:
        with Image.open(path) as image:
            metadata["ImageWidth"], metadata["ImageHeight"] = image.size
            exif = image.getexif()
            if not exif:
                return metadata
            for tag_id, value in exif.items():
                metadata[ExifTags.TAGS.get(tag_id, str(tag_id))] = value
            # FNumber / ExposureTime / ISO 等拍摄参数在 Exif 子 IFD 中
            for tag_id, value in exif.get_ifd(ExifTags.IFD.Exif).items():
                metadata[ExifTags.TAGS.get(tag_id, str(tag_id))] = value
    except Exception as exc:
        LOGGER.debug("Pillow metadata fallback failed for %s: %s", path, exc)
    return metadata

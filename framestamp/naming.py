from __future__ import annotations

import re
from pathlib import Path

from framestamp.constants import OUTPUT_EXTENSION, OUTPUT_SUFFIX

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


def strip_extension(name: str) -> str:
    """Drop the last extension only: ``a.b.jpg`` -> ``a.b``; dotfiles keep their name."""
    base = Path(name).name
    stem, dot, _ext = base.rpartition(".")
    if not dot or not stem:
        return base
    return stem


def sanitize_filename(value: str, fallback: str = "output") -> str:
    text = INVALID_FILENAME_CHARS.sub("_", value).strip()
    text = text.strip(" .")
    return text or fallback


def build_output_name(original_name: str, timestamp_ms: int, extension: str = OUTPUT_EXTENSION) -> str:
    stem = sanitize_filename(strip_extension(original_name), fallback="image")
    return f"{stem}{OUTPUT_SUFFIX}_{int(timestamp_ms)}.{extension.lower().lstrip('.')}"


def unique_output_path(output_dir: Path, file_name: str, taken: set[Path]) -> Path:
    """Join ``file_name`` to ``output_dir``; a name already in ``taken`` gets a ``_2``, ``_3``… suffix."""
    target = output_dir / file_name
    count = 1
    while target in taken:
        count += 1
        stem, _dot, ext = file_name.rpartition(".")
        target = output_dir / f"{stem}_{count}.{ext}"
    taken.add(target)
    return target

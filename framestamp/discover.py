from __future__ import annotations

from pathlib import Path
from typing import Iterable

from framestamp.constants import SUPPORTED_EXTENSIONS


def _scan_directory(directory: Path, recursive: bool) -> list[Path]:
    entries = directory.rglob("*") if recursive else directory.iterdir()
    return sorted(p for p in entries if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS)


def discover_inputs(inputs: Iterable[Path], recursive: bool = False) -> list[Path]:
    """Expand files and directories into supported image files, keeping first-seen order."""
    found: dict[Path, None] = {}
    for input_path in inputs:
        if input_path.is_file():
            if input_path.suffix.lower() in SUPPORTED_EXTENSIONS:
                found.setdefault(input_path.resolve(strict=False), None)
            continue
        if input_path.is_dir():
            for path in _scan_directory(input_path, recursive):
                found.setdefault(path.resolve(strict=False), None)
    return list(found)

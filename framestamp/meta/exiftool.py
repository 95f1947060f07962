from __future__ import annotations

import json
import locale
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Iterable

LOGGER = logging.getLogger(__name__)
EXIFTOOL_BIN = os.environ.get("EXIFTOOL_BIN", "exiftool")

# 只取生成标题所需的标签，减少大批量时的输出体积
EXIFTOOL_TAGS = (
    "Make",
    "Model",
    "LensModel",
    "LensInfo",
    "FNumber",
    "ExposureTime",
    "ISO",
    "FocalLength",
    "FocalLengthIn35mmFormat",
    "DateTimeOriginal",
    "ImageWidth",
    "ImageHeight",
    "Orientation",
)


def _decode_output(data: bytes | None) -> str:
    if not data:
        return ""
    preferred = locale.getpreferredencoding(False) or "utf-8"
    for encoding in dict.fromkeys(["utf-8", preferred.lower(), "latin-1"]):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def is_exiftool_available() -> bool:
    try:
        result = subprocess.run(
            [EXIFTOOL_BIN, "-ver"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except (FileNotFoundError, PermissionError):
        return False
    return result.returncode == 0


def _chunked(items: list[Path], size: int) -> Iterable[list[Path]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def extract_many(paths: list[Path], mode: str = "auto", chunk_size: int = 128) -> dict[Path, dict[str, Any]]:
    """Run ExifTool over ``paths`` in chunks and key the JSON records by resolved path.

    ``mode`` is ``auto`` (skip silently when ExifTool is missing), ``on``
    (missing ExifTool is an error) or ``off``.
    """
    mode = mode.lower()
    if mode not in {"auto", "on", "off"}:
        raise ValueError(f"invalid use-exiftool mode: {mode}")
    if mode == "off" or not paths:
        return {}

    if not is_exiftool_available():
        if mode == "on":
            raise RuntimeError("ExifTool is required but not found in PATH")
        LOGGER.debug("ExifTool not found, fallback metadata readers will be used")
        return {}

    all_results: dict[Path, dict[str, Any]] = {}
    for chunk in _chunked(paths, chunk_size):
        cmd = [
            EXIFTOOL_BIN,
            "-j",
            "-n",
            *[f"-{tag}" for tag in EXIFTOOL_TAGS],
            *[str(p) for p in chunk],
        ]
        result = subprocess.run(cmd, capture_output=True, check=False)
        stdout_text = _decode_output(result.stdout)
        # ExifTool 对部分文件失败时返回码非零，但仍输出其余文件的 JSON
        if result.returncode != 0 and not stdout_text.strip():
            message = _decode_output(result.stderr).strip() or "unknown error"
            if mode == "on":
                raise RuntimeError(f"ExifTool extraction failed: {message}")
            LOGGER.warning("ExifTool extraction failed for a chunk: %s", message)
            continue
        try:
            payload = json.loads(stdout_text)
        except json.JSONDecodeError:
            if mode == "on":
                raise RuntimeError("ExifTool returned invalid JSON")
            LOGGER.warning("ExifTool returned invalid JSON, skipping chunk")
            continue
        if not isinstance(payload, list):
            continue
        for item in payload:
            if not isinstance(item, dict) or not item.get("SourceFile"):
                continue
            source_path = Path(str(item["SourceFile"])).resolve(strict=False)
            all_results[source_path] = item

    return all_results

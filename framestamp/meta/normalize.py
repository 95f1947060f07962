from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any

from framestamp.config import WatermarkConfig
from framestamp.constants import CAMERA_BRANDS
from framestamp.models import Caption, MetadataRecord


def _normalize_lookup(raw: dict[str, Any]) -> dict[str, Any]:
    lookup: dict[str, Any] = {}
    for key, value in raw.items():
        k = str(key).strip().lower()
        if not k:
            continue
        lookup.setdefault(k, value)
        if ":" in k:
            lookup.setdefault(k.split(":")[-1], value)
    return lookup


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if isinstance(value, (list, tuple)):
        value = " ".join(str(v).strip() for v in value if str(v).strip())
    text = str(value).replace("\x00", " ").strip()
    text = re.sub(r"\s+", " ", text)
    return text or None


def _pick(lookup: dict[str, Any], candidates: list[str]) -> Any | None:
    for key in candidates:
        value = lookup.get(key.lower())
        if value in (None, "", " "):
            continue
        return value
    return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    numerator = getattr(value, "numerator", None)
    denominator = getattr(value, "denominator", None)
    if numerator is not None and denominator:
        return float(numerator) / float(denominator)
    text = _clean_text(value)
    if not text:
        return None
    match = re.search(r"[-+]?\d+(\.\d+)?", text)
    if not match:
        return None
    return float(match.group(0))


def _to_int(value: Any) -> int | None:
    numeric = _to_float(value)
    if numeric is None:
        return None
    return int(round(numeric))


def _positive(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value


def _parse_datetime(value: Any) -> datetime | None:
    text = _clean_text(value)
    if not text:
        return None
    normalized = text.replace("T", " ").strip()
    if "." in normalized:
        normalized = normalized.split(".", 1)[0]
    for pattern in ("%Y:%m:%d %H:%M:%S%z", "%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S%z", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(normalized, pattern)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_exposure_seconds(value: Any) -> float | None:
    if value is None:
        return None
    if not isinstance(value, (str, bytes)):
        return _positive(_to_float(value))

    text = _clean_text(value)
    if not text:
        return None
    text = text.lower().replace("sec", "").replace("s", "").strip()
    if "/" in text:
        left, right = text.split("/", 1)
        try:
            numerator = float(left.strip())
            denominator = float(right.strip())
        except ValueError:
            return None
        if denominator == 0:
            return None
        return _positive(numerator / denominator)
    try:
        return _positive(float(text))
    except ValueError:
        return None


def metadata_from_raw(raw: dict[str, Any] | None) -> MetadataRecord:
    """Map an ExifTool/Pillow tag dict onto a MetadataRecord.

    Tag group prefixes ("EXIF:Make") and key case are ignored. Malformed values
    become None instead of raising.
    """
    if not raw:
        return MetadataRecord()
    lookup = _normalize_lookup(raw)

    return MetadataRecord(
        make=_clean_text(_pick(lookup, ["Make"])),
        model=_clean_text(_pick(lookup, ["Model", "CameraModelName"])),
        lens_description=_clean_text(_pick(lookup, ["LensModel", "LensID", "Lens", "LensInfo", "LensType"])),
        f_number=_positive(_to_float(_pick(lookup, ["FNumber", "Aperture", "ApertureValue"]))),
        exposure_time_s=_parse_exposure_seconds(_pick(lookup, ["ExposureTime", "ShutterSpeed"])),
        iso=_to_int(_pick(lookup, ["ISO", "PhotographicSensitivity", "ISOSpeedRatings"])),
        focal_length_mm=_positive(_to_float(_pick(lookup, ["FocalLength"]))),
        focal_length_35mm_mm=_positive(
            _to_float(_pick(lookup, ["FocalLengthIn35mmFormat", "FocalLengthIn35mmFilm", "FocalLength35efl"]))
        ),
        capture_time=_parse_datetime(_pick(lookup, ["DateTimeOriginal", "CreateDate", "DateTime"])),
        pixel_width=_to_int(_pick(lookup, ["ImageWidth", "ExifImageWidth", "PixelXDimension"])),
        pixel_height=_to_int(_pick(lookup, ["ImageHeight", "ExifImageHeight", "PixelYDimension"])),
        orientation=_to_int(_pick(lookup, ["Orientation"])),
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _format_number(value: float) -> str:
    return f"{value:g}"


def normalize_brand(make: str | None) -> str | None:
    if make is None:
        return None
    text = make.strip()
    if not text:
        return None
    lowered = text.lower()
    for keyword, canonical in CAMERA_BRANDS:
        if keyword in lowered:
            return canonical
    return text[:1].upper() + text[1:].lower()


def strip_brand_prefix(model: str | None, brand: str | None) -> str:
    text = (model or "").strip()
    if not brand:
        return text
    prefix = brand.lower()
    while text and text.lower().startswith(prefix):
        text = text[len(brand):].strip()
    return text


def format_shutter(seconds: float | None) -> str | None:
    if not seconds or seconds <= 0:
        return None
    if seconds >= 1:
        return f"{_format_number(seconds)}s"
    return f"1/{_round_half_up(1 / seconds)}s"


def format_aperture(f_number: float | None) -> str | None:
    if not f_number or f_number <= 0:
        return None
    return f"f/{_format_number(f_number)}"


def format_focal_length(focal_mm: float | None) -> str | None:
    if not focal_mm or focal_mm <= 0:
        return None
    return f"{_round_half_up(focal_mm)}mm"


def format_iso(iso: int | None) -> str | None:
    if iso is None or iso <= 0:
        return None
    return f"ISO{iso}"


def select_focal_length(meta: MetadataRecord, use_35mm_equivalent: bool) -> float | None:
    if use_35mm_equivalent and meta.focal_length_35mm_mm:
        return meta.focal_length_35mm_mm
    return meta.focal_length_mm


def format_params_line(meta: MetadataRecord, use_35mm_equivalent: bool = False) -> str:
    parts = [
        format_focal_length(select_focal_length(meta, use_35mm_equivalent)),
        format_aperture(meta.f_number),
        format_shutter(meta.exposure_time_s),
        format_iso(meta.iso),
    ]
    return " ".join(part for part in parts if part)


def normalize_caption(meta: MetadataRecord | None, config: WatermarkConfig | None = None) -> Caption:
    if meta is None:
        return Caption()
    use_35mm = bool(config and config.use_35mm_equivalent)
    brand = normalize_brand(meta.make)
    return Caption(
        brand=brand,
        model_text=strip_brand_prefix(meta.model, brand),
        params_text=format_params_line(meta, use_35mm_equivalent=use_35mm),
    )

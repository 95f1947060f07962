from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from PIL import Image

SizingMode = Literal["original", "custom", "auto"]
TaskStatus = Literal["pending", "loading", "loaded", "error"]
ProgressStatus = Literal["processing", "completed", "error"]


@dataclass(frozen=True, slots=True)
class SourceImage:
    pixels: Image.Image

    @property
    def width(self) -> int:
        return self.pixels.width

    @property
    def height(self) -> int:
        return self.pixels.height


@dataclass(frozen=True, slots=True)
class MetadataRecord:
    make: str | None = None
    model: str | None = None
    lens_description: str | None = None
    f_number: float | None = None
    exposure_time_s: float | None = None
    iso: int | None = None
    focal_length_mm: float | None = None
    focal_length_35mm_mm: float | None = None
    capture_time: datetime | None = None
    pixel_width: int | None = None
    pixel_height: int | None = None
    orientation: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "make": self.make,
            "model": self.model,
            "lens_description": self.lens_description,
            "f_number": self.f_number,
            "exposure_time_s": self.exposure_time_s,
            "iso": self.iso,
            "focal_length_mm": self.focal_length_mm,
            "focal_length_35mm_mm": self.focal_length_35mm_mm,
            "capture_time": self.capture_time.isoformat() if self.capture_time else None,
            "pixel_width": self.pixel_width,
            "pixel_height": self.pixel_height,
            "orientation": self.orientation,
        }


@dataclass(frozen=True, slots=True)
class Caption:
    brand: str | None = None
    model_text: str = ""
    params_text: str = ""

    @property
    def camera_text(self) -> str:
        return " ".join(part for part in (self.brand, self.model_text) if part)


@dataclass(frozen=True, slots=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_box(self) -> tuple[int, int, int, int]:
        """Integer pixel box (left, top, right, bottom), at least 1px each way."""
        left = int(round(self.x))
        top = int(round(self.y))
        right = max(left + 1, int(round(self.x + self.width)))
        bottom = max(top + 1, int(round(self.y + self.height)))
        return left, top, right, bottom


@dataclass(frozen=True, slots=True)
class Layout:
    canvas_width: int
    canvas_height: int
    photo_rect: Rect
    photo_scale: float
    corner_radius: float
    shadow_blur: float
    shadow_offset_y: float
    caption_line1_y: float
    caption_line2_y: float
    primary_font_size: float
    secondary_font_size: float
    sizing_mode: SizingMode = "auto"

    @property
    def canvas_size(self) -> tuple[int, int]:
        return self.canvas_width, self.canvas_height

    def to_dict(self) -> dict[str, Any]:
        rect = self.photo_rect
        return {
            "canvas": [self.canvas_width, self.canvas_height],
            "sizing_mode": self.sizing_mode,
            "photo_rect": [round(rect.x, 2), round(rect.y, 2), round(rect.width, 2), round(rect.height, 2)],
            "photo_scale": round(self.photo_scale, 6),
            "corner_radius": round(self.corner_radius, 2),
            "shadow_blur": round(self.shadow_blur, 2),
            "shadow_offset_y": round(self.shadow_offset_y, 2),
            "caption_line1_y": round(self.caption_line1_y, 2),
            "caption_line2_y": round(self.caption_line2_y, 2),
            "font_sizes": [round(self.primary_font_size, 2), round(self.secondary_font_size, 2)],
        }


@dataclass(slots=True)
class PhotoTask:
    name: str
    source: Path | None = None
    metadata: MetadataRecord | None = None
    image: SourceImage | None = None
    status: TaskStatus = "pending"
    error: str | None = None

    @classmethod
    def from_path(cls, path: Path, metadata: MetadataRecord | None = None) -> "PhotoTask":
        return cls(name=path.name, source=path, metadata=metadata)


@dataclass(frozen=True, slots=True)
class BatchProgress:
    current: int
    total: int
    current_file_name: str
    status: ProgressStatus
    message: str | None = None


@dataclass(frozen=True, slots=True)
class BatchFailure:
    name: str
    error: Exception

    @property
    def message(self) -> str:
        if not self.name:
            return str(self.error)
        return f"{self.name}: {self.error}"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class BatchResult:
    total_count: int
    processed_count: int = 0
    errors: list[BatchFailure] = field(default_factory=list)
    output_paths: list[Path] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors and not self.cancelled

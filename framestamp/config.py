from __future__ import annotations

import copy
import os
import platform
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from framestamp.constants import DEFAULT_FONT_FAMILY
from framestamp.models import SizingMode


def default_jobs() -> int:
    cpu_count = os.cpu_count() or 2
    return max(1, cpu_count - 1)


DEFAULT_CONFIG: dict[str, Any] = {
    "output_dir": "",
    "main_image_ratio": 90,
    "corner_radius": 200,
    "shadow_size": 20,
    "output_quality": 100,
    "output_width": 0,
    "output_height": 0,
    "pure_background": False,
    "landscape_output": False,
    "use_custom_output_size": False,
    "font_family": DEFAULT_FONT_FAMILY,
    "font_size_ratio": 100,
    "use_35mm_equivalent": False,
    "background_blur": 30,
    "use_exiftool": "auto",
    "decoder": "auto",
    "recursive": False,
    "jobs": default_jobs(),
    "log_level": "info",
}


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _clamped(value: Any, default: float, low: float, high: float | None = None) -> float:
    number = _as_float(value, default)
    if number != number:  # NaN
        number = float(default)
    number = max(low, number)
    if high is not None:
        number = min(high, number)
    return number


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"1", "true", "yes", "on"}:
            return True
        if text in {"0", "false", "no", "off", ""}:
            return False
        return default
    return bool(value)


@dataclass(frozen=True, slots=True)
class WatermarkConfig:
    """Rendering options shared read-only by every photo in a batch."""

    output_dir: str = ""
    main_image_ratio: float = 90
    corner_radius: float = 200
    shadow_size: float = 20
    output_quality: int = 100
    output_width: int = 0
    output_height: int = 0
    pure_background: bool = False
    landscape_output: bool = False
    use_custom_output_size: bool = False
    font_family: str = DEFAULT_FONT_FAMILY
    font_size_ratio: float = 100
    use_35mm_equivalent: bool = False
    background_blur: float = 30

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "WatermarkConfig":
        data = data or {}
        base = DEFAULT_CONFIG
        return cls(
            output_dir=str(data.get("output_dir") or "").strip(),
            main_image_ratio=_clamped(data.get("main_image_ratio"), base["main_image_ratio"], 50, 100),
            corner_radius=_clamped(data.get("corner_radius"), base["corner_radius"], 0, 200),
            shadow_size=_clamped(data.get("shadow_size"), base["shadow_size"], 0, 100),
            output_quality=int(round(_clamped(data.get("output_quality"), base["output_quality"], 50, 100))),
            output_width=int(_clamped(data.get("output_width"), 0, 0, 100000)),
            output_height=int(_clamped(data.get("output_height"), 0, 0, 100000)),
            pure_background=_as_bool(data.get("pure_background"), False),
            landscape_output=_as_bool(data.get("landscape_output"), False),
            use_custom_output_size=_as_bool(data.get("use_custom_output_size"), False),
            font_family=str(data.get("font_family") or DEFAULT_FONT_FAMILY),
            font_size_ratio=_clamped(data.get("font_size_ratio"), base["font_size_ratio"], 50, 200),
            use_35mm_equivalent=_as_bool(data.get("use_35mm_equivalent"), False),
            background_blur=_clamped(data.get("background_blur"), base["background_blur"], 0),
        )

    @property
    def sizing_mode(self) -> SizingMode:
        # output_quality=100 同时表示“按原图尺寸输出”
        if self.output_quality == 100:
            return "original"
        if self.use_custom_output_size and self.output_width > 0 and self.output_height > 0:
            return "custom"
        return "auto"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_app_dir() -> Path:
    """Return the application root directory.

    - Frozen (PyInstaller): directory containing the executable.
    - Development: project root (two levels up from this file).
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent.parent


def get_user_data_dir() -> Path:
    """返回用户可写的数据目录，打包后避免写入 app bundle 内部。"""
    if not getattr(sys, "frozen", False):
        return get_app_dir()

    system_name = platform.system().lower()
    if system_name == "windows":
        base = (
            os.environ.get("APPDATA")
            or os.environ.get("LOCALAPPDATA")
            or str(Path.home() / "AppData" / "Roaming")
        )
        return Path(base) / "FrameStamp"
    if system_name == "darwin":
        return Path.home() / "Library" / "Application Support" / "FrameStamp"

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "FrameStamp"
    return Path.home() / ".config" / "FrameStamp"


def get_config_path() -> Path:
    return get_user_data_dir() / "Config" / "config.yaml"


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    if not cfg_path.exists():
        cfg = copy.deepcopy(DEFAULT_CONFIG)
        cfg["jobs"] = default_jobs()
        return cfg

    text = cfg_path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(text) or {}
    if not isinstance(loaded, dict):
        loaded = {}
    cfg = _deep_merge(DEFAULT_CONFIG, loaded)
    if not cfg.get("jobs"):
        cfg["jobs"] = default_jobs()
    return cfg


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg_path.exists() and not force:
        return cfg_path
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["jobs"] = default_jobs()
    cfg_path.write_text(yaml.safe_dump(cfg, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return cfg_path

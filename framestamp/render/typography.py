from __future__ import annotations

import os
import platform
from functools import lru_cache
from pathlib import Path

from PIL import ImageDraw, ImageFont

_FONT_FILE_SUFFIXES = {".ttf", ".ttc", ".otf", ".otc"}
_BOLD_MARKERS = ("bold", "bd", "heavy", "black", "semibold")

# CSS 通用字体族与平台别名映射到常见字体文件名
_GENERIC_FAMILIES: dict[str, tuple[str, ...]] = {
    "-apple-system": ("SFNS", "SF-Pro", "Helvetica"),
    "blinkmacsystemfont": ("SFNS", "Helvetica"),
    "system-ui": ("SFNS", "segoeui", "DejaVuSans"),
    "sans-serif": ("Arial", "Helvetica", "DejaVuSans", "LiberationSans", "NotoSans"),
    "serif": ("Times", "DejaVuSerif", "LiberationSerif", "NotoSerif"),
    "monospace": ("Menlo", "consola", "DejaVuSansMono", "LiberationMono"),
}


def _system_font_candidates(bold: bool = False) -> list[Path]:
    system = platform.system().lower()
    if "windows" in system:
        regular = [Path(r"C:\Windows\Fonts\segoeui.ttf"), Path(r"C:\Windows\Fonts\arial.ttf")]
        heavy = [Path(r"C:\Windows\Fonts\segoeuib.ttf"), Path(r"C:\Windows\Fonts\arialbd.ttf")]
    elif "darwin" in system:
        regular = [Path("/System/Library/Fonts/Helvetica.ttc"), Path("/Library/Fonts/Arial.ttf")]
        heavy = [Path("/Library/Fonts/Arial Bold.ttf"), *regular]
    else:
        regular = [
            Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
            Path("/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
            Path("/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc"),
        ]
        heavy = [
            Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
            Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf"),
            Path("/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc"),
        ]
    return heavy + regular if bold else regular


def _system_font_directories() -> list[Path]:
    system = platform.system().lower()
    if "windows" in system:
        roots = [Path(os.environ.get("WINDIR", r"C:\Windows")) / "Fonts"]
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            roots.append(Path(local_app_data) / "Microsoft" / "Windows" / "Fonts")
        return roots
    if "darwin" in system:
        return [Path("/System/Library/Fonts"), Path("/Library/Fonts"), Path.home() / "Library" / "Fonts"]
    return [
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path.home() / ".fonts",
        Path.home() / ".local" / "share" / "fonts",
    ]


@lru_cache(maxsize=1)
def list_available_font_paths() -> tuple[Path, ...]:
    available: dict[str, Path] = {}
    for root in _system_font_directories():
        if not root.is_dir():
            continue
        for dir_path, _dir_names, file_names in os.walk(root, onerror=lambda _err: None):
            for file_name in file_names:
                if Path(file_name).suffix.lower() not in _FONT_FILE_SUFFIXES:
                    continue
                candidate = Path(dir_path) / file_name
                available.setdefault(str(candidate).lower(), candidate)
    return tuple(sorted(available.values(), key=lambda path: (path.stem.lower(), str(path).lower())))


def split_font_family(family: str) -> list[str]:
    names: list[str] = []
    for item in (family or "").split(","):
        name = item.strip().strip("'\"").strip()
        if name:
            names.append(name)
    return names


def _is_bold_name(stem: str) -> bool:
    lowered = stem.lower()
    return any(marker in lowered for marker in _BOLD_MARKERS)


def _match_installed(name: str, bold: bool) -> Path | None:
    key = name.lower().replace(" ", "")
    matches = [path for path in list_available_font_paths() if path.stem.lower().replace(" ", "").startswith(key)]
    if not matches:
        return None
    preferred = [path for path in matches if _is_bold_name(path.stem) == bold]
    pool = preferred or matches
    # 文件名最短者通常是该字体族的标准字重
    return min(pool, key=lambda path: len(path.stem))


@lru_cache(maxsize=64)
def resolve_font_path(family: str, bold: bool = False) -> Path | None:
    """Resolve a CSS-like font family list (names or font file paths) to a font file."""
    for name in split_font_family(family):
        as_path = Path(name).expanduser()
        if as_path.suffix.lower() in _FONT_FILE_SUFFIXES and as_path.is_file():
            return as_path
        for alias in _GENERIC_FAMILIES.get(name.lower(), (name,)):
            match = _match_installed(alias, bold)
            if match is not None:
                return match
    for candidate in _system_font_candidates(bold):
        if candidate.exists():
            return candidate
    return None


@lru_cache(maxsize=128)
def load_font(family: str, size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    size = max(1, int(size))
    font_path = resolve_font_path(family, bold)
    if font_path is not None:
        try:
            return ImageFont.truetype(str(font_path), size=size)
        except OSError:
            pass
    return ImageFont.load_default(size=size)


def text_size(draw: ImageDraw.ImageDraw, text: str, font: ImageFont.ImageFont) -> tuple[int, int]:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    return right - left, bottom - top


def ellipsize(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: ImageFont.ImageFont,
    max_width: int,
) -> str:
    if max_width <= 0:
        return ""
    width, _ = text_size(draw, text, font)
    if width <= max_width:
        return text
    ellipsis = "..."
    for cut in range(len(text), -1, -1):
        candidate = text[:cut].rstrip() + ellipsis
        cand_width, _ = text_size(draw, candidate, font)
        if cand_width <= max_width:
            return candidate
    return ellipsis

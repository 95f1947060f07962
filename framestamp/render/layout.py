"""Canvas sizing and placement math for the framed composite.

All geometry is computed in float pixels; only the canvas size is integral.
The compositor rounds rectangles when it draws.
"""
from __future__ import annotations

import math

from framestamp.config import WatermarkConfig
from framestamp.constants import MAX_CANVAS_SIDE
from framestamp.errors import InputError
from framestamp.models import Layout, Rect, SizingMode

PHOTO_AREA_RATIO = 0.9
IMAGE_SHARE_OF_CANVAS = 0.75
MIN_FIT_MARGIN = 1.1
PORTRAIT_RATIO = 4 / 5
LANDSCAPE_RATIO = 5 / 4

FONT_BASE_DIVISOR = 45
SECONDARY_FONT_FACTOR = 0.8
LINE_GAP_FACTOR = 0.4
SHADOW_BLUR_FACTOR = 0.5
SHADOW_OFFSET_FACTOR = 0.25


def _round_even(value: float) -> int:
    return int(math.floor(value / 2 + 0.5)) * 2


def resolve_sizing_mode(config: WatermarkConfig) -> SizingMode:
    return config.sizing_mode


def _auto_canvas_size(width: int, height: int, landscape_output: bool) -> tuple[int, int]:
    is_vertical = height > width
    landscape = landscape_output or not is_vertical
    target_ratio = LANDSCAPE_RATIO if landscape else PORTRAIT_RATIO

    longest_canvas_side = max(width, height) / IMAGE_SHARE_OF_CANVAS
    if landscape:
        canvas_w = longest_canvas_side
        canvas_h = canvas_w / target_ratio
    else:
        canvas_h = longest_canvas_side
        canvas_w = canvas_h * target_ratio

    if is_vertical and canvas_w < width * MIN_FIT_MARGIN:
        canvas_w = width * MIN_FIT_MARGIN
    elif not is_vertical and canvas_h < height * MIN_FIT_MARGIN:
        canvas_h = height * MIN_FIT_MARGIN

    if canvas_w > MAX_CANVAS_SIDE or canvas_h > MAX_CANVAS_SIDE:
        scale_down = min(MAX_CANVAS_SIDE / canvas_w, MAX_CANVAS_SIDE / canvas_h)
        canvas_w *= scale_down
        canvas_h *= scale_down

    return max(2, _round_even(canvas_w)), max(2, _round_even(canvas_h))


def compute_output_size(width: int, height: int, config: WatermarkConfig) -> tuple[int, int]:
    """Output canvas size for a ``width`` x ``height`` source.

    Sizing modes, first match wins: original (output_quality 100), custom, auto.
    """
    if width <= 0 or height <= 0:
        raise InputError(f"image has no pixels ({width}x{height})")

    mode = resolve_sizing_mode(config)
    if mode == "original":
        if config.landscape_output and height > width:
            return height, width
        return width, height
    if mode == "custom":
        return config.output_width, config.output_height
    return _auto_canvas_size(width, height, config.landscape_output)


def compute_layout(width: int, height: int, config: WatermarkConfig) -> Layout:
    canvas_w, canvas_h = compute_output_size(width, height, config)
    if canvas_w <= 0 or canvas_h <= 0:
        raise InputError(f"invalid output size {canvas_w}x{canvas_h}")

    area_w = canvas_w * PHOTO_AREA_RATIO
    area_h = canvas_h * PHOTO_AREA_RATIO
    base_scale = min(area_w / width, area_h / height)
    photo_scale = base_scale * (config.main_image_ratio / 100)

    photo_w = max(1.0, width * photo_scale)
    photo_h = max(1.0, height * photo_scale)
    photo_x = (canvas_w - photo_w) / 2
    # 在照片专属区域内垂直居中，区域下方留给标题
    photo_y = (area_h - photo_h) / 2
    photo_rect = Rect(photo_x, photo_y, photo_w, photo_h)

    shadow_factor = config.shadow_size / 100

    primary = (canvas_w / FONT_BASE_DIVISOR) * (config.font_size_ratio / 100)
    secondary = primary * SECONDARY_FONT_FACTOR
    line_gap = primary * LINE_GAP_FACTOR

    band_top = photo_rect.bottom
    band_height = canvas_h - band_top
    block_height = secondary + line_gap + primary
    block_top = band_top + (band_height - block_height) / 2
    line1_y = block_top + secondary
    line2_y = line1_y + line_gap + primary

    return Layout(
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        photo_rect=photo_rect,
        photo_scale=photo_scale,
        corner_radius=config.corner_radius * photo_scale,
        shadow_blur=photo_h * shadow_factor * SHADOW_BLUR_FACTOR,
        shadow_offset_y=photo_h * shadow_factor * SHADOW_OFFSET_FACTOR,
        caption_line1_y=line1_y,
        caption_line2_y=line2_y,
        primary_font_size=primary,
        secondary_font_size=secondary,
        sizing_mode=resolve_sizing_mode(config),
    )

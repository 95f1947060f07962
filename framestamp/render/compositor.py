"""Draw the framed composite: backdrop, drop shadow, rounded photo and caption.

Every render starts from a reset :class:`RenderSurface`, so reusing one surface
across a batch never carries pixels or drawing state from the previous photo.
"""
from __future__ import annotations

import io
import logging

from PIL import Image, ImageDraw, ImageEnhance, ImageFilter, ImageFont

from framestamp.config import WatermarkConfig
from framestamp.errors import RenderError
from framestamp.meta.normalize import normalize_caption
from framestamp.models import Caption, Layout, MetadataRecord, Rect, SourceImage
from framestamp.render.layout import compute_layout
from framestamp.render.typography import ellipsize, load_font

LOGGER = logging.getLogger(__name__)

BACKGROUND_BLUR_RATIO = 0.015
BACKGROUND_BLUR_REFERENCE = 30
BACKGROUND_BRIGHTNESS = 0.7
BACKGROUND_DIM_ALPHA = 0.2
SHADOW_OPACITY = 0.4
TEXT_FILL = (250, 250, 250)
TEXT_SHADOW_OPACITY = 0.7
TEXT_SHADOW_BLUR = 8
FALLBACK_BACKGROUND = (204, 204, 204)


class RenderSurface:
    """Reusable RGB raster; ``reset`` must run before anything is drawn."""

    def __init__(self) -> None:
        self._image: Image.Image | None = None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise RenderError("render surface has not been initialised")
        return self._image

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def reset(self, width: int, height: int) -> Image.Image:
        if width <= 0 or height <= 0:
            raise RenderError(f"invalid surface size {width}x{height}")
        if self._image is not None and self._image.size == (width, height):
            self._image.paste((0, 0, 0), (0, 0, width, height))
        else:
            self._image = Image.new("RGB", (width, height), (0, 0, 0))
        return self._image

    def release(self) -> None:
        self._image = None


def average_color(image: Image.Image) -> tuple[int, int, int]:
    pixel = image.convert("RGB").resize((1, 1), Image.Resampling.BOX).getpixel((0, 0))
    if not isinstance(pixel, tuple):
        return FALLBACK_BACKGROUND
    return int(pixel[0]), int(pixel[1]), int(pixel[2])


def cover_fit(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale ``image`` to fully cover ``width`` x ``height`` and crop the overflow, centered."""
    scale = max(width / image.width, height / image.height)
    scaled_w = max(width, int(round(image.width * scale)))
    scaled_h = max(height, int(round(image.height * scale)))
    scaled = image.resize((scaled_w, scaled_h), Image.Resampling.BILINEAR)
    left = (scaled_w - width) // 2
    top = (scaled_h - height) // 2
    return scaled.crop((left, top, left + width, top + height))


def _draw_background(canvas: Image.Image, source: Image.Image, config: WatermarkConfig) -> None:
    width, height = canvas.size
    if config.pure_background:
        canvas.paste(average_color(source), (0, 0, width, height))
        return

    backdrop = cover_fit(source, width, height)
    blur = min(width, height) * BACKGROUND_BLUR_RATIO * (config.background_blur / BACKGROUND_BLUR_REFERENCE)
    if blur > 0:
        backdrop = backdrop.filter(ImageFilter.GaussianBlur(blur))
    backdrop = ImageEnhance.Brightness(backdrop).enhance(BACKGROUND_BRIGHTNESS)
    backdrop = Image.blend(backdrop, Image.new("RGB", backdrop.size, (0, 0, 0)), BACKGROUND_DIM_ALPHA)
    canvas.paste(backdrop, (0, 0))


def _clamp_radius(radius: float, box: tuple[int, int, int, int]) -> int:
    left, top, right, bottom = box
    return max(0, min(int(round(radius)), (right - left) // 2, (bottom - top) // 2))


def rounded_mask(size: tuple[int, int], radius: float) -> Image.Image:
    mask = Image.new("L", size, 0)
    box = (0, 0, size[0] - 1, size[1] - 1)
    ImageDraw.Draw(mask).rounded_rectangle(box, radius=_clamp_radius(radius, (0, 0, *size)), fill=255)
    return mask


def _draw_shadow(canvas: Image.Image, rect: Rect, layout: Layout) -> None:
    if layout.shadow_blur <= 0 and layout.shadow_offset_y <= 0:
        return
    # canvas 阴影的 blur 值约等于高斯标准差的两倍
    sigma = layout.shadow_blur / 2
    left, top, right, bottom = rect.to_box()
    offset = int(round(layout.shadow_offset_y))
    margin = int(sigma * 3) + 2

    region = (
        max(0, left - margin),
        max(0, top + offset - margin),
        min(canvas.width, right + margin),
        min(canvas.height, bottom + offset + margin),
    )
    if region[2] <= region[0] or region[3] <= region[1]:
        return

    mask = Image.new("L", (region[2] - region[0], region[3] - region[1]), 0)
    shape = (left - region[0], top + offset - region[1], right - region[0] - 1, bottom + offset - region[1] - 1)
    ImageDraw.Draw(mask).rounded_rectangle(
        shape,
        radius=_clamp_radius(layout.corner_radius, rect.to_box()),
        fill=int(255 * SHADOW_OPACITY),
    )
    if sigma > 0:
        mask = mask.filter(ImageFilter.GaussianBlur(sigma))
    canvas.paste((0, 0, 0), region, mask)


def _draw_photo(canvas: Image.Image, source: Image.Image, rect: Rect, layout: Layout) -> None:
    left, top, right, bottom = rect.to_box()
    size = (right - left, bottom - top)
    photo = source.resize(size, Image.Resampling.LANCZOS)
    canvas.paste(photo, (left, top), rounded_mask(size, layout.corner_radius))


def _text_origin(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    center_x: float,
    baseline_y: float,
) -> tuple[float, float, str | None]:
    if isinstance(font, ImageFont.FreeTypeFont):
        return center_x, baseline_y, "ms"
    # 位图字体不支持 anchor，按包围盒近似居中、底边对齐基线
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    return center_x - (right - left) / 2 - left, baseline_y - bottom, None


def _draw_caption(canvas: Image.Image, caption: Caption, layout: Layout, config: WatermarkConfig) -> None:
    lines = [
        (caption.params_text, layout.secondary_font_size, False, layout.caption_line1_y),
        (caption.camera_text, layout.primary_font_size, True, layout.caption_line2_y),
    ]
    lines = [line for line in lines if line[0]]
    if not lines:
        return

    center_x = canvas.width / 2
    max_width = int(canvas.width * 0.96)
    text_mask = Image.new("L", canvas.size, 0)
    mask_draw = ImageDraw.Draw(text_mask)
    placed = []
    for text, size, bold, baseline in lines:
        font = load_font(config.font_family, int(round(size)), bold)
        text = ellipsize(mask_draw, text, font, max_width)
        x, y, anchor = _text_origin(mask_draw, text, font, center_x, baseline)
        mask_draw.text((x, y), text, font=font, fill=255, anchor=anchor)
        placed.append((text, font, (x, y), anchor))

    shadow = text_mask.filter(ImageFilter.GaussianBlur(TEXT_SHADOW_BLUR / 2))
    shadow = shadow.point(lambda value: int(value * TEXT_SHADOW_OPACITY))
    canvas.paste((0, 0, 0), (0, 0, *canvas.size), shadow)

    draw = ImageDraw.Draw(canvas)
    for text, font, origin, anchor in placed:
        draw.text(origin, text, font=font, fill=TEXT_FILL, anchor=anchor)


def render(
    image: SourceImage,
    layout: Layout,
    caption: Caption,
    config: WatermarkConfig,
    surface: RenderSurface | None = None,
) -> RenderSurface:
    surface = surface or RenderSurface()
    try:
        canvas = surface.reset(layout.canvas_width, layout.canvas_height)
        source = image.pixels if image.pixels.mode == "RGB" else image.pixels.convert("RGB")
        _draw_background(canvas, source, config)
        _draw_shadow(canvas, layout.photo_rect, layout)
        _draw_photo(canvas, source, layout.photo_rect, layout)
        _draw_caption(canvas, caption, layout, config)
    except RenderError:
        raise
    except (OSError, ValueError, MemoryError) as exc:
        raise RenderError(f"compositing failed: {exc}") from exc
    LOGGER.debug(
        "rendered %sx%s photo into %sx%s canvas (scale=%.4f)",
        image.width,
        image.height,
        layout.canvas_width,
        layout.canvas_height,
        layout.photo_scale,
    )
    return surface


def render_photo(
    image: SourceImage,
    metadata: MetadataRecord | None,
    config: WatermarkConfig,
    surface: RenderSurface | None = None,
) -> tuple[RenderSurface, Layout]:
    layout = compute_layout(image.width, image.height, config)
    caption = normalize_caption(metadata, config)
    return render(image, layout, caption, config, surface=surface), layout


def encode_jpeg(target: RenderSurface | Image.Image, quality: int) -> bytes:
    image = target.image if isinstance(target, RenderSurface) else target
    buffer = io.BytesIO()
    try:
        image.convert("RGB").save(buffer, format="JPEG", quality=max(1, min(100, int(quality))), optimize=True)
    except (OSError, ValueError) as exc:
        raise RenderError(f"JPEG encoding failed: {exc}") from exc
    return buffer.getvalue()

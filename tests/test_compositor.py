import io

from PIL import Image

from framestamp.config import WatermarkConfig
from framestamp.models import Caption, MetadataRecord, SourceImage
from framestamp.render.compositor import RenderSurface, average_color, cover_fit, encode_jpeg, render, render_photo
from framestamp.render.layout import compute_layout


def _solid(size: tuple[int, int], color: tuple[int, int, int]) -> SourceImage:
    return SourceImage(pixels=Image.new("RGB", size, color))


def test_pure_background_uses_average_color() -> None:
    image = _solid((200, 100), (10, 200, 30))
    config = WatermarkConfig(pure_background=True, shadow_size=0)
    layout = compute_layout(image.width, image.height, config)

    surface = render(image, layout, Caption(), config)

    assert surface.size == (200, 100)
    assert surface.image.getpixel((0, 0)) == (10, 200, 30)
    assert surface.image.getpixel((199, 99)) == (10, 200, 30)


def test_average_color_of_two_tone_image() -> None:
    image = Image.new("RGB", (2, 1), (0, 0, 0))
    image.putpixel((1, 0), (200, 100, 50))

    assert average_color(image) == (100, 50, 25)


def test_blurred_background_is_darkened() -> None:
    image = _solid((200, 100), (255, 255, 255))
    config = WatermarkConfig(pure_background=False, shadow_size=0)
    layout = compute_layout(image.width, image.height, config)

    surface = render(image, layout, Caption(), config)

    corner = surface.image.getpixel((0, 0))
    assert all(120 < channel < 160 for channel in corner)
    # 照片本体保持原色
    assert surface.image.getpixel((100, 45)) == (255, 255, 255)


def test_shadow_darkens_area_below_photo() -> None:
    image = _solid((400, 300), (255, 255, 255))
    flat = WatermarkConfig(pure_background=True, shadow_size=0, corner_radius=0)
    shaded = WatermarkConfig(pure_background=True, shadow_size=20, corner_radius=0)
    layout = compute_layout(image.width, image.height, shaded)
    probe = (200, int(layout.photo_rect.bottom) + 3)

    plain = render(image, compute_layout(image.width, image.height, flat), Caption(), flat)
    plain_pixel = plain.image.getpixel(probe)
    shadowed = render(image, layout, Caption(), shaded)

    assert plain_pixel == (255, 255, 255)
    assert shadowed.image.getpixel(probe)[0] < 255


def test_rounded_corners_reveal_background() -> None:
    image = _solid((400, 300), (255, 255, 255))
    rounded = WatermarkConfig(pure_background=False, shadow_size=0, corner_radius=200)
    square = WatermarkConfig(pure_background=False, shadow_size=0, corner_radius=0)
    layout = compute_layout(image.width, image.height, rounded)
    left, top, _right, _bottom = layout.photo_rect.to_box()

    with_corners = render(image, layout, Caption(), rounded).image
    without_corners = render(image, compute_layout(400, 300, square), Caption(), square).image

    # 圆角外露出的是压暗后的背景
    assert with_corners.getpixel((left + 1, top + 1))[0] < 200
    assert with_corners.getpixel((left + 60, top + 60)) == (255, 255, 255)
    assert without_corners.getpixel((left + 1, top + 1)) == (255, 255, 255)


def test_caption_is_drawn_in_band() -> None:
    image = _solid((900, 600), (0, 0, 0))
    config = WatermarkConfig(pure_background=True, shadow_size=0)
    layout = compute_layout(image.width, image.height, config)
    caption = Caption(brand="Sony", model_text="A7", params_text="35mm f/2.8 1/2000s ISO100")

    blank = render(image, layout, Caption(), config).image.copy()
    with_text = render(image, layout, caption, config).image

    band = (0, int(layout.photo_rect.bottom) + 1, layout.canvas_width, layout.canvas_height)
    assert blank.crop(band).getextrema() == ((0, 0), (0, 0), (0, 0))
    assert max(channel_max for _low, channel_max in with_text.crop(band).getextrema()) > 150


def test_reused_surface_renders_identically() -> None:
    first = _solid((320, 240), (240, 20, 20))
    second = SourceImage(pixels=Image.linear_gradient("L").convert("RGB").resize((320, 240)))
    config = WatermarkConfig()
    caption = Caption(brand="Nikon", model_text="Z fc", params_text="23mm f/1.4")
    surface = RenderSurface()

    render(first, compute_layout(320, 240, config), caption, config, surface=surface)
    before = surface.image.tobytes()
    render(second, compute_layout(320, 240, config), Caption(), config, surface=surface)
    render(first, compute_layout(320, 240, config), caption, config, surface=surface)

    assert surface.image.tobytes() == before
    assert render(first, compute_layout(320, 240, config), caption, config).image.tobytes() == before


def test_cover_fit_crops_to_target() -> None:
    image = Image.new("RGB", (400, 100), (1, 2, 3))

    assert cover_fit(image, 200, 200).size == (200, 200)
    assert cover_fit(image, 50, 10).size == (50, 10)


def test_jpeg_output_keeps_layout_dimensions() -> None:
    image = _solid((640, 480), (90, 120, 150))
    config = WatermarkConfig(output_quality=85)
    metadata = MetadataRecord(make="Canon", model="EOS R6", f_number=2.8, iso=100)

    surface, layout = render_photo(image, metadata, config)
    payload = encode_jpeg(surface, config.output_quality)

    with Image.open(io.BytesIO(payload)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (layout.canvas_width, layout.canvas_height)
    assert layout.sizing_mode == "auto"

STANDARD_EXTENSIONS = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp", ".gif"}
HEIF_EXTENSIONS = {".heic", ".heif", ".hif"}
RAW_EXTENSIONS = {
    ".arw",
    ".cr2",
    ".cr3",
    ".nef",
    ".raf",
    ".rw2",
    ".orf",
    ".dng",
}
SUPPORTED_EXTENSIONS = STANDARD_EXTENSIONS | HEIF_EXTENSIONS | RAW_EXTENSIONS

# 匹配顺序即优先级：先命中者胜出
CAMERA_BRANDS: tuple[tuple[str, str], ...] = (
    ("canon", "Canon"),
    ("nikon", "Nikon"),
    ("sony", "Sony"),
    ("fujifilm", "Fujifilm"),
    ("olympus", "Olympus"),
    ("panasonic", "Panasonic"),
    ("leica", "Leica"),
    ("pentax", "Pentax"),
    ("ricoh", "Ricoh"),
    ("hasselblad", "Hasselblad"),
    ("phase one", "Phase One"),
)

DEFAULT_FONT_FAMILY = "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif"

OUTPUT_SUFFIX = "_watermark"
OUTPUT_EXTENSION = "jpg"

MAX_CANVAS_SIDE = 4000

from pathlib import Path

from PIL import Image

from framestamp.meta.normalize import metadata_from_raw
from framestamp.meta.pillow_fallback import extract_pillow_metadata


def test_extract_pillow_metadata_is_safe_on_unidentified_files(tmp_path: Path) -> None:
    raw_like = tmp_path / "sample.ARW"
    raw_like.write_bytes(b"not-a-real-image")

    metadata = extract_pillow_metadata(raw_like)

    assert metadata == {"SourceFile": str(raw_like)}


def test_extract_pillow_metadata_reads_camera_tags(tmp_path: Path) -> None:
    path = tmp_path / "tagged.jpg"
    exif = Image.Exif()
    exif[0x010F] = "FUJIFILM"
    exif[0x0110] = "X-T5"
    Image.new("RGB", (48, 32), (10, 20, 30)).save(path, format="JPEG", exif=exif)

    raw = extract_pillow_metadata(path)
    metadata = metadata_from_raw(raw)

    assert raw["Make"] == "FUJIFILM"
    assert metadata.model == "X-T5"
    assert (metadata.pixel_width, metadata.pixel_height) == (48, 32)

from pathlib import Path

import pytest
from PIL import Image

from framestamp.batch import CancelToken, build_tasks, run_batch
from framestamp.config import WatermarkConfig
from framestamp.errors import ConfigError, DecodeError, InputError, StorageError
from framestamp.models import BatchProgress, MetadataRecord, PhotoTask
from framestamp.storage import LocalFileStore


def _write_jpeg(path: Path, size: tuple[int, int] = (64, 48), color: str = "#3366AA") -> Path:
    Image.new("RGB", size, color=color).save(path, format="JPEG")
    return path


def _fixed_clock() -> float:
    return 1_700_000_000.123


def test_empty_output_dir_rejects_batch_without_processing(tmp_path: Path) -> None:
    tasks = [PhotoTask.from_path(_write_jpeg(tmp_path / "a.jpg"))]
    events: list[BatchProgress] = []

    result = run_batch(tasks, WatermarkConfig(output_dir=""), events.append)

    assert result.processed_count == 0
    assert len(result.errors) == 1
    assert isinstance(result.errors[0].error, ConfigError)
    assert result.success is False
    assert events == []
    assert tasks[0].status == "error"


def test_failed_task_does_not_stop_batch(tmp_path: Path) -> None:
    tasks = [
        PhotoTask.from_path(_write_jpeg(tmp_path / "one.jpg")),
        PhotoTask(name="two.jpg", source=None),
        PhotoTask.from_path(_write_jpeg(tmp_path / "three.jpg")),
    ]
    events: list[BatchProgress] = []
    config = WatermarkConfig(output_dir=str(tmp_path / "out"))

    result = run_batch(tasks, config, events.append, clock=_fixed_clock)

    assert result.processed_count == 2
    assert len(result.errors) == 1
    assert result.errors[0].name == "two.jpg"
    assert isinstance(result.errors[0].error, InputError)
    assert [(e.current, e.current_file_name, e.status) for e in events[:3]] == [
        (1, "one.jpg", "processing"),
        (2, "two.jpg", "processing"),
        (3, "three.jpg", "processing"),
    ]
    assert len(events) == 4
    assert events[-1].status == "error"
    assert events[-1].message
    assert [task.status for task in tasks] == ["loaded", "error", "loaded"]
    assert all(task.image is None for task in tasks)


def test_outputs_are_named_and_decodable(tmp_path: Path) -> None:
    source = _write_jpeg(tmp_path / "holiday.photo.jpg", size=(120, 80))
    config = WatermarkConfig(output_dir=str(tmp_path / "out"), output_quality=90)
    events: list[BatchProgress] = []

    result = run_batch([PhotoTask.from_path(source)], config, events.append, clock=_fixed_clock)

    assert result.success
    assert result.output_paths == [tmp_path / "out" / "holiday.photo_watermark_1700000000123.jpg"]
    with Image.open(result.output_paths[0]) as output:
        assert output.format == "JPEG"
        assert output.size == (160, 128)
    assert events[-1] == BatchProgress(1, 1, "", "completed", "generated 1 photo(s)")


def test_same_name_in_one_batch_gets_suffix(tmp_path: Path) -> None:
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    tasks = [
        PhotoTask.from_path(_write_jpeg(tmp_path / "a" / "img.jpg")),
        PhotoTask.from_path(_write_jpeg(tmp_path / "b" / "img.jpg")),
    ]
    config = WatermarkConfig(output_dir=str(tmp_path / "out"))

    result = run_batch(tasks, config, clock=_fixed_clock)

    assert [path.name for path in result.output_paths] == [
        "img_watermark_1700000000123.jpg",
        "img_watermark_1700000000123_2.jpg",
    ]


def test_decode_error_is_recorded_with_file_name(tmp_path: Path) -> None:
    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"not-a-jpeg")
    config = WatermarkConfig(output_dir=str(tmp_path / "out"))

    result = run_batch([PhotoTask.from_path(broken)], config)

    assert result.processed_count == 0
    assert isinstance(result.errors[0].error, DecodeError)
    assert result.errors[0].message.startswith("broken.jpg: ")


def test_write_failure_is_a_task_error(tmp_path: Path) -> None:
    class _ReadOnlyStore(LocalFileStore):
        def write_bytes(self, path: Path, data: bytes) -> None:
            raise StorageError(f"cannot write {path}: read-only", path)

    tasks = [
        PhotoTask.from_path(_write_jpeg(tmp_path / "x.jpg")),
        PhotoTask.from_path(_write_jpeg(tmp_path / "y.jpg")),
    ]
    config = WatermarkConfig(output_dir=str(tmp_path / "out"))

    result = run_batch(tasks, config, store=_ReadOnlyStore())

    assert result.processed_count == 0
    assert len(result.errors) == 2
    assert all(isinstance(failure.error, StorageError) for failure in result.errors)
    assert "out" in str(result.errors[0].error)


def test_unexpected_exception_becomes_render_error(tmp_path: Path) -> None:
    def _exploding_decoder(data: bytes, suffix: str):
        raise ZeroDivisionError("boom")

    config = WatermarkConfig(output_dir=str(tmp_path / "out"))

    result = run_batch([PhotoTask.from_path(_write_jpeg(tmp_path / "z.jpg"))], config, decoder=_exploding_decoder)

    assert "boom" in result.errors[0].message
    assert type(result.errors[0].error).__name__ == "RenderError"


def test_cancel_stops_before_next_task(tmp_path: Path) -> None:
    tasks = [PhotoTask.from_path(_write_jpeg(tmp_path / f"{i}.jpg")) for i in range(3)]
    config = WatermarkConfig(output_dir=str(tmp_path / "out"))
    cancel = CancelToken()
    events: list[BatchProgress] = []

    def _on_progress(progress: BatchProgress) -> None:
        events.append(progress)
        if progress.status == "processing" and progress.current == 2:
            cancel.cancel()

    result = run_batch(tasks, config, _on_progress, cancel=cancel)

    assert result.cancelled is True
    assert result.processed_count == 2
    assert len(result.output_paths) == 2
    assert all(path.exists() for path in result.output_paths)
    assert [e.status for e in events] == ["processing", "processing", "error"]
    assert tasks[2].status == "pending"


def test_progress_callback_errors_are_ignored(tmp_path: Path) -> None:
    def _broken_sink(_progress: BatchProgress) -> None:
        raise RuntimeError("ui went away")

    config = WatermarkConfig(output_dir=str(tmp_path / "out"))

    result = run_batch([PhotoTask.from_path(_write_jpeg(tmp_path / "ok.jpg"))], config, _broken_sink)

    assert result.success


def test_build_tasks_reads_metadata_without_exiftool(tmp_path: Path) -> None:
    paths = [_write_jpeg(tmp_path / "p1.jpg", size=(30, 20)), _write_jpeg(tmp_path / "p2.jpg", size=(20, 30))]

    tasks = build_tasks(paths, use_exiftool="off", jobs=2)

    assert [task.name for task in tasks] == ["p1.jpg", "p2.jpg"]
    assert all(task.status == "pending" for task in tasks)
    assert isinstance(tasks[0].metadata, MetadataRecord)
    assert (tasks[0].metadata.pixel_width, tasks[0].metadata.pixel_height) == (30, 20)
    assert (tasks[1].metadata.pixel_width, tasks[1].metadata.pixel_height) == (20, 30)


def test_build_tasks_rejects_unknown_exiftool_mode(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        build_tasks([tmp_path / "a.jpg"], use_exiftool="sometimes")

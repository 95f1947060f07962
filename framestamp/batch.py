"""Sequential batch rendering with progress events and per-photo error capture."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable

from framestamp.config import WatermarkConfig, default_jobs
from framestamp.decoders.image_decoder import decode_image_bytes
from framestamp.errors import ConfigError, FrameStampError, InputError, RenderError
from framestamp.meta.exiftool import extract_many
from framestamp.meta.normalize import metadata_from_raw
from framestamp.meta.pillow_fallback import extract_pillow_metadata
from framestamp.models import BatchFailure, BatchProgress, BatchResult, PhotoTask, SourceImage
from framestamp.naming import build_output_name, unique_output_path
from framestamp.render.compositor import RenderSurface, encode_jpeg, render_photo
from framestamp.storage import FileStore, LocalFileStore

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchProgress], None]
Decoder = Callable[[bytes, str], SourceImage]


class CancelToken:
    """Cooperative cancellation flag, checked by the batch before each photo."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _emit(on_progress: ProgressCallback | None, progress: BatchProgress) -> None:
    if on_progress is None:
        return
    try:
        on_progress(progress)
    except Exception:
        LOGGER.exception("progress callback failed for %s", progress)


def _process_task(
    task: PhotoTask,
    config: WatermarkConfig,
    *,
    store: FileStore,
    decoder: Decoder,
    surface: RenderSurface,
    output_dir: Path,
    taken: set[Path],
    clock: Callable[[], float],
) -> Path:
    if task.source is None or task.source == Path(""):
        raise InputError("image reference is empty")

    task.status = "loading"
    data = store.read_bytes(task.source)
    task.image = decoder(data, task.source.suffix)
    task.status = "loaded"

    try:
        render_photo(task.image, task.metadata, config, surface=surface)
        payload = encode_jpeg(surface, config.output_quality)
    finally:
        task.image = None

    file_name = build_output_name(task.name or task.source.name, int(clock() * 1000))
    target = unique_output_path(output_dir, file_name, taken)
    store.write_bytes(target, payload)
    return target


def run_batch(
    tasks: list[PhotoTask],
    config: WatermarkConfig,
    on_progress: ProgressCallback | None = None,
    *,
    store: FileStore | None = None,
    decoder: Decoder | None = None,
    cancel: CancelToken | None = None,
    clock: Callable[[], float] = time.time,
) -> BatchResult:
    """Render every task in order, one at a time.

    A failing photo is recorded in ``errors`` and the batch moves on; only an
    empty ``output_dir`` aborts the whole batch up front.
    """
    total = len(tasks)
    result = BatchResult(total_count=total)

    if not config.output_dir:
        result.errors.append(BatchFailure(name="", error=ConfigError("no output directory selected")))
        for task in tasks:
            task.status = "error"
            task.error = "no output directory selected"
        LOGGER.error("batch rejected: no output directory selected")
        return result

    store = store or LocalFileStore()
    decoder = decoder or decode_image_bytes
    output_dir = Path(config.output_dir)
    surface = RenderSurface()
    taken: set[Path] = set()

    try:
        for index, task in enumerate(tasks, start=1):
            if cancel is not None and cancel.cancelled:
                result.cancelled = True
                LOGGER.info("batch cancelled before %s (%d/%d)", task.name, index, total)
                break

            _emit(on_progress, BatchProgress(index, total, task.name, "processing"))
            started = time.perf_counter()
            try:
                target = _process_task(
                    task,
                    config,
                    store=store,
                    decoder=decoder,
                    surface=surface,
                    output_dir=output_dir,
                    taken=taken,
                    clock=clock,
                )
            except FrameStampError as exc:
                error: Exception = exc
            except Exception as exc:
                error = RenderError(f"processing failed: {exc}")
                error.__cause__ = exc
            else:
                task.status = "loaded"
                task.error = None
                result.processed_count += 1
                result.output_paths.append(target)
                LOGGER.info("OK   %s -> %s  (%.2fs)", task.name, target.name, time.perf_counter() - started)
                continue

            task.status = "error"
            task.error = str(error)
            result.errors.append(BatchFailure(name=task.name, error=error))
            LOGGER.error("FAIL %s  %s", task.name, error)
    finally:
        surface.release()

    if result.cancelled:
        status, message = "error", f"cancelled after {result.processed_count} of {total} photo(s)"
    elif result.errors:
        status, message = "error", f"finished with {len(result.errors)} error(s), {result.processed_count} generated"
    else:
        status, message = "completed", f"generated {result.processed_count} photo(s)"
    _emit(on_progress, BatchProgress(total, total, "", status, message))
    return result


def build_tasks(
    paths: Iterable[Path],
    *,
    use_exiftool: str = "auto",
    jobs: int | None = None,
) -> list[PhotoTask]:
    """Create pending tasks with metadata read up front.

    ExifTool handles the whole set in chunks when available; files it did not
    cover are read with Pillow on a thread pool.
    """
    resolved = [Path(p).resolve(strict=False) for p in paths]
    raw_map = extract_many(resolved, mode=use_exiftool)

    missing = [path for path in resolved if path not in raw_map]
    if missing:
        workers = max(1, min(jobs or default_jobs(), len(missing)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for path, raw in zip(missing, pool.map(extract_pillow_metadata, missing)):
                raw_map[path] = raw

    tasks = []
    for path in resolved:
        metadata = metadata_from_raw(raw_map.get(path))
        tasks.append(PhotoTask.from_path(path, metadata=metadata))
    return tasks

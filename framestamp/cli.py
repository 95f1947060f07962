from __future__ import annotations

import json
import logging
import signal
from functools import partial
from pathlib import Path
from typing import Any

import typer
from PIL import Image

from framestamp.batch import CancelToken, build_tasks, run_batch
from framestamp.config import WatermarkConfig, load_config, write_default_config
from framestamp.decoders.image_decoder import decode_image_bytes
from framestamp.discover import discover_inputs
from framestamp.meta.exiftool import extract_many
from framestamp.meta.normalize import metadata_from_raw, normalize_caption
from framestamp.meta.pillow_fallback import extract_pillow_metadata
from framestamp.models import BatchProgress
from framestamp.render.layout import compute_layout

app = typer.Typer(add_completion=False, no_args_is_help=True, help="FrameStamp framed-photo CLI.")
LOGGER = logging.getLogger("framestamp")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_size(value: str) -> tuple[int, int]:
    text = value.lower().replace("×", "x").strip()
    left, sep, right = text.partition("x")
    if not sep:
        raise ValueError(f"size must look like WIDTHxHEIGHT, got: {value!r}")
    width, height = int(left.strip()), int(right.strip())
    if width <= 0 or height <= 0:
        raise ValueError(f"size must be positive, got: {value!r}")
    return width, height


def _log_progress(progress: BatchProgress) -> None:
    if progress.status == "processing":
        LOGGER.info("[%d/%d] %s", progress.current, progress.total, progress.current_file_name)
    elif progress.status == "completed":
        LOGGER.info("%s", progress.message)
    else:
        LOGGER.warning("%s", progress.message)


@app.command()
def render(
    inputs: list[Path] = typer.Argument(..., exists=True, resolve_path=True, help="Image files or directories."),
    out: Path | None = typer.Option(None, "--out", help="Output directory (default: ./output next to the input)."),
    recursive: bool | None = typer.Option(None, "--recursive/--no-recursive", help="Recursively scan input directories."),
    config_path: Path | None = typer.Option(None, "--config", exists=True, dir_okay=False, help="YAML config file."),
    quality: int | None = typer.Option(None, "--quality", min=50, max=100, help="JPEG quality; 100 keeps the source size."),
    ratio: float | None = typer.Option(None, "--ratio", min=50, max=100, help="Photo share of the photo-area, %."),
    corner_radius: float | None = typer.Option(None, "--corner-radius", min=0, max=200),
    shadow_size: float | None = typer.Option(None, "--shadow-size", min=0, max=100),
    pure_background: bool | None = typer.Option(None, "--pure-background/--blur-background"),
    landscape: bool | None = typer.Option(None, "--landscape/--no-landscape", help="Force a landscape canvas."),
    size: str | None = typer.Option(None, "--size", help='Explicit output size, e.g. "3000x2400".'),
    font: str | None = typer.Option(None, "--font", help="Font family list or font file path."),
    font_size_ratio: float | None = typer.Option(None, "--font-size-ratio", min=50, max=200),
    use_35mm: bool | None = typer.Option(None, "--use-35mm/--no-use-35mm", help="Prefer 35mm-equivalent focal length."),
    use_exiftool: str | None = typer.Option(None, "--use-exiftool", help="auto|on|off"),
    jobs: int | None = typer.Option(None, "--jobs", min=1, help="Workers for metadata extraction."),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Render framed composites for every input photo."""
    cfg: dict[str, Any] = load_config(config_path)
    _setup_logging(log_level or str(cfg.get("log_level", "info")))

    overrides: dict[str, Any] = {
        "output_quality": quality,
        "main_image_ratio": ratio,
        "corner_radius": corner_radius,
        "shadow_size": shadow_size,
        "pure_background": pure_background,
        "landscape_output": landscape,
        "font_family": font,
        "font_size_ratio": font_size_ratio,
        "use_35mm_equivalent": use_35mm,
        "use_exiftool": use_exiftool,
        "jobs": jobs,
        "recursive": recursive,
    }
    cfg.update({key: value for key, value in overrides.items() if value is not None})
    if size:
        try:
            cfg["output_width"], cfg["output_height"] = _parse_size(size)
        except ValueError as exc:
            typer.secho(str(exc), err=True, fg=typer.colors.RED)
            raise typer.Exit(1)
        cfg["use_custom_output_size"] = True

    files = discover_inputs(inputs, recursive=bool(cfg.get("recursive")))
    if not files:
        typer.echo("No supported image files found.")
        raise typer.Exit(0)

    out_dir = out or cfg.get("output_dir") or None
    if not out_dir:
        first = inputs[0]
        out_dir = (first / "output") if first.is_dir() else (first.parent / "output")
    cfg["output_dir"] = str(out_dir)
    config = WatermarkConfig.from_mapping(cfg)
    LOGGER.info("sizing mode: %s, output: %s", config.sizing_mode, config.output_dir)

    try:
        tasks = build_tasks(files, use_exiftool=str(cfg.get("use_exiftool", "auto")), jobs=int(cfg.get("jobs") or 0) or None)
    except (RuntimeError, ValueError) as exc:
        typer.secho(f"Metadata extraction failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)

    cancel = CancelToken()

    def _request_cancel(_signum, _frame) -> None:
        LOGGER.warning("cancel requested, finishing the current photo")
        cancel.cancel()

    previous_handler = signal.signal(signal.SIGINT, _request_cancel)
    try:
        result = run_batch(
            tasks,
            config,
            _log_progress,
            decoder=partial(decode_image_bytes, decoder=str(cfg.get("decoder", "auto"))),
            cancel=cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    typer.echo(f"Done. success={result.processed_count} failed={len(result.errors)} total={result.total_count}")
    if result.cancelled:
        typer.secho("Cancelled.", fg=typer.colors.YELLOW)
    if result.errors:
        typer.secho("Failures:", fg=typer.colors.RED)
        for failure in result.errors:
            typer.secho(f"  {failure.message}", fg=typer.colors.RED)
    if not result.success:
        raise typer.Exit(1)


@app.command("inspect")
def inspect_file(
    file: Path = typer.Argument(..., exists=True, resolve_path=True, dir_okay=False),
    config_path: Path | None = typer.Option(None, "--config", exists=True, dir_okay=False, help="YAML config file."),
    use_exiftool: str = typer.Option("auto", "--use-exiftool", help="auto|on|off"),
    raw: bool = typer.Option(False, "--raw", help="Include raw metadata payload."),
) -> None:
    """Print the metadata record, caption and layout computed for one photo."""
    config = WatermarkConfig.from_mapping(load_config(config_path))
    resolved = file.resolve(strict=False)
    try:
        raw_metadata = extract_many([resolved], mode=use_exiftool.lower()).get(resolved)
    except (RuntimeError, ValueError) as exc:
        typer.secho(f"Metadata extraction failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    if raw_metadata is None:
        raw_metadata = extract_pillow_metadata(resolved)

    metadata = metadata_from_raw(raw_metadata)
    caption = normalize_caption(metadata, config)
    payload: dict[str, Any] = {
        "file": str(resolved),
        "metadata": metadata.to_dict(),
        "caption": {
            "brand": caption.brand,
            "camera_text": caption.camera_text,
            "params_text": caption.params_text,
        },
    }

    size = (metadata.pixel_width, metadata.pixel_height)
    try:
        with Image.open(resolved) as image:
            size = image.size
        if metadata.orientation in {5, 6, 7, 8}:
            size = (size[1], size[0])
    except Exception as exc:
        LOGGER.debug("size probe failed for %s: %s", resolved, exc)
    if size[0] and size[1]:
        payload["layout"] = compute_layout(int(size[0]), int(size[1]), config).to_dict()
    if raw:
        payload["raw_metadata"] = raw_metadata
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    path = write_default_config(force=force)
    typer.echo(f"Config initialized: {path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()

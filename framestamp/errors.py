from __future__ import annotations


class FrameStampError(RuntimeError):
    """Base class for failures surfaced to the batch and the CLI."""


class InputError(FrameStampError):
    """Missing image reference or an image without pixels."""


class DecodeError(FrameStampError):
    """Image bytes could not be decoded."""


class RenderError(FrameStampError):
    """Compositing or JPEG encoding failed."""


class StorageError(FrameStampError):
    """Reading the source or writing the output failed."""

    def __init__(self, message: str, path: object = None) -> None:
        super().__init__(message)
        self.path = path


class ConfigError(FrameStampError):
    """Batch-level configuration problem; aborts before any photo is processed."""

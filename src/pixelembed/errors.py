"""Exception types shared by the preprocessing, extraction, and inference layers."""

from __future__ import annotations


class PixelEmbedError(Exception):
    """Base class for all pixelembed errors."""


class InvalidArgumentError(PixelEmbedError, ValueError):
    """A caller supplied an absent or out-of-range argument (e.g. crop larger than image)."""


class TensorShapeError(InvalidArgumentError):
    """A tensor does not have the rank or extent the operation requires."""


class ImageLoadError(PixelEmbedError, OSError):
    """An image file is missing, unreadable, or not a supported format."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ConfigFileError(PixelEmbedError, OSError):
    """A preprocessor configuration file could not be read or parsed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ModelNotConfiguredError(PixelEmbedError, RuntimeError):
    """Neither a local model path nor a Hub repository was configured."""


class InferenceError(PixelEmbedError, RuntimeError):
    """ONNX Runtime failed to create a session or run the model."""

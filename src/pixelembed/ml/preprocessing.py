"""Image preprocessing pipeline.

Turns a decoded image into the float tensor a vision model expects:
resize by shortest edge, center crop, RGB extraction, rescale, normalize,
and conversion to a flattened NCHW buffer. Every stage returns a new
object; inputs are never modified.
"""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from pixelembed.errors import ImageLoadError, InvalidArgumentError
from pixelembed.ml.processor_config import ProcessorConfig, Resample

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

ImageSource = Image.Image | str | Path


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into a Pillow image.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Optional upper bound on width * height.

    Raises:
        ImageLoadError: If the bytes are not a supported image.
        InvalidArgumentError: If the image exceeds ``max_pixels`` or Pillow's
            decompression-bomb limit.
    """
    if not image_bytes:
        raise ImageLoadError("Empty image data")
    try:
        image = Image.open(io.BytesIO(image_bytes))
    except Image.DecompressionBombError as exc:
        raise InvalidArgumentError(f"Image rejected as too large: {exc}") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageLoadError(f"Cannot decode image: {exc}") from exc

    if max_pixels is not None and image.width * image.height > max_pixels:
        raise InvalidArgumentError(f"Image of {image.width}x{image.height} exceeds the {max_pixels} pixel limit")

    try:
        image.load()
    except Image.DecompressionBombError as exc:
        raise InvalidArgumentError(f"Image rejected as too large: {exc}") from exc
    except OSError as exc:
        raise ImageLoadError(f"Cannot decode image: {exc}") from exc
    return image


def load_image(image_path: str | Path) -> Image.Image:
    """Load and decode an image file."""
    path = Path(image_path)
    if not path.is_file():
        raise ImageLoadError(f"Image file does not exist: {path}", str(path))
    try:
        with Image.open(path) as opened:
            opened.load()
            return opened.copy()
    except Image.DecompressionBombError as exc:
        raise InvalidArgumentError(f"Image {path} rejected as too large: {exc}") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageLoadError(f"Cannot read image {path}: {exc}", str(path)) from exc


# ---------------------------------------------------------------------------
# Geometric stages
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def shortest_edge_size(width: int, height: int, shortest_edge: int) -> tuple[int, int]:
    """Return the (width, height) that scales the shorter side to ``shortest_edge``.

    The scale and both products are single precision, so near-half sizes round
    the same way as reference pipelines that compute them in float32.
    """
    scale = np.float32(shortest_edge) / np.float32(min(width, height))
    return (
        _round_half_up(float(np.float32(width) * scale)),
        _round_half_up(float(np.float32(height) * scale)),
    )


def resize_by_shortest_edge(
    image: Image.Image,
    shortest_edge: int,
    resample: Resample = Resample.BILINEAR,
) -> Image.Image:
    """Resize so the shorter side equals ``shortest_edge``, preserving aspect ratio."""
    new_size = shortest_edge_size(image.width, image.height, shortest_edge)
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image.resize(new_size, resample=resample.pil_filter)


def center_crop(image: Image.Image, crop_width: int, crop_height: int) -> Image.Image:
    """Cut a ``crop_width x crop_height`` window from the middle of the image.

    The offset is truncated toward zero when the size difference is odd.

    Raises:
        InvalidArgumentError: If the image is smaller than the crop on either axis.
    """
    width, height = image.size
    if width < crop_width or height < crop_height:
        raise InvalidArgumentError(
            f"Image size ({width}, {height}) is smaller than crop size ({crop_width}, {crop_height})"
        )
    start_x = (width - crop_width) // 2
    start_y = (height - crop_height) // 2
    return image.crop((start_x, start_y, start_x + crop_width, start_y + crop_height))


# ---------------------------------------------------------------------------
# Pixel stages
# ---------------------------------------------------------------------------


def extract_rgb_pixels(image: Image.Image) -> NDArray[np.uint8]:
    """Return an HxWx3 uint8 array of R, G, B values; alpha is dropped."""
    if image.mode != "RGB":
        image = image.convert("RGB")
    return np.array(image, dtype=np.uint8)


def rescale_pixels(pixels: NDArray[np.uint8], rescale_factor: float) -> NDArray[np.float32]:
    """Multiply every channel value by ``rescale_factor``."""
    return pixels.astype(np.float32) * np.float32(rescale_factor)


def to_float_pixels(pixels: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Identity-scale conversion used when rescaling is disabled."""
    return pixels.astype(np.float32)


def normalize_pixels(
    pixels: NDArray[np.float32],
    mean: Sequence[float],
    std: Sequence[float],
) -> NDArray[np.float32]:
    """Apply ``(value - mean[c]) / std[c]`` per channel of an HxWx3 array."""
    mean_arr = np.asarray(mean, dtype=np.float32)
    std_arr = np.asarray(std, dtype=np.float32)
    return (pixels - mean_arr) / std_arr


def to_nchw(pixels: NDArray[np.float32]) -> NDArray[np.float32]:
    """Reorder HxWxC to a contiguous 1xCxHxW tensor."""
    return np.ascontiguousarray(pixels.transpose(2, 0, 1)[np.newaxis, ...])


def flatten_nchw(tensor: NDArray[np.float32]) -> NDArray[np.float32]:
    """Flatten in batch, channel, row, column order."""
    return tensor.reshape(-1).copy()


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


def preprocess_to_tensor(image: ImageSource | None, config: ProcessorConfig | None) -> NDArray[np.float32]:
    """Run the configured pipeline and return a (1, 3, H, W) float32 tensor.

    ``image`` may be a decoded Pillow image or a path to an image file.

    Raises:
        InvalidArgumentError: If ``image`` or ``config`` is None, or the crop
            does not fit inside the (resized) image.
        ImageLoadError: If a path is given and the file cannot be decoded.
    """
    if image is None:
        raise InvalidArgumentError("Input image must not be None")
    if config is None:
        raise InvalidArgumentError("Processor config must not be None")

    current = image if isinstance(image, Image.Image) else load_image(image)

    if config.do_resize:
        current = resize_by_shortest_edge(current, config.shortest_edge, config.resample)

    if config.do_center_crop:
        current = center_crop(current, config.crop_width, config.crop_height)

    rgb = extract_rgb_pixels(current)

    if config.do_rescale:
        pixels = rescale_pixels(rgb, config.rescale_factor)
    else:
        pixels = to_float_pixels(rgb)

    if config.do_normalize:
        pixels = normalize_pixels(pixels, config.image_mean, config.image_std)

    tensor = to_nchw(pixels)
    logger.debug("Preprocessed image to tensor of shape %s", tensor.shape)
    return tensor


def preprocess_image(image: ImageSource | None, config: ProcessorConfig | None) -> NDArray[np.float32]:
    """Run the configured pipeline and return the flattened float32 buffer."""
    return flatten_nchw(preprocess_to_tensor(image, config))

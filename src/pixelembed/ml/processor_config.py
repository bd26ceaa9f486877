"""Preprocessing configuration: resize, crop, rescale, and normalize toggles.

Mirrors the fields of a HuggingFace ``preprocessor_config.json`` so that a
model's published preprocessing contract can be loaded directly.
"""

from __future__ import annotations

import json
import logging
import math
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pixelembed.errors import ConfigFileError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


class Resample(StrEnum):
    NEAREST = "nearest"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"

    @property
    def pil_filter(self) -> Image.Resampling:
        """Return the matching Pillow resampling filter."""
        return _PIL_FILTERS[self]

    @classmethod
    def from_pil_code(cls, code: int) -> Resample:
        """Map a PIL/HuggingFace integer resample code; unknown codes fall back to bilinear."""
        try:
            return _PIL_CODES[code]
        except KeyError:
            logger.warning("Unsupported resample code %s, using bilinear", code)
            return cls.BILINEAR


_PIL_FILTERS: dict[Resample, Image.Resampling] = {
    Resample.NEAREST: Image.Resampling.NEAREST,
    Resample.BILINEAR: Image.Resampling.BILINEAR,
    Resample.BICUBIC: Image.Resampling.BICUBIC,
}

_PIL_CODES: dict[int, Resample] = {
    0: Resample.NEAREST,
    2: Resample.BILINEAR,
    3: Resample.BICUBIC,
}


class ProcessorConfig(BaseModel):
    """Immutable preprocessing parameters, validated once at construction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    do_resize: bool = True
    shortest_edge: int = Field(default=256, gt=0)
    resample: Resample = Resample.BILINEAR

    do_center_crop: bool = True
    crop_width: int = Field(default=224, gt=0)
    crop_height: int = Field(default=224, gt=0)

    do_rescale: bool = True
    rescale_factor: float = 1.0 / 255.0

    do_normalize: bool = True
    image_mean: tuple[float, float, float] = (0.5, 0.5, 0.5)
    image_std: tuple[float, float, float] = (0.5, 0.5, 0.5)

    @field_validator("rescale_factor")
    @classmethod
    def _factor_must_be_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError(f"rescale_factor must be finite, got {value}")
        return value

    @field_validator("image_mean")
    @classmethod
    def _mean_must_be_finite(cls, value: tuple[float, float, float]) -> tuple[float, float, float]:
        if not all(math.isfinite(v) for v in value):
            raise ValueError(f"image_mean values must be finite, got {value}")
        return value

    @field_validator("image_std")
    @classmethod
    def _std_must_be_positive(cls, value: tuple[float, float, float]) -> tuple[float, float, float]:
        # NaN fails every comparison, so test for the valid range rather than the invalid one.
        if not all(v > 0 and math.isfinite(v) for v in value):
            raise ValueError(f"image_std values must be positive and finite, got {value}")
        return value

    @classmethod
    def from_hf_dict(cls, data: Mapping[str, Any]) -> ProcessorConfig:
        """Build a config from the keys of a HuggingFace preprocessor_config.json.

        ``size`` may be ``{"shortest_edge": N}`` or a bare integer; any other
        ``size`` (a fixed ``{"height", "width"}``) is logged and the default
        shortest edge is kept. ``crop_size``
        may be ``{"height": H, "width": W}`` or a bare integer. Keys that have no
        counterpart here (``image_processor_type`` and friends) are ignored.
        """
        fields: dict[str, Any] = {}
        for key in ("do_resize", "do_center_crop", "do_rescale", "rescale_factor", "do_normalize"):
            if key in data:
                fields[key] = data[key]

        size = data.get("size")
        if isinstance(size, int):
            fields["shortest_edge"] = size
        elif isinstance(size, dict) and "shortest_edge" in size:
            fields["shortest_edge"] = size["shortest_edge"]
        elif size is not None:
            logger.warning(
                "Unsupported preprocessor size %r (only shortest_edge resizing is implemented); "
                "using shortest_edge=%d",
                size,
                cls.model_fields["shortest_edge"].default,
            )

        crop_size = data.get("crop_size")
        if isinstance(crop_size, int):
            fields["crop_width"] = fields["crop_height"] = crop_size
        elif isinstance(crop_size, dict):
            if "width" in crop_size:
                fields["crop_width"] = crop_size["width"]
            if "height" in crop_size:
                fields["crop_height"] = crop_size["height"]

        if "resample" in data:
            fields["resample"] = Resample.from_pil_code(int(data["resample"]))
        if "image_mean" in data:
            fields["image_mean"] = tuple(data["image_mean"])
        if "image_std" in data:
            fields["image_std"] = tuple(data["image_std"])

        return cls(**fields)

    @classmethod
    def from_hf_json(cls, path: str | Path) -> ProcessorConfig:
        """Load a HuggingFace preprocessor_config.json file."""
        config_path = Path(path)
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigFileError(f"Cannot read preprocessor config: {config_path}", str(config_path)) from exc
        except json.JSONDecodeError as exc:
            raise ConfigFileError(f"Invalid JSON in preprocessor config: {config_path}", str(config_path)) from exc
        if not isinstance(data, dict):
            raise ConfigFileError(f"Preprocessor config must be a JSON object: {config_path}", str(config_path))
        return cls.from_hf_dict(data)

"""Tests for the preprocessing configuration model."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from PIL import Image
from pydantic import ValidationError

from pixelembed.errors import ConfigFileError
from pixelembed.ml.processor_config import ProcessorConfig, Resample

if TYPE_CHECKING:
    from pathlib import Path


class TestDefaults:
    def test_default_values(self) -> None:
        config = ProcessorConfig()
        assert config.do_resize is True
        assert config.shortest_edge == 256
        assert config.resample is Resample.BILINEAR
        assert config.do_center_crop is True
        assert (config.crop_width, config.crop_height) == (224, 224)
        assert config.do_rescale is True
        assert config.rescale_factor == pytest.approx(1 / 255)
        assert config.do_normalize is True
        assert config.image_mean == (0.5, 0.5, 0.5)
        assert config.image_std == (0.5, 0.5, 0.5)

    def test_config_is_immutable(self) -> None:
        config = ProcessorConfig()
        with pytest.raises(ValidationError):
            config.shortest_edge = 128  # type: ignore[misc]


class TestValidation:
    @pytest.mark.parametrize("field", ["shortest_edge", "crop_width", "crop_height"])
    def test_non_positive_dimensions_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            ProcessorConfig(**{field: 0})
        with pytest.raises(ValidationError):
            ProcessorConfig(**{field: -5})

    def test_zero_std_rejected(self) -> None:
        with pytest.raises(ValidationError, match="image_std"):
            ProcessorConfig(image_std=(0.5, 0.0, 0.5))

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), -0.5])
    def test_non_positive_or_non_finite_std_rejected(self, bad: float) -> None:
        with pytest.raises(ValidationError, match="image_std"):
            ProcessorConfig(image_std=(0.5, bad, 0.5))

    @pytest.mark.parametrize("bad", [float("nan"), float("-inf")])
    def test_non_finite_mean_rejected(self, bad: float) -> None:
        with pytest.raises(ValidationError, match="image_mean"):
            ProcessorConfig(image_mean=(bad, 0.5, 0.5))

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_non_finite_rescale_factor_rejected(self, bad: float) -> None:
        with pytest.raises(ValidationError, match="rescale_factor"):
            ProcessorConfig(rescale_factor=bad)

    def test_wrong_channel_count_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProcessorConfig(image_mean=(0.5, 0.5))  # type: ignore[arg-type]

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProcessorConfig(crop_size=224)  # type: ignore[call-arg]

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            ProcessorConfig(shortest_edge=-1)


class TestResample:
    def test_pil_codes(self) -> None:
        assert Resample.from_pil_code(0) is Resample.NEAREST
        assert Resample.from_pil_code(2) is Resample.BILINEAR
        assert Resample.from_pil_code(3) is Resample.BICUBIC

    def test_unknown_code_falls_back_to_bilinear(self) -> None:
        assert Resample.from_pil_code(1) is Resample.BILINEAR

    def test_pil_filter(self) -> None:
        assert Resample.BICUBIC.pil_filter == Image.Resampling.BICUBIC
        assert Resample.NEAREST.pil_filter == Image.Resampling.NEAREST


class TestHuggingFaceConfig:
    def test_mobilenet_v2_preprocessor_config(self) -> None:
        config = ProcessorConfig.from_hf_dict(
            {
                "crop_pct": 0.875,
                "crop_size": {"height": 224, "width": 224},
                "do_center_crop": True,
                "do_normalize": True,
                "do_rescale": True,
                "do_resize": True,
                "image_mean": [0.5, 0.5, 0.5],
                "image_processor_type": "MobileNetV2ImageProcessor",
                "image_std": [0.5, 0.5, 0.5],
                "resample": 2,
                "rescale_factor": 0.00392156862745098,
                "size": {"shortest_edge": 256},
            }
        )
        assert config == ProcessorConfig()

    def test_integer_sizes(self) -> None:
        config = ProcessorConfig.from_hf_dict({"size": 320, "crop_size": 288, "resample": 3})
        assert config.shortest_edge == 320
        assert (config.crop_width, config.crop_height) == (288, 288)
        assert config.resample is Resample.BICUBIC

    def test_fixed_height_width_size_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        config = ProcessorConfig.from_hf_dict({"size": {"height": 384, "width": 384}})
        assert config.shortest_edge == 256
        assert "Unsupported preprocessor size" in caplog.text

    def test_imagenet_statistics(self) -> None:
        config = ProcessorConfig.from_hf_dict(
            {"image_mean": [0.485, 0.456, 0.406], "image_std": [0.229, 0.224, 0.225]}
        )
        assert config.image_mean == (0.485, 0.456, 0.406)
        assert config.image_std == (0.229, 0.224, 0.225)

    def test_from_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "preprocessor_config.json"
        path.write_text(json.dumps({"do_center_crop": False, "size": {"shortest_edge": 128}}))
        config = ProcessorConfig.from_hf_json(path)
        assert config.do_center_crop is False
        assert config.shortest_edge == 128

    def test_missing_json_file(self, tmp_path: Path) -> None:
        missing = tmp_path / "nope.json"
        with pytest.raises(ConfigFileError, match="nope.json") as excinfo:
            ProcessorConfig.from_hf_json(missing)
        assert excinfo.value.path == str(missing)

    def test_invalid_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigFileError):
            ProcessorConfig.from_hf_json(path)

"""Tests for the command-line demos."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from conftest import FakeModelManager, FakeSession
from pixelembed.cli import build_parser, main
from pixelembed.ml.embedder import ImageEmbedder

if TYPE_CHECKING:
    from pathlib import Path

    from pixelembed.config import Settings


@pytest.fixture()
def image_file(tmp_path: Path) -> Path:
    path = tmp_path / "image_file.png"
    assert main(["create-test-image", str(path)]) == 0
    return path


def _fake_embedder(session: FakeSession) -> Any:
    """Patch ImageEmbedder in the CLI so it runs against ``session``."""

    def _factory(settings: Settings) -> ImageEmbedder:
        return ImageEmbedder(settings, model_manager=FakeModelManager(session))

    return patch("pixelembed.cli.ImageEmbedder", side_effect=_factory)


class TestCreateTestImage:
    def test_writes_image(self, image_file: Path) -> None:
        with Image.open(image_file) as image:
            assert image.size == (300, 200)
            assert image.getpixel((0, 0)) == (0, 0, 255)
            assert image.getpixel((100, 100)) == (255, 0, 0)
            assert image.getpixel((200, 100)) == (0, 255, 0)

    def test_custom_size(self, tmp_path: Path) -> None:
        path = tmp_path / "small.png"
        assert main(["create-test-image", str(path), "--width", "64", "--height", "32"]) == 0
        with Image.open(path) as image:
            assert image.size == (64, 32)


class TestPreprocess:
    def test_prints_statistics(self, image_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["preprocess", str(image_file)]) == 0
        out = capsys.readouterr().out
        assert "150528 values" in out

    def test_writes_raw_tensor(self, image_file: Path, tmp_path: Path) -> None:
        raw = tmp_path / "input.f32"
        assert main(["preprocess", str(image_file), "--output", str(raw)]) == 0
        data = np.fromfile(raw, dtype="<f4")
        assert data.shape == (150528,)
        assert data.min() >= -1.0 - 1e-6
        assert data.max() <= 1.0 + 1e-6

    def test_missing_image_fails(self, tmp_path: Path) -> None:
        assert main(["preprocess", str(tmp_path / "missing.png")]) == 1

    def test_decompression_bomb_fails_cleanly(self, image_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        assert main(["preprocess", str(image_file)]) == 1

    def test_crop_too_large_fails(self, tmp_path: Path) -> None:
        small = tmp_path / "small.png"
        Image.new("RGB", (100, 100)).save(small)
        config = tmp_path / "preprocessor_config.json"
        config.write_text('{"do_resize": false}')
        assert main(["preprocess", str(small), "--preprocessor-config", str(config)]) == 1


class TestEmbed:
    def test_embed_prints_summary(self, image_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with _fake_embedder(FakeSession()):
            assert main(["embed", str(image_file), "--model", "fake.onnx"]) == 0
        out = capsys.readouterr().out
        assert "dim=1280" in out

    def test_embed_compare(self, image_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with _fake_embedder(FakeSession()):
            assert main(["embed", str(image_file), "--compare"]) == 0
        out = capsys.readouterr().out
        for strategy in ("mean", "max", "center"):
            assert strategy in out

    def test_runtime_error_exit_code(self, image_file: Path) -> None:
        from onnxruntime.capi.onnxruntime_pybind11_state import Fail

        with _fake_embedder(FakeSession(error=Fail("boom"))):
            assert main(["embed", str(image_file)]) == 2

    def test_unconfigured_model_fails(self, image_file: Path) -> None:
        assert main(["embed", str(image_file)]) == 1


class TestInspect:
    def test_lists_inputs_and_outputs(self, capsys: pytest.CaptureFixture[str]) -> None:
        with _fake_embedder(FakeSession()):
            assert main(["inspect"]) == 0
        out = capsys.readouterr().out
        assert "pixel_values" in out
        assert "last_hidden_state" in out


class TestParser:
    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_pooling_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["embed", "x.png", "--pooling", "median"])

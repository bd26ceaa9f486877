"""Shared fixtures: in-memory stand-ins for ONNX Runtime sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import pytest

from pixelembed.config import Settings
from pixelembed.ml.embedder import ImageEmbedder

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray


@dataclass
class FakeNode:
    name: str
    shape: list[int | str]
    type: str = "tensor(float)"


@dataclass
class FakeSession:
    """Mimics the parts of onnxruntime.InferenceSession the embedder uses."""

    outputs: list[NDArray[np.float32]] = field(default_factory=lambda: [np.ones((1, 1280, 7, 7), dtype=np.float32)])
    output_names: list[str] = field(default_factory=lambda: ["last_hidden_state"])
    input_name: str = "pixel_values"
    input_shape: list[int | str] = field(default_factory=lambda: ["batch_size", 3, 224, 224])
    error: Exception | None = None
    feeds: list[dict[str, Any]] = field(default_factory=list)

    def get_inputs(self) -> list[FakeNode]:
        return [FakeNode(self.input_name, self.input_shape)]

    def get_outputs(self) -> list[FakeNode]:
        return [FakeNode(name, list(out.shape)) for name, out in zip(self.output_names, self.outputs)]

    def run(self, output_names: list[str] | None, input_feed: dict[str, Any]) -> list[NDArray[np.float32]]:
        self.feeds.append(input_feed)
        if self.error is not None:
            raise self.error
        return list(self.outputs)


class FakeModelManager:
    """ModelManager that hands out a prepared FakeSession."""

    def __init__(self, session: FakeSession) -> None:
        self.session = session
        self.loaded = False
        self.shutdown_calls = 0

    @property
    def model_name(self) -> str:
        return "fake-mobilenet.onnx"

    def ensure_downloaded(self) -> Path:
        return Path("fake-mobilenet.onnx")

    def get_session(self) -> FakeSession:
        self.loaded = True
        return self.session

    def is_loaded(self) -> bool:
        return self.loaded

    def shutdown(self) -> None:
        self.loaded = False
        self.shutdown_calls += 1


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def make_embedder() -> Callable[..., ImageEmbedder]:
    """Build an ImageEmbedder around a FakeSession; extra kwargs become Settings."""

    def _make(session: FakeSession | None = None, **settings: Any) -> ImageEmbedder:
        manager = FakeModelManager(session if session is not None else FakeSession())
        return ImageEmbedder(Settings(**settings), model_manager=manager)

    return _make

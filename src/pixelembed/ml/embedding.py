"""Reduce a model's 4-D feature map to a 1-D embedding vector."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np

from pixelembed.errors import InvalidArgumentError, TensorShapeError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class PoolingStrategy(StrEnum):
    MEAN = "mean"
    MAX = "max"
    CENTER = "center"


def _feature_map(tensor: NDArray[np.floating] | None) -> NDArray[np.floating]:
    """Validate an (N, C, H, W) tensor and return the C x H x W map of batch 0."""
    if tensor is None:
        raise InvalidArgumentError("Output tensor must not be None")
    array = np.asarray(tensor)
    if array.ndim != 4:
        raise TensorShapeError(f"Expected a rank-4 (N, C, H, W) tensor, got shape {array.shape}")
    if 0 in array.shape:
        raise TensorShapeError(f"Output tensor has an empty dimension: {array.shape}")
    return array[0]


def global_average_pool(tensor: NDArray[np.floating] | None) -> NDArray[np.float32]:
    """Mean of each channel over its H x W values (batch 0 only)."""
    fmap = _feature_map(tensor)
    return fmap.mean(axis=(1, 2), dtype=np.float64).astype(np.float32)


def global_max_pool(tensor: NDArray[np.floating] | None) -> NDArray[np.float32]:
    """Max of each channel over its H x W values (batch 0 only)."""
    fmap = _feature_map(tensor)
    return fmap.max(axis=(1, 2)).astype(np.float32)


def center_point(tensor: NDArray[np.floating] | None) -> NDArray[np.float32]:
    """Per-channel value at the spatial location nearest the map's center."""
    fmap = _feature_map(tensor)
    _, height, width = fmap.shape
    return fmap[:, height // 2, width // 2].astype(np.float32)


_POOLING_FUNCTIONS: dict[PoolingStrategy, Callable[[NDArray[np.floating] | None], NDArray[np.float32]]] = {
    PoolingStrategy.MEAN: global_average_pool,
    PoolingStrategy.MAX: global_max_pool,
    PoolingStrategy.CENTER: center_point,
}


def pool(
    tensor: NDArray[np.floating] | None,
    strategy: PoolingStrategy | str = PoolingStrategy.MEAN,
) -> NDArray[np.float32]:
    """Reduce ``tensor`` with the named strategy."""
    return _POOLING_FUNCTIONS[PoolingStrategy(strategy)](tensor)


def select_output(
    outputs: Sequence[NDArray[np.floating]],
    names: Sequence[str],
    preferred: str | None,
) -> NDArray[np.floating]:
    """Pick the output bound to ``preferred``, else the first one.

    Raises:
        TensorShapeError: If the model produced no outputs at all.
    """
    if not outputs:
        raise TensorShapeError("Model produced no output tensors")
    if preferred is None:
        return outputs[0]
    if preferred in names:
        return outputs[list(names).index(preferred)]
    logger.warning("Output '%s' not found among %s; using the first output", preferred, list(names))
    return outputs[0]


@dataclass(frozen=True)
class EmbeddingStats:
    """Summary statistics of a vector, for diagnostics."""

    dimension: int
    minimum: float
    maximum: float
    mean: float
    nonzero: int

    @classmethod
    def from_vector(cls, vector: NDArray[np.floating]) -> EmbeddingStats:
        values = np.asarray(vector, dtype=np.float64).reshape(-1)
        if values.size == 0:
            raise InvalidArgumentError("Cannot summarize an empty vector")
        return cls(
            dimension=int(values.size),
            minimum=float(values.min()),
            maximum=float(values.max()),
            mean=float(values.mean()),
            nonzero=int(np.count_nonzero(values)),
        )

    def describe(self) -> str:
        return (
            f"dim={self.dimension} range=[{self.minimum:.4f}, {self.maximum:.4f}] "
            f"mean={self.mean:.4f} nonzero={self.nonzero}/{self.dimension}"
        )

"""Image embedding driver: preprocess, run the ONNX model, pool the feature map."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from onnxruntime.capi.onnxruntime_pybind11_state import Fail, InvalidArgument, RuntimeException

from pixelembed.errors import InferenceError, TensorShapeError
from pixelembed.ml.embedding import PoolingStrategy, pool, select_output
from pixelembed.ml.model_manager import OnnxModelManager
from pixelembed.ml.preprocessing import preprocess_to_tensor
from pixelembed.ml.processor_config import ProcessorConfig

if TYPE_CHECKING:
    from types import TracebackType

    from numpy.typing import NDArray

    from pixelembed.config import Settings
    from pixelembed.ml.model_manager import ModelManager
    from pixelembed.ml.preprocessing import ImageSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TensorInfo:
    """Name, declared shape, and element type of a model input or output.

    Symbolic dimensions (e.g. ``"batch_size"``) are kept as strings.
    """

    name: str
    shape: tuple[int | str | None, ...]
    type: str

    @classmethod
    def from_node_arg(cls, node: Any) -> TensorInfo:
        return cls(name=node.name, shape=tuple(node.shape), type=node.type)


@dataclass(frozen=True)
class ModelDescription:
    inputs: list[TensorInfo]
    outputs: list[TensorInfo]


def load_processor_config(settings: Settings) -> ProcessorConfig:
    """Return the configured preprocessing contract, or the defaults."""
    if settings.preprocessor_config:
        logger.info("Loading preprocessor config from %s", settings.preprocessor_config)
        return ProcessorConfig.from_hf_json(settings.preprocessor_config)
    return ProcessorConfig()


def check_input_shape(declared: TensorInfo, shape: tuple[int, ...]) -> None:
    """Verify a tensor against a model-declared input shape.

    Only concrete integer dimensions are compared.

    Raises:
        TensorShapeError: If the rank or a fixed dimension differs.
    """
    if len(declared.shape) != len(shape):
        raise TensorShapeError(
            f"Input '{declared.name}' expects rank {len(declared.shape)} {declared.shape}, got shape {shape}"
        )
    for expected, actual in zip(declared.shape, shape, strict=True):
        if isinstance(expected, int) and expected > 0 and expected != actual:
            raise TensorShapeError(f"Input '{declared.name}' expects shape {declared.shape}, got {shape}")


class ImageEmbedder:
    """Turns images into embedding vectors with a single ONNX model.

    Use as a context manager so the model session is released on every exit
    path::

        with ImageEmbedder(settings) as embedder:
            vector = embedder.embed("photo.jpg")
    """

    def __init__(
        self,
        settings: Settings,
        model_manager: ModelManager | None = None,
        processor_config: ProcessorConfig | None = None,
    ) -> None:
        self._settings = settings
        self._model_manager: ModelManager = (
            model_manager if model_manager is not None else OnnxModelManager(settings)
        )
        self._processor_config = (
            processor_config if processor_config is not None else load_processor_config(settings)
        )
        self._pooling = PoolingStrategy(settings.pooling)

    def __enter__(self) -> ImageEmbedder:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- Properties ---------------------------------------------------------

    @property
    def processor_config(self) -> ProcessorConfig:
        return self._processor_config

    @property
    def pooling(self) -> PoolingStrategy:
        return self._pooling

    @property
    def model_manager(self) -> ModelManager:
        return self._model_manager

    # -- Public API ---------------------------------------------------------

    def describe_model(self) -> ModelDescription:
        """Return the model's declared inputs and outputs."""
        session = self._model_manager.get_session()
        return ModelDescription(
            inputs=[TensorInfo.from_node_arg(n) for n in session.get_inputs()],
            outputs=[TensorInfo.from_node_arg(n) for n in session.get_outputs()],
        )

    def run(self, pixel_values: NDArray[np.float32]) -> NDArray[np.floating]:
        """Run the model on a (1, 3, H, W) tensor and return the selected raw output.

        Raises:
            TensorShapeError: If the tensor does not fit the model's input, or
                the model returns no outputs.
            InferenceError: If ONNX Runtime fails.
        """
        session = self._model_manager.get_session()
        input_info = self._resolve_input(session)
        check_input_shape(input_info, tuple(pixel_values.shape))

        output_names = [o.name for o in session.get_outputs()]
        try:
            outputs = session.run(None, {input_info.name: pixel_values.astype(np.float32, copy=False)})
        except (Fail, InvalidArgument, RuntimeException) as exc:
            raise InferenceError(f"Inference failed: {exc}") from exc

        return select_output(outputs, output_names, self._settings.output_name)

    def embed(self, image: ImageSource | None, pooling: PoolingStrategy | str | None = None) -> NDArray[np.float32]:
        """Preprocess ``image``, run the model, and pool the feature map."""
        strategy = PoolingStrategy(pooling) if pooling is not None else self._pooling
        feature_map = self.run(preprocess_to_tensor(image, self._processor_config))
        return pool(feature_map, strategy)

    def embed_all(self, image: ImageSource | None) -> dict[PoolingStrategy, NDArray[np.float32]]:
        """Run the model once and reduce the output with every pooling strategy."""
        feature_map = self.run(preprocess_to_tensor(image, self._processor_config))
        return {strategy: pool(feature_map, strategy) for strategy in PoolingStrategy}

    def close(self) -> None:
        self._model_manager.shutdown()

    # -- Internal -----------------------------------------------------------

    def _resolve_input(self, session: Any) -> TensorInfo:
        inputs = [TensorInfo.from_node_arg(n) for n in session.get_inputs()]
        if not inputs:
            raise TensorShapeError("Model declares no inputs")
        for info in inputs:
            if info.name == self._settings.input_name:
                return info
        logger.warning(
            "Input '%s' not found among %s; binding to '%s'",
            self._settings.input_name,
            [i.name for i in inputs],
            inputs[0].name,
        )
        return inputs[0]

"""Model manager: locate, download, load, and release the ONNX model.

The model comes either from a local file (``PIXELEMBED_MODEL_PATH``) or from
a HuggingFace Hub repository (``PIXELEMBED_MODEL_REPO_ID``). One
InferenceSession is created lazily and cached until shutdown.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import (
    ExecutionMode,
    Fail,
    InvalidArgument,
    InvalidProtobuf,
    NoSuchFile,
)

from pixelembed.errors import InferenceError, ModelNotConfiguredError

if TYPE_CHECKING:
    from pixelembed.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    @property
    def model_name(self) -> str:
        """Return a human-readable identifier of the configured model."""
        ...

    def ensure_downloaded(self) -> Path:
        """Ensure the model file is available locally and return its path."""
        ...

    def get_session(self) -> InferenceSession:
        """Return the cached or newly created InferenceSession."""
        ...

    def is_loaded(self) -> bool:
        """Return True if a session is currently held."""
        ...

    def shutdown(self) -> None:
        """Release the cached session."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Resolves the model file and owns its ONNX Runtime session."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self._session: InferenceSession | None = None
        self._model_path: Path | None = None

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @property
    def model_name(self) -> str:
        settings = self._settings
        if settings.model_path:
            return Path(settings.model_path).name
        if settings.model_repo_id:
            parts = [settings.model_repo_id, settings.model_subfolder, settings.model_filename]
            return "/".join(p for p in parts if p)
        return "<unconfigured>"

    def ensure_downloaded(self) -> Path:
        """Return the local model path, downloading from the Hub if necessary.

        Raises:
            ModelNotConfiguredError: If no model source is configured.
            FileNotFoundError: If a local model path does not exist.
        """
        if self._model_path is not None and self._model_path.exists():
            return self._model_path

        settings = self._settings
        if settings.model_path:
            path = Path(settings.model_path)
            if not path.is_file():
                raise FileNotFoundError(f"Model file not found: {path}")
        elif settings.model_repo_id:
            models_dir = Path(settings.models_dir)
            models_dir.mkdir(parents=True, exist_ok=True)
            path = Path(
                hf_hub_download(
                    repo_id=settings.model_repo_id,
                    filename=settings.model_filename,
                    subfolder=settings.model_subfolder,
                    local_dir=str(models_dir),
                )
            )
            logger.info("Downloaded %s to %s", self.model_name, path)
        else:
            raise ModelNotConfiguredError("No model configured: set PIXELEMBED_MODEL_PATH or PIXELEMBED_MODEL_REPO_ID")

        self._model_path = path
        return path

    def get_session(self) -> InferenceSession:
        """Return the cached InferenceSession, creating it if needed."""
        with self._lock:
            if self._session is not None:
                return self._session

        model_path = self.ensure_downloaded()
        try:
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except (Fail, InvalidArgument, InvalidProtobuf, NoSuchFile) as exc:
            raise InferenceError(f"Failed to load ONNX model {model_path}: {exc}") from exc

        with self._lock:
            # Another thread may have created it while we loaded.
            if self._session is not None:
                return self._session
            self._session = session
            logger.info("Loaded session for %s", self.model_name)
            return session

    def is_loaded(self) -> bool:
        with self._lock:
            return self._session is not None

    def shutdown(self) -> None:
        """Drop the cached session so ONNX Runtime can free it."""
        with self._lock:
            if self._session is not None:
                self._session = None
                logger.info("Model session released")

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        if self._settings.device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts

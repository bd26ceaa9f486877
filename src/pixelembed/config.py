"""Environment-based configuration for pixelembed."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from PIXELEMBED_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PIXELEMBED_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "openvino"] = "cpu"

    # Model source: a local file wins over a Hub repository
    model_path: str | None = None
    model_repo_id: str | None = None
    model_filename: str = "model.onnx"
    model_subfolder: str | None = None
    models_dir: str = "models"

    # HuggingFace preprocessor_config.json (None = built-in defaults)
    preprocessor_config: str | None = None

    # Tensor binding
    input_name: str = "pixel_values"
    output_name: str = "last_hidden_state"
    pooling: Literal["mean", "max", "center"] = "mean"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()

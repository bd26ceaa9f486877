"""Pydantic request/response schemas for the pixelembed API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class EmbeddingResponse(BaseModel):
    """Embedding computed for one uploaded image."""

    model: str
    pooling: str = Field(description="Pooling strategy: 'mean', 'max', or 'center'")
    dimension: int
    vector: list[float] = Field(description="Embedding vector, one value per feature-map channel")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    device: str
    model: str
    model_loaded: bool


class TensorDescription(BaseModel):
    """A model input or output as declared in the ONNX graph."""

    name: str
    shape: list[int | str | None]
    type: str


class PreprocessingDescription(BaseModel):
    """Active preprocessing parameters."""

    do_resize: bool
    shortest_edge: int
    resample: str
    do_center_crop: bool
    crop_width: int
    crop_height: int
    do_rescale: bool
    rescale_factor: float
    do_normalize: bool
    image_mean: list[float]
    image_std: list[float]


class ModelResponse(BaseModel):
    """Response for the model description endpoint."""

    model: str
    inputs: list[TensorDescription]
    outputs: list[TensorDescription]
    preprocessing: PreprocessingDescription


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str

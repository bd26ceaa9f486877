"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, UploadFile, status
from fastapi.responses import JSONResponse

from pixelembed.api.middleware import require_api_key
from pixelembed.api.schemas import (
    EmbeddingResponse,
    ErrorResponse,
    HealthResponse,
    ModelResponse,
    PreprocessingDescription,
    TensorDescription,
)
from pixelembed.errors import (
    ImageLoadError,
    InferenceError,
    InvalidArgumentError,
    ModelNotConfiguredError,
)
from pixelembed.ml.embedding import PoolingStrategy
from pixelembed.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from pixelembed.config import Settings
    from pixelembed.ml.embedder import ImageEmbedder, TensorInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

_protected = [Depends(require_api_key)]


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_embedder(request: Request) -> ImageEmbedder:
    embedder: ImageEmbedder = request.app.state.embedder
    return embedder


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _describe_tensor(info: TensorInfo) -> TensorDescription:
    return TensorDescription(name=info.name, shape=list(info.shape), type=info.type)


@router.post(
    "/embed",
    response_model=EmbeddingResponse,
    dependencies=_protected,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Compute an image embedding",
)
def embed_image(request: Request, file: UploadFile, pooling: str | None = None) -> EmbeddingResponse | JSONResponse:
    """Decode an uploaded image and return its embedding vector."""
    settings = _get_settings(request)
    embedder = _get_embedder(request)

    data = file.file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, f"File exceeds {settings.max_file_size} bytes")

    try:
        strategy = PoolingStrategy(pooling) if pooling else embedder.pooling
    except ValueError:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, f"Unknown pooling strategy: {pooling}")

    try:
        image = decode_image(data, max_pixels=settings.max_image_pixels)
        vector = embedder.embed(image, pooling=strategy)
    except ImageLoadError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except (ModelNotConfiguredError, FileNotFoundError) as exc:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    except InferenceError as exc:
        logger.error("Inference runtime error for %s: %s", file.filename, exc)
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc))
    except InvalidArgumentError as exc:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    return EmbeddingResponse(
        model=embedder.model_manager.model_name,
        pooling=str(strategy),
        dimension=int(vector.shape[0]),
        vector=vector.tolist(),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status. Never requires the API key."""
    settings = _get_settings(request)
    embedder = _get_embedder(request)
    return HealthResponse(
        status="ok",
        device=settings.device,
        model=embedder.model_manager.model_name,
        model_loaded=embedder.model_manager.is_loaded(),
    )


@router.get(
    "/model",
    response_model=ModelResponse,
    dependencies=_protected,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Describe the loaded model",
)
def describe_model(request: Request) -> ModelResponse | JSONResponse:
    """Return the model's tensor signature and the active preprocessing parameters."""
    embedder = _get_embedder(request)
    try:
        description = embedder.describe_model()
    except (ModelNotConfiguredError, FileNotFoundError) as exc:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    except InferenceError as exc:
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc))

    config = embedder.processor_config
    return ModelResponse(
        model=embedder.model_manager.model_name,
        inputs=[_describe_tensor(i) for i in description.inputs],
        outputs=[_describe_tensor(o) for o in description.outputs],
        preprocessing=PreprocessingDescription(
            do_resize=config.do_resize,
            shortest_edge=config.shortest_edge,
            resample=str(config.resample),
            do_center_crop=config.do_center_crop,
            crop_width=config.crop_width,
            crop_height=config.crop_height,
            do_rescale=config.do_rescale,
            rescale_factor=config.rescale_factor,
            do_normalize=config.do_normalize,
            image_mean=list(config.image_mean),
            image_std=list(config.image_std),
        ),
    )

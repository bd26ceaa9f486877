"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pixelembed.api.routes import router
from pixelembed.config import get_settings
from pixelembed.ml.embedder import ImageEmbedder

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, release the model on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    logger.info(
        "Starting pixelembed (device=%s, input=%s, output=%s, pooling=%s)",
        settings.device,
        settings.input_name,
        settings.output_name,
        settings.pooling,
    )

    embedder = ImageEmbedder(settings)
    app.state.embedder = embedder

    logger.info("pixelembed ready (model=%s)", embedder.model_manager.model_name)
    try:
        yield
    finally:
        logger.info("Shutting down pixelembed")
        embedder.close()
        logger.info("pixelembed shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="pixelembed",
        description="Image embedding extraction with ONNX vision models",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()

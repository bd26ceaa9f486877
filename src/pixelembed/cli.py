"""Command-line demos: build a test image, preprocess, inspect a model, embed, serve."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

import numpy as np

from pixelembed.config import Settings
from pixelembed.errors import InferenceError, PixelEmbedError
from pixelembed.ml.embedder import ImageEmbedder, load_processor_config
from pixelembed.ml.embedding import EmbeddingStats, PoolingStrategy
from pixelembed.ml.preprocessing import preprocess_image
from pixelembed.ml.synthetic import save_test_image

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("pixelembed")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "model_path": getattr(args, "model", None),
        "model_repo_id": getattr(args, "repo_id", None),
        "preprocessor_config": getattr(args, "preprocessor_config", None),
        "input_name": getattr(args, "input_name", None),
        "output_name": getattr(args, "output_name", None),
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def _preview(values: np.ndarray, count: int) -> str:
    return np.array2string(values[:count], precision=4, separator=", ")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_create_test_image(args: argparse.Namespace) -> int:
    save_test_image(args.output, args.width, args.height)
    print(f"Test image written to {args.output}")
    return 0


def cmd_preprocess(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    config = load_processor_config(settings)
    data = preprocess_image(args.image, config)

    stats = EmbeddingStats.from_vector(data)
    print(f"Preprocessed {args.image}: {stats.dimension} values")
    print(f"  min={stats.minimum:.6f} max={stats.maximum:.6f} mean={stats.mean:.6f}")
    print(f"  first values: {_preview(data, args.preview)}")

    if args.output:
        data.astype("<f4").tofile(args.output)
        print(f"Raw little-endian float32 tensor written to {args.output}")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    with ImageEmbedder(settings) as embedder:
        description = embedder.describe_model()
        print(f"Model: {embedder.model_manager.model_name}")
        print("Inputs:")
        for info in description.inputs:
            print(f"  {info.name}: shape={list(info.shape)} type={info.type}")
        print("Outputs:")
        for info in description.outputs:
            print(f"  {info.name}: shape={list(info.shape)} type={info.type}")
    return 0


def cmd_embed(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    with ImageEmbedder(settings) as embedder:
        if args.compare:
            vectors = embedder.embed_all(args.image)
            for strategy, vector in vectors.items():
                print(f"{strategy:>6}: {EmbeddingStats.from_vector(vector).describe()}")
                print(f"        first values: {_preview(vector, args.preview)}")
            return 0

        vector = embedder.embed(args.image, pooling=args.pooling)
        print(f"Embedding ({args.pooling or embedder.pooling}): {EmbeddingStats.from_vector(vector).describe()}")
        print(f"  first values: {_preview(vector, args.preview)}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "pixelembed.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
    )
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_model_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", help="Path to a local ONNX model file")
    parser.add_argument("--repo-id", help="HuggingFace Hub repository to download the model from")
    parser.add_argument("--input-name", help="Model input to bind the image tensor to")
    parser.add_argument("--output-name", help="Model output holding the feature map")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pixelembed", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-test-image", help="Write the synthetic blue/red/green test image")
    create.add_argument("output", help="Output image path (format from extension)")
    create.add_argument("--width", type=int, default=300)
    create.add_argument("--height", type=int, default=200)
    create.set_defaults(func=cmd_create_test_image)

    prep = sub.add_parser("preprocess", help="Preprocess an image and print tensor statistics")
    prep.add_argument("image")
    prep.add_argument("--preprocessor-config", help="HuggingFace preprocessor_config.json")
    prep.add_argument("--output", help="Write the flattened tensor as raw float32")
    prep.add_argument("--preview", type=int, default=10)
    prep.set_defaults(func=cmd_preprocess)

    inspect = sub.add_parser("inspect", help="Print the model's inputs and outputs")
    _add_model_args(inspect)
    inspect.set_defaults(func=cmd_inspect)

    embed = sub.add_parser("embed", help="Compute an image embedding")
    embed.add_argument("image")
    _add_model_args(embed)
    embed.add_argument("--preprocessor-config", help="HuggingFace preprocessor_config.json")
    embed.add_argument("--pooling", choices=[s.value for s in PoolingStrategy])
    embed.add_argument("--compare", action="store_true", help="Show every pooling strategy")
    embed.add_argument("--preview", type=int, default=5)
    embed.set_defaults(func=cmd_embed)

    serve = sub.add_parser("serve", help="Run the HTTP embedding service")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    try:
        return args.func(args)
    except InferenceError as exc:
        logger.error("Inference runtime error: %s", exc)
        return 2
    except (PixelEmbedError, FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Command line front end: decode a file, resize or upscale it, write the result."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from neural_resize.config import get_config
from neural_resize.errors import UpscaleError
from neural_resize.logger import setup_logger
from neural_resize.raster import RasterProcessor
from neural_resize.service import DecoderService

logger = setup_logger(__name__)
config = get_config()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neural-resize",
        description="Resize an image, upscaling with an ONNX super-resolution model",
    )
    parser.add_argument("input", type=Path, help="Encoded source image")
    parser.add_argument("output", type=Path, help="Where to write the PNG result")
    parser.add_argument("--width", type=int, required=True, help="Target width")
    parser.add_argument("--height", type=int, required=True, help="Target height")
    parser.add_argument("--model", default=None, help="Path to a 2x ONNX model")
    parser.add_argument(
        "--backend",
        default=config.EXECUTION_BACKEND,
        help="Execution backend: CPU, CUDA, ROCM or DML",
    )
    parser.add_argument(
        "--crop", action="store_true", help="Entropy-crop instead of fitting"
    )
    parser.add_argument("--cache-key", default=None, help="Result cache key")
    parser.add_argument(
        "--temp-dir", default=config.TEMP_DIR, help="Scratch directory"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        encoded = args.input.read_bytes()
    except OSError as exc:
        logger.error("Cannot read %s: %s", args.input, exc)
        return 2

    service = DecoderService()
    try:
        service.initialize(args.backend, args.temp_dir)
        result = service.decode_and_resize(
            encoded, args.model, args.cache_key, args.width, args.height, args.crop
        )
        encoded_result = RasterProcessor.encode_png(result)
    except UpscaleError as exc:
        logger.error("Resize failed: %s", exc)
        return 1
    finally:
        service.shutdown()

    try:
        args.output.write_bytes(encoded_result)
    except OSError as exc:
        logger.error("Cannot write %s: %s", args.output, exc)
        return 2

    logger.info("Wrote %dx%d image to %s", result.width, result.height, args.output)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

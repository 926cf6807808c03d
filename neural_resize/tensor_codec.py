"""Conversion between interleaved uint8 rasters and planar float32 tensors."""

from __future__ import annotations

import numpy as np

from neural_resize.errors import TensorError
from neural_resize.raster import RasterImage

TENSOR_CHANNELS = 3


def encode(raster: RasterImage) -> np.ndarray:
    """Convert an RGB raster to a ``(1, 3, H, W)`` float32 tensor in ``[0, 1]``.

    The raster must already be normalized to three channels; callers flatten
    alpha and convert colorspaces before encoding.
    """
    if raster.channels != TENSOR_CHANNELS:
        raise TensorError(
            f"Tensor encoding needs {TENSOR_CHANNELS} channels, got {raster.channels}"
        )
    if raster.height == 0 or raster.width == 0:
        raise TensorError("Cannot encode an empty image")

    planar = raster.pixels.transpose(2, 0, 1).astype(np.float32)
    planar /= 255.0
    return np.ascontiguousarray(planar[np.newaxis, ...])


def decode(tensor: np.ndarray, height: int, width: int) -> RasterImage:
    """Convert a planar float tensor back into an interleaved RGB raster.

    Values are clamped to ``[0, 1]`` before quantization, since model output
    may overshoot. Quantization rounds half to even.
    """
    values = np.asarray(tensor, dtype=np.float32)
    expected = TENSOR_CHANNELS * height * width
    if height <= 0 or width <= 0 or values.size != expected:
        raise TensorError(
            f"Tensor of shape {values.shape} does not hold a "
            f"{TENSOR_CHANNELS}x{height}x{width} image"
        )

    planar = values.reshape(TENSOR_CHANNELS, height, width)
    clamped = np.clip(np.nan_to_num(planar, nan=0.0), 0.0, 1.0)
    quantized = np.rint(clamped * 255.0).astype(np.uint8)
    return RasterImage(np.ascontiguousarray(quantized.transpose(1, 2, 0)), "RGB")


__all__ = ["TENSOR_CHANNELS", "encode", "decode"]

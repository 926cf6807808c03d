"""Typed failures raised by the decode/upscale pipeline."""

from __future__ import annotations

from typing import Optional


class UpscaleError(RuntimeError):
    """Base error for decode, normalization, inference and resize failures."""

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message if not detail else f"{message}: {detail}")
        self.message = message
        self.detail = detail


class DecodeError(UpscaleError):
    """Raised when the encoded input cannot be decoded."""


class ColorNormalizationError(UpscaleError):
    """Raised when colorspace conversion or alpha flattening fails."""


class SessionInitError(UpscaleError):
    """Raised when the inference backend or session cannot be constructed."""


class TensorError(UpscaleError):
    """Raised when a bound value is not a tensor or has the wrong shape."""


class RunError(UpscaleError):
    """Raised when the inference backend fails while executing the model."""


class ResizeError(UpscaleError):
    """Raised when resizing or cropping the result fails."""


class ServiceNotInitializedError(UpscaleError):
    """Raised when decode_and_resize is called before initialize."""


__all__ = [
    "UpscaleError",
    "DecodeError",
    "ColorNormalizationError",
    "SessionInitError",
    "TensorError",
    "RunError",
    "ResizeError",
    "ServiceNotInitializedError",
]

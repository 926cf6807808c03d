"""Decide between identity, thumbnailing and neural upscaling for one request.

Stages:
    IDENTITY       source already has the requested size
    SIMPLE_RESIZE  source covers the target in both axes, thumbnail it
    ML_UPSCALE     target exceeds the source, run the 2x model
    POST_CROP      force an exact size after either resize path
    DONE
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional, Tuple

from neural_resize import tensor_codec
from neural_resize.errors import (
    ResizeError,
    ServiceNotInitializedError,
    TensorError,
)
from neural_resize.inference_session import InferenceSessionManager
from neural_resize.logger import setup_logger
from neural_resize.raster import RasterImage, RasterProcessor
from neural_resize.result_cache import ResultCache

logger = setup_logger(__name__)

# Fixed by the model architecture
MODEL_SCALE = 2


class UpscaleStage(Enum):
    IDENTITY = "identity"
    SIMPLE_RESIZE = "simple_resize"
    ML_UPSCALE = "ml_upscale"
    POST_CROP = "post_crop"
    DONE = "done"


def plan(source_size: Tuple[int, int], target_size: Tuple[int, int]) -> UpscaleStage:
    """Pick the first stage for a (width, height) source and target."""
    src_w, src_h = source_size
    dst_w, dst_h = target_size
    if (src_w, src_h) == (dst_w, dst_h):
        return UpscaleStage.IDENTITY
    if src_w >= dst_w and src_h >= dst_h:
        return UpscaleStage.SIMPLE_RESIZE
    return UpscaleStage.ML_UPSCALE


class UpscaleOrchestrator:
    """Drives the session manager, result cache and tensor codec.

    ``_lock`` guards the session manager and the cache. It is held for the
    whole ML critical section: ensure-session, cache lookup, normalization,
    encoding, the inference run, decoding and cache insert. Identity and
    thumbnail requests never take it. Once ``close`` has run, ML requests are
    refused so no session is rebuilt on a released engine.
    """

    def __init__(
        self,
        sessions: InferenceSessionManager,
        cache: Optional[ResultCache] = None,
        processor: type = RasterProcessor,
    ) -> None:
        self.sessions = sessions
        self.cache = cache if cache is not None else ResultCache()
        self.processor = processor
        self._lock = threading.Lock()
        self._inference_count = 0
        self._last_stage = UpscaleStage.DONE
        self._last_path: Tuple[UpscaleStage, ...] = ()
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def upscale(
        self,
        source: RasterImage,
        model_path: Optional[str],
        cache_key: Optional[str],
        width: int,
        height: int,
        crop: bool = False,
    ) -> RasterImage:
        """Return ``source`` resized to exactly ``width`` x ``height``.

        The one exception is a missing model path on the upscale route, which
        returns ``source`` unchanged.
        """
        if width <= 0 or height <= 0:
            raise ResizeError(f"Invalid target size {width}x{height}")

        stage = plan(source.size, (width, height))
        path = [stage]

        if stage is UpscaleStage.IDENTITY:
            self._record(path)
            return source

        if stage is UpscaleStage.SIMPLE_RESIZE:
            result = self.processor.smart_resize(source, width, height, crop)
        else:
            if not model_path:
                logger.warning(
                    "No model configured; returning %dx%d source unmodified",
                    source.width,
                    source.height,
                )
                self._record(path)
                return source
            result = self._ml_upscale(source, model_path, cache_key)

        if result.size != (width, height):
            path.append(UpscaleStage.POST_CROP)
            result = self.processor.smart_resize(result, width, height, True)

        self._record(path)
        return result

    @property
    def inference_count(self) -> int:
        return self._inference_count

    @property
    def last_stage(self) -> UpscaleStage:
        return self._last_stage

    @property
    def last_path(self) -> Tuple[UpscaleStage, ...]:
        return self._last_path

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self.sessions.close()

    # ------------------------------------------------------------------
    # ML path
    # ------------------------------------------------------------------
    def _ml_upscale(
        self, source: RasterImage, model_path: str, cache_key: Optional[str]
    ) -> RasterImage:
        with self._lock:
            if self._closed:
                raise ServiceNotInitializedError(
                    "Upscale engine was shut down before the request ran"
                )
            context = self.sessions.ensure_session(model_path)

            cached = self.cache.lookup(cache_key)
            if cached is not None:
                logger.debug("Cache hit for %s", cache_key)
                return cached

            normalized = self._normalize(source)
            tensor = tensor_codec.encode(normalized)
            output = self.sessions.run(context, tensor)
            self._inference_count += 1

            out_h = normalized.height * MODEL_SCALE
            out_w = normalized.width * MODEL_SCALE
            if output.shape != (1, tensor_codec.TENSOR_CHANNELS, out_h, out_w):
                raise TensorError(
                    f"Model returned {output.shape}, expected "
                    f"(1, {tensor_codec.TENSOR_CHANNELS}, {out_h}, {out_w})"
                )
            upscaled = tensor_codec.decode(output, out_h, out_w)
            logger.info(
                "Upscaled %dx%d -> %dx%d with %s",
                source.width,
                source.height,
                out_w,
                out_h,
                model_path,
            )

            self.cache.insert(cache_key, upscaled)
            return upscaled

    def _normalize(self, source: RasterImage) -> RasterImage:
        image = source
        if image.colorspace != "srgb":
            image = self.processor.convert_colorspace(image, "srgb")
        if image.channels == 4:
            image = self.processor.flatten_alpha(image)
        return image

    def _record(self, path) -> None:
        self._last_path = tuple(path) + (UpscaleStage.DONE,)
        self._last_stage = path[-1]


__all__ = ["MODEL_SCALE", "UpscaleStage", "plan", "UpscaleOrchestrator"]

"""Entry points exposed to callers: initialize once, then decode_and_resize."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Union

import onnxruntime as ort

from neural_resize.config import get_config
from neural_resize.errors import ServiceNotInitializedError
from neural_resize.execution import ExecutionBackend, resolve_backend
from neural_resize.inference_session import InferenceSessionManager
from neural_resize.logger import setup_logger
from neural_resize.orchestrator import UpscaleOrchestrator
from neural_resize.raster import RasterImage, RasterProcessor
from neural_resize.result_cache import DiskResultStore, ResultCache, make_policy

logger = setup_logger(__name__)
config = get_config()


class DecoderService:
    """Long-lived owner of the inference engine, result cache and orchestrator."""

    def __init__(self) -> None:
        self._orchestrator: Optional[UpscaleOrchestrator] = None
        self._backend: Optional[ExecutionBackend] = None
        self._temp_dir: Optional[Path] = None
        self._init_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._orchestrator is not None

    @property
    def backend(self) -> Optional[ExecutionBackend]:
        return self._backend

    @property
    def temp_dir(self) -> Optional[Path]:
        return self._temp_dir

    @property
    def orchestrator(self) -> UpscaleOrchestrator:
        if self._orchestrator is None:
            raise ServiceNotInitializedError("DecoderService.initialize was not called")
        return self._orchestrator

    def initialize(
        self,
        backend_name: Optional[str] = None,
        temp_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        """Resolve the execution backend and build the engine.

        Args:
            backend_name: CPU, CUDA, ROCM or DML (defaults to EXECUTION_BACKEND)
            temp_dir: Scratch directory, also home of the persistent cache tier
        """
        with self._init_lock:
            ort.set_default_logger_severity(config.ORT_LOG_SEVERITY)

            backend = resolve_backend(
                backend_name or config.EXECUTION_BACKEND,
                device_id=config.GPU_DEVICE_ID,
                gpu_mem_limit=config.GPU_MEM_LIMIT,
            )
            scratch = Path(temp_dir or config.TEMP_DIR)
            scratch.mkdir(parents=True, exist_ok=True)

            disk_store = None
            if config.CACHE_PERSIST:
                disk_store = DiskResultStore(
                    scratch / "upscaled", max_entries=config.DISK_CACHE_MAX_ENTRIES
                )
            cache = ResultCache(
                capacity=config.CACHE_CAPACITY,
                policy=make_policy(config.CACHE_POLICY),
                disk_store=disk_store,
            )
            orchestrator = UpscaleOrchestrator(
                InferenceSessionManager(backend), cache=cache
            )

            previous = self._orchestrator
            self._orchestrator = orchestrator
            self._backend = backend
            self._temp_dir = scratch
            if previous is not None:
                previous.close()

        logger.info(
            "Decoder service initialized (backend=%s, temp_dir=%s)",
            backend.name,
            scratch,
        )

    def decode_and_resize(
        self,
        encoded: bytes,
        model_path: Optional[str],
        cache_key: Optional[str],
        width: int,
        height: int,
        crop: bool = False,
    ) -> RasterImage:
        """Decode ``encoded`` and bring it to exactly ``width`` x ``height``."""
        orchestrator = self.orchestrator
        source = RasterProcessor.decode_from_bytes(encoded)
        return orchestrator.upscale(source, model_path, cache_key, width, height, crop)

    def shutdown(self) -> None:
        with self._init_lock:
            if self._orchestrator is not None:
                self._orchestrator.close()
                self._orchestrator = None
                logger.info("Decoder service shut down")


_SERVICE: Optional[DecoderService] = None
_SERVICE_LOCK = threading.Lock()


def get_decoder_service() -> DecoderService:
    """Return a singleton DecoderService instance."""

    global _SERVICE
    if _SERVICE is None:
        with _SERVICE_LOCK:
            if _SERVICE is None:
                _SERVICE = DecoderService()
    return _SERVICE


def initialize(backend_name: str, temp_dir: Union[str, Path]) -> None:
    get_decoder_service().initialize(backend_name, temp_dir)


def decode_and_resize(
    encoded: bytes,
    model_path: Optional[str],
    cache_key: Optional[str],
    width: int,
    height: int,
    crop: bool = False,
) -> RasterImage:
    return get_decoder_service().decode_and_resize(
        encoded, model_path, cache_key, width, height, crop
    )


__all__ = [
    "DecoderService",
    "get_decoder_service",
    "initialize",
    "decode_and_resize",
]

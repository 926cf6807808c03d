"""Execution backends the inference session can be built for.

A backend is chosen once, when the service is initialized, and carries its own
provider configuration. Only the model may change afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from neural_resize.logger import setup_logger

logger = setup_logger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"

ProviderEntry = Tuple[str, Dict[str, Any]]


def _with_memory_limit(options: Dict[str, Any], limit: int) -> Dict[str, Any]:
    # 0 leaves the runtime default, which is unlimited
    if limit > 0:
        options["gpu_mem_limit"] = limit
    return options


@dataclass(frozen=True)
class CpuBackend:
    name = "CPU"
    provider = CPU_PROVIDER

    def providers(self) -> List[ProviderEntry]:
        return [(CPU_PROVIDER, {})]

    @property
    def arena_shrinkage(self) -> str:
        return "cpu:0"


@dataclass(frozen=True)
class CudaBackend:
    device_id: int = 0
    cudnn_conv_algo_search: str = "EXHAUSTIVE"
    gpu_mem_limit: int = 0

    name = "CUDA"
    provider = "CUDAExecutionProvider"

    def providers(self) -> List[ProviderEntry]:
        options = {
            "device_id": self.device_id,
            "cudnn_conv_algo_search": self.cudnn_conv_algo_search,
        }
        options = _with_memory_limit(options, self.gpu_mem_limit)
        return [(self.provider, options), (CPU_PROVIDER, {})]

    @property
    def arena_shrinkage(self) -> str:
        return f"cpu:0;gpu:{self.device_id}"


@dataclass(frozen=True)
class RocmBackend:
    device_id: int = 0
    miopen_conv_exhaustive_search: bool = False
    gpu_mem_limit: int = 0
    arena_extend_strategy: str = "kNextPowerOfTwo"
    do_copy_in_default_stream: bool = True

    name = "ROCM"
    provider = "ROCMExecutionProvider"

    def providers(self) -> List[ProviderEntry]:
        options = {
            "device_id": self.device_id,
            "miopen_conv_exhaustive_search": int(self.miopen_conv_exhaustive_search),
            "arena_extend_strategy": self.arena_extend_strategy,
            "do_copy_in_default_stream": int(self.do_copy_in_default_stream),
        }
        options = _with_memory_limit(options, self.gpu_mem_limit)
        return [(self.provider, options), (CPU_PROVIDER, {})]

    @property
    def arena_shrinkage(self) -> str:
        return f"cpu:0;gpu:{self.device_id}"


@dataclass(frozen=True)
class DirectMLBackend:
    device_id: int = 0

    name = "DML"
    provider = "DmlExecutionProvider"

    def providers(self) -> List[ProviderEntry]:
        return [(self.provider, {"device_id": self.device_id}), (CPU_PROVIDER, {})]

    @property
    def arena_shrinkage(self) -> str:
        # DirectML does not allocate from an onnxruntime arena
        return "cpu:0"


ExecutionBackend = Union[CpuBackend, CudaBackend, RocmBackend, DirectMLBackend]

BACKEND_TYPES = {
    "CPU": CpuBackend,
    "CUDA": CudaBackend,
    "ROCM": RocmBackend,
    "DML": DirectMLBackend,
    "DIRECTML": DirectMLBackend,
}


def resolve_backend(
    name: str, *, device_id: int = 0, gpu_mem_limit: int = 0
) -> ExecutionBackend:
    """Map a backend name (CPU, CUDA, ROCM, DML) onto its variant.

    Unknown names fall back to CPU with a warning.
    """
    normalized = (name or "CPU").strip().upper()
    backend_cls = BACKEND_TYPES.get(normalized)
    if backend_cls is None:
        logger.warning("Unknown execution backend '%s', falling back to CPU", name)
        return CpuBackend()
    if backend_cls is CpuBackend:
        return CpuBackend()
    if backend_cls is DirectMLBackend:
        return DirectMLBackend(device_id=device_id)
    return backend_cls(device_id=device_id, gpu_mem_limit=gpu_mem_limit)


def available_backends() -> List[str]:
    """Names of backends whose provider is compiled into the installed runtime."""
    try:
        import onnxruntime as ort

        available = set(ort.get_available_providers())
    except ImportError:
        logger.warning("ONNX Runtime not available")
        return []

    names = []
    for name, backend_cls in BACKEND_TYPES.items():
        if name == "DIRECTML":
            continue
        if backend_cls.provider in available:
            names.append(name)
    return names


__all__ = [
    "CPU_PROVIDER",
    "CpuBackend",
    "CudaBackend",
    "RocmBackend",
    "DirectMLBackend",
    "ExecutionBackend",
    "resolve_backend",
    "available_backends",
]

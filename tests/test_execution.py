"""Tests for execution backend resolution and provider configuration."""

import sys
from types import SimpleNamespace

from neural_resize.execution import (
    CPU_PROVIDER,
    CpuBackend,
    CudaBackend,
    DirectMLBackend,
    RocmBackend,
    available_backends,
    resolve_backend,
)


def test_resolve_known_names_case_insensitively():
    assert isinstance(resolve_backend("cpu"), CpuBackend)
    assert isinstance(resolve_backend("CUDA"), CudaBackend)
    assert isinstance(resolve_backend(" rocm "), RocmBackend)
    assert isinstance(resolve_backend("DML"), DirectMLBackend)
    assert isinstance(resolve_backend("DirectML"), DirectMLBackend)


def test_unknown_or_missing_name_falls_back_to_cpu():
    assert isinstance(resolve_backend("TPU"), CpuBackend)
    assert isinstance(resolve_backend(""), CpuBackend)
    assert isinstance(resolve_backend(None), CpuBackend)


def test_every_backend_ends_with_cpu_provider():
    for backend in (CpuBackend(), CudaBackend(), RocmBackend(), DirectMLBackend()):
        providers = backend.providers()
        assert providers[-1] == (CPU_PROVIDER, {})


def test_cuda_options_use_exhaustive_search_on_device():
    backend = resolve_backend("CUDA", device_id=1)

    name, options = backend.providers()[0]

    assert name == "CUDAExecutionProvider"
    assert options["device_id"] == 1
    assert options["cudnn_conv_algo_search"] == "EXHAUSTIVE"
    assert "gpu_mem_limit" not in options


def test_memory_limit_only_set_when_positive():
    limited = resolve_backend("CUDA", gpu_mem_limit=2 * 1024**3)
    _, options = limited.providers()[0]
    assert options["gpu_mem_limit"] == 2 * 1024**3

    _, rocm_options = RocmBackend(gpu_mem_limit=0).providers()[0]
    assert "gpu_mem_limit" not in rocm_options


def test_rocm_options():
    name, options = RocmBackend(device_id=2).providers()[0]

    assert name == "ROCMExecutionProvider"
    assert options["device_id"] == 2
    assert options["miopen_conv_exhaustive_search"] == 0
    assert options["arena_extend_strategy"] == "kNextPowerOfTwo"
    assert options["do_copy_in_default_stream"] == 1


def test_arena_shrinkage_covers_gpu_arena_for_gpu_backends():
    assert CpuBackend().arena_shrinkage == "cpu:0"
    assert DirectMLBackend().arena_shrinkage == "cpu:0"
    assert CudaBackend(device_id=3).arena_shrinkage == "cpu:0;gpu:3"
    assert RocmBackend().arena_shrinkage == "cpu:0;gpu:0"


def test_available_backends_reports_installed_providers(monkeypatch):
    runtime = SimpleNamespace(
        get_available_providers=lambda: ["CUDAExecutionProvider", CPU_PROVIDER]
    )
    monkeypatch.setitem(sys.modules, "onnxruntime", runtime)

    assert available_backends() == ["CPU", "CUDA"]

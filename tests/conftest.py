"""Shared fixtures for neural_resize tests.

Provides a stand-in for the onnxruntime module so session construction and
inference runs can be counted without a real model file.
"""

import io
import os
from types import SimpleNamespace

os.environ.setdefault("ENVIRONMENT", "testing")

import numpy as np
import pytest
from PIL import Image

from neural_resize import inference_session, service


def double_nearest(array: np.ndarray) -> np.ndarray:
    """The reference test model: nearest-neighbour 2x in both axes."""
    return np.repeat(np.repeat(array, 2, axis=2), 2, axis=3)


class FakeOrtValue:
    def __init__(self, array, tensor=True):
        self._array = array
        self._tensor = tensor

    @classmethod
    def ortvalue_from_numpy(cls, array, device_type="cpu", device_id=0):
        return cls(array)

    def is_tensor(self):
        return self._tensor

    def numpy(self):
        return self._array


class FakeRunOptions:
    def __init__(self):
        self.entries = {}

    def add_run_config_entry(self, key, value):
        self.entries[key] = value


class FakeSession:
    def __init__(self, runtime, path, sess_options=None, providers=None):
        if path in runtime.fail_paths:
            raise RuntimeError(f"[ONNXRuntimeError] : 3 : NO_SUCHFILE : {path}")
        self.runtime = runtime
        self.path = path
        self.options = sess_options
        self.providers = providers
        self.run_options = []

    def get_inputs(self):
        return [SimpleNamespace(name=name) for name in self.runtime.input_names]

    def get_outputs(self):
        return [SimpleNamespace(name=name) for name in self.runtime.output_names]

    def run_with_ort_values(self, output_names, inputs, run_options):
        self.runtime.runs += 1
        self.run_options.append(run_options)
        (value,) = inputs.values()
        array = value.numpy()
        self.runtime.inputs.append(array.copy())
        return [FakeOrtValue(self.runtime.model(array), self.runtime.output_is_tensor)]


class FakeRuntime:
    """Just enough of the onnxruntime module surface for the session manager."""

    GraphOptimizationLevel = SimpleNamespace(
        ORT_DISABLE_ALL="disable", ORT_ENABLE_BASIC="basic", ORT_ENABLE_ALL="all"
    )
    OrtValue = FakeOrtValue

    def __init__(self):
        self.sessions = []
        self.runs = 0
        self.inputs = []
        self.fail_paths = set()
        self.input_names = ["input"]
        self.output_names = ["output"]
        self.output_is_tensor = True
        self.model = double_nearest
        self.severity = None

    def SessionOptions(self):
        return SimpleNamespace()

    def RunOptions(self):
        return FakeRunOptions()

    def InferenceSession(self, path, sess_options=None, providers=None):
        session = FakeSession(self, path, sess_options, providers)
        self.sessions.append(session)
        return session

    def set_default_logger_severity(self, level):
        self.severity = level

    def get_available_providers(self):
        return ["CPUExecutionProvider"]


@pytest.fixture
def fake_ort(monkeypatch):
    runtime = FakeRuntime()
    monkeypatch.setattr(inference_session, "ort", runtime)
    monkeypatch.setattr(service, "ort", runtime)
    return runtime


@pytest.fixture
def gradient_image():
    """Factory for deterministic RGB rasters with distinct pixel values."""
    from neural_resize.raster import RasterImage

    def _make(width, height, mode="RGB"):
        channels = {"RGB": 3, "RGBA": 4, "L": 1, "LA": 2}[mode]
        values = np.arange(width * height * channels, dtype=np.uint32) * 37 % 256
        pixels = values.astype(np.uint8).reshape(height, width, channels)
        return RasterImage(pixels, mode)

    return _make


def encode_image(width, height, color=(200, 40, 90), fmt="PNG", mode="RGB") -> bytes:
    """Create a small image and return its encoded bytes."""
    image = Image.new(mode, (width, height), color=color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return encode_image

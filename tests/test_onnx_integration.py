"""End-to-end run against the real ONNX Runtime with a tiny 2x resize model."""

import numpy as np
import pytest

onnx = pytest.importorskip("onnx")
pytest.importorskip("onnxruntime")

from onnx import TensorProto, helper  # noqa: E402

from neural_resize.inference_session import InferenceSessionManager  # noqa: E402
from neural_resize.orchestrator import UpscaleOrchestrator  # noqa: E402
from neural_resize.result_cache import ResultCache  # noqa: E402


@pytest.fixture(scope="module")
def nearest_2x_model(tmp_path_factory):
    """A model with one Resize node: nearest neighbour, scales [1, 1, 2, 2]."""
    scales = helper.make_tensor("scales", TensorProto.FLOAT, [4], [1.0, 1.0, 2.0, 2.0])
    node = helper.make_node(
        "Resize",
        inputs=["input", "", "scales"],
        outputs=["output"],
        mode="nearest",
        coordinate_transformation_mode="asymmetric",
        nearest_mode="floor",
    )
    graph = helper.make_graph(
        [node],
        "nearest_2x",
        [helper.make_tensor_value_info("input", TensorProto.FLOAT, [1, 3, None, None])],
        [helper.make_tensor_value_info("output", TensorProto.FLOAT, None)],
        initializer=[scales],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.checker.check_model(model)

    path = tmp_path_factory.mktemp("models") / "nearest_2x.onnx"
    onnx.save(model, str(path))
    return str(path)


def test_real_runtime_doubles_image(nearest_2x_model, gradient_image):
    orchestrator = UpscaleOrchestrator(InferenceSessionManager(), cache=ResultCache())
    source = gradient_image(64, 64)

    result = orchestrator.upscale(source, nearest_2x_model, "page", 128, 128)

    assert result.size == (128, 128)
    expected = np.repeat(np.repeat(source.pixels, 2, axis=0), 2, axis=1)
    np.testing.assert_array_equal(result.pixels, expected)
    assert orchestrator.inference_count == 1
    orchestrator.close()


def test_real_runtime_missing_model(tmp_path, gradient_image):
    from neural_resize.errors import SessionInitError

    orchestrator = UpscaleOrchestrator(InferenceSessionManager())

    with pytest.raises(SessionInitError):
        orchestrator.upscale(
            gradient_image(8, 8), str(tmp_path / "absent.onnx"), None, 16, 16
        )

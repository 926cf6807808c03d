"""ONNX Runtime session lifecycle for the super-resolution model.

One session is alive at a time. It is rebuilt only when a request names a
different model file; the execution backend is fixed for the manager's
lifetime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import onnxruntime as ort

from neural_resize.config import get_config
from neural_resize.errors import RunError, SessionInitError, TensorError
from neural_resize.execution import CpuBackend, ExecutionBackend
from neural_resize.logger import setup_logger

logger = setup_logger(__name__)
config = get_config()

ARENA_SHRINKAGE_KEY = "memory.enable_memory_arena_shrinkage"


@dataclass
class SessionContext:
    """Everything acquired for one model: session, run options, bound names.

    ``close`` drops the handles in reverse acquisition order and is safe to
    call more than once.
    """

    model_path: str
    backend: ExecutionBackend
    session: Any
    run_options: Any
    input_name: str
    output_name: str
    device: Tuple[str, int] = ("cpu", 0)
    closed: bool = False

    def close(self) -> None:
        if self.closed:
            return
        self.run_options = None
        self.session = None
        self.closed = True

    def __enter__(self) -> "SessionContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class InferenceSessionManager:
    """Owns the single active inference session.

    Not thread-safe: the orchestrator serializes every call under its lock,
    including ``run``, so a session is never replaced while a run is in
    flight.
    """

    def __init__(
        self,
        backend: Optional[ExecutionBackend] = None,
        *,
        app_name: Optional[str] = None,
        input_name: Optional[str] = None,
        output_name: Optional[str] = None,
    ) -> None:
        self.backend = backend or CpuBackend()
        self.app_name = app_name or config.APP_NAME
        self.input_name = input_name or config.MODEL_INPUT_NAME
        self.output_name = output_name or config.MODEL_OUTPUT_NAME
        self._context: Optional[SessionContext] = None
        self._build_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def model_path(self) -> Optional[str]:
        return self._context.model_path if self._context else None

    @property
    def active(self) -> Optional[SessionContext]:
        return self._context

    @property
    def build_count(self) -> int:
        return self._build_count

    def ensure_session(self, model_path: Any) -> SessionContext:
        """Return a session for ``model_path``, building one if needed.

        A failed build raises SessionInitError and keeps the previously
        loaded session installed.
        """
        if model_path is None or not os.fspath(model_path):
            raise SessionInitError("No model path given")
        model_path = os.fspath(model_path)

        current = self._context
        if current is not None and current.model_path == model_path:
            return current

        context = self._build(model_path)
        self._context = context
        if current is not None:
            current.close()
            logger.info(
                "Replaced inference session %s -> %s", current.model_path, model_path
            )
        return context

    def run(self, context: SessionContext, tensor: np.ndarray) -> np.ndarray:
        """Run the model once and return a private copy of its output tensor."""
        if context.closed:
            raise RunError("Inference session has been released")

        try:
            input_value = ort.OrtValue.ortvalue_from_numpy(tensor, *context.device)
        except Exception as exc:
            raise TensorError("Cannot bind input tensor", detail=str(exc)) from exc
        if not input_value.is_tensor():
            raise TensorError("Bound input value is not a tensor")

        try:
            outputs = context.session.run_with_ort_values(
                [context.output_name],
                {context.input_name: input_value},
                context.run_options,
            )
        except Exception as exc:
            logger.error("Inference run on %s failed: %s", context.model_path, exc)
            raise RunError("Inference run failed", detail=str(exc)) from exc

        if len(outputs) != 1 or not outputs[0].is_tensor():
            raise TensorError("Model output is not a tensor")

        # Output memory belongs to the runtime; copy before the next run
        return np.array(outputs[0].numpy(), dtype=np.float32, copy=True)

    def close(self) -> None:
        if self._context is not None:
            logger.info("Releasing inference session for %s", self._context.model_path)
            self._context.close()
            self._context = None

    def __enter__(self) -> "InferenceSessionManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Session construction
    # ------------------------------------------------------------------
    def _build(self, model_path: str) -> SessionContext:
        logger.info(
            "Building inference session for %s (backend=%s)",
            model_path,
            self.backend.name,
        )
        try:
            options = ort.SessionOptions()
            options.graph_optimization_level = (
                ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
            )
            options.logid = self.app_name
            options.log_severity_level = config.ORT_LOG_SEVERITY

            session = ort.InferenceSession(
                model_path,
                sess_options=options,
                providers=self.backend.providers(),
            )

            run_options = ort.RunOptions()
            run_options.add_run_config_entry(
                ARENA_SHRINKAGE_KEY, self.backend.arena_shrinkage
            )
        except Exception as exc:
            logger.error("Failed to create inference session: %s", exc)
            raise SessionInitError(
                f"Cannot create inference session for {model_path}", detail=str(exc)
            ) from exc

        input_name = self._resolve_name(session.get_inputs(), self.input_name, "input")
        output_name = self._resolve_name(
            session.get_outputs(), self.output_name, "output"
        )

        self._build_count += 1
        return SessionContext(
            model_path=model_path,
            backend=self.backend,
            session=session,
            run_options=run_options,
            input_name=input_name,
            output_name=output_name,
        )

    @staticmethod
    def _resolve_name(args: Sequence[Any], preferred: str, kind: str) -> str:
        names = [arg.name for arg in args]
        if preferred in names:
            return preferred
        if len(names) == 1:
            logger.debug("Model %s is named '%s', not '%s'", kind, names[0], preferred)
            return names[0]
        raise SessionInitError(
            f"Model must expose a single {kind} or one named '{preferred}'",
            detail=", ".join(names) or "none",
        )


__all__ = ["ARENA_SHRINKAGE_KEY", "SessionContext", "InferenceSessionManager"]

"""
ONNX Runtime backend.

Runs exported decoder graphs (``input_ids -> logits``), the format produced by
``torch.onnx.export`` with ``input_names=["input_ids"]``.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import onnxruntime as ort

from edgellm.config import SessionConfig
from edgellm.errors import ModelLoadError
from edgellm.runtime.port import read_model_file, to_logits_matrix
from edgellm.runtime.registry import register_backend

logger = logging.getLogger(__name__)

_FLOAT_INPUT_TYPES = {"tensor(float)", "tensor(float16)", "tensor(double)"}


def build_session_options(config: SessionConfig) -> ort.SessionOptions:
    options = ort.SessionOptions()
    options.intra_op_num_threads = config.thread_count
    options.enable_mem_pattern = True
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
    return options


def select_providers(use_acceleration: bool) -> list[str]:
    available = ort.get_available_providers()
    providers = []
    if use_acceleration:
        if "CUDAExecutionProvider" in available:
            providers.append("CUDAExecutionProvider")
        else:
            logger.warning("Acceleration requested but CUDAExecutionProvider is unavailable, using CPU.")
    providers.append("CPUExecutionProvider")
    return providers


@register_backend("onnx", suffixes=(".onnx",))
class OnnxForwardPass:
    """Forward pass over an ``onnxruntime.InferenceSession``."""

    def __init__(self, model_path: str | Path, config: SessionConfig):
        path = read_model_file(model_path, config.memory_limit_mb)
        logger.debug(f"Creating ONNX session for model: {path}")
        try:
            self._session: ort.InferenceSession | None = ort.InferenceSession(
                str(path),
                sess_options=build_session_options(config),
                providers=select_providers(config.use_acceleration),
            )
        except Exception as e:
            raise ModelLoadError(f"ONNX Runtime rejected model {path}: {e}") from e

        model_input = self._session.get_inputs()[0]
        self.input_name: str = model_input.name
        # Some exported graphs declare float token inputs
        self.input_dtype = np.float32 if model_input.type in _FLOAT_INPUT_TYPES else np.int64
        self.providers = self._session.get_providers()
        logger.info(f"ONNX session created with providers {self.providers}")

    def run(self, token_ids: Sequence[int]) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("ONNX session is closed")
        input_ids = np.asarray(token_ids, dtype=self.input_dtype).reshape(1, -1)
        outputs = self._session.run(None, {self.input_name: input_ids})
        return to_logits_matrix(outputs[0], len(token_ids))

    def close(self) -> None:
        self._session = None

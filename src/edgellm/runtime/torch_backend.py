"""
PyTorch backend.

Loads TorchScript archives (``torch.jit.save``) or pickled ``nn.Module`` objects
whose ``forward(input_ids)`` returns logits, or a ``(logits, ...)`` tuple.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import torch
import torch.nn as nn
from torch.ao.nn.quantized.dynamic import Linear as DynamicQuantizedLinear
from torch.ao.quantization import quantize_dynamic

from edgellm.config import SessionConfig
from edgellm.errors import ModelLoadError
from edgellm.runtime.port import read_model_file, to_logits_matrix
from edgellm.runtime.registry import register_backend

logger = logging.getLogger(__name__)

_ACCELERATOR_DTYPES = {
    "fp32": torch.float32,
    "fp16": torch.float16,
    "bf16": torch.bfloat16,
    "int8": torch.float32,
}


def select_device(use_acceleration: bool) -> torch.device:
    if use_acceleration:
        if torch.cuda.is_available():
            return torch.device("cuda")
        logger.warning("Acceleration requested but CUDA is unavailable, using CPU.")
    return torch.device("cpu")


def select_dtype(precision_mode: str, device: torch.device) -> torch.dtype:
    # Half precision matmuls are only worthwhile on an accelerator
    if device.type == "cpu":
        return torch.float32
    return _ACCELERATOR_DTYPES[precision_mode]


def load_module(path: Path, device: torch.device) -> nn.Module:
    try:
        return torch.jit.load(str(path), map_location=device)
    except (RuntimeError, ValueError):
        # Not a TorchScript archive; try a pickled module
        pass

    # We need weights_only=False to load a pickled module object
    module = torch.load(path, map_location=device, weights_only=False)
    if not isinstance(module, nn.Module):
        raise TypeError(f"Expected a torch.nn.Module, got {type(module).__name__}")
    return module


@register_backend("torch", suffixes=(".pt", ".pth", ".ts", ".torchscript"))
class TorchForwardPass:
    """Forward pass over a TorchScript or eager ``nn.Module``."""

    def __init__(self, model_path: str | Path, config: SessionConfig):
        path = read_model_file(model_path, config.memory_limit_mb)
        self.device = select_device(config.use_acceleration)
        self.dtype = select_dtype(config.precision_mode, self.device)
        torch.set_num_threads(config.thread_count)

        logger.debug(f"Loading torch model {path} on {self.device} ({self.dtype})")
        try:
            module = load_module(path, self.device)
        except Exception as e:
            raise ModelLoadError(f"Failed to load torch model from {path}: {e}") from e

        module = module.to(dtype=self.dtype).eval()
        if precision_mode_is_quantized(config.precision_mode):
            module = quantize_linear_layers(module, self.device)

        self._model: nn.Module | None = module
        logger.info(f"Torch model loaded on {self.device}")

    @torch.no_grad()
    def run(self, token_ids: Sequence[int]) -> np.ndarray:
        if self._model is None:
            raise RuntimeError("Torch model is closed")
        input_tensor = torch.tensor(list(token_ids), dtype=torch.long, device=self.device).unsqueeze(0)
        output = self._model(input_tensor)
        if isinstance(output, (tuple, list)):
            output = output[0]
        return to_logits_matrix(output.float().cpu().numpy(), len(token_ids))

    def close(self) -> None:
        self._model = None
        if self.device.type == "cuda":
            torch.cuda.empty_cache()


def precision_mode_is_quantized(precision_mode: str) -> bool:
    return precision_mode == "int8"


def quantize_linear_layers(module: nn.Module, device: torch.device) -> nn.Module:
    """
    Dynamic int8 quantization of every ``nn.Linear`` (weights int8, activations
    quantized per call).

    Only eager modules on CPU are quantized. TorchScript graphs and accelerator
    placements run as exported.
    """
    if isinstance(module, torch.jit.ScriptModule) or device.type != "cpu":
        logger.warning(
            f"int8 dynamic quantization needs an eager module on CPU; running {device.type} model as exported."
        )
        return module

    quantized = quantize_dynamic(module, {nn.Linear}, dtype=torch.qint8)
    num_quantized = sum(isinstance(m, DynamicQuantizedLinear) for m in quantized.modules())
    logger.info(f"Quantized {num_quantized} linear layers")
    return quantized

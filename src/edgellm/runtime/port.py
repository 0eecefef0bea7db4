from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

import numpy as np

from edgellm.errors import ModelLoadError


@runtime_checkable
class ForwardPass(Protocol):
    """
    Interface to the external numeric runtime.

    ``run`` takes the full token sequence and returns one logit vector per
    position, as a float array of shape ``[len(token_ids), vocab_size]``.
    Implementations are not safe for concurrent invocation.
    """

    def run(self, token_ids: Sequence[int]) -> np.ndarray: ...

    def close(self) -> None: ...


def read_model_file(model_path: str | Path, memory_limit_mb: int) -> Path:
    """
    Checks that a model file exists and fits in the memory budget.

    Raises:
        ModelLoadError: If the file is missing, not a regular file, or larger
                        than ``memory_limit_mb``.
    """
    path = Path(model_path)
    if not path.is_file():
        raise ModelLoadError(f"Model file not found: {path}")

    size_mb = path.stat().st_size / (1024 * 1024)
    if size_mb > memory_limit_mb:
        raise ModelLoadError(f"Model file {path} is {size_mb:.1f} MB, over the {memory_limit_mb} MB memory limit.")
    return path


def to_logits_matrix(output: np.ndarray, num_positions: int) -> np.ndarray:
    """Squeezes a ``[1, n, vocab]`` runtime output to ``[n, vocab]`` float32."""
    logits = np.asarray(output, dtype=np.float32)
    if logits.ndim == 3 and logits.shape[0] == 1:
        logits = logits[0]
    if logits.ndim != 2 or logits.shape[0] != num_positions:
        raise ValueError(f"Expected logits of shape [{num_positions}, vocab_size], got {list(logits.shape)}.")
    return logits

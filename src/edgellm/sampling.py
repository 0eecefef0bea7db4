"""
Next-token selection.

Greedy search when ``temperature <= 0``, otherwise temperature sampling over the
full vocabulary with an inverse-CDF draw.
"""

from collections.abc import Sequence

import numpy as np
import torch

LogitsLike = torch.Tensor | np.ndarray | Sequence[float]


def _as_vector(logits: LogitsLike) -> torch.Tensor:
    vector = torch.as_tensor(logits, dtype=torch.float64).detach().cpu().flatten()
    if vector.numel() == 0:
        raise ValueError("Logits vector must not be empty.")
    return vector


class Sampler:
    """
    Turns a logit vector into a single token id.

    Args:
        seed (int, optional): Seed for the sampler's private random generator.
                              When omitted the generator is seeded randomly.
    """

    def __init__(self, seed: int | None = None):
        self.generator = torch.Generator()
        if seed is None:
            self.generator.seed()
        else:
            self.generator.manual_seed(seed)

    @staticmethod
    def probabilities(logits: LogitsLike, temperature: float) -> torch.Tensor:
        """Softmax of ``logits / temperature`` (max-subtracted inside softmax)."""
        if temperature <= 0:
            raise ValueError("Probabilities are only defined for temperature > 0.")
        return torch.softmax(_as_vector(logits) / temperature, dim=-1)

    def sample(self, logits: LogitsLike, temperature: float) -> int:
        vector = _as_vector(logits)

        if temperature <= 0:
            # Greedy Search; argmax returns the first maximal index on ties
            return int(torch.argmax(vector).item())

        probs = torch.softmax(vector / temperature, dim=-1)
        cumulative = torch.cumsum(probs, dim=-1)
        draw = torch.rand(1, generator=self.generator, dtype=torch.float64)

        # First index whose cumulative probability meets or exceeds the draw
        index = int(torch.searchsorted(cumulative, draw).item())
        if index >= cumulative.numel():
            # Rounding left the cumulative sum below the draw
            return 0
        return index

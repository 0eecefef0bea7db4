#!/usr/bin/env python3
"""Basic inference example with SessionManager and a TorchScript model."""

import json
import tempfile
from pathlib import Path

import torch
import torch.nn as nn

from edgellm import CharTokenizer, GenerationRequest, SessionConfig, SessionManager


class TinyDecoder(nn.Module):
    def __init__(self, vocab_size: int, hidden_size: int = 64):
        super().__init__()
        self.embedding = nn.Embedding(vocab_size, hidden_size)
        self.mlp = nn.Sequential(nn.Linear(hidden_size, hidden_size), nn.GELU())
        self.lm_head = nn.Linear(hidden_size, vocab_size)

    def forward(self, input_ids: torch.Tensor) -> torch.Tensor:
        return self.lm_head(self.mlp(self.embedding(input_ids)))


workdir = Path(tempfile.mkdtemp())
vocab_size = CharTokenizer().vocab_size

# 1. Export an (untrained) model and its configuration
model_path = workdir / "tiny.ts"
torch.jit.save(torch.jit.script(TinyDecoder(vocab_size).eval()), str(model_path))
config_path = workdir / "tiny-config.json"
config_path.write_text(json.dumps({"max_sequence_length": 128, "vocab_size": vocab_size}))

# 2. Open a session
config = SessionConfig(model_path=str(model_path), config_path=str(config_path), thread_count=2, seed=42)

with SessionManager(config) as session:
    session.initialize()

    # 3. Generate text (untrained model will produce random output)
    prompt = "Hello"
    result = session.generate(GenerationRequest(prompt=prompt, max_tokens=20, temperature=0.8))

    print(f"Prompt: {prompt}")
    print(f"Generated: {result.text}")
    print(f"Metrics: {session.performance_metrics()}")

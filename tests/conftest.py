import json

import pytest
import torch

from edgellm.config import SessionConfig
from edgellm.tokenization import CharTokenizer
from tests.dummies import VOCAB_SIZE, TinyLM


@pytest.fixture
def tokenizer():
    return CharTokenizer()


@pytest.fixture
def model_config_file(tmp_path):
    """A model JSON configuration sized for the character vocabulary."""
    path = tmp_path / "model-config.json"
    path.write_text(json.dumps({"max_sequence_length": 64, "vocab_size": VOCAB_SIZE}), encoding="utf-8")
    return path


@pytest.fixture
def session_config(tmp_path, model_config_file):
    """Provides a minimal configuration for fast unit testing (no warm-up tokens)."""
    return SessionConfig(
        model_path=str(tmp_path / "model.ts"),
        config_path=str(model_config_file),
        thread_count=1,
        warmup_max_tokens=0,
        seed=0,
    )


@pytest.fixture
def tiny_model():
    torch.manual_seed(0)
    return TinyLM().eval()


@pytest.fixture
def torchscript_model_file(tmp_path, tiny_model):
    path = tmp_path / "model.ts"
    torch.jit.save(torch.jit.script(tiny_model), str(path))
    return path

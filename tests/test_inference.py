import numpy as np
import pytest

from edgellm.errors import InferenceError
from edgellm.inference import generate_tokens, stream_generate
from edgellm.sampling import Sampler
from tests.dummies import EOS_ID, ScriptedForwardPass

A, B, C = 4, 5, 6


def test_generates_exactly_max_tokens_without_eos():
    port = ScriptedForwardPass([A])
    tokens = generate_tokens(port, [2, B], max_new_tokens=5, temperature=0, eos_token_id=EOS_ID)
    assert tokens == [A] * 5
    assert len(port.calls) == 5


def test_stops_on_eos_and_excludes_it():
    port = ScriptedForwardPass([A, B, EOS_ID, C])
    tokens = generate_tokens(port, [2], max_new_tokens=10, temperature=0, eos_token_id=EOS_ID)
    assert tokens == [A, B]
    assert len(port.calls) == 3


def test_zero_max_tokens_makes_no_forward_pass():
    port = ScriptedForwardPass([A])
    assert generate_tokens(port, [2, A], max_new_tokens=0, temperature=0, eos_token_id=EOS_ID) == []
    assert port.calls == []


def test_whole_sequence_is_resubmitted_each_step():
    port = ScriptedForwardPass([A, B, C])
    generate_tokens(port, [2, C], max_new_tokens=3, temperature=0, eos_token_id=EOS_ID)
    assert port.calls == [[2, C], [2, C, A], [2, C, A, B]]


def test_prompt_is_not_returned_or_mutated():
    prompt = [2, A, B]
    port = ScriptedForwardPass([C])
    tokens = generate_tokens(port, prompt, max_new_tokens=2, temperature=0, eos_token_id=EOS_ID)
    assert tokens == [C, C]
    assert prompt == [2, A, B]


def test_sequence_window_respects_max_seq_len():
    port = ScriptedForwardPass([A])
    tokens = generate_tokens(port, [2, B, C], max_new_tokens=4, temperature=0, eos_token_id=EOS_ID, max_seq_len=4)
    assert len(tokens) == 4
    assert all(len(call) <= 4 for call in port.calls)
    assert port.calls[-1] == [C, A, A, A]


def test_long_prompt_truncation_is_logged(caplog):
    port = ScriptedForwardPass([A])
    with caplog.at_level("WARNING", logger="edgellm.inference"):
        generate_tokens(port, [2, B, C, A, B], max_new_tokens=1, temperature=0, eos_token_id=EOS_ID, max_seq_len=3)
    assert port.calls[0] == [C, A, B]
    assert "exceeds max_seq_len=3" in caplog.text


def test_growth_past_window_is_not_logged(caplog):
    port = ScriptedForwardPass([A])
    with caplog.at_level("WARNING", logger="edgellm.inference"):
        generate_tokens(port, [2, B], max_new_tokens=4, temperature=0, eos_token_id=EOS_ID, max_seq_len=3)
    assert "exceeds" not in caplog.text


def test_stream_yields_tokens_incrementally():
    port = ScriptedForwardPass([A, B, EOS_ID])
    stream = stream_generate(port, [2], max_new_tokens=10, temperature=0, eos_token_id=EOS_ID)
    assert next(stream) == A
    assert len(port.calls) == 1
    assert list(stream) == [B]


def test_forward_failure_is_wrapped():
    port = ScriptedForwardPass([A])
    port.fail = True
    with pytest.raises(InferenceError, match="Forward pass failed"):
        generate_tokens(port, [2], max_new_tokens=3, temperature=0, eos_token_id=EOS_ID)


def test_wrong_number_of_positions_is_rejected():
    class ShortPort:
        def run(self, token_ids):
            return np.zeros((1, 10), dtype=np.float32)

        def close(self):
            pass

    with pytest.raises(InferenceError, match="logit vectors"):
        generate_tokens(ShortPort(), [2, A, B], max_new_tokens=1, temperature=0, eos_token_id=EOS_ID)


def test_negative_max_tokens():
    with pytest.raises(ValueError):
        generate_tokens(ScriptedForwardPass([A]), [2], max_new_tokens=-1, temperature=0, eos_token_id=EOS_ID)


def test_temperature_sampling_with_seed_is_reproducible():
    port = ScriptedForwardPass([A, B, C])
    first = generate_tokens(port, [2], 6, temperature=1.0, eos_token_id=EOS_ID, sampler=Sampler(seed=3))
    second = generate_tokens(port, [2], 6, temperature=1.0, eos_token_id=EOS_ID, sampler=Sampler(seed=3))
    assert first == second


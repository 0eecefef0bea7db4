import logging
from collections.abc import Generator, Sequence

from edgellm.errors import InferenceError
from edgellm.runtime.port import ForwardPass
from edgellm.sampling import Sampler

logger = logging.getLogger(__name__)


def stream_generate(
    forward: ForwardPass,
    prompt_ids: Sequence[int],
    max_new_tokens: int,
    temperature: float,
    eos_token_id: int,
    sampler: Sampler | None = None,
    max_seq_len: int | None = None,
) -> Generator[int]:
    """
    Generator function for autoregressive decoding.

    Every step resubmits the whole sequence so far (no incremental state is
    carried between steps), so total work is quadratic in the number of
    generated tokens.

    yields:
        int: Each newly generated token id. The end-of-sequence id is never yielded.
    """
    if max_new_tokens < 0:
        raise ValueError("max_new_tokens must be non-negative")
    sampler = sampler or Sampler()
    sequence = list(prompt_ids)
    if max_seq_len and max_new_tokens > 0 and len(sequence) > max_seq_len:
        logger.warning(
            f"Prompt of {len(sequence)} tokens exceeds max_seq_len={max_seq_len}; "
            f"only the last {max_seq_len} tokens are submitted"
        )

    for _ in range(max_new_tokens):
        # Keep only the trailing window the model was built for
        window = sequence[-max_seq_len:] if max_seq_len and len(sequence) > max_seq_len else sequence

        try:
            logits = forward.run(window)
        except Exception as e:
            raise InferenceError(f"Forward pass failed at position {len(sequence)}: {e}") from e
        if len(logits) != len(window):
            raise InferenceError(f"Forward pass returned {len(logits)} logit vectors for {len(window)} positions")

        next_token = sampler.sample(logits[-1], temperature)
        if next_token == eos_token_id:
            break

        sequence.append(next_token)
        yield next_token


def generate_tokens(
    forward: ForwardPass,
    prompt_ids: Sequence[int],
    max_new_tokens: int,
    temperature: float,
    eos_token_id: int,
    sampler: Sampler | None = None,
    max_seq_len: int | None = None,
) -> list[int]:
    """Runs the decode loop to completion and returns only the new token ids."""
    return list(
        stream_generate(
            forward=forward,
            prompt_ids=prompt_ids,
            max_new_tokens=max_new_tokens,
            temperature=temperature,
            eos_token_id=eos_token_id,
            sampler=sampler,
            max_seq_len=max_seq_len,
        )
    )


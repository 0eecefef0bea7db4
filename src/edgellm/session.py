"""
Inference session lifecycle.

A `SessionManager` owns one loaded model and moves through
``UNINITIALIZED -> LOADING -> READY -> DESTROYED``. A failed load rolls back to
``UNINITIALIZED`` with every partially acquired resource released.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from enum import Enum
from pathlib import Path

from edgellm.config import RUNTIME_FIELDS, ModelConfig, SessionConfig, load_model_config
from edgellm.errors import (
    EdgeLLMError,
    InferenceError,
    ModelLoadError,
    NotInitializedError,
    SessionStateError,
)
from edgellm.inference import generate_tokens, stream_generate
from edgellm.metrics import MetricsRecorder, PerformanceMetrics, current_memory_usage
from edgellm.runtime import ForwardPass, open_forward_pass
from edgellm.sampling import Sampler
from edgellm.schemas import GenerationRequest, GenerationResult, ModelInfo, estimate_token_count
from edgellm.tokenization import BaseTokenizer, CharTokenizer, Vocabulary

logger = logging.getLogger(__name__)

ForwardPassFactory = Callable[[str | Path, SessionConfig], ForwardPass]


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    DESTROYED = "destroyed"


class SessionManager:
    """
    推理会话管理器.
    封装模型加载、状态管理和生成逻辑.

    At most one generation runs at a time: ``initialize``, ``generate``,
    ``stream`` and ``destroy`` are serialized by one lock, so concurrent callers
    queue behind the active call.

    Args:
        config: Session settings. Defaults to ``SessionConfig()`` (environment).
        forward_factory: Opens the forward pass for a model file. Defaults to the
                         backend registry.
        memory_probe: Memory observation used by the metrics recorder.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        forward_factory: ForwardPassFactory = open_forward_pass,
        memory_probe: Callable[[], int] = current_memory_usage,
    ) -> None:
        self.config = config or SessionConfig()
        self.forward_factory = forward_factory
        self.memory_probe = memory_probe
        self.state = SessionState.UNINITIALIZED

        self.model_config: ModelConfig | None = None
        self.tokenizer: BaseTokenizer | None = None
        self.forward: ForwardPass | None = None
        self.sampler = Sampler(self.config.seed)
        self.metrics = MetricsRecorder(memory_probe)

        self._lock = threading.Lock()
        self._config_lock = threading.Lock()

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.destroy()

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def initialize(self, model_path: str | Path | None = None, config_path: str | Path | None = None) -> None:
        """
        加载模型配置、词表和前向推理会话, 然后预热一次.

        Raises:
            SessionStateError: If the session is not ``UNINITIALIZED``.
            ConfigLoadError: If the model configuration cannot be loaded.
            ModelLoadError: If the model cannot be opened or the warm-up fails.
        """
        model_path = model_path or self.config.model_path
        config_path = config_path or self.config.config_path

        with self._lock:
            if self.state is not SessionState.UNINITIALIZED:
                raise SessionStateError(f"Cannot initialize a session in state '{self.state.value}'.")

            logger.info(f"Initializing session: model={model_path} config={config_path}")
            self.state = SessionState.LOADING
            try:
                # 1. Model configuration
                self.model_config = load_model_config(config_path)
                logger.debug(f"Model configuration loaded: {self.model_config}")

                # 2. Vocabulary
                self.tokenizer = CharTokenizer(Vocabulary.build(self.model_config.vocab_size))
                logger.debug(f"Vocabulary loaded with {self.tokenizer.vocab_size} tokens")

                # 3. Runtime session
                try:
                    self.forward = self.forward_factory(model_path, self.config)
                except EdgeLLMError:
                    raise
                except Exception as e:
                    raise ModelLoadError(f"Failed to open model {model_path}: {e}") from e

                # 4. Warm-up
                self._warm_up()
            except Exception:
                logger.exception("Failed to initialize session, rolling back")
                self._release()
                self.state = SessionState.UNINITIALIZED
                raise

            self.state = SessionState.READY
            logger.info("Session initialized successfully")

    def _warm_up(self) -> None:
        config = self.config
        logger.debug("Warming up model...")
        try:
            generate_tokens(
                forward=self.forward,
                prompt_ids=self.tokenizer.encode(config.warmup_prompt),
                max_new_tokens=config.warmup_max_tokens,
                temperature=config.warmup_temperature,
                eos_token_id=self.tokenizer.eos_token_id,
                sampler=self.sampler,
                max_seq_len=self.model_config.max_sequence_length,
            )
        except Exception as e:
            raise ModelLoadError(f"Model warm-up failed: {e}") from e
        logger.debug("Model warm-up completed")

    def _release(self) -> None:
        if self.forward is not None:
            try:
                self.forward.close()
            except Exception:
                logger.warning("Error while closing forward pass", exc_info=True)
        self.forward = None
        self.tokenizer = None
        self.model_config = None

    def _check_ready(self) -> None:
        if self.state is not SessionState.READY:
            raise NotInitializedError()

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        非流式生成.

        Raises:
            NotInitializedError: If the session is not ``READY``.
            InferenceError: If decoding fails. The session stays ``READY``.
        """
        with self._lock:
            self._check_ready()
            start_time = time.perf_counter()
            try:
                input_ids = self.tokenizer.encode(request.prompt)
                logger.debug(f"Input tokenized to {len(input_ids)} tokens")
                generated_ids = generate_tokens(
                    forward=self.forward,
                    prompt_ids=input_ids,
                    max_new_tokens=request.max_tokens,
                    temperature=request.temperature,
                    eos_token_id=self.tokenizer.eos_token_id,
                    sampler=self.sampler,
                    max_seq_len=self.model_config.max_sequence_length,
                )
                text = self.tokenizer.decode(generated_ids)
            except EdgeLLMError:
                raise
            except Exception as e:
                raise InferenceError(f"Text generation failed: {e}") from e

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self.metrics.record(elapsed_ms)
            logger.debug(f"Text generation completed in {elapsed_ms:.1f}ms ({len(generated_ids)} tokens)")

        return GenerationResult(
            text=text,
            execution_time_ms=elapsed_ms,
            tokens_generated=estimate_token_count(text),
            token_count=len(generated_ids),
        )

    def stream(self, request: GenerationRequest) -> Iterator[str]:
        """
        流式生成. Yields the decoded text of each new token.

        The session lock is held until the iterator is exhausted or closed.
        Metrics are recorded only for streams that run to completion.
        """
        with self._lock:
            self._check_ready()
            start_time = time.perf_counter()
            tokenizer = self.tokenizer
            try:
                for token_id in stream_generate(
                    forward=self.forward,
                    prompt_ids=tokenizer.encode(request.prompt),
                    max_new_tokens=request.max_tokens,
                    temperature=request.temperature,
                    eos_token_id=tokenizer.eos_token_id,
                    sampler=self.sampler,
                    max_seq_len=self.model_config.max_sequence_length,
                ):
                    chunk = tokenizer.decode([token_id])
                    if chunk:
                        yield chunk
            except EdgeLLMError:
                raise
            except Exception as e:
                raise InferenceError(f"Text generation failed: {e}") from e

            self.metrics.record((time.perf_counter() - start_time) * 1000)

    def reconfigure(self, **changes) -> SessionConfig:
        """
        Applies new settings atomically; they take effect on the next generation.

        The runtime session is not rebuilt, so thread count, precision,
        acceleration and memory limit changes made while ``READY`` only apply
        after the session is recreated.

        Raises:
            InvalidRequestError: If a field is unknown or a value is invalid.
        """
        with self._config_lock:
            new_config = self.config.updated(**changes)
            changed = [f for f in RUNTIME_FIELDS if getattr(new_config, f) != getattr(self.config, f)]
            if changed and self.is_ready:
                logger.warning(f"Runtime settings {changed} changed while ready; applied on next initialize")
            if new_config.seed != self.config.seed:
                self.sampler = Sampler(new_config.seed)
            self.config = new_config
            logger.debug("Inference configuration updated")
            return new_config

    def destroy(self) -> None:
        """卸载模型以释放资源. Safe to call in any state, any number of times."""
        with self._lock:
            if self.state is SessionState.DESTROYED:
                return
            self._release()
            self.metrics.reset()
            self.state = SessionState.DESTROYED
            logger.info("Session destroyed")

    def model_info(self) -> ModelInfo:
        if not self.is_ready:
            return ModelInfo()
        return ModelInfo(
            model_name=self.config.model_name,
            version=self.config.model_version,
            is_ready=True,
            memory_usage=self.memory_probe(),
            parameters_count=self.config.parameters_count,
        )

    def performance_metrics(self) -> PerformanceMetrics:
        self._check_ready()
        return self.metrics.snapshot()

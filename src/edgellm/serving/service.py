"""
Request/response contract consumed by host bridges (HTTP, CLI, plugins).

`InferenceService` validates requests before they reach the session and turns
every call into a plain record. A destroyed session is replaced by a fresh one
on the next ``initialize``.
"""

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from edgellm.config import SessionConfig
from edgellm.errors import EdgeLLMError, InvalidRequestError
from edgellm.metrics import PerformanceMetrics, current_memory_usage
from edgellm.runtime import open_forward_pass
from edgellm.schemas import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, GenerationRequest, GenerationResult, ModelInfo
from edgellm.serving.schemas import (
    ChatMessage,
    ChatResult,
    DestroyResult,
    InitializeResult,
    ReconfigureResult,
)
from edgellm.session import ForwardPassFactory, SessionManager, SessionState
from edgellm.system import (
    HardwareInfo,
    ModelFileInfo,
    SystemInfo,
    check_hardware_acceleration,
    check_model_files,
    get_system_info,
)

logger = logging.getLogger(__name__)

ROLE_LABELS = {"system": "System", "user": "User", "assistant": "Assistant"}
ASSISTANT_CUE = "Assistant: "


def build_chat_prompt(messages: Sequence[ChatMessage]) -> str:
    """Renders a conversation as role-labelled paragraphs ending in an assistant cue."""
    parts = [f"{ROLE_LABELS[message.role]}: {message.content}\n\n" for message in messages]
    parts.append(ASSISTANT_CUE)
    return "".join(parts)


def _validation_message(error: ValidationError) -> str:
    return "; ".join(str(e.get("msg", "")) for e in error.errors()) or str(error)


class InferenceService:
    def __init__(
        self,
        config: SessionConfig | None = None,
        forward_factory: ForwardPassFactory = open_forward_pass,
        memory_probe: Callable[[], int] = current_memory_usage,
    ) -> None:
        self.forward_factory = forward_factory
        self.memory_probe = memory_probe
        self.session = self._new_session(config or SessionConfig())

    def _new_session(self, config: SessionConfig) -> SessionManager:
        return SessionManager(config, forward_factory=self.forward_factory, memory_probe=self.memory_probe)

    @property
    def config(self) -> SessionConfig:
        return self.session.config

    def initialize(self, model_path: str | None = None, config_path: str | None = None) -> InitializeResult:
        if self.session.state is SessionState.READY:
            return InitializeResult(success=True, message="Model already initialized")
        if self.session.state is SessionState.DESTROYED:
            self.session = self._new_session(self.session.config)

        try:
            self.session.initialize(model_path, config_path)
        except EdgeLLMError as e:
            logger.error(f"Model initialization failed: {e}")
            return InitializeResult(success=False, message=f"Failed to initialize model: {e}")
        return InitializeResult(success=True, message="Model initialized successfully")

    def _build_request(self, prompt: str, max_tokens: int, temperature: float) -> GenerationRequest:
        if prompt is None:
            raise InvalidRequestError("Prompt is required and cannot be empty")
        try:
            return GenerationRequest(prompt=prompt, max_tokens=max_tokens, temperature=temperature)
        except ValidationError as e:
            raise InvalidRequestError(_validation_message(e)) from e

    def generate(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> GenerationResult:
        request = self._build_request(prompt, max_tokens, temperature)
        logger.debug(f"Generating text for prompt length: {len(prompt)}")
        return self.session.generate(request)

    def stream(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> Iterator[str]:
        request = self._build_request(prompt, max_tokens, temperature)
        return self.session.stream(request)

    def chat(
        self,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> ChatResult:
        if not messages:
            raise InvalidRequestError("Messages array is required and cannot be empty")
        try:
            parsed = [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]
        except ValidationError as e:
            raise InvalidRequestError(_validation_message(e)) from e

        logger.debug(f"Processing chat with {len(parsed)} messages")
        result = self.generate(build_chat_prompt(parsed), max_tokens=max_tokens, temperature=temperature)
        return ChatResult(
            response=result.text.strip(),
            execution_time_ms=result.execution_time_ms,
            tokens_generated=result.tokens_generated,
        )

    def get_model_info(self) -> ModelInfo:
        return self.session.model_info()

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self.session.performance_metrics()

    def reconfigure(
        self,
        use_acceleration: bool | None = None,
        thread_count: int | None = None,
        memory_limit_mb: int | None = None,
        precision_mode: str | None = None,
    ) -> ReconfigureResult:
        changes = {
            name: value
            for name, value in (
                ("use_acceleration", use_acceleration),
                ("thread_count", thread_count),
                ("memory_limit_mb", memory_limit_mb),
                ("precision_mode", precision_mode),
            )
            if value is not None
        }
        applied = self.session.reconfigure(**changes)
        return ReconfigureResult(
            use_acceleration=applied.use_acceleration,
            thread_count=applied.thread_count,
            memory_limit_mb=applied.memory_limit_mb,
            precision_mode=applied.precision_mode,
        )

    def destroy(self) -> DestroyResult:
        try:
            self.session.destroy()
        except Exception:
            logger.exception("Error during cleanup")
        return DestroyResult(success=True)

    def check_hardware_acceleration(self) -> HardwareInfo:
        return check_hardware_acceleration()

    def check_model_files(
        self, model_path: str | Path | None = None, config_path: str | Path | None = None
    ) -> ModelFileInfo:
        return check_model_files(model_path or self.config.model_path, config_path or self.config.config_path)

    def get_system_info(self) -> SystemInfo:
        return get_system_info()

from .config import ServingConfig
from .schemas import (
    ChatMessage,
    ChatRequest,
    ChatResult,
    DestroyResult,
    InitializeRequest,
    InitializeResult,
    ReconfigureRequest,
    ReconfigureResult,
)
from .service import InferenceService, build_chat_prompt

__all__ = [
    "InferenceService",
    "ServingConfig",
    "build_chat_prompt",
    "ChatMessage",
    "ChatRequest",
    "ChatResult",
    "DestroyResult",
    "InitializeRequest",
    "InitializeResult",
    "ReconfigureRequest",
    "ReconfigureResult",
]

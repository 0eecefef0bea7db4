from typing import Literal

from pydantic import BaseModel, Field

from edgellm.config import PrecisionMode
from edgellm.schemas import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, GenerationRequest


class InitializeRequest(BaseModel):
    """Initialize request model. Paths default to the session configuration."""

    model_path: str | None = Field(None, description="Path to the model file (.onnx, .pt, ...).")
    config_path: str | None = Field(None, description="Path to the model's JSON configuration.")

    model_config = {"protected_namespaces": ()}


class InitializeResult(BaseModel):
    success: bool
    message: str


class GenerateBody(GenerationRequest):
    """HTTP generation request; adds the streaming switch."""

    stream: bool = Field(False, description="Whether to use streaming output (SSE).")


class ChatMessage(BaseModel):
    """A single chat message."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Role of the message author.")
    content: str = Field(..., description="Message content.")


class ChatRequest(BaseModel):
    """Chat request model."""

    messages: list[ChatMessage] = Field(..., min_length=1, description="Conversation so far, oldest first.")
    max_tokens: int = Field(DEFAULT_MAX_TOKENS, ge=0, description="Maximum number of tokens to generate.")
    temperature: float = Field(DEFAULT_TEMPERATURE, ge=0.0, description="Controls randomness. 0 for Greedy Search.")


class ChatResult(BaseModel):
    """Chat response model."""

    response: str = Field(..., description="Assistant reply, stripped of surrounding whitespace.")
    execution_time_ms: float
    tokens_generated: int


class ReconfigureRequest(BaseModel):
    """Inference settings to change; omitted fields keep their current value."""

    use_acceleration: bool | None = None
    thread_count: int | None = Field(None, ge=1)
    memory_limit_mb: int | None = Field(None, ge=1)
    precision_mode: PrecisionMode | None = None


class ReconfigureResult(BaseModel):
    """Echo of the settings now in effect."""

    use_acceleration: bool
    thread_count: int
    memory_limit_mb: int
    precision_mode: str


class DestroyResult(BaseModel):
    success: bool = True

from pydantic import BaseModel, Field, field_validator

from edgellm.metrics import PerformanceMetrics

DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7


def estimate_token_count(text: str) -> int:
    """Fixed approximation used in responses: four characters per token."""
    return len(text) // 4


class GenerationRequest(BaseModel):
    """Generation request model."""

    prompt: str = Field(..., description="Input prompt text.")
    max_tokens: int = Field(DEFAULT_MAX_TOKENS, ge=0, description="Maximum number of tokens to generate.")
    temperature: float = Field(DEFAULT_TEMPERATURE, ge=0.0, description="Controls randomness. 0 for Greedy Search.")

    @field_validator("prompt")
    @classmethod
    def prompt_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Prompt is required and cannot be empty")
        return v


class GenerationResult(BaseModel):
    """Generation result model."""

    text: str = Field(..., description="Generated text, without the prompt.")
    execution_time_ms: float = Field(..., description="Wall-clock time of the generation.")
    tokens_generated: int = Field(..., description="Estimated token count of the text (len // 4).")
    token_count: int = Field(0, description="Exact number of tokens produced by the decode loop.")


class ModelInfo(BaseModel):
    """Description of the loaded model."""

    model_name: str = "Not Initialized"
    version: str = "N/A"
    is_ready: bool = False
    memory_usage: int = 0
    parameters_count: str = "0"

    model_config = {"protected_namespaces": ()}


__all__ = [
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "GenerationRequest",
    "GenerationResult",
    "ModelInfo",
    "PerformanceMetrics",
    "estimate_token_count",
]

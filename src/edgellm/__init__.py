# Expose version

__version__ = "0.1.0"

from edgellm.config import ModelConfig, SessionConfig
from edgellm.errors import (
    ConfigLoadError,
    EdgeLLMError,
    InferenceError,
    InvalidRequestError,
    ModelLoadError,
    NotInitializedError,
    SessionStateError,
)
from edgellm.inference import generate_tokens, stream_generate
from edgellm.metrics import MetricsRecorder, PerformanceMetrics
from edgellm.sampling import Sampler
from edgellm.schemas import GenerationRequest, GenerationResult, ModelInfo
from edgellm.session import SessionManager, SessionState
from edgellm.tokenization import CharTokenizer, Vocabulary

__all__ = [
    "CharTokenizer",
    "ConfigLoadError",
    "EdgeLLMError",
    "GenerationRequest",
    "GenerationResult",
    "InferenceError",
    "InvalidRequestError",
    "MetricsRecorder",
    "ModelConfig",
    "ModelInfo",
    "ModelLoadError",
    "NotInitializedError",
    "PerformanceMetrics",
    "Sampler",
    "SessionConfig",
    "SessionManager",
    "SessionState",
    "SessionStateError",
    "Vocabulary",
    "generate_tokens",
    "stream_generate",
]

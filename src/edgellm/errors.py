"""
Exception hierarchy for the inference engine.

Initialization errors (`ConfigLoadError`, `ModelLoadError`) are raised after the
session has been rolled back to a clean state. Per-call errors
(`NotInitializedError`, `InvalidRequestError`, `InferenceError`) never change the
session's lifecycle state.
"""


class EdgeLLMError(Exception):
    """Base class for all engine errors."""


class ConfigLoadError(EdgeLLMError):
    """The model configuration is missing, unreadable or malformed."""


class ModelLoadError(EdgeLLMError):
    """The model data could not be read or was rejected by the runtime."""


class NotInitializedError(EdgeLLMError):
    """A generation or metrics call was made before the session was ready."""

    def __init__(self, message: str = "Model not initialized. Call initialize() first."):
        super().__init__(message)


class InvalidRequestError(EdgeLLMError, ValueError):
    """The request was rejected before touching the session."""


class InferenceError(EdgeLLMError):
    """A forward pass failed while decoding."""


class SessionStateError(EdgeLLMError):
    """A lifecycle operation is not allowed in the session's current state."""

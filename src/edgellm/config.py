"""
Session and model configuration.

`SessionConfig` holds the runtime settings a session is built from (environment
prefix ``EDGELLM_``). `ModelConfig` is read from the JSON file shipped next to
the model and validated at load time.
"""

import json
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from edgellm.errors import ConfigLoadError, InvalidRequestError

DEFAULT_MODEL_PATH = "models/gemma-2b-it-q4.onnx"
DEFAULT_CONFIG_PATH = "models/gemma-config.json"
DEFAULT_MAX_SEQUENCE_LENGTH = 2048
DEFAULT_VOCAB_SIZE = 32000

PrecisionMode = Literal["fp32", "fp16", "bf16", "int8"]

# Settings the runtime session is constructed with
RUNTIME_FIELDS = ("use_acceleration", "thread_count", "memory_limit_mb", "precision_mode")


class SessionConfig(BaseSettings):
    """
    Inference session configuration using environment variables.
    """

    # Model location
    model_path: str = DEFAULT_MODEL_PATH
    config_path: str = DEFAULT_CONFIG_PATH

    # Runtime
    use_acceleration: bool = False
    thread_count: int = Field(4, ge=1)
    memory_limit_mb: int = Field(1024, ge=1)  # MB
    precision_mode: PrecisionMode = "fp16"

    # Warm-up run during initialize
    warmup_prompt: str = "Hello"
    warmup_max_tokens: int = Field(10, ge=0)
    warmup_temperature: float = Field(0.7, ge=0.0)

    # Sampling
    seed: int | None = None

    # Reported by model info
    model_name: str = "Gemma 2B Instruct"
    model_version: str = "1.0.0"
    parameters_count: str = "2B"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="EDGELLM_", protected_namespaces=("settings_",))

    def updated(self, **changes: Any) -> "SessionConfig":
        """Returns a validated copy with ``changes`` applied."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise InvalidRequestError(f"Unknown configuration fields: {sorted(unknown)}")
        try:
            return type(self).model_validate({**self.model_dump(), **changes})
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid configuration: {e}") from e

    def save_to_yaml(self, path: str | Path):
        """将配置保存到 YAML 文件"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "SessionConfig":
        """从 YAML 文件加载配置"""
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(f"Failed to read settings from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Settings file {path} must contain a mapping.")
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigLoadError(f"Invalid settings in {path}: {e}") from e


class ModelConfig(BaseModel):
    """Model description read from the model's JSON config file."""

    max_sequence_length: int = Field(DEFAULT_MAX_SEQUENCE_LENGTH, gt=0)
    vocab_size: int = Field(DEFAULT_VOCAB_SIZE, gt=0)

    model_config = ConfigDict(extra="allow")

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


def load_model_config(config_path: str | Path) -> ModelConfig:
    """
    Loads the model's JSON configuration.

    Missing keys fall back to `DEFAULT_MAX_SEQUENCE_LENGTH` and
    `DEFAULT_VOCAB_SIZE`.

    Raises:
        ConfigLoadError: If the file cannot be read, is not valid JSON, is not a
                         JSON object, or holds invalid values.
    """
    path = Path(config_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(f"Failed to load model configuration from {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigLoadError(f"Malformed model configuration {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Model configuration {path} must be a JSON object.")

    try:
        return ModelConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid model configuration {path}: {e}") from e

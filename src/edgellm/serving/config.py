from pydantic_settings import BaseSettings, SettingsConfigDict


class ServingConfig(BaseSettings):
    """
    HTTP serving configuration using environment variables.
    """

    # Security & Observability
    api_key: str | None = None  # If set, requires this key for access
    log_level: str = "INFO"
    json_logs: bool = True

    # Initialize the session on startup using the session configuration
    autoload: bool = False

    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(env_prefix="EDGELLM_SERVING_")

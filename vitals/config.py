"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class StreamConfig(BaseModel):
    """Streaming source endpoint and connection timing."""

    host: str = Field(default="localhost", description="Streaming source host")
    port: int = Field(default=8765, gt=0, lt=65536, description="Streaming source port")
    connect_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Time allowed to establish a connection"
    )
    reconnect_delay_seconds: float = Field(
        default=5.0, gt=0.0, description="Fixed delay before each reconnection attempt"
    )


class EvaluationConfig(BaseModel):
    """Alert evaluation cadence."""

    evaluation_interval_seconds: float = Field(
        default=5.0, gt=0.0, description="Interval between evaluation cycles"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    stream: StreamConfig = Field(default_factory=StreamConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    stream_config = StreamConfig(
        host=os.getenv("STREAM_HOST", "localhost"),
        port=int(os.getenv("STREAM_PORT", "8765")),
        connect_timeout_seconds=float(os.getenv("CONNECT_TIMEOUT_SECONDS", "10.0")),
        reconnect_delay_seconds=float(os.getenv("RECONNECT_DELAY_SECONDS", "5.0")),
    )

    evaluation_config = EvaluationConfig(
        evaluation_interval_seconds=float(os.getenv("EVALUATION_INTERVAL_SECONDS", "5.0")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        stream=stream_config,
        evaluation=evaluation_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()

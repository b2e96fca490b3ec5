"""Configuration loading with YAML parsing, environment variable expansion and pydantic validation."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from surveyscore.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = [
    Path("surveyscore.yaml"),
]

# Each nesting level costs a handful of interpreter frames in the parser
MAX_SUPPORTED_DEPTH = 150


class ParserLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_depth: int = Field(default=64, ge=1, le=MAX_SUPPORTED_DEPTH)
    max_tokens: int = Field(default=4096, ge=1)


class EnvelopeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    signing_key: SecretStr = SecretStr("")


class ScoringConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int = 1
    log_level: str = "INFO"
    cache_size: int = Field(default=256, ge=0)
    parser: ParserLimits = Field(default_factory=ParserLimits)
    envelope: EnvelopeConfig = Field(default_factory=EnvelopeConfig)

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand ${ENV_VAR} references in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{(\w+)\}")
        match = pattern.search(value)
        while match:
            env_var = match.group(1)
            env_value = os.environ.get(env_var, "")
            value = value[: match.start()] + env_value + value[match.end() :]
            match = pattern.search(value, match.start() + len(env_value))
        return value
    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def _find_config_file(explicit_path: str | Path | None = None) -> Path | None:
    """Find the config file to load."""
    if explicit_path is not None:
        path = Path(explicit_path).expanduser()
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {path}")

    for candidate in DEFAULT_CONFIG_PATHS:
        resolved = candidate.expanduser()
        if resolved.exists():
            logger.info("Using config: %s", resolved)
            return resolved

    return None


def load_config(path: str | Path | None = None) -> ScoringConfig:
    """Load and validate configuration.

    Resolution order:
    1. Explicit path argument (must exist)
    2. surveyscore.yaml in current directory
    3. All defaults (no file needed)

    Environment variables are expanded in string values: ${VAR_NAME}
    """
    config_path = _find_config_file(path)

    if config_path is not None:
        logger.info("Loading config from %s", config_path)
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        raw = _expand_env_vars(raw)
    else:
        logger.info("No config file found, using defaults")
        raw = {}

    try:
        config = ScoringConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    logger.debug("Config loaded: version=%d", config.version)
    return config


def configure_logging(level: str = "INFO") -> None:
    """Install a basic stderr handler. For scripts and hosts, never called by the library."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = [
    "EnvelopeConfig",
    "ParserLimits",
    "ScoringConfig",
    "configure_logging",
    "load_config",
]

"""
Configuration Manager - Loads and validates client configuration.

Merges YAML config with environment variables. Environment variables take
precedence over YAML values for deployment flexibility.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from wazirx.exchange.constants import (
    BASE_URL,
    MAX_INLINE_WAIT_MS,
    RESPONSE_WINDOW,
    RETRY_COUNT,
    TICKER_CACHE_TTL_SECONDS,
)

DEFAULT_CONFIG_PATH = "config/config.yaml"


def _as_bool(v: str) -> bool:
    return v.lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

_ENV_MAPPINGS = {
    "WAZIRX_API_KEY": ("exchange", "api_key"),
    "WAZIRX_API_SECRET": ("exchange", "api_secret"),
    "WAZIRX_REST_URL": ("exchange", "rest_url"),
    "WAZIRX_RECV_WINDOW_MS": ("exchange", "recv_window_ms", int),
    "WAZIRX_RETRY_COUNT": ("exchange", "retry_count", int),
    "WAZIRX_TIMEOUT_SECONDS": ("exchange", "request_timeout_seconds", float),
    "RATE_LIMIT_WINDOW_SECONDS": ("rate_limit", "window_seconds", float),
    "RATE_LIMIT_MAX_INLINE_WAIT_MS": ("rate_limit", "max_inline_wait_ms", int),
    "TICKER_CACHE_TTL_SECONDS": ("cache", "ticker_ttl_seconds", int),
    "LOG_LEVEL": ("app", "log_level"),
    "LOG_DIR": ("app", "log_dir"),
    "LOG_JSON": ("app", "json_logs", _as_bool),
}


def _apply_env_overrides(config: Dict[str, Any]) -> None:
    """Override YAML values with environment variables where set."""
    for env_key, mapping in _ENV_MAPPINGS.items():
        value = os.getenv(env_key)
        if value is None:
            continue
        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str
        try:
            converted = converter(value)
        except (ValueError, TypeError) as e:
            logging.getLogger("config").warning(
                "Env %s=%r failed to convert: %s. Using YAML value.",
                env_key, value, e,
            )
            continue
        if not isinstance(config.get(section), dict):
            config[section] = {}
        config[section][key] = converted


# ---------------------------------------------------------------------------
# Pydantic Configuration Models
# ---------------------------------------------------------------------------

class ExchangeConfig(BaseModel):
    name: str = "wazirx"
    rest_url: str = BASE_URL
    api_key: str = ""
    api_secret: str = ""
    recv_window_ms: int = RESPONSE_WINDOW
    retry_count: int = RETRY_COUNT
    request_timeout_seconds: float = RESPONSE_WINDOW / 1000.0

    @field_validator("recv_window_ms")
    @classmethod
    def validate_recv_window(cls, v):
        if v <= 0:
            raise ValueError("recv_window_ms must be positive")
        return v

    @field_validator("retry_count")
    @classmethod
    def validate_retry_count(cls, v):
        if v < 0:
            raise ValueError("retry_count must be >= 0")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        return v


class RateLimitConfig(BaseModel):
    window_seconds: float = 1.0
    max_inline_wait_ms: int = MAX_INLINE_WAIT_MS

    @field_validator("window_seconds")
    @classmethod
    def validate_window(cls, v):
        if v <= 0:
            raise ValueError("window_seconds must be positive")
        return v


class CacheConfig(BaseModel):
    ticker_ttl_seconds: int = TICKER_CACHE_TTL_SECONDS


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_dir: str = "logs"
    json_logs: bool = False


class ClientConfig(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# ---------------------------------------------------------------------------
# Configuration Manager (Singleton)
# ---------------------------------------------------------------------------

def _read_yaml(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.exists():
        return {}
    with open(config_file, "r") as f:
        return yaml.safe_load(f) or {}


class ConfigManager:
    """
    Thread-safe singleton configuration manager.

    Usage:
        config = ConfigManager().config
        window = config.exchange.recv_window_ms
    """

    _instance: Optional[ConfigManager] = None
    _lock = threading.Lock()
    _config: Optional[ClientConfig] = None

    def __new__(cls) -> ConfigManager:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self.load()

    def load(self, config_path: str = DEFAULT_CONFIG_PATH) -> ClientConfig:
        """Load configuration from YAML + environment variables."""
        load_dotenv()
        yaml_config = _read_yaml(config_path)
        _apply_env_overrides(yaml_config)
        ConfigManager._config = ClientConfig(**yaml_config)
        return ConfigManager._config

    @property
    def config(self) -> ClientConfig:
        if self._config is None:
            self.load()
        return self._config

    def get(self, dotpath: str, default: Any = None) -> Any:
        """
        Access config values using dot notation.

        Example: config.get("exchange.recv_window_ms") -> 2000
        """
        obj = self._config
        for key in dotpath.split("."):
            if hasattr(obj, key):
                obj = getattr(obj, key)
            elif isinstance(obj, dict) and key in obj:
                obj = obj[key]
            else:
                return default
        return obj


def get_config() -> ClientConfig:
    """Get the global configuration instance."""
    return ConfigManager().config


def load_config_with_overrides(
    config_path: str = DEFAULT_CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
) -> ClientConfig:
    """Load a fresh config (YAML + env) with optional deep overrides."""
    load_dotenv()
    yaml_config = _read_yaml(config_path)
    _apply_env_overrides(yaml_config)

    def _deep_update(dst: Dict[str, Any], src: Dict[str, Any]) -> None:
        for key, value in (src or {}).items():
            if isinstance(value, dict) and isinstance(dst.get(key), dict):
                _deep_update(dst[key], value)
            else:
                dst[key] = value

    if overrides:
        _deep_update(yaml_config, overrides)

    return ClientConfig(**yaml_config)

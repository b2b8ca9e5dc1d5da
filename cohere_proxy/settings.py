"""Runtime settings resolved from the config file and environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from .config_loader import load_config
from .core.exceptions import ConfigurationError
from .core.upstream import DEFAULT_TIMEOUT, DEFAULT_UPSTREAM_BASE
from .translation.request import DEFAULT_MODEL, DEFAULT_TEMPERATURE

logger = logging.getLogger("cohere-proxy")

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class ProxySettings:
    host: str = "127.0.0.1"
    port: int = 3000
    upstream_base_url: str = DEFAULT_UPSTREAM_BASE
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT
    default_model: str = DEFAULT_MODEL
    default_temperature: float = DEFAULT_TEMPERATURE
    api_key_header: str = "x-api-key"
    cors_allow_origin: str = "*"
    log_level: str = "INFO"


def _get(cfg: dict, *keys: str):
    cur = cfg
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _to_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s: %r; using default", name, value)
        return None


def _to_float(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid number for %s: %r; using default", name, value)
        return None


def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def settings_from_config(cfg: dict) -> ProxySettings:
    """Build settings from a parsed config mapping plus env overrides.

    Raises:
        ConfigurationError: If the log level is not a known level name.
    """
    defaults = ProxySettings()

    host = _to_str(_get(cfg, "server", "host")) or defaults.host
    port = _to_int(_get(cfg, "server", "port"), "server.port") or defaults.port
    upstream_base_url = _to_str(_get(cfg, "upstream", "base_url")) or defaults.upstream_base_url
    timeout_seconds = _to_float(_get(cfg, "upstream", "timeout_seconds"), "upstream.timeout_seconds")
    if timeout_seconds is None:
        timeout_seconds = defaults.timeout_seconds
    default_model = _to_str(_get(cfg, "defaults", "model")) or defaults.default_model
    default_temperature = _to_float(_get(cfg, "defaults", "temperature"), "defaults.temperature")
    if default_temperature is None:
        default_temperature = defaults.default_temperature
    api_key_header = _to_str(_get(cfg, "auth", "api_key_header")) or defaults.api_key_header
    cors_allow_origin = _to_str(_get(cfg, "cors", "allow_origin")) or defaults.cors_allow_origin
    log_level = _to_str(_get(cfg, "logging", "level")) or defaults.log_level

    # Env overrides
    host = os.getenv("COHERE_PROXY_HOST", host)
    port = _to_int(os.getenv("COHERE_PROXY_PORT"), "COHERE_PROXY_PORT") or port
    upstream_base_url = os.getenv("COHERE_PROXY_UPSTREAM_BASE", upstream_base_url)
    default_model = os.getenv("COHERE_PROXY_DEFAULT_MODEL", default_model)
    log_level = os.getenv("COHERE_PROXY_LOG_LEVEL", log_level)

    timeout_env = os.getenv("COHERE_PROXY_TIMEOUT")
    if timeout_env is not None:
        parsed = _to_float(timeout_env, "COHERE_PROXY_TIMEOUT")
        if parsed is not None:
            timeout_seconds = parsed

    log_level = log_level.upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigurationError(f"Unknown log level: {log_level}")

    return ProxySettings(
        host=host,
        port=port,
        upstream_base_url=upstream_base_url.rstrip("/"),
        timeout_seconds=timeout_seconds if timeout_seconds and timeout_seconds > 0 else None,
        default_model=default_model,
        default_temperature=default_temperature,
        api_key_header=api_key_header.lower(),
        cors_allow_origin=cors_allow_origin,
        log_level=log_level,
    )


def load_settings(path: str | None = None) -> ProxySettings:
    """Load the config file (if any) and resolve settings from it."""
    return settings_from_config(load_config(path))

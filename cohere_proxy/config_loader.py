"""YAML config file loading for the proxy.

The file is optional. String values may reference environment variables as
``${NAME}``; a ``.env_<suffix>`` file next to ``config_<suffix>.yaml`` (or
``.env`` next to any other name) supplies values without being exported.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("cohere-proxy")

CONFIG_ENV_VAR = "COHERE_PROXY_CONFIG"
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
PROJECT_ROOT = Path(__file__).resolve().parent.parent

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def resolve_env_path(config_path: Path) -> Path:
    """Return the dotenv file paired with ``config_path``."""
    stem = config_path.stem
    if stem.startswith("config_"):
        return config_path.with_name(".env_" + stem.split("_", 1)[1])
    return config_path.with_name(".env")


def _locate(path: Optional[str]) -> tuple[Path, bool]:
    """Return the config file to read and whether it was asked for explicitly."""
    requested = path or os.getenv(CONFIG_ENV_VAR)
    candidate = Path(requested or DEFAULT_CONFIG_PATH)
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate, bool(requested)


def expand_placeholders(value: Any, overrides: Mapping[str, str]) -> Any:
    """Replace ``${NAME}`` in every string of a parsed YAML tree.

    ``overrides`` (dotenv values) take precedence over ``os.environ``.
    Unknown names are left as written.
    """
    if isinstance(value, dict):
        return {key: expand_placeholders(item, overrides) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_placeholders(item, overrides) for item in value]
    if not isinstance(value, str):
        return value

    def lookup(match: "re.Match[str]") -> str:
        name = match.group(1)
        resolved = overrides.get(name, os.environ.get(name))
        if resolved is None:
            logger.warning(f"Config references unset variable {name}; leaving placeholder")
            return match.group(0)
        return resolved

    return _PLACEHOLDER.sub(lookup, value)


def load_config(path: Optional[str] = None) -> dict:
    """Read the proxy config file.

    Args:
        path: Config file; defaults to ``$COHERE_PROXY_CONFIG`` and then
              ``configs/config_default.yaml`` under the project root.

    Returns:
        The parsed mapping, or ``{}`` when the default file is absent.

    Raises:
        RuntimeError: If an explicitly requested file is missing or does not
            hold a mapping.
    """
    config_path, explicit = _locate(path)
    if not config_path.exists():
        if explicit:
            raise RuntimeError(f"Config file not found: {config_path}")
        logger.warning(f"No config file at {config_path}; using built-in defaults")
        return {}

    logger.info(f"Loading configuration from {config_path}")
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Config file {config_path} must contain a mapping")

    env_path = resolve_env_path(config_path)
    overrides: dict[str, str] = {}
    if env_path.exists():
        logger.info(f"Reading variables from {env_path}")
        overrides = {k: v for k, v in dotenv_values(env_path).items() if v is not None}
    return expand_placeholders(data, overrides)

"""Configuration loading for the chat service.

Configuration is layered:
1. Explicit path argument (highest precedence)
2. Environment variable BUDDY_CONFIG
3. Fallback to "config/default.yaml"

Values can be overridden from environment variables with prefix ``BUDDY__``
(e.g., BUDDY__MODEL__TEMPERATURE=0.2 sets cfg["model"]["temperature"]).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .errors import ConfigurationFailure

logger = logging.getLogger(__name__)

ENV_PREFIX = "BUDDY__"
CONFIG_ENV = "BUDDY_CONFIG"
DEFAULT_CONFIG_PATH = "config/default.yaml"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful CLI assistant specialized in Linux and terminal commands. "
    "Provide concise, accurate information and examples when asked. Be concise and "
    "never output a large wall of text that is hard to parse through for the user. "
    "Only respond to what the user is specifically asking about. Never assume or make "
    "up information about the user's environment or previous conversations. Only use "
    "information that the user has explicitly provided. DO NOT include any <|system|>, "
    "<|user|>, or <|assistant|> tags in your responses."
)

DEFAULTS: Dict[str, Any] = {
    "server": {"cors_origins": ["*"]},
    "model": {
        "model_dir": "models",
        "model_path": "model.gguf",
        "n_ctx": 4096,
        "temperature": 0.5,
        "max_new_tokens": 512,
    },
    "memory": {"data_dir": "data", "history_limit": 0},
    "assistant": {"system_prompt": DEFAULT_SYSTEM_PROMPT},
    "logging": {"level": "INFO"},
}


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix BUDDY__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., BUDDY__MEMORY__DATA_DIR -> cfg["memory"]["data_dir"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the chat service.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``BUDDY_CONFIG`` is consulted. As a last
        resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        File values merged over :data:`DEFAULTS`, with environment
        overrides applied.

    Raises
    ------
    ConfigurationFailure
        If the file exists but cannot be parsed into a mapping.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s, using defaults", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationFailure(f"cannot parse {path_obj}: {e}") from e

    if not isinstance(loaded, dict):
        raise ConfigurationFailure(f"invalid config format in {path_obj}, expected a mapping")

    return _apply_env_overrides(_merge(DEFAULTS, loaded))


def configure_logging(cfg: Dict[str, Any]) -> None:
    level = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

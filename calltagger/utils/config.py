import copy
import json
import os
from typing import Any, Dict, Optional

from jsonschema import ValidationError, validate

from .logger import logger

"""
Configuration loader for calltagger.

Behavior:
- Explicit path first, then the `CALLTAGGER_CONFIG` env var.
- Falls back to `calltagger/config.json` next to the package, then
  `calltagger/config.json.example`.
- Every candidate is validated against `json_schema/config.schema.json`;
  invalid files are logged and skipped.
- If nothing loads, conservative defaults are used.
"""

_DEFAULT_CONFIG = {
    "provider": "openai",
    "model": "gpt-4o",
    "fallback": None,
    "providers": {},
    "rate_limits": {"requests_per_minute": 500, "tokens_per_minute": 30000},
    "cache": {"max_size": 10000, "ttl_seconds": 3600},
    "tagger": {
        "concurrency": 5,
        "temperature": 0.1,
        "completion_token_estimate": 500,
        "storage_retries": 3,
    },
    "circuit_breaker": {"failure_threshold": 3, "cooldown_seconds": 60, "max_attempts": 2},
    "calibration": {"enabled": True, "curve_file": None},
    "log_level": "INFO",
}

_config_cache: Dict[str, Any] = {}
_schema_cache: Dict[str, Any] = {}

_PACKAGE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _default_config_path() -> str:
    return os.path.join(_PACKAGE_DIR, "config.json")


def _schema_path() -> str:
    return os.path.join(_PACKAGE_DIR, "json_schema", "config.schema.json")


def default_config() -> Dict[str, Any]:
    """A fresh copy of the built-in defaults."""
    return copy.deepcopy(_DEFAULT_CONFIG)


def reset_config_cache() -> None:
    """Forget the loaded configuration (used by tests)."""
    global _config_cache
    _config_cache = {}


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from JSON with sensible fallbacks.

    The first valid candidate wins and is cached for later calls.
    """
    global _config_cache
    if _config_cache:
        return _config_cache

    env_path = os.environ.get("CALLTAGGER_CONFIG")
    candidates = []
    if path:
        candidates.append(path)
    if env_path:
        candidates.append(env_path)
    candidates.append(_default_config_path())
    candidates.append(os.path.join(_PACKAGE_DIR, "config.json.example"))

    for p in candidates:
        p_abs = os.path.abspath(p)
        if not os.path.exists(p_abs):
            continue
        try:
            with open(p_abs, "r", encoding="utf-8") as f:
                cfg = json.load(f)
            validate_config(cfg)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file {p}: {e}")
            continue
        except ValidationError as e:
            logger.error(f"Config file {p} failed schema validation: {e.message}")
            continue
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config {p}: {e}")
            continue

        _config_cache = cfg
        logger.info(f"Configuration loaded from {p_abs}")
        return cfg

    logger.warning(
        "No config found; using default configuration. Create 'calltagger/config.json' "
        "or set CALLTAGGER_CONFIG to customize."
    )
    _config_cache = default_config()
    return _config_cache


def _load_schema() -> Dict[str, Any]:
    if not _schema_cache:
        with open(_schema_path(), "r", encoding="utf-8") as f:
            _schema_cache.update(json.load(f))
    return _schema_cache


def validate_config(cfg: Dict[str, Any]) -> None:
    """Validate configuration using the package JSON Schema.

    Raises jsonschema.ValidationError on invalid configs.
    """
    if not isinstance(cfg, dict):
        raise ValueError("Configuration must be a JSON object/dict")

    validate(instance=cfg, schema=_load_schema())


def section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    """A config section merged over its defaults."""
    merged = dict(_DEFAULT_CONFIG.get(name) or {})
    merged.update(cfg.get(name) or {})
    return merged

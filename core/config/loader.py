"""Configuration loading & validation.

- Per-section schemas live in `core.config.schemas.*`.
- `schema_version` (missing → assume 1, warn).
- AggregatedConfig holds validated sub-schemas; absent sections get defaults.

Precedence (last wins): base.yaml → overrides.local.yaml → ENV (ARR__*).

Unknown top-level keys are rejected.
"""
from __future__ import annotations

import logging
import os
import pathlib
import threading
from functools import lru_cache
from typing import Any, Dict, Type

import yaml
from core import metrics
from core.errors import validate_error_type
from pydantic import BaseModel, ConfigDict

from .schemas.llm import LLMConfig
from .schemas.core import (
    AgentConfig,
    ModulesConfig,
    ServerConfig,
    SessionConfig,
)
from .schemas.observability import MetricsConfig, LoggingConfig

logger = logging.getLogger("arr.config")


class AggregatedConfig(BaseModel):
    schema_version: int = 1
    server: ServerConfig = ServerConfig()
    llm: LLMConfig = LLMConfig()
    agent: AgentConfig = AgentConfig()
    modules: ModulesConfig = ModulesConfig()
    session: SessionConfig = SessionConfig()
    metrics: MetricsConfig = MetricsConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = ConfigDict(extra="forbid")


DEFAULT_CONFIG_DIR = "configs"
ENV_PREFIX = "ARR__"

SUB_SCHEMA_CLASSES: Dict[str, Type[BaseModel]] = {
    "server": ServerConfig,
    "llm": LLMConfig,
    "agent": AgentConfig,
    "modules": ModulesConfig,
    "session": SessionConfig,
    "metrics": MetricsConfig,
    "logging": LoggingConfig,
}


class ConfigError(Exception):
    pass


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _merge_dict(
    base: Dict[str, Any], override: Dict[str, Any]
) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def _cast_env_value(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env(cfg: Dict[str, Any]) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        path_parts = env_key[prefix_len:].lower().split("__")
        target = cfg
        for part in path_parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            target = target[part]
        target[path_parts[-1]] = _cast_env_value(value)
        dotted_path = ".".join(path_parts)
        metrics.inc("env_override_total", {"path": dotted_path})
        # value masked: overrides commonly carry credentials
        logger.info("config env override path=%s value=***", dotted_path)


_lock = threading.Lock()


def _resolve_config_dir() -> pathlib.Path:
    """Resolve config directory each call honoring env var changes."""
    return pathlib.Path(os.getenv("ARR_CONFIG_DIR", DEFAULT_CONFIG_DIR))


def _migrate_legacy(data: Dict[str, Any]) -> Dict[str, Any]:
    if "schema_version" not in data:
        logger.warning("config schema_version missing, assuming 1")
        data["schema_version"] = 1
    return data


def _validate_sub_schemas(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Validate each known section via its schema class."""
    validated: Dict[str, Any] = {}
    for name, cls in SUB_SCHEMA_CLASSES.items():
        if name in raw:
            try:
                validated[name] = cls.model_validate(raw[name] or {})
            except Exception as e:  # noqa: BLE001
                raise ConfigError(
                    f"Validation failed for section '{name}': {e}"
                ) from e
    return validated


def _normalize_and_validate(raw: Dict[str, Any]) -> None:
    """Apply cross-field normalizations and bounds validation.

    Normalizations:
      - llm.history_window < 0 -> 0 (clip)
    Validations (error → raise):
      - llm.timeout_s > 0
      - agent.max_chain_depth >= 1 (the loop must stay bounded)
      - session.max_messages >= 1
    """
    errors: list[tuple[str, str, str]] = []  # (path, code, msg)
    llm = raw.get("llm") or {}
    agent = raw.get("agent") or {}
    session = raw.get("session") or {}

    hw = llm.get("history_window")
    if isinstance(hw, int) and hw < 0:
        raw["llm"]["history_window"] = 0

    timeout = llm.get("timeout_s")
    if timeout is not None and timeout <= 0:
        errors.append(("llm.timeout_s", "config-out-of-range", ">0 required"))

    depth = agent.get("max_chain_depth")
    if depth is not None and depth < 1:
        errors.append(
            ("agent.max_chain_depth", "config-out-of-range", ">=1 required")
        )

    max_messages = session.get("max_messages")
    if max_messages is not None and max_messages < 1:
        errors.append(
            ("session.max_messages", "config-out-of-range", ">=1 required")
        )

    if errors:
        for path, code, _ in errors:
            validate_error_type(code)
            metrics.inc(
                "config_validation_errors_total",
                {"path": path, "code": code},
            )
        details = ", ".join(f"{p}:{c}:{m}" for p, c, m in errors)
        raise ConfigError(f"config validation failed: {details}")


@lru_cache(maxsize=1)
def get_config() -> AggregatedConfig:  # noqa: D401
    with _lock:
        cfg_dir = _resolve_config_dir()
        base_cfg = _load_yaml_if_exists(cfg_dir / "base.yaml")
        overrides_cfg = _load_yaml_if_exists(cfg_dir / "overrides.local.yaml")
        merged = _merge_dict(base_cfg, overrides_cfg)
        _apply_env(merged)
        migrated = _migrate_legacy(merged)
        _normalize_and_validate(migrated)
        validated_sub = _validate_sub_schemas(migrated)
        try:
            agg = AggregatedConfig.model_validate(migrated)
        except Exception as e:  # noqa: BLE001
            raise ConfigError(str(e)) from e
        for k, v in validated_sub.items():
            setattr(agg, k, v)
        return agg


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    get_config.cache_clear()


def as_dict() -> Dict[str, Any]:
    return get_config().model_dump()

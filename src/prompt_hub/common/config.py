"""Runtime settings: defaults, then an optional YAML file, then environment variables."""
from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from prompt_hub.common.errors import ConfigError

CONFIG_ENV = "PROMPT_HUB_CONFIG"


def _split_list(raw: Any) -> list[str]:
    if isinstance(raw, (list, tuple)):
        items = [str(x) for x in raw]
    else:
        items = str(raw).split(",")
    return [x.strip() for x in items if x and str(x).strip()]


def _optional_str(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _optional_float(raw: Any) -> float | None:
    if raw is None or not str(raw).strip():
        return None
    return float(raw)


def _optional_int(raw: Any) -> int | None:
    if raw is None or not str(raw).strip():
        return None
    return int(raw)


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 5555
    lmstudio_base: str = "http://localhost:8000"
    lmstudio_api_key: str | None = None
    openai_base: str = "https://api.openai.com"
    openai_api_key: str | None = None
    openai_models: list[str] = field(default_factory=list)
    connect_timeout: float = 5.0
    run_ttl_seconds: float | None = 600.0
    demo_delay: float = 0.15
    channel_size: int = 64
    max_upstream_connections: int | None = None
    shutdown_grace: float = 5.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


# field name -> (environment variable, converter)
_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "host": ("HOST", str),
    "port": ("PORT", int),
    "lmstudio_base": ("LMSTUDIO_BASE", str),
    "lmstudio_api_key": ("LMSTUDIO_API_KEY", _optional_str),
    "openai_base": ("OPENAI_BASE", str),
    "openai_api_key": ("OPENAI_API_KEY", _optional_str),
    "openai_models": ("OPENAI_MODELS", _split_list),
    "connect_timeout": ("CONNECT_TIMEOUT", float),
    "run_ttl_seconds": ("RUN_TTL_SECONDS", _optional_float),
    "demo_delay": ("DEMO_DELAY", float),
    "channel_size": ("CHANNEL_SIZE", int),
    "max_upstream_connections": ("MAX_UPSTREAM_CONNECTIONS", _optional_int),
    "shutdown_grace": ("SHUTDOWN_GRACE", float),
    "cors_origins": ("CORS_ORIGINS", _split_list),
    "log_level": ("LOG_LEVEL", lambda v: str(v).upper()),
}


def load_cfg(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def _convert(key: str, raw: Any, source: str) -> Any:
    _, conv = _FIELDS[key]
    try:
        return conv(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value for {key} from {source}: {raw!r}") from e


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """
    Build Settings from defaults, an optional YAML file and the environment.

    Args:
        path: YAML config path. Falls back to $PROMPT_HUB_CONFIG; a missing file
            is only an error when the path was given explicitly.
        environ: Environment mapping, defaults to ``os.environ``.
        overrides: Values that win over both file and environment, e.g. CLI
            flags; the environment is not consulted for these keys.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    explicit = path is not None
    cfg_path = path if explicit else env.get(CONFIG_ENV)
    if cfg_path:
        if Path(cfg_path).exists():
            for key, raw in load_cfg(cfg_path).items():
                if key not in _FIELDS:
                    raise ConfigError(f"{cfg_path}: unknown setting {key!r}")
                values[key] = _convert(key, raw, str(cfg_path))
        elif explicit:
            raise ConfigError(f"config file not found: {cfg_path}")

    overrides = overrides or {}
    for key, (env_name, _) in _FIELDS.items():
        if key in overrides:
            values[key] = _convert(key, overrides[key], "overrides")
        elif env_name in env:
            values[key] = _convert(key, env[env_name], env_name)

    settings = Settings(**values)
    if settings.run_ttl_seconds is not None and settings.run_ttl_seconds <= 0:
        settings.run_ttl_seconds = None
    if settings.channel_size < 1:
        raise ConfigError("channel_size must be >= 1")
    if settings.max_upstream_connections is not None and settings.max_upstream_connections < 1:
        settings.max_upstream_connections = None
    if settings.shutdown_grace < 0:
        raise ConfigError("shutdown_grace must be >= 0")
    return settings


def describe(settings: Settings) -> dict[str, Any]:
    """Settings as a dict with credentials masked, for startup logging."""
    out = {}
    for f in fields(settings):
        value = getattr(settings, f.name)
        if f.name.endswith("api_key") and value:
            value = "***"
        out[f.name] = value
    return out

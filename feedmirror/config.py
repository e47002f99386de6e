"""Backend configuration: config.yaml plus environment (.env / .env.local)."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values, load_dotenv

from feedmirror.storage.errors import ConfigError
from feedmirror.storage.models import BackendDescriptor
from feedmirror.storage.pools import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_MAX_SIZE,
    open_pool,
)
from feedmirror.storage.registry import BackendRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

# Used when no config file exists: (name, env var, max pool size)
DEFAULT_BACKENDS = [
    ("Aiven PostgreSQL", "POSTGRES_URI", 5),
    ("CockroachDB", "COCKROACH_URI", 3),
    ("Neon", "NEON_URI", 3),
]

_ENV_REF = re.compile(r"\$\{(\w+)\}")


@dataclass
class BackendConfig:
    """Connection settings for one backend."""

    name: str
    url: str
    max_size: int = DEFAULT_MAX_SIZE
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    ssl: bool = True
    enabled: bool = True

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any], env: Optional[Mapping[str, str]] = None) -> BackendConfig:
        name = cfg.get("name")
        if not name:
            raise ConfigError(f"Backend entry without a name: {cfg!r}")
        if "url" not in cfg:
            raise ConfigError(f"Backend {name!r} has no url")
        try:
            return cls(
                name=str(name),
                url=resolve_env(str(cfg["url"] or ""), env).strip(),
                max_size=int(cfg.get("max_size", DEFAULT_MAX_SIZE)),
                connect_timeout=float(cfg.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
                idle_timeout=float(cfg.get("idle_timeout", DEFAULT_IDLE_TIMEOUT)),
                ssl=bool(cfg.get("ssl", True)),
                enabled=bool(cfg.get("enabled", True)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Backend {name!r}: {e}") from e


@dataclass
class Settings:
    """Ordered backend list; the first usable entry becomes the primary."""

    backends: List[BackendConfig] = field(default_factory=list)

    @property
    def active(self) -> List[BackendConfig]:
        usable = []
        for b in self.backends:
            if not b.enabled:
                logger.info("Backend %s disabled in config; skipping", b.name)
            elif not b.url:
                logger.warning("Backend %s has no connection URL; skipping", b.name)
            else:
                usable.append(b)
        return usable


def resolve_env(value: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Substitute ${VAR} references; unset variables become empty strings."""
    env = os.environ if env is None else env
    return _ENV_REF.sub(lambda m: env.get(m.group(1), ""), value)


def load_env(directory: str = ".") -> Optional[str]:
    """Load .env, then let .env.local override it. Returns the file used last."""
    base = Path(directory)
    env_file = base / ".env"
    local_file = base / ".env.local"

    load_dotenv(env_file)
    if local_file.exists():
        logger.info("Using %s to supply config environment variables", local_file)
        for key, val in dotenv_values(local_file).items():
            if val is not None:
                os.environ[key] = val
        return str(local_file)

    logger.info(
        "Using %s for config environment variables; create %s to override locally",
        env_file, local_file,
    )
    return str(env_file) if env_file.exists() else None


def load_settings(
    config_path: Optional[str] = DEFAULT_CONFIG_PATH,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Read backends from YAML, or from POSTGRES_URI/COCKROACH_URI/NEON_URI."""
    if config_path and Path(config_path).exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        entries = data.get("backends")
        if not isinstance(entries, list):
            raise ConfigError(f"{config_path}: 'backends' must be a list")
        return Settings(backends=[BackendConfig.from_dict(e, env) for e in entries])

    env = os.environ if env is None else env
    logger.info("No config file at %s; reading backends from environment", config_path)
    return Settings(
        backends=[
            BackendConfig(name=name, url=env.get(var, "").strip(), max_size=size)
            for name, var, size in DEFAULT_BACKENDS
        ]
    )


def build_registry(settings: Settings) -> BackendRegistry:
    """Open a pool per usable backend and register them in config order."""
    active = settings.active
    if not active:
        raise ConfigError("No usable backends configured")

    descriptors = []
    for b in active:
        try:
            pool = open_pool(
                b.url,
                max_size=b.max_size,
                connect_timeout=b.connect_timeout,
                idle_timeout=b.idle_timeout,
                ssl=b.ssl,
            )
        except ValueError as e:
            raise ConfigError(f"Backend {b.name!r}: {e}") from e
        descriptors.append(BackendDescriptor(name=b.name, pool=pool))

    try:
        return BackendRegistry(descriptors)
    except ValueError as e:
        raise ConfigError(str(e)) from e

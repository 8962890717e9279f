"""Runtime configuration for resolvers.

Defaults come from ``Constants``; an optional YAML file (argument or the
``HGRESOLVE_CONFIG`` environment variable) overrides them. The file may hold
the settings at the top level or under a ``resolver:`` section.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import Constants
from .exceptions import ConfigError

logger = logging.getLogger(__name__)


def _default_tmp_dir() -> str:
    env_dir = os.environ.get(Constants.ENV_TMP_DIR)
    if env_dir and env_dir.strip():
        return env_dir.strip()
    return os.path.join(tempfile.gettempdir(), Constants.TMP_DIR_NAME)


@dataclass
class ResolverConfig:
    """Configuration for resolver instances."""

    hg_executable: str = Constants.HG_EXECUTABLE
    tmp_dir: str = field(default_factory=_default_tmp_dir)
    default_branch: str = Constants.DEFAULT_BRANCH
    cache_max_entries: int = Constants.CACHE_MAX_ENTRIES
    cache_ttl: float = Constants.CACHE_TTL_SEC
    progress_delay: float = Constants.PROGRESS_DELAY_SEC
    progress_interval: float = Constants.PROGRESS_INTERVAL_SEC
    shallow_clone_args: List[str] = field(
        default_factory=lambda: list(Constants.SHALLOW_CLONE_ARGS)
    )
    command_timeout: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ResolverConfig":
        """Create config from a mapping, coercing values to the field types.

        Args:
            data: Mapping of option name to value.

        Returns:
            ResolverConfig instance.

        Raises:
            ConfigError: If a value cannot be coerced.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, raw in data.items():
            name = str(key).replace("-", "_")
            if name not in known:
                logger.warning("Ignoring unknown resolver option: %s", key)
                continue
            values[name] = _coerce(name, raw)
        return cls(**values)


def _coerce(name: str, raw: Any) -> Any:
    try:
        if name in ("cache_max_entries",):
            value = int(raw)
            if value < 1:
                raise ValueError("must be positive")
            return value
        if name in ("cache_ttl", "progress_delay", "progress_interval"):
            value = float(raw)
            if value < 0:
                raise ValueError("must not be negative")
            return value
        if name == "command_timeout":
            if raw is None:
                return None
            value = float(raw)
            if value <= 0:
                raise ValueError("must be positive")
            return value
        if name == "shallow_clone_args":
            if isinstance(raw, str):
                return raw.split()
            if not isinstance(raw, (list, tuple)):
                raise ValueError("must be a list of arguments")
            return [str(arg) for arg in raw]
        if raw is None or not str(raw).strip():
            raise ValueError("must not be empty")
        return str(raw).strip()
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {raw!r}", str(exc)) from exc


def load_config(path: Optional[str] = None) -> ResolverConfig:
    """Load resolver configuration from YAML.

    Args:
        path: Path to a YAML file. Defaults to ``$HGRESOLVE_CONFIG``.

    Returns:
        ResolverConfig with file values applied over the defaults.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values.
    """
    path = path or os.environ.get(Constants.ENV_CONFIG)
    if not path:
        return ResolverConfig()

    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return ResolverConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}", str(exc)) from exc

    if data is None:
        return ResolverConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    section = data.get("resolver", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'resolver' section in {path} must be a mapping")

    logger.debug("Loaded resolver config from %s", path)
    return ResolverConfig.from_mapping(section)

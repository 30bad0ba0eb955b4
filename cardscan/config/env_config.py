"""Environment variable configuration.

Every setting in ``DEFAULT_CONFIG`` can be overridden with a ``CARDSCAN_``
prefixed variable (``CARDSCAN_HISTORY_LIMIT=7``), either from the process
environment or from a ``.env`` file. Process environment wins.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .defaults import DEFAULT_CONFIG, NUMERIC_RANGES
from ..core.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CARDSCAN_"

_TRUE_VALUES = ('true', '1', 'yes', 'on')


@dataclass(frozen=True)
class EnvironmentConfig:
    """Immutable set of validated overrides read from the environment."""
    overrides: Dict[str, Any] = field(default_factory=dict)
    source_file: Optional[str] = None

    @property
    def has_overrides(self) -> bool:
        return bool(self.overrides)


class EnvironmentValidator:
    """Converts raw environment strings to the type of the matching default."""

    @classmethod
    def validate_numeric_range(cls, value: Union[str, int, float],
                               min_val: Optional[Union[int, float]] = None,
                               max_val: Optional[Union[int, float]] = None,
                               value_type: type = int) -> Union[int, float]:
        """Validate numeric value within specified range.

        Raises:
            ConfigError: If validation fails
        """
        try:
            numeric_value = value_type(value)
        except (ValueError, TypeError):
            raise ConfigError(f"Invalid {value_type.__name__} value: {value}")

        if min_val is not None and numeric_value < min_val:
            raise ConfigError(f"Value {numeric_value} below minimum {min_val}")
        if max_val is not None and numeric_value > max_val:
            raise ConfigError(f"Value {numeric_value} above maximum {max_val}")
        return numeric_value

    @classmethod
    def coerce(cls, key: str, raw: str) -> Any:
        default = DEFAULT_CONFIG[key]
        if isinstance(default, bool):
            return raw.strip().lower() in _TRUE_VALUES
        if isinstance(default, (int, float)):
            low, high = NUMERIC_RANGES.get(key, (None, None))
            return cls.validate_numeric_range(raw.strip(), low, high, type(default))
        return raw


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """Load KEY=VALUE pairs from a .env file (missing file gives an empty dict)."""
    if env_path is None:
        env_path = ".env"

    env_vars: Dict[str, str] = {}
    env_file_path = Path(env_path)
    if not env_file_path.exists():
        logger.debug(f"Environment file {env_path} not found, using process environment only")
        return env_vars

    try:
        with open(env_file_path, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' not in line:
                    logger.warning(f"Invalid line format in {env_path}:{line_num}: {line}")
                    continue
                key, value = line.split('=', 1)
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                    value = value[1:-1]
                env_vars[key.strip()] = value
        logger.info(f"Loaded {len(env_vars)} variables from {env_path}")
    except OSError as e:
        logger.error(f"Error reading environment file {env_path}: {e}")

    return env_vars


def load_environment_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Collect validated ``CARDSCAN_*`` overrides.

    Invalid values are logged and skipped so a bad variable never blocks startup.
    """
    file_vars = load_env_file(env_file_path)
    overrides: Dict[str, Any] = {}

    for key in DEFAULT_CONFIG:
        env_key = f"{ENV_PREFIX}{key.upper()}"
        raw = os.environ.get(env_key, file_vars.get(env_key))
        if raw is None:
            continue
        try:
            overrides[key] = EnvironmentValidator.coerce(key, raw)
        except ConfigError as e:
            logger.warning(f"Ignoring {env_key}: {e}")

    if overrides:
        logger.info(f"Environment overrides applied for: {sorted(overrides)}")
    return EnvironmentConfig(overrides=overrides, source_file=env_file_path)

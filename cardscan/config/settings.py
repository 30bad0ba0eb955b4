"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that is injected into the
services instead of a module-level dictionary. Values are layered as
defaults, then the JSON file, then ``CARDSCAN_*`` environment overrides.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from .defaults import DEFAULT_CONFIG, NUMERIC_RANGES
from .env_config import load_environment_config

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Config:
    history_limit: int = DEFAULT_CONFIG["history_limit"]
    jpeg_quality: int = DEFAULT_CONFIG["jpeg_quality"]
    capture_box_width_dp: int = DEFAULT_CONFIG["capture_box_width_dp"]
    capture_box_height_dp: int = DEFAULT_CONFIG["capture_box_height_dp"]
    display_density: float = DEFAULT_CONFIG["display_density"]
    debug_overlay_enabled: bool = DEFAULT_CONFIG["debug_overlay_enabled"]
    recognizer_language: str = DEFAULT_CONFIG["recognizer_language"]
    tesseract_config: str = DEFAULT_CONFIG["tesseract_config"]
    recognition_workers: int = DEFAULT_CONFIG["recognition_workers"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    enable_file_logging: bool = DEFAULT_CONFIG["enable_file_logging"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra", {})
        d.update(extra)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        if key in DEFAULT_CONFIG:
            return getattr(self, key)
        return self.extra.get(key, default)


def load_config(path: str = "cardscan.json", env_file: Optional[str] = None) -> Config:
    """Load configuration from a JSON file with environment overrides.

    A missing, unreadable or malformed file is logged and the defaults are
    used instead; loading never raises.

    Args:
        path: Path to the JSON configuration file
        env_file: Path to a .env file (optional)

    Returns:
        Config: Loaded and validated configuration
    """
    data: Dict[str, Any] = {}

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if isinstance(loaded_data, dict):
                data = loaded_data
                logger.info(f"Loaded configuration from '{path}'")
            else:
                logger.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except OSError as e:
            logger.error(f"Cannot read configuration file '{path}': {e}. Using defaults.")
    else:
        logger.debug(f"Configuration file '{path}' does not exist. Using defaults.")

    env_config = load_environment_config(env_file)
    merged = {**DEFAULT_CONFIG, **data, **env_config.overrides}
    merged = _sanitize_config_values(merged)

    extra = {k: v for k, v in merged.items() if k not in DEFAULT_CONFIG}
    if extra:
        logger.info(f"Found extra configuration keys: {list(extra.keys())}")

    return Config(**{k: merged[k] for k in DEFAULT_CONFIG}, extra=extra)


def save_config(cfg: Config, path: str = "cardscan.json") -> None:
    """Save configuration to a JSON file; failures are logged, not raised."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(cfg.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(f"Configuration saved to '{path}'")
    except OSError as e:
        logger.error(f"Error saving configuration file '{path}': {e}")


def _sanitize_config_values(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Replace wrongly typed or out-of-range values with their defaults."""
    sanitized = config_dict.copy()

    for key, default in DEFAULT_CONFIG.items():
        value = sanitized.get(key)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                logger.warning(f"Setting {key}={value!r} is not a boolean, using default")
                sanitized[key] = default
        elif isinstance(default, (int, float)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.warning(f"Setting {key}={value!r} is not numeric, using default")
                sanitized[key] = default
                continue
            if isinstance(default, int) and not isinstance(value, int):
                if float(value).is_integer():
                    value = int(value)
                    sanitized[key] = value
                else:
                    logger.warning(f"Setting {key}={value!r} is not an integer, using default")
                    sanitized[key] = default
                    continue
            low, high = NUMERIC_RANGES.get(key, (None, None))
            if (low is not None and value < low) or (high is not None and value > high):
                logger.warning(f"Value {key}={value} out of range [{low}, {high}], using default")
                sanitized[key] = default
        elif not isinstance(value, str):
            logger.warning(f"Setting {key}={value!r} is not a string, using default")
            sanitized[key] = default

    return sanitized

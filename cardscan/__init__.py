"""
Live identity-card scanning: frame geometry, field extraction and consensus.
"""

__version__ = "1.0.0"

from .config.settings import Config, load_config, save_config
from .core.entities import DisplayRotation, FieldCandidates, FinalRecord, Rect, Size

__all__ = [
    "Config", "load_config", "save_config",
    "DisplayRotation", "FieldCandidates", "FinalRecord", "Rect", "Size"
]

"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # Consensus settings
    "history_limit": 5,  # samples per field before a vote is taken

    # Frame conversion
    "jpeg_quality": 85,  # 1 to 100

    # Capture window, in density-independent pixels
    "capture_box_width_dp": 250,
    "capture_box_height_dp": 150,
    "display_density": 1.0,
    "debug_overlay_enabled": True,

    # Recognition engine
    "recognizer_language": "jpn",
    "tesseract_config": "--psm 6",
    "recognition_workers": 1,

    # Debug and Logging Settings
    "log_level": "INFO",
    "log_dir": "logs",
    "enable_file_logging": False,
    "structured_logging": False,
}

# Inclusive ranges enforced when loading configuration.
NUMERIC_RANGES: Dict[str, tuple] = {
    "history_limit": (1, 50),
    "jpeg_quality": (1, 100),
    "capture_box_width_dp": (1, 4096),
    "capture_box_height_dp": (1, 4096),
    "display_density": (0.1, 8.0),
    "recognition_workers": (1, 8),
}

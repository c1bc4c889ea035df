"""
Configuration management for the digitization pipeline.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional
from .types import Config

logger = logging.getLogger(__name__)

MAX_OCR_WORKERS = 4


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from file or use defaults.

    Args:
        config_path: Optional path to JSON config file

    Returns:
        Config object with loaded or default values
    """
    config = Config()

    if config_path and Path(config_path).exists():
        try:
            with open(config_path, 'r') as f:
                config_dict = json.load(f)
            for key, value in config_dict.items():
                if hasattr(config, key):
                    setattr(config, key, value)
                else:
                    logger.warning(f"Ignoring unknown config key: {key}")
            logger.info(f"Loaded config from {config_path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
    elif config_path:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    # Environment variable overrides
    if os.getenv("BS_DEBUG"):
        config.debug = _env_bool(os.getenv("BS_DEBUG"))
    if os.getenv("BS_WINDOW_SECONDS"):
        config.window_seconds = float(os.getenv("BS_WINDOW_SECONDS"))
    if os.getenv("BS_MIN_SCORE"):
        config.min_score = float(os.getenv("BS_MIN_SCORE"))
    if os.getenv("BS_USE_OCR"):
        config.use_ocr = _env_bool(os.getenv("BS_USE_OCR"))
    if os.getenv("BS_OCR_WORKERS"):
        config.ocr_workers = int(os.getenv("BS_OCR_WORKERS"))

    if not 1 <= config.ocr_workers <= MAX_OCR_WORKERS:
        clamped = max(1, min(config.ocr_workers, MAX_OCR_WORKERS))
        logger.warning(f"ocr_workers={config.ocr_workers} out of range, using {clamped}")
        config.ocr_workers = clamped

    if config.candidates_per_window < 1:
        logger.warning("candidates_per_window must be at least 1, using 1")
        config.candidates_per_window = 1

    if config.window_seconds <= 0:
        raise ValueError(f"window_seconds must be positive, got {config.window_seconds}")

    return config


def save_config(config: Config, config_path: str) -> None:
    """Save configuration to JSON file."""
    config_dict = {
        key: value for key, value in config.__dict__.items()
        if not key.startswith('_')
    }

    with open(config_path, 'w') as f:
        json.dump(config_dict, f, indent=2, default=str)

    logger.info(f"Saved config to {config_path}")

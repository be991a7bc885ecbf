"""User settings stored as settings.json in the data directory."""

import json
import logging
import os

from read_repeat_study.constants import (
    DEFAULT_PITCH,
    DEFAULT_VOLUME,
    REPEAT_DELAY_MS,
    SETTINGS_FILE,
    TTS_RATE,
)
from read_repeat_study.highlight import PALETTES

logger = logging.getLogger(__name__)

DEFAULTS = {
    "theme": "light",
    "pitch": DEFAULT_PITCH,
    "volume": DEFAULT_VOLUME,
    "rate": TTS_RATE,
    "repeat_delay_ms": REPEAT_DELAY_MS,
}


def _coerce(key: str, value):
    """Validate one setting value, returning it in its stored type."""
    if key == "theme":
        value = str(value).strip().lower()
        if value not in PALETTES:
            raise ValueError(f"theme must be one of: {', '.join(sorted(PALETTES))}")
        return value
    if key == "pitch":
        value = float(value)
        if not 0.0 <= value <= 2.0:
            raise ValueError("pitch must be between 0.0 and 2.0")
        return value
    if key == "volume":
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ValueError("volume must be between 0.0 and 1.0")
        return value
    if key == "rate":
        value = str(value).strip()
        if not value or value[0] not in "+-" or not value.endswith("%") or not value[1:-1].isdigit():
            raise ValueError("rate must look like +10% or -20%")
        return value
    if key == "repeat_delay_ms":
        value = int(value)
        if value < 0:
            raise ValueError("repeat_delay_ms must not be negative")
        return value
    raise ValueError(f"Unknown setting: {key}")


def load_settings(data_dir: str) -> dict:
    """Settings from data_dir/settings.json merged over DEFAULTS.

    Unknown keys are ignored; a malformed file or value falls back to the
    default.
    """
    settings = dict(DEFAULTS)
    path = os.path.join(data_dir, SETTINGS_FILE)
    if not os.path.exists(path):
        return settings

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError:
        logger.warning("Malformed settings file: %s, using defaults", path)
        return settings

    if not isinstance(raw, dict):
        return settings

    for key in DEFAULTS:
        if key in raw and raw[key] is not None:
            try:
                settings[key] = _coerce(key, raw[key])
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring setting %s=%r: %s", key, raw[key], e)
    return settings


def save_settings(data_dir: str, settings: dict) -> str:
    os.makedirs(data_dir, exist_ok=True)
    payload = {key: settings.get(key, default) for key, default in DEFAULTS.items()}
    path = os.path.join(data_dir, SETTINGS_FILE)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    return path


def set_setting(settings: dict, key: str, raw_value: str) -> dict:
    """Validate a CLI string value and store it under key."""
    if key not in DEFAULTS:
        raise ValueError(f"Unknown setting: {key}. Valid keys: {', '.join(sorted(DEFAULTS))}")
    settings[key] = _coerce(key, raw_value)
    return settings

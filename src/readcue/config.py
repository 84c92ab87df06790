# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for readcue.
Settings are read from .readcue.yaml and deep-merged over DEFAULT_CONFIG.
"""

import copy
from pathlib import Path
from typing import Any, TypedDict

import yaml

CONFIG_FILENAME: str = ".readcue.yaml"

VALID_MODES: frozenset[str] = frozenset(["precise", "speed"])
VALID_CONFIDENCE_MODELS: frozenset[str] = frozenset(["mean", "kalman"])
VALID_CONTEXT_ORDERS: frozenset[str] = frozenset(["longest_first", "shortest_first"])


class InvalidTrackingSettings(ValueError):
    """Raised when the tracking section of the config cannot be used."""


class TrackingSettings(TypedDict):
    """The ``tracking`` section: engine mode and thresholds."""
    mode: str  # "precise" or "speed"
    recovery_after_misses: int
    confidence_window: int
    confidence_model: str  # "mean" or "kalman"
    # Overrides for PreciseSettings / SpeedSettings fields
    precise: dict[str, Any]
    speed: dict[str, Any]


class SessionSettings(TypedDict):
    """Type definition for recognizer session recovery settings."""
    idle_timeout_s: float
    idle_check_s: float
    restart_debounce_ms: int


class Config(TypedDict):
    """Top-level layout of .readcue.yaml."""
    # Server settings
    host: str
    port: int
    # Reference text loaded on startup (optional)
    script_path: str | None
    tracking: TrackingSettings
    session: SessionSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,

    "script_path": None,

    # Tracking thresholds
    "tracking": {
        "mode": "precise",
        # Interim misses before precise mode tries a global search
        "recovery_after_misses": 2,
        "confidence_window": 10,
        "confidence_model": "mean",
        "precise": {
            "context_order": "longest_first",
            "lookahead_interim": 14,
            "lookahead_final": 22,
        },
        "speed": {
            "lookahead_interim": 12,
            "lookahead_final": 20,
        },
    },

    # Recognizer watchdog and auto-restart
    "session": {
        "idle_timeout_s": 9.0,
        "idle_check_s": 4.0,
        "restart_debounce_ms": 180,
    },
}


def get_config_path() -> Path:
    """Config files live in the directory readcue is started from."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """Recursively overlay ``override`` onto ``base``; neither is modified."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def validate_tracking_settings(tracking: dict[str, Any]) -> None:
    """
    Check the tracking section for values the engine cannot use.

    Raises:
        InvalidTrackingSettings: describing the first problem found
    """
    mode = tracking.get("mode", "precise")
    if mode not in VALID_MODES:
        raise InvalidTrackingSettings(
            f"tracking.mode must be one of {sorted(VALID_MODES)}, got {mode!r}")

    model = tracking.get("confidence_model", "mean")
    if model not in VALID_CONFIDENCE_MODELS:
        raise InvalidTrackingSettings(
            f"tracking.confidence_model must be one of "
            f"{sorted(VALID_CONFIDENCE_MODELS)}, got {model!r}")

    for key in ("recovery_after_misses", "confidence_window"):
        value = tracking.get(key, 1)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidTrackingSettings(
                f"tracking.{key} must be a positive integer, got {value!r}")

    for section in ("precise", "speed"):
        overrides = tracking.get(section, {})
        if not isinstance(overrides, dict):
            raise InvalidTrackingSettings(
                f"tracking.{section} must be a mapping, got {type(overrides).__name__}")

    order = tracking.get("precise", {}).get("context_order", "longest_first")
    if order not in VALID_CONTEXT_ORDERS:
        raise InvalidTrackingSettings(
            f"tracking.precise.context_order must be one of "
            f"{sorted(VALID_CONTEXT_ORDERS)}, got {order!r}")


def load_config(config_path: Path | None = None) -> Config:
    """
    Read the YAML config and overlay it on DEFAULT_CONFIG.

    Args:
        config_path: File to read; defaults to .readcue.yaml in the cwd.

    Returns:
        A complete configuration. Missing or unreadable files give defaults.
    """
    if config_path is None:
        config_path = get_config_path()

    config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load config from {config_path}: {e}")

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Write ``config`` as YAML.

    Args:
        config: Configuration to write.
        config_path: Target file; defaults to .readcue.yaml in the cwd.

    Returns:
        Whether the file was written.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        print(f"Error saving config to {config_path}: {e}")
        return False


def get_tracking_settings(config: Config) -> TrackingSettings:
    """
    Extract and validate tracking settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Tracking settings dictionary.

    Raises:
        InvalidTrackingSettings: if a value is unusable
    """
    tracking: dict[str, Any] = copy.deepcopy(
        config.get("tracking", DEFAULT_CONFIG["tracking"]))
    validate_tracking_settings(tracking)
    return tracking  # type: ignore[return-value]


def get_session_settings(config: Config) -> SessionSettings:
    """
    Extract session recovery settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Session settings dictionary.
    """
    return config.get("session", DEFAULT_CONFIG["session"]).copy()  # type: ignore[return-value]


def update_config_tracking(config: Config, tracking_settings: dict[str, Any]) -> Config:
    """
    Update the tracking section of the config with new settings.
    Returns a new config dict.

    Args:
        config: Current configuration.
        tracking_settings: Tracking values to merge in.

    Returns:
        New configuration with updated tracking settings.

    Raises:
        InvalidTrackingSettings: if the merged section is unusable
    """
    new_config: dict[str, Any] = copy.deepcopy(config)
    new_config["tracking"] = _deep_merge(
        new_config.get("tracking", {}),
        tracking_settings
    )
    validate_tracking_settings(new_config["tracking"])
    return new_config  # type: ignore[return-value]

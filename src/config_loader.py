#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Configuration Loader for telegram-remote-control.

Provides YAML configuration loading with environment variable override
support, validation, and sensible defaults.

Usage:
    from config_loader import load_config, validate_config, BotConfig

    config = load_config()  # Auto-discovers config file
    config = load_config(Path("/etc/telegram-remote-control/telegram_config.yml"))

Environment Variables:
    TELEGRAM_CONFIG_DIR: Override default config directory
    TELEGRAM_BOT_TOKEN: Override token from config file
    TELEGRAM_USER_ID: Override authorized user ID from config file
    SERVER_LOCATION: Override display label from config file
    LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR)
"""

import copy
import logging
import math
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "telegram_config.yml"

# Default configuration values
DEFAULTS: dict[str, Any] = {
    "bot": {
        "server_location": "",
        "log_level": "INFO",
    },
    "telegram": {
        "token": "",
        "user_id": "",
        "poll_timeout": 30,
        "retry_delay": 15,
    },
    "timeouts": {
        "subprocess": 30,
        "smartctl": 15,
    },
    "telemetry": {
        "bar_length": 15,
        "cpu_interval": 1.0,
        "disk_path": "/",
        "temperature_sensors": ["coretemp", "k10temp", "cpu_thermal", "zenpower"],
    },
    "actions": {
        "delay": 1.0,
    },
    "logging": {
        "max_bytes": 5242880,  # 5MB
        "backup_count": 3,
        "log_dir": "/var/log/telegram-remote-control",
    },
}

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "token"),
    "TELEGRAM_USER_ID": ("telegram", "user_id"),
    "SERVER_LOCATION": ("bot", "server_location"),
    "LOG_LEVEL": ("bot", "log_level"),
}

MIN_TOKEN_LENGTH = 20

# (section, key) -> (type, minimum)
NUMERIC_SETTINGS: dict[tuple[str, str], tuple[type, float]] = {
    ("telegram", "poll_timeout"): (int, 0),
    ("telegram", "retry_delay"): (float, 0),
    ("timeouts", "subprocess"): (float, 0.1),
    ("timeouts", "smartctl"): (float, 0.1),
    ("telemetry", "bar_length"): (int, 1),
    ("telemetry", "cpu_interval"): (float, 0),
    ("actions", "delay"): (float, 0),
    ("logging", "max_bytes"): (int, 0),
    ("logging", "backup_count"): (int, 0),
}


def get_config_dir() -> Path:
    """
    Get configuration directory from environment or default locations.

    Priority:
        1. TELEGRAM_CONFIG_DIR environment variable
        2. ./config/ (relative to src/)
        3. /etc/telegram-remote-control/
        4. ~/.config/telegram-remote-control/

    Returns:
        Path to configuration directory
    """
    env_dir = os.environ.get("TELEGRAM_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)

    locations = [
        Path(__file__).parent.parent / "config",
        Path("/etc/telegram-remote-control"),
        Path.home() / ".config" / "telegram-remote-control",
    ]

    for loc in locations:
        if loc.exists() and loc.is_dir():
            return loc

    # Return first option even if doesn't exist (for creation)
    return locations[0]


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary with defaults
        override: Override dictionary with user values

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_file: Path | None = None) -> dict[str, Any]:
    """
    Load YAML configuration file with defaults and environment overrides.

    Args:
        config_file: Optional explicit path to config file.
                    If None, auto-discovers from config directory.

    Returns:
        Configuration dictionary with all settings

    Raises:
        yaml.YAMLError: If config file has invalid YAML syntax
    """
    # deepcopy so nested DEFAULTS dicts are never mutated
    config = copy.deepcopy(DEFAULTS)

    if config_file is None:
        config_file = get_config_dir() / CONFIG_FILENAME

    if config_file.exists():
        logger.info(f"Loading configuration from {config_file}")
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
        config = deep_merge(config, file_config)
    else:
        logger.warning(f"Config file not found: {config_file}, using defaults")

    # Environment variable overrides (highest priority)
    for env_var, (section_name, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            section = config.get(section_name, {})
            section[key] = value
            config[section_name] = section
            logger.debug(f"Config override from {env_var}")

    return config


def parse_user_id(value: Any) -> int | None:
    """Return the authorized user ID as int, or None if it is not an integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_number(value: Any, kind: type) -> int | float | None:
    """Convert a numeric setting to int or float, or None if it is not one."""
    if isinstance(value, bool):
        return None
    if kind is int and isinstance(value, float) and not value.is_integer():
        return None
    try:
        number = kind(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration dictionary to validate

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    telegram = config.get("telegram", {})

    token = str(telegram.get("token") or "")
    if not token:
        errors.append("telegram.token is required")
    elif any(ch.isspace() for ch in token) or len(token) < MIN_TOKEN_LENGTH:
        errors.append("telegram.token appears to be invalid")
    elif ":" not in token:
        errors.append("telegram.token format invalid (expected: <bot_id>:<secret>)")

    user_id = telegram.get("user_id")
    if user_id in (None, ""):
        errors.append("telegram.user_id is required")
    elif parse_user_id(user_id) is None:
        errors.append("telegram.user_id must be an integer")

    if not str(config.get("bot", {}).get("server_location") or "").strip():
        errors.append("bot.server_location is required")

    for (section, key), (kind, minimum) in NUMERIC_SETTINGS.items():
        section_config = config.get(section) or {}
        if key not in section_config:
            continue
        number = parse_number(section_config[key], kind)
        if number is None or number < minimum:
            kind_name = "an integer" if kind is int else "a number"
            errors.append(f"{section}.{key} must be {kind_name} >= {minimum:g}")

    return errors


def mask_sensitive(config: dict[str, Any]) -> dict[str, Any]:
    """
    Return config with sensitive values masked for logging.

    Args:
        config: Configuration dictionary

    Returns:
        Copy of config with the bot token masked
    """
    masked = config.copy()

    if "telegram" in masked:
        telegram = masked["telegram"].copy()
        if telegram.get("token"):
            token = str(telegram["token"])
            telegram["token"] = f"{token[:10]}***" if len(token) > 10 else "***"
        masked["telegram"] = telegram

    return masked


class BotConfig:
    """Typed view over a validated configuration dictionary."""

    def __init__(self, config: dict[str, Any]) -> None:
        telegram_config = config.get("telegram", {})
        bot_config = config.get("bot", {})
        telemetry_config = config.get("telemetry", {})
        timeouts = config.get("timeouts", {})

        self.token: str = str(telegram_config.get("token") or "")
        self.user_id: int | None = parse_user_id(telegram_config.get("user_id"))
        self.server_location: str = str(bot_config.get("server_location") or "").strip()

        self.poll_timeout = int(telegram_config.get("poll_timeout", 30))
        self.retry_delay = float(telegram_config.get("retry_delay", 15))

        self.subprocess_timeout = float(timeouts.get("subprocess", 30))
        self.smartctl_timeout = float(timeouts.get("smartctl", 15))

        self.bar_length = int(telemetry_config.get("bar_length", 15))
        self.cpu_interval = float(telemetry_config.get("cpu_interval", 1.0))
        self.disk_path = str(telemetry_config.get("disk_path", "/"))
        self.temperature_sensors = list(telemetry_config.get("temperature_sensors", []))

        self.action_delay = float(config.get("actions", {}).get("delay", 1.0))

        if self.token:
            logger.debug(f"Bot Token loaded: {self.token[:10]}*** (masked)")
        else:
            logger.warning("Bot Token not configured!")


if __name__ == "__main__":
    # CLI test mode
    import json

    logging.basicConfig(level=logging.DEBUG)

    config = load_config()
    print("=== Configuration (masked) ===")
    print(json.dumps(mask_sensitive(config), indent=2))

    errors = validate_config(config)
    if errors:
        print("\n=== Validation Errors ===")
        for error in errors:
            print(f"  - {error}")
    else:
        print("\n✅ Configuration valid")

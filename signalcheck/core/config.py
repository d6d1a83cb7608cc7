"""Configuration loading: config.yaml for settings, environment for secrets."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

# Secrets live in .env; real environment variables take precedence
load_dotenv()

DEFAULT_CONFIG: Dict[str, Any] = {
    "output_dir": "output",
    "database": {
        "path": "output/signalcheck.db",
        "cache_path": "output/.cache.db",
        "cache_ttl_hours": 6,
    },
    "news": {
        "interval_minutes": 15,
        "finnhub_category": "general",
        "rss_feeds": [],
    },
    "ingestion": {
        "interval_minutes": 15,
        "batch_size": 20,
    },
    "validation": {
        "interval_minutes": 120,
        "mode": "daily",
        "limit": 50,
        "min_age_hours": {"daily": 48, "intraday": 2},
        "records_per_pause": 2,
        "pause_seconds": 65,
        "max_attempts": 12,
    },
    "providers": {
        "daily": ["twelvedata", "alphavantage", "yahoo"],
        "intraday": ["alphavantage", "yahoo"],
        "timeout_seconds": 15,
    },
    "llm": {
        "model": "gemini-2.5-flash",
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "api_key_env": "GEMINI_API_KEY",
        "temperature": 0.1,
        "max_retries": 2,
    },
    "market": {
        "timezone": "America/New_York",
        "open": "09:30",
        "close": "16:00",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str | Path = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file on top of the defaults.

    Args:
        config_path (str | Path): Path to the configuration file. Defaults to "config.yaml".

    Returns:
        Dict[str, Any]: The merged configuration.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is empty, not a mapping, or sets an unknown validation mode.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_file, "r", encoding="utf-8") as file:
        try:
            config_data = yaml.safe_load(file)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not config_data:
        raise ValueError(f"Configuration file {config_path} is empty or invalid.")
    if not isinstance(config_data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping.")

    config = _merge(DEFAULT_CONFIG, config_data)

    mode = config["validation"]["mode"]
    if mode not in ("daily", "intraday"):
        raise ValueError(f"validation.mode must be 'daily' or 'intraday', got {mode!r}")

    return config


def api_keys(env_name: str) -> List[str]:
    """
    Return the configured credentials for one provider, primary first.

    The secondary key is read from ``<env_name>_SECONDARY``. Empty values are skipped.

    Args:
        env_name (str): Environment variable holding the primary key.

    Returns:
        List[str]: Zero, one or two keys.
    """
    keys = [os.getenv(env_name, ""), os.getenv(f"{env_name}_SECONDARY", "")]
    return [key.strip() for key in keys if key and key.strip()]

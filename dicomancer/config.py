"""
config.py - Configuration loader for the Dicomancer viewer.

Loads settings from config.yaml with sensible defaults so that no
tuning parameter (worker count, table size, log format) is hard-coded
inside a module.
"""

import os
from typing import Any

import yaml

# Resolve the config file relative to the repo root, not the CWD,
# so imports work regardless of where the viewer is launched from.
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_CONFIG_PATH = os.path.join(_REPO_ROOT, "config.yaml")

_DEFAULTS: dict[str, Any] = {
    "viewer": {
        "title": "Dicomancer",
        "tree_view_mode": "file_browser",
        "metadata_rows": 30,
        "figure_size": [16, 9],
    },
    "loading": {
        "max_workers": 4,
        "recursive": True,
    },
    "metadata": {
        "max_value_len": 120,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base*, returning a new dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str = _CONFIG_PATH) -> dict[str, Any]:
    """
    Load the YAML configuration file and merge it with built-in defaults.

    Parameters
    ----------
    config_path : str
        Path to config.yaml. Defaults to the repo-root config.yaml.

    Returns
    -------
    dict
        Merged configuration dictionary.
    """
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            user_config = yaml.safe_load(f) or {}
    else:
        user_config = {}

    return _deep_merge(_DEFAULTS, user_config)


# Module-level singleton so callers can just do `from dicomancer.config import CONFIG`
CONFIG = load_config()

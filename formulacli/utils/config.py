#!/usr/bin/env python3

import os
import sys
import yaml
from typing import Any, Dict, Union

from .system import default_install_dir, default_scratch_dir, get_real_home

# Type definitions
ConfigDict = Dict[str, Union[Dict[str, Any], Dict[str, Dict[str, str]]]]

# Default paths
DEFAULT_CONFIG_PATH = "formula-cli.yaml"
DEFAULT_FETCH_TIMEOUT = 300  # Seconds allowed for one download
DEFAULT_BUILD_TIMEOUT = 1800  # Seconds allowed for one toolchain invocation
DEFAULT_TEST_TIMEOUT = 30  # Seconds allowed for each post-install check
DEFAULT_CACHE_ENABLED = True


def user_config_dir() -> str:
    return os.path.join(get_real_home(), ".config/formula-cli")


def ensure_user_config_dir() -> str:
    """Ensure the user's config directory exists"""
    config_dir = user_config_dir()
    os.makedirs(config_dir, exist_ok=True)
    return config_dir


def default_options() -> Dict[str, Any]:
    return {
        "install_dir": default_install_dir(),
        "formula_dir": os.path.join(user_config_dir(), "formulas"),
        "scratch_dir": default_scratch_dir(),
        "fetch_timeout": DEFAULT_FETCH_TIMEOUT,
        "build_timeout": DEFAULT_BUILD_TIMEOUT,
        "test_timeout": DEFAULT_TEST_TIMEOUT,
        "cache_enabled": DEFAULT_CACHE_ENABLED,
    }


def find_config_file(config_path: str = DEFAULT_CONFIG_PATH) -> str:
    """
    Find the configuration file by checking multiple locations:
    1. Specified path from command line
    2. Current directory
    3. Same directory as the executable
    4. User config directory (~/.config/formula-cli/)
    5. System-wide location (/etc/formula-cli)
    """
    # Check if specified path exists
    if os.path.isfile(config_path):
        return config_path

    # Check in the current directory
    if os.path.isfile(os.path.join(os.getcwd(), DEFAULT_CONFIG_PATH)):
        return os.path.join(os.getcwd(), DEFAULT_CONFIG_PATH)

    # Check in the same directory as the executable
    exec_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    if os.path.isfile(os.path.join(exec_dir, DEFAULT_CONFIG_PATH)):
        return os.path.join(exec_dir, DEFAULT_CONFIG_PATH)

    # Check in user config directory
    user_config = os.path.join(user_config_dir(), DEFAULT_CONFIG_PATH)
    if os.path.isfile(user_config):
        return user_config

    # Check in system-wide location
    system_config = os.path.join("/etc/formula-cli", DEFAULT_CONFIG_PATH)
    if os.path.isfile(system_config):
        return system_config

    # Nothing found: an explicit path is kept, the default name lands in the
    # user config directory. A missing file means "use defaults".
    if config_path != DEFAULT_CONFIG_PATH:
        return config_path
    return user_config


def create_default_config(config_path: str) -> ConfigDict:
    """Create a default configuration file"""
    default_config = {"options": default_options(), "installed": {}}

    # Ensure the directory exists
    os.makedirs(os.path.dirname(os.path.abspath(config_path)), exist_ok=True)

    # Write the default config
    try:
        with open(config_path, "w") as f:
            yaml.dump(default_config, f, default_flow_style=False)
        return default_config
    except OSError as e:
        raise IOError(f"Failed to create config file: {e}")


def load_config(config_path: str) -> ConfigDict:
    """Load the configuration from the specified path, filling in defaults"""
    config: Dict[str, Any] = {}
    if os.path.isfile(config_path):
        try:
            with open(config_path, "r") as file:
                config = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML: {e}")

    if not isinstance(config, dict):
        raise ValueError(f"Config file {config_path} must contain a YAML mapping")

    # Set default options if they don't exist
    options = config.get("options") or {}
    for key, value in default_options().items():
        options.setdefault(key, value)
    for key in ("install_dir", "formula_dir", "scratch_dir"):
        options[key] = os.path.expanduser(str(options[key]))
    config["options"] = options

    if not config.get("installed"):
        config["installed"] = {}

    return config


def save_config(config: ConfigDict, config_path: str) -> None:
    """Save the configuration to the specified path"""
    try:
        os.makedirs(os.path.dirname(os.path.abspath(config_path)), exist_ok=True)
        with open(config_path, "w") as file:
            yaml.dump(config, file, default_flow_style=False)
    except OSError as e:
        raise IOError(f"Failed to save config file: {e}")

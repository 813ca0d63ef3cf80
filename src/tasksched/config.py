"""
Configuration file discovery and parsing.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import platformdirs
import yaml

from tasksched.logging import LogLevel

__all__ = [
    "Settings",
    "get_user_config_path",
    "get_machine_config_path",
    "find_project_config",
    "parse_config_file",
    "load_settings",
    "ConfigError",
]

PROJECT_CONFIG_NAME = ".tasksched-config.yml"


class ConfigError(Exception):
    """
    Raised when a configuration file is invalid.
    """

    pass


@dataclass(frozen=True)
class Settings:
    """Effective settings after merging every configuration level."""

    state_file: str = ".tasksched-state"
    jobs: int = 1
    fsync: bool = False
    batch_size: int = 50
    log_level: LogLevel = LogLevel.INFO


def get_machine_config_path() -> Path:
    """
    Get the path to the machine-level (system-wide) configuration file.

    Returns:
        Path to the machine config file (may not exist)
    """
    config_dir = Path(platformdirs.site_config_dir("tasksched"))
    return config_dir / "config.yml"


def get_user_config_path() -> Path:
    """
    Get the path to the user-level configuration file.

    Returns:
        Path to the user config file (may not exist)
    """
    config_dir: Path = Path(platformdirs.user_config_dir("tasksched"))
    return config_dir / "config.yml"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """
    Walk up the directory tree from start_dir to find .tasksched-config.yml.

    Args:
        start_dir: Directory to start searching from

    Returns:
        Path to .tasksched-config.yml if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        # resolve() can raise OSError on invalid paths or RuntimeError on symlink loops
        return None

    # Safety limit against pathological directory structures
    max_depth = 100
    for _ in range(max_depth):
        try:
            config_path = current / PROJECT_CONFIG_NAME
            if config_path.exists():
                return config_path
        except OSError:
            # Unreadable directory: keep walking up
            pass

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def parse_config_file(path: Path) -> dict[str, Any]:
    """
    Parse a tasksched configuration file.

    Missing and empty files are valid and yield no settings. Unknown keys
    are rejected so typos don't silently fall back to defaults.

    Args:
        path: Path to the configuration file

    Returns:
        Mapping of the settings defined in the file, validated

    Raises:
        ConfigError: If the config file is unreadable or invalid

    Config File Example:

        ```yaml
        state_file: build/.tasksched-state
        jobs: 4
        fsync: true
        batch_size: 100
        log_level: debug
        ```
    """
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    if not content.strip():
        return {}

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Error in config file '{path}': top level must be a dictionary")

    unknown = sorted(str(key) for key in data if key not in Settings.__dataclass_fields__)
    if unknown:
        raise ConfigError(
            f"Error in config file '{path}': unknown setting(s): {', '.join(unknown)}"
        )

    settings: dict[str, Any] = {}

    if "state_file" in data:
        state_file = data["state_file"]
        if not isinstance(state_file, str) or not state_file:
            raise ConfigError(
                f"Error in config file '{path}': Field 'state_file' must be a non-empty string"
            )
        settings["state_file"] = state_file

    for field_name in ("jobs", "batch_size"):
        if field_name in data:
            value = data[field_name]
            # bool is a subclass of int
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(
                    f"Error in config file '{path}': Field '{field_name}' must be a positive integer"
                )
            settings[field_name] = value

    if "fsync" in data:
        fsync = data["fsync"]
        if not isinstance(fsync, bool):
            raise ConfigError(f"Error in config file '{path}': Field 'fsync' must be a boolean")
        settings["fsync"] = fsync

    if "log_level" in data:
        level = data["log_level"]
        if not isinstance(level, str):
            raise ConfigError(
                f"Error in config file '{path}': Field 'log_level' must be a string"
            )
        try:
            settings["log_level"] = LogLevel.from_name(level)
        except ValueError as e:
            raise ConfigError(f"Error in config file '{path}': {e}") from e

    return settings


def load_settings(project_root: Path) -> Settings:
    """
    Merge machine, user and project configuration (later levels win).

    Raises:
        ConfigError: If any of the config files is invalid
    """
    settings = Settings()
    paths = [get_machine_config_path(), get_user_config_path()]
    project_config = find_project_config(project_root)
    if project_config is not None:
        paths.append(project_config)

    for path in paths:
        settings = replace(settings, **parse_config_file(path))
    return settings

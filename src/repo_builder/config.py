# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Settings loader for Repo-Builder.

Settings live in a small YAML file. Every key is optional; helpers below
apply environment overrides and defaults.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from repo_builder.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CHOICES_FILE = "~/.repo_builder_config"
DEFAULT_BASE_INPUT = "repo-builds"
DEFAULT_LOAD_FACTOR = 0.8
DEFAULT_LOG_DIR_NAME = "automationlogs"


def config_search_paths(config_path: Optional[str] = None) -> List[Path]:
    """Get settings file candidates in priority order.

    Order:
    1. Explicit path (--config)
    2. $REPO_BUILDER_CONFIG (if set)
    3. ./.repo_builder/config.yml (project-local)
    4. ~/.repo_builder/config.yml (user-local)
    """
    paths = []
    if config_path:
        paths.append(Path(config_path).expanduser())

    env_path = os.environ.get("REPO_BUILDER_CONFIG")
    if env_path:
        paths.append(Path(env_path).expanduser())

    paths.append(Path(".repo_builder") / "config.yml")
    paths.append(Path("~/.repo_builder/config.yml").expanduser())
    return paths


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load settings from the first existing candidate file.

    Args:
        config_path: Explicit settings file. Must exist when given.

    Returns:
        Settings dict (empty if no file found)

    Raises:
        FileNotFoundError: If an explicit config_path does not exist
        ConfigError: If the file is not a valid YAML mapping
    """
    if config_path and not Path(config_path).expanduser().exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    for candidate in config_search_paths(config_path):
        if not candidate.exists():
            continue

        logger.debug(f"Loading settings from {candidate}")
        try:
            with open(candidate) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in {candidate}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"config file {candidate} must contain a YAML mapping")
        data.setdefault("_source", str(candidate))
        return data

    return {}


def get_choices_file(config: Dict[str, Any]) -> Path:
    """Path of the persisted choices file.

    $REPO_BUILDER_CHOICES_FILE wins over config['choices_file'].
    """
    env_file = os.environ.get("REPO_BUILDER_CHOICES_FILE")
    if env_file:
        return Path(env_file).expanduser()
    return Path(config.get("choices_file", DEFAULT_CHOICES_FILE)).expanduser()


def get_scripts_dir(config: Dict[str, Any]) -> Path:
    """Directory holding the per-job build scripts.

    Defaults to ./scripts relative to the current directory.
    """
    env_dir = os.environ.get("REPO_BUILDER_SCRIPTS_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path(config.get("scripts_dir", "scripts")).expanduser().resolve()


def get_default_base_input(config: Dict[str, Any]) -> str:
    return str(config.get("default_base_input", DEFAULT_BASE_INPUT))


def get_base_dir(base_input: str) -> Path:
    """
    Resolve the base working directory.

    Relative inputs are taken relative to the home directory, matching how
    the value has always been entered ("relative to ~").
    """
    path = Path(base_input).expanduser()
    if not path.is_absolute():
        path = Path.home() / path
    return path


def get_log_dir(config: Dict[str, Any], base_dir: Path) -> Path:
    return base_dir / str(config.get("log_dir_name", DEFAULT_LOG_DIR_NAME))


def get_load_factor(config: Dict[str, Any]) -> float:
    """Fraction of available CPUs to use, validated to (0, 1]."""
    raw = config.get("load_factor", DEFAULT_LOAD_FACTOR)
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"load_factor must be a number, got: {raw!r}") from e
    if not 0 < value <= 1:
        raise ConfigError(f"load_factor must be in (0, 1], got: {value}")
    return value


def get_max_workers(config: Dict[str, Any]) -> Optional[int]:
    raw = config.get("max_workers")
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"max_workers must be an integer, got: {raw!r}") from e
    if value < 1:
        raise ConfigError(f"max_workers must be at least 1, got: {value}")
    return value

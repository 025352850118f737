"""Layered TOML configuration.

``default.toml`` is always read; ``{CHANDLER_ENV}.toml`` is merged over it
when present. The directory is ``CHANDLER_CONFIG_DIR`` or the nearest
``config/`` found walking up from the working directory.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

CONFIG_DIR_ENV = "CHANDLER_CONFIG_DIR"
ENVIRONMENT_ENV = "CHANDLER_ENV"
DEFAULT_ENVIRONMENT = "development"
_SEARCH_DEPTH = 5


def get_config_dir() -> Path:
    """Resolve the directory holding the TOML files.

    Raises:
        FileNotFoundError: If CHANDLER_CONFIG_DIR names a missing directory
    """
    configured = os.environ.get(CONFIG_DIR_ENV)
    if configured:
        path = Path(configured)
        if not path.is_dir():
            raise FileNotFoundError(f"Config directory not found: {configured}")
        return path

    candidate = Path.cwd()
    for _ in range(_SEARCH_DEPTH):
        if (candidate / "config").is_dir():
            return candidate / "config"
        if candidate.parent == candidate:
            break
        candidate = candidate.parent
    return Path("config")


def get_environment() -> str:
    return os.environ.get(ENVIRONMENT_ENV) or DEFAULT_ENVIRONMENT


def load_toml(file_path: Path) -> dict[str, Any]:
    """Read one TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the TOML syntax is invalid
    """
    if not file_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")
    return tomllib.loads(file_path.read_text(encoding="utf-8"))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; tables merge key by key.

    Neither input is modified.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_dir: Path | None = None,
    environment: str | None = None,
) -> dict[str, Any]:
    """Load ``default.toml`` and merge the environment overlay over it.

    Args:
        config_dir: Directory to read from, resolved with get_config_dir if omitted
        environment: Overlay name, CHANDLER_ENV if omitted

    Returns:
        Merged configuration dictionary
    """
    directory = config_dir or get_config_dir()
    overlay = environment or get_environment()

    default_path = directory / "default.toml"
    if not default_path.is_file():
        raise FileNotFoundError(
            f"Default configuration file not found: {default_path}. "
            f"Create config/default.toml or set {CONFIG_DIR_ENV}."
        )

    config = load_toml(default_path)
    overlay_path = directory / f"{overlay}.toml"
    if overlay != "default" and overlay_path.is_file():
        config = deep_merge(config, load_toml(overlay_path))
    return config

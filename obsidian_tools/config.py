"""
Configuration management for obsidian-tools.

Two layers:
- User config (TOML): where the vault lives and which backend opens it.
- Collection settings (YAML, ``mdbase.yaml`` at the vault root): how the
  local backend reads the vault.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

CONFIG_FILENAME = "config.toml"
SETTINGS_FILENAME = "mdbase.yaml"
VAULT_ENV = "VAULT_PATH"
CONFIG_ENV = "OBSIDIAN_TOOLS_CONFIG"

DEFAULT_VAULT_DIR = ("obsidian_vaults", "mdbase_vault")

VALIDATION_LEVELS = ("off", "warn", "error")


@dataclass
class UserConfig:
    """Settings from the user's config file."""
    vault_path: Optional[str] = None
    backend: str = "local"


@dataclass
class CollectionSettings:
    """How the local backend reads a vault."""
    types_folder: str = "_types"
    include_subfolders: bool = True
    default_validation: str = "error"
    exclude: list[str] = field(default_factory=list)


def expand_home(p: str) -> str:
    """Expand a leading ``~`` or ``~/``; leave every other path untouched."""
    if p == "~":
        return str(Path.home())
    if p.startswith("~/"):
        return str(Path.home() / p[2:])
    return p


def user_config_path() -> Path:
    """Path to the user config file, respecting OBSIDIAN_TOOLS_CONFIG."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(expand_home(override))
    return Path.home() / ".config" / "obsidian-tools" / CONFIG_FILENAME


def load_user_config(path: Optional[Path] = None) -> UserConfig:
    """
    Load the user config file. A missing file gives defaults.

    Raises:
        ValueError: If the file is not valid TOML
    """
    path = path or user_config_path()
    if not path.exists():
        return UserConfig()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e

    vault = data.get("vault", {})
    return UserConfig(
        vault_path=vault.get("path"),
        backend=data.get("backend", "local"),
    )


def resolve_vault_path(override: Optional[str] = None,
                       config: Optional[UserConfig] = None) -> Path:
    """
    Pick the vault path: --vault flag, then VAULT_PATH, then the user
    config file, then ~/obsidian_vaults/mdbase_vault. Always absolute.
    """
    config = config or UserConfig()
    candidate = (override
                 or os.environ.get(VAULT_ENV)
                 or config.vault_path
                 or str(Path.home().joinpath(*DEFAULT_VAULT_DIR)))
    return Path(expand_home(candidate)).resolve()


def load_collection_settings(root: Path) -> CollectionSettings:
    """
    Read ``mdbase.yaml`` from the vault root. A missing file gives defaults.

    Raises:
        ValueError: If the file is not valid YAML or names an unknown
            validation level
    """
    path = Path(root) / SETTINGS_FILENAME
    if not path.exists():
        return CollectionSettings()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid {SETTINGS_FILENAME}: {e}") from e

    settings = data.get("settings") or {}
    level = str(settings.get("default_validation", "error"))
    if level not in VALIDATION_LEVELS:
        raise ValueError(
            f"Invalid default_validation {level!r} in {SETTINGS_FILENAME} "
            f"(expected one of {', '.join(VALIDATION_LEVELS)})"
        )
    return CollectionSettings(
        types_folder=str(settings.get("types_folder", "_types")).strip("/"),
        include_subfolders=bool(settings.get("include_subfolders", True)),
        default_validation=level,
        exclude=[str(e).strip("/") for e in settings.get("exclude") or []],
    )

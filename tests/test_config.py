"""Tests for user config, vault path resolution and collection settings."""

from pathlib import Path

import pytest

from obsidian_tools.config import (
    CollectionSettings,
    UserConfig,
    expand_home,
    load_collection_settings,
    load_user_config,
    resolve_vault_path,
    user_config_path,
)


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


class TestExpandHome:
    def test_tilde(self, home):
        assert expand_home("~") == str(home)
        assert expand_home("~/vault") == str(home / "vault")

    def test_other_paths_untouched(self, home):
        assert expand_home("/abs/vault") == "/abs/vault"
        assert expand_home("~other/vault") == "~other/vault"
        assert expand_home("rel/~/x") == "rel/~/x"


class TestResolveVaultPath:
    def test_default(self, home):
        assert resolve_vault_path() == (home / "obsidian_vaults" / "mdbase_vault").resolve()

    def test_config_file(self, home):
        config = UserConfig(vault_path="~/notes")
        assert resolve_vault_path(config=config) == (home / "notes").resolve()

    def test_env_beats_config(self, home, monkeypatch, tmp_path):
        monkeypatch.setenv("VAULT_PATH", str(tmp_path / "env-vault"))
        config = UserConfig(vault_path="~/notes")
        assert resolve_vault_path(config=config) == (tmp_path / "env-vault").resolve()

    def test_override_beats_env(self, home, monkeypatch, tmp_path):
        monkeypatch.setenv("VAULT_PATH", str(tmp_path / "env-vault"))
        assert resolve_vault_path("~/flag-vault") == (home / "flag-vault").resolve()

    def test_relative_becomes_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_vault_path("vault") == (tmp_path / "vault").resolve()


class TestUserConfig:
    def test_path_from_env(self, tmp_path):
        assert user_config_path() == tmp_path / "config.toml"

    def test_default_path(self, home, monkeypatch):
        monkeypatch.delenv("OBSIDIAN_TOOLS_CONFIG")
        assert user_config_path() == home / ".config" / "obsidian-tools" / "config.toml"

    def test_missing_file(self, tmp_path):
        assert load_user_config(tmp_path / "none.toml") == UserConfig()

    def test_load(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('backend = "remote"\n\n[vault]\npath = "~/notes"\n')
        assert load_user_config() == UserConfig(vault_path="~/notes", backend="remote")

    def test_invalid(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("vault = [\n")
        with pytest.raises(ValueError, match="Invalid config file"):
            load_user_config(path)


class TestCollectionSettings:
    def test_missing_file(self, tmp_path):
        assert load_collection_settings(tmp_path) == CollectionSettings()

    def test_load(self, tmp_path):
        (tmp_path / "mdbase.yaml").write_text(
            "settings:\n"
            "  types_folder: schemas/\n"
            "  include_subfolders: false\n"
            "  default_validation: warn\n"
            "  exclude: [templates, archive/]\n"
        )
        assert load_collection_settings(tmp_path) == CollectionSettings(
            types_folder="schemas",
            include_subfolders=False,
            default_validation="warn",
            exclude=["templates", "archive"],
        )

    def test_no_settings_block(self, tmp_path):
        (tmp_path / "mdbase.yaml").write_text('spec_version: "0.1"\n')
        assert load_collection_settings(tmp_path) == CollectionSettings()

    def test_invalid_level(self, tmp_path):
        (tmp_path / "mdbase.yaml").write_text("settings:\n  default_validation: loud\n")
        with pytest.raises(ValueError, match="default_validation"):
            load_collection_settings(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "mdbase.yaml").write_text("settings: [\n")
        with pytest.raises(ValueError, match="Invalid mdbase.yaml"):
            load_collection_settings(tmp_path)

"""Tests for VaultConfig environment loading and store selection."""

import os
from pathlib import Path

import pytest

from secure_vault.core.config import VaultConfig
from secure_vault.vault.remote_store import RestVaultStore
from secure_vault.vault.store import SQLiteVaultStore


class TestVaultConfig:

    def test_defaults(self):
        config = VaultConfig()
        assert config.auto_lock_minutes == 15
        assert config.db_path == Path("data/vault.db")
        assert config.audit_dir == Path("./audit_logs")
        assert not config.uses_remote_store

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SECURE_VAULT_AUTO_LOCK_MINUTES", "5")
        monkeypatch.setenv("SECURE_VAULT_DB_PATH", str(tmp_path / "v.db"))
        monkeypatch.setenv("SECURE_VAULT_AUDIT_DIR", str(tmp_path / "audit"))
        monkeypatch.setenv("SECURE_VAULT_STORE_URL", "https://vault.example.test/")
        monkeypatch.setenv("SECURE_VAULT_STORE_KEY", "anon")

        config = VaultConfig.from_env(dotenv=False)
        assert config.auto_lock_minutes == 5
        assert config.db_path == tmp_path / "v.db"
        assert config.audit_dir == tmp_path / "audit"
        assert config.store_url == "https://vault.example.test"
        assert config.store_key == "anon"
        assert config.uses_remote_store

    def test_non_integer_timeout_falls_back(self, monkeypatch):
        monkeypatch.setenv("SECURE_VAULT_AUTO_LOCK_MINUTES", "soon")
        assert VaultConfig.from_env(dotenv=False).auto_lock_minutes == 15

    @pytest.mark.parametrize("minutes", [0, 121])
    def test_timeout_bounds(self, minutes):
        with pytest.raises(ValueError):
            VaultConfig(auto_lock_minutes=minutes)

    def test_dotenv_file_loaded(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("SECURE_VAULT_AUTO_LOCK_MINUTES=42\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        try:
            assert VaultConfig.from_env().auto_lock_minutes == 42
        finally:
            # load_dotenv writes os.environ directly
            os.environ.pop("SECURE_VAULT_AUTO_LOCK_MINUTES", None)

    def test_environment_wins_over_dotenv(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("SECURE_VAULT_AUTO_LOCK_MINUTES=42\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SECURE_VAULT_AUTO_LOCK_MINUTES", "7")
        assert VaultConfig.from_env().auto_lock_minutes == 7


class TestBuildStore:

    def test_sqlite_by_default(self, tmp_path):
        store = VaultConfig(db_path=tmp_path / "vault.db").build_store()
        assert isinstance(store, SQLiteVaultStore)
        assert store.db_path == tmp_path / "vault.db"

    def test_remote_when_url_set(self):
        store = VaultConfig(store_url="https://vault.example.test", store_key="k").build_store()
        try:
            assert isinstance(store, RestVaultStore)
        finally:
            store.close()

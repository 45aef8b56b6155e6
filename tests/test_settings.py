"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from hardbanlab.services.settings import SecretVault, Settings, SettingsStore, redact_secret


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "key"))

    assert store.load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    original = Settings(
        backend_url="http://backend.test/api",
        snapshot_file=str(tmp_path / "db.json"),
        save_debounce_seconds=1.5,
        api_key="super-secret",
        model="gpt-4.1-mini",
        organization="acme",
        default_headers={"X-Test": "1"},
        toast_ttl_seconds=3.0,
    )

    SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert reloaded == original


def test_api_key_is_encrypted_on_disk(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"

    SettingsStore(path).save(Settings(api_key="super-secret"))

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert "api_key" not in payload
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert "super-secret" not in path.read_text(encoding="utf-8")
    assert payload["version"] == 1
    assert payload["secret_backend"] == "fernet"


def test_load_legacy_plaintext_api_key_migrates(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(
        json.dumps({"backend_url": "http://old/api", "api_key": "plain-key"}),
        encoding="utf-8",
    )

    loaded = SettingsStore(target).load()

    assert loaded.api_key == "plain-key"
    assert loaded.backend_url == "http://old/api"
    payload = json.loads(target.read_text(encoding="utf-8"))
    assert "api_key" not in payload
    assert "api_key_ciphertext" in payload


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text("{broken", encoding="utf-8")

    assert SettingsStore(target).load() == Settings()


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"model": "m", "theme": "dark", "version": 1}), encoding="utf-8")

    assert SettingsStore(target).load().model == "m"


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(backend_url="http://local/api", api_key="abc"))
    monkeypatch.setenv("HARDBANLAB_BACKEND_URL", "http://env/api")
    monkeypatch.setenv("HARDBANLAB_API_KEY", "env-key")

    overridden = SettingsStore(path).load()

    assert overridden.backend_url == "http://env/api"
    assert overridden.api_key == "env-key"


def test_bare_api_key_variable_is_honoured(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("API_KEY", "bare-key")

    assert SettingsStore(tmp_path / "settings.json").load().api_key == "bare-key"

    monkeypatch.setenv("HARDBANLAB_API_KEY", "namespaced-key")

    assert SettingsStore(tmp_path / "settings.json").load().api_key == "namespaced-key"


def test_typed_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HARDBANLAB_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("HARDBANLAB_SAVE_DEBOUNCE", "0.25")
    monkeypatch.setenv("HARDBANLAB_SAVE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("HARDBANLAB_MAX_RETRIES", "not-a-number")

    overridden = SettingsStore(tmp_path / "settings.json").load()

    assert overridden.debug_logging is True
    assert overridden.save_debounce_seconds == pytest.approx(0.25)
    assert overridden.save_max_attempts == 5
    assert overridden.max_retries == Settings().max_retries


def test_load_applies_cli_overrides(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    store.save(Settings(backend_url="http://saved/api", default_headers={"X-A": "1"}))

    loaded = store.load(overrides={"backend_url": "http://cli/api", "default_headers": {"X-B": "2"}})

    assert loaded.backend_url == "http://cli/api"
    assert loaded.default_headers == {"X-A": "1", "X-B": "2"}


def test_env_overrides_take_priority_over_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    monkeypatch.setenv("HARDBANLAB_MODEL", "env-model")

    loaded = store.load(overrides={"model": "cli-model"})

    assert loaded.model == "env-model"


class TestSecretVault:
    """Fernet-backed secret storage."""

    def test_roundtrip(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "settings.key")

        token = vault.encrypt("super-secret")

        assert token.startswith("fernet:")
        assert vault.decrypt(token) == "super-secret"
        assert (tmp_path / "settings.key").exists()

    def test_key_is_reused_across_instances(self, tmp_path: Path) -> None:
        token = SecretVault(key_path=tmp_path / "settings.key").encrypt("abc")

        assert SecretVault(key_path=tmp_path / "settings.key").decrypt(token) == "abc"

    def test_unknown_prefix_is_rejected(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "settings.key")

        with pytest.raises(ValueError):
            vault.decrypt("dpapi:AAAA")

    def test_foreign_token_is_rejected(self, tmp_path: Path) -> None:
        token = SecretVault(key_path=tmp_path / "one.key").encrypt("abc")

        with pytest.raises(ValueError):
            SecretVault(key_path=tmp_path / "two.key").decrypt(token)

    def test_empty_values(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "settings.key")

        assert vault.encrypt("") == ""
        assert vault.decrypt(None) == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abcd", "****"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected

"""Tests for configuration loading."""

import pytest

from pipeline.config import Config, load_config

ENV_VARS = [
    "CQA_STORAGE_BACKEND",
    "CQA_STORAGE_DIR",
    "CQA_STORAGE_KEY",
    "CQA_ENVIRONMENT",
    "CQA_USER",
    "LOG_LEVEL",
    "CQA_AUTOSAVE",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "GITHUB_REPO",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    """A missing file gives the built-in defaults."""
    config = load_config(tmp_path / "missing.toml")

    assert config.storage.backend == "file"
    assert config.storage.resolve_directory().name == ".checkpoint-qa"
    assert config.pipeline.autosave is True
    assert "Patient" in config.pre_flight.user_roles


def test_file_values(tmp_path):
    """Values from config.toml fill the sections."""
    path = tmp_path / "config.toml"
    path.write_text(
        '[storage]\nbackend = "memory"\nstorage_key = "team"\n'
        '[pre_flight]\nuser_roles = ["Nurse"]\nquick_mode_patterns = ["tooltip"]\n'
        '[session]\nenvironment = "qa"\n'
    )

    config = load_config(path)

    assert config.storage.backend == "memory"
    assert config.storage.storage_key == "team"
    assert config.pre_flight.user_roles == ["Nurse"]
    assert config.pre_flight.all_quick_mode_patterns()[-1] == "tooltip"
    assert config.session.environment == "qa"


def test_env_overrides_file(tmp_path, monkeypatch):
    """Environment variables win over the file."""
    path = tmp_path / "config.toml"
    path.write_text('[storage]\ndirectory = "/from/file"\n')
    monkeypatch.setenv("CQA_STORAGE_DIR", str(tmp_path / "env"))
    monkeypatch.setenv("CQA_AUTOSAVE", "no")
    monkeypatch.setenv("GH_TOKEN", "gh-token")
    monkeypatch.setenv("CQA_USER", "carol")

    config = load_config(path)

    assert config.storage.resolve_directory() == tmp_path / "env"
    assert config.pipeline.autosave is False
    assert config.integrations.github_token == "gh-token"
    assert config.session.current_user == "carol"


def test_from_dict_partial():
    """Missing sections fall back to defaults."""
    config = Config.from_dict({"pipeline": {"log_level": "DEBUG"}})

    assert config.pipeline.log_level == "DEBUG"
    assert config.storage.storage_key == "testing-framework-sessions"

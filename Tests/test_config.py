"""
Tests for configuration helpers: datacenter extraction and the option store.
"""
import json

import pytest

from chimplet import config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MAILCHIMP_API_KEY", "MAILCHIMP_DC", "MAILCHIMP_LIST_ID", "MAILCHIMP_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings_file(tmp_path):
    return str(tmp_path / "chimplet-settings.json")


def test_datacenter_from_key_suffix():
    assert config.get_mailchimp_datacenter("0123456789abcdef-us14") == "us14"


def test_datacenter_env_fallback(monkeypatch):
    monkeypatch.setenv("MAILCHIMP_DC", "us3")
    assert config.get_mailchimp_datacenter("nodashkey") == "us3"


def test_get_option_reads_dotted_path(settings_file):
    with open(settings_file, "w") as f:
        json.dump({"mailchimp": {"api_key": "stored-us2"}}, f)

    assert config.get_option("mailchimp.api_key", settings_file=settings_file) == "stored-us2"
    assert config.get_option("mailchimp.missing", "dflt", settings_file=settings_file) == "dflt"


def test_get_option_env_fallback(settings_file, monkeypatch):
    monkeypatch.setenv("MAILCHIMP_API_KEY", "env-us5")
    assert config.get_option("mailchimp.api_key", settings_file=settings_file) == "env-us5"


def test_settings_file_wins_over_env(settings_file, monkeypatch):
    monkeypatch.setenv("MAILCHIMP_API_KEY", "env-us5")
    config.save_option("mailchimp.api_key", "stored-us2", settings_file=settings_file)

    assert config.get_option("mailchimp.api_key", settings_file=settings_file) == "stored-us2"


def test_save_option_keeps_siblings(settings_file):
    config.save_option("mailchimp.api_key", "k-us1", settings_file=settings_file)
    config.save_option("mailchimp.list_id", "L1", settings_file=settings_file)

    with open(settings_file) as f:
        assert json.load(f) == {"mailchimp": {"api_key": "k-us1", "list_id": "L1"}}


def test_corrupted_settings_file_is_ignored(settings_file):
    with open(settings_file, "w") as f:
        f.write("{not json")

    assert config.get_option("mailchimp.api_key", "none", settings_file=settings_file) == "none"


def test_load_settings_builds_caller_mapping(settings_file):
    config.save_option("mailchimp.api_key", "k-us8", settings_file=settings_file)

    settings = config.load_settings(settings_file)

    assert settings["api_key"] == "k-us8"
    assert settings["user_options"]["data_center"] == "us8"
    assert settings["user_options"]["timeout"] == config.MAILCHIMP_TIMEOUT
    assert config.validate_configuration(settings)


def test_load_settings_without_key(settings_file):
    settings = config.load_settings(settings_file)

    assert settings["api_key"] is None
    assert "data_center" not in settings["user_options"]
    assert not config.validate_configuration(settings)

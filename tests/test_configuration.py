"""
Tests for settings loading.
"""

import pytest
from omegaconf.errors import ValidationError

from print_orders_backend.configuration import MEGABYTE, load_settings


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = load_settings(environ={})

    assert settings.database_path == "data/xerox_orders.db"
    assert settings.upload_dir == "uploads"
    assert settings.session_ttl_hours == 24
    assert settings.max_upload_bytes == 50 * MEGABYTE
    assert settings.max_json_bytes == 50 * MEGABYTE
    assert settings.cors_origins == ["*"]
    assert settings.port == 4173


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = load_settings(
        environ={
            "PORT": "9000",
            "ADMIN_PASSWORD": "s3cret",
            "CORS_ORIGINS": "http://a.example, http://b.example",
            "UPLOAD_DIR": "/srv/uploads",
        }
    )

    assert settings.port == 9000
    assert settings.admin_password == "s3cret"
    assert settings.cors_origins == ["http://a.example", "http://b.example"]
    assert str(settings.upload_root) == "/srv/uploads"


def test_yaml_file_then_environment(tmp_path):
    config = tmp_path / "custom.yaml"
    config.write_text("port: 8080\nadmin_username: shop\nlog_level: DEBUG\n")

    settings = load_settings(environ={"PRINT_ORDERS_CONFIG": str(config), "LOG_LEVEL": "WARNING"})

    assert settings.port == 8080
    assert settings.admin_username == "shop"
    assert settings.log_level == "WARNING"


def test_default_config_file_in_working_directory(tmp_path, monkeypatch):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "config.yaml").write_text("session_ttl_hours: 12\n")
    monkeypatch.chdir(tmp_path)

    assert load_settings(environ={}).session_ttl_hours == 12


def test_missing_explicit_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(environ={"PRINT_ORDERS_CONFIG": str(tmp_path / "nope.yaml")})


def test_invalid_type_is_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        load_settings(environ={"PORT": "not-a-number"})


def test_explicit_overrides_win(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = load_settings(environ={"PORT": "9000"}, overrides={"port": 1234})
    assert settings.port == 1234

# tests/core/test_config.py
# MIT License
from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from blfcap.core import config as config_mod
from blfcap.core.config import DEFAULTS, ConfigValidationError, ConverterConfig


def _write(tmp_path: Path, doc) -> Path:
    path = tmp_path / "blfcap.yaml"
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return path


def test_defaults_when_empty():
    cfg = ConverterConfig.from_dict({})
    assert cfg.to_dict() == DEFAULTS
    assert not cfg.abort_on_unsupported_resolution
    assert not cfg.utc_start_time
    assert cfg.level == logging.INFO


def test_yaml_overrides_are_applied(tmp_path):
    path = _write(tmp_path, {
        "on_unsupported_resolution": "abort",
        "start_time_zone": "utc",
        "emit_direction": False,
        "snaplen": 96,
        "log_level": "DEBUG",
    })
    cfg = ConverterConfig.from_yaml(path)
    assert cfg.abort_on_unsupported_resolution
    assert cfg.utc_start_time
    assert cfg.emit_direction is False
    assert cfg.snaplen == 96
    assert cfg.level == logging.DEBUG


def test_empty_yaml_file_means_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert ConverterConfig.from_yaml(path) == ConverterConfig()


@pytest.mark.parametrize(
    "doc",
    [
        {"on_unsupported_resolution": "ignore"},
        {"start_time_zone": "Europe/Paris"},
        {"snaplen": -1},
        {"emit_direction": "yes"},
        {"log_level": "TRACE"},
        {"unknown_key": 1},
    ],
)
def test_schema_rejects_bad_values(tmp_path, doc):
    with pytest.raises(ConfigValidationError):
        ConverterConfig.from_yaml(_write(tmp_path, doc))


def test_top_level_must_be_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigValidationError, match="mapping"):
        ConverterConfig.from_yaml(path)


def test_broken_yaml_is_a_config_error(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("snaplen: [1, 2\n", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        ConverterConfig.from_yaml(path)


def test_load_prefers_user_config(tmp_path, monkeypatch):
    user = _write(tmp_path, {"snaplen": 128})
    monkeypatch.setattr(config_mod, "user_config_path", lambda: user)
    assert ConverterConfig.load().snaplen == 128


def test_load_without_any_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.setattr(config_mod, "user_config_path", lambda: tmp_path / "missing.yaml")
    assert ConverterConfig.load() == ConverterConfig()


def test_explicit_missing_path_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        ConverterConfig.load(tmp_path / "nope.yaml")


def test_schema_is_found():
    schema = config_mod._load_schema()
    assert set(schema["properties"]) == set(DEFAULTS)

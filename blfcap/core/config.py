# MIT License
# blfcap/core/config.py - converter configuration (YAML + JSON schema)
from __future__ import annotations

import json
import logging
import pathlib
from dataclasses import dataclass
from importlib import resources
from typing import Any, Dict, Optional, Union

import jsonschema
import platformdirs
import yaml

APP_NAME = "blfcap"
CONFIG_FILENAME = "config.yaml"

SKIP = "skip"
ABORT = "abort"

DEFAULTS: Dict[str, Any] = {
    "on_unsupported_resolution": SKIP,
    "start_time_zone": "local",
    "emit_direction": True,
    "snaplen": 0,
    "log_level": "INFO",
    "log_file": None,
}


class ConfigValidationError(Exception):
    """Raised when the configuration YAML fails schema validation."""


def user_config_path() -> pathlib.Path:
    return pathlib.Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILENAME


def _load_schema() -> Dict[str, Any]:
    """
    Load blfcap/schema/config.schema.json from package data, falling back to
    the checkout layout when running from source.
    """
    try:
        candidate = resources.files("blfcap") / "schema" / "config.schema.json"
        if candidate.is_file():
            return json.loads(candidate.read_text(encoding="utf-8"))
    except (ModuleNotFoundError, TypeError, FileNotFoundError):
        pass

    fallback = pathlib.Path(__file__).resolve().parents[1] / "schema" / "config.schema.json"
    if fallback.exists():
        return json.loads(fallback.read_text(encoding="utf-8"))

    raise FileNotFoundError("Could not locate schema 'config.schema.json'")


@dataclass(frozen=True)
class ConverterConfig:
    on_unsupported_resolution: str = SKIP
    start_time_zone: str = "local"
    emit_direction: bool = True
    snaplen: int = 0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def abort_on_unsupported_resolution(self) -> bool:
        return self.on_unsupported_resolution == ABORT

    @property
    def utc_start_time(self) -> bool:
        return self.start_time_zone == "utc"

    @property
    def level(self) -> int:
        return getattr(logging, self.log_level)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ConverterConfig":
        doc = dict(DEFAULTS)
        doc.update(raw or {})
        try:
            jsonschema.validate(instance=doc, schema=_load_schema())
        except jsonschema.ValidationError as e:
            raise ConfigValidationError(e.message) from e
        return cls(
            on_unsupported_resolution=str(doc["on_unsupported_resolution"]),
            start_time_zone=str(doc["start_time_zone"]),
            emit_direction=bool(doc["emit_direction"]),
            snaplen=int(doc["snaplen"]),
            log_level=str(doc["log_level"]),
            log_file=doc.get("log_file"),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, pathlib.Path]) -> "ConverterConfig":
        text = pathlib.Path(path).read_text(encoding="utf-8")
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"{path}: {e}") from e
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigValidationError("Configuration YAML must define a mapping at top level")
        return cls.from_dict(raw)

    @classmethod
    def load(cls, path: Optional[Union[str, pathlib.Path]] = None) -> "ConverterConfig":
        """Explicit path, else the per-user config file if present, else defaults."""
        if path is not None:
            return cls.from_yaml(path)
        user = user_config_path()
        if user.is_file():
            return cls.from_yaml(user)
        return cls.from_dict({})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "on_unsupported_resolution": self.on_unsupported_resolution,
            "start_time_zone": self.start_time_zone,
            "emit_direction": self.emit_direction,
            "snaplen": self.snaplen,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

"""Runtime settings for the booking engine.

Values come from an optional YAML file and then from ``BOOKING_*``
environment variables, which take precedence.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import InvalidArgumentError
from .models import DEFAULT_CAPACITY

ENV_PREFIX = "BOOKING_"
CONFIG_PATH_ENV = "BOOKING_CONFIG"


@dataclass(frozen=True)
class BookingSettings:
    data_dir: str = "data"
    admin_secret: str | None = None
    default_capacity: int = DEFAULT_CAPACITY
    default_page_size: int = 20
    max_page_size: int = 100

    def __post_init__(self) -> None:
        if self.default_capacity <= 0:
            raise InvalidArgumentError("default_capacity must be greater than 0")
        if self.default_page_size <= 0 or self.max_page_size <= 0:
            raise InvalidArgumentError("page sizes must be greater than 0")
        if self.default_page_size > self.max_page_size:
            raise InvalidArgumentError("default_page_size must not exceed max_page_size")


_INT_FIELDS = {"default_capacity", "default_page_size", "max_page_size"}
_FIELDS = ("data_dir", "admin_secret", "default_capacity", "default_page_size", "max_page_size")


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in _INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"{name} must be an integer, got {value!r}") from None
    text = str(value)
    if name == "admin_secret" and not text.strip():
        return None
    return text


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise InvalidArgumentError(f"Config file not found: {path}") from None
    except yaml.YAMLError as error:
        raise InvalidArgumentError(f"Config file is not valid YAML: {path}") from error

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidArgumentError(f"Config file must contain a mapping: {path}")
    return payload


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BookingSettings:
    env = os.environ if environ is None else environ
    path = config_path or env.get(CONFIG_PATH_ENV)

    values: dict[str, Any] = {}

    def _apply(name: str, raw: Any) -> None:
        coerced = _coerce(name, raw)
        if coerced is None and name != "admin_secret":
            return
        values[name] = coerced

    if path:
        file_values = _read_config_file(Path(path))
        for name in _FIELDS:
            if name in file_values:
                _apply(name, file_values[name])

    for name in _FIELDS:
        env_key = ENV_PREFIX + name.upper()
        if env_key in env:
            _apply(name, env[env_key])

    return replace(BookingSettings(), **values)

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .default_files import packaged_config_path

DEFAULT_CONFIG_FILE = Path("config/default.yaml")
PACKAGED_CONFIG_NAME = "default.yaml"
DEFAULT_DEVICE_NAMES = ("DEV0",)
LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


@dataclass(frozen=True)
class DriverSettings:
    backend: str = "tactor_interface"
    library_path: str | None = None


@dataclass(frozen=True)
class SimulatorSettings:
    device_names: tuple[str, ...] = DEFAULT_DEVICE_NAMES
    tactor_count: int = 8


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "WARNING"

    @property
    def level_number(self) -> int:
        return int(logging.getLevelName(self.level))


@dataclass(frozen=True)
class TactorSettings:
    driver: DriverSettings = field(default_factory=DriverSettings)
    simulator: SimulatorSettings = field(default_factory=SimulatorSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def load_settings(
    config_file: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> TactorSettings:
    env_values = os.environ if env is None else env
    config_path = resolve_config_path(config_file, env=env_values)
    file_values = _load_config_mapping(config_path)

    defaults_driver = DriverSettings()
    defaults_simulator = SimulatorSettings()
    defaults_logging = LoggingSettings()

    driver_file = _as_mapping(file_values.get("driver"))
    simulator_file = _as_mapping(file_values.get("simulator"))
    logging_file = _as_mapping(file_values.get("logging"))

    backend_value = _first_set(
        env_values.get("TACTOR_BACKEND"),
        driver_file.get("backend"),
        defaults_driver.backend,
    )
    backend = str(backend_value).strip()
    if not backend:
        raise ValueError("Driver backend cannot be empty.")

    library_value = env_values.get("TACTOR_LIBRARY_PATH") or driver_file.get("library_path")
    library_path = None if library_value is None else str(library_value).strip() or None

    device_names_value = _first_set(
        env_values.get("TACTOR_SIM_DEVICES"),
        simulator_file.get("device_names"),
        defaults_simulator.device_names,
    )
    device_names = _parse_names(device_names_value, field_name="TACTOR_SIM_DEVICES")

    tactor_count_value = _first_set(
        env_values.get("TACTOR_SIM_TACTORS"),
        simulator_file.get("tactor_count"),
        defaults_simulator.tactor_count,
    )
    tactor_count = _parse_positive_int(tactor_count_value, field_name="TACTOR_SIM_TACTORS")

    level_value = _first_set(
        env_values.get("TACTOR_LOG_LEVEL"),
        logging_file.get("level"),
        defaults_logging.level,
    )
    level = _parse_log_level(level_value, field_name="TACTOR_LOG_LEVEL")

    return TactorSettings(
        driver=DriverSettings(backend=backend, library_path=library_path),
        simulator=SimulatorSettings(device_names=device_names, tactor_count=tactor_count),
        logging=LoggingSettings(level=level),
    )


def resolve_config_path(
    config_file: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> Path | None:
    """Config file used by :func:`load_settings`, or ``None`` when only defaults apply."""
    env = os.environ if env is None else env
    if config_file is not None:
        return Path(config_file).expanduser()

    env_path = env.get("TACTOR_CONFIG_FILE")
    if env_path:
        return Path(env_path).expanduser()

    if DEFAULT_CONFIG_FILE.exists():
        return DEFAULT_CONFIG_FILE

    try:
        return packaged_config_path(PACKAGED_CONFIG_NAME)
    except (FileNotFoundError, ModuleNotFoundError, ValueError):
        return None


def _load_config_mapping(config_path: Path | None) -> dict[str, Any]:
    if config_path is None or not config_path.exists():
        return {}

    with config_path.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle)

    if loaded is None:
        return {}

    if not isinstance(loaded, dict):
        raise ValueError("Config file must contain a top-level mapping.")

    return dict(loaded)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}

    if not isinstance(value, dict):
        raise ValueError("Config section must be a mapping.")

    return value


def _parse_names(value: object, *, field_name: str) -> tuple[str, ...]:
    entries: Sequence[object]
    if isinstance(value, str):
        entries = [item.strip() for item in value.split(",")]
    elif isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        entries = value
    else:
        raise ValueError(f"{field_name} must be a comma-separated string or sequence.")

    names = tuple(str(entry).strip() for entry in entries if str(entry).strip())
    if not names:
        raise ValueError(f"{field_name} must list at least one device name.")
    return names


def _parse_positive_int(value: object, *, field_name: str) -> int:
    try:
        parsed = int(str(value))
    except ValueError as exc:
        raise ValueError(f"{field_name} must be an integer.") from exc
    if parsed <= 0:
        raise ValueError(f"{field_name} must be positive.")
    return parsed


def _parse_log_level(value: object, *, field_name: str) -> str:
    normalized = str(value).strip().upper()
    if normalized not in LOG_LEVELS:
        allowed = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"Invalid log level for {field_name}: {value}. Allowed: {allowed}")
    return normalized


def _first_set(*values: object) -> object:
    for value in values:
        if value is not None:
            return value
    raise ValueError("A default value is required.")

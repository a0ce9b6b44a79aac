from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from tdk_tactor_controller.config import TactorSettings, load_settings

from .backend import build_driver, canonical_backend_name
from .base import DriverFacade


def build_driver_from_settings(settings: TactorSettings) -> DriverFacade:
    backend = canonical_backend_name(settings.driver.backend)
    if backend == "simulated":
        options = {
            "device_names": settings.simulator.device_names,
            "tactor_count": settings.simulator.tactor_count,
        }
    else:
        options = {"library_path": settings.driver.library_path}
    return build_driver(backend, options=options)


def create_driver(
    *,
    config_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> DriverFacade:
    settings = load_settings(config_file=config_file, env=env)
    return build_driver_from_settings(settings)

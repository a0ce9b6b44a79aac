from .settings import (
    DriverSettings,
    LoggingSettings,
    SimulatorSettings,
    TactorSettings,
    load_settings,
    resolve_config_path,
)

__all__ = [
    "DriverSettings",
    "SimulatorSettings",
    "LoggingSettings",
    "TactorSettings",
    "load_settings",
    "resolve_config_path",
]

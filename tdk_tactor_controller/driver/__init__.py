from .backend import available_backends, build_driver, register_backend
from .base import DriverFacade
from .error_catalog import UNKNOWN_ERROR_DESCRIPTION, catalog, describe
from .errors import (
    TactorBackendUnavailableError,
    TactorBadArgumentsError,
    TactorConnectionStateError,
    TactorDriverError,
    TactorError,
    TactorLookupError,
    TactorUnknownCommandError,
    TactorUsageError,
)
from .factory import build_driver_from_settings, create_driver
from .simulated import SimulatedTactorDriver
from .tactor_interface import TactorInterfaceDriver

__all__ = [
    "DriverFacade",
    "register_backend",
    "build_driver",
    "available_backends",
    "build_driver_from_settings",
    "create_driver",
    "describe",
    "catalog",
    "UNKNOWN_ERROR_DESCRIPTION",
    "TactorError",
    "TactorUsageError",
    "TactorUnknownCommandError",
    "TactorBadArgumentsError",
    "TactorDriverError",
    "TactorLookupError",
    "TactorConnectionStateError",
    "TactorBackendUnavailableError",
    "SimulatedTactorDriver",
    "TactorInterfaceDriver",
]

from .device import (
    DeviceRecord,
    DeviceSession,
    SessionPhase,
    SessionSnapshot,
    SessionState,
    raise_for_result,
)
from .dispatcher import Dispatcher, build_dispatcher, create_dispatcher
from .registry import DEFAULT_REGISTRY, ArgSpec, CommandRegistry, CommandSpec

__all__ = [
    "ArgSpec",
    "CommandSpec",
    "CommandRegistry",
    "DEFAULT_REGISTRY",
    "DeviceRecord",
    "DeviceSession",
    "SessionPhase",
    "SessionSnapshot",
    "SessionState",
    "raise_for_result",
    "Dispatcher",
    "build_dispatcher",
    "create_dispatcher",
]

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

UNKNOWN_ERROR_DESCRIPTION = "Unknown error code."

# Detailed error codes reported by GetLastEAIError (EAI_Defines.h).
ERROR_NO_INITIALIZATION = 202000
ERROR_CONNECTION = 202001
ERROR_BAD_PARAMETER = 202002
ERROR_INTERNAL = 202003
ERROR_PARTIAL_READ = 202004
ERROR_NULL_HANDLE = 202005
ERROR_WINDOWS = 202006
ERROR_TIMEOUT = 202007
ERROR_NO_READ = 202008
ERROR_FAILED_TO_CLOSE = 202009
ERROR_MORE_TO_READ = 202010
ERROR_FAILED_TO_READ = 202011
ERROR_FAILED_TO_WRITE = 202012
ERROR_NO_SUPPORTED_DRIVER = 202013

_DESCRIPTIONS: Mapping[int, str] = MappingProxyType(
    {
        ERROR_NO_INITIALIZATION: "No initialization.",
        ERROR_CONNECTION: "Connection error.",
        ERROR_BAD_PARAMETER: "Bad parameter.",
        ERROR_INTERNAL: "Internal error.",
        ERROR_PARTIAL_READ: "Partial read.",
        ERROR_NULL_HANDLE: "Null handle.",
        ERROR_WINDOWS: "Windows error.",
        ERROR_TIMEOUT: "Timeout error.",
        ERROR_NO_READ: "No read.",
        ERROR_FAILED_TO_CLOSE: "Failed to close.",
        ERROR_MORE_TO_READ: "More to read.",
        ERROR_FAILED_TO_READ: "Failed to read.",
        ERROR_FAILED_TO_WRITE: "Failed to write.",
        ERROR_NO_SUPPORTED_DRIVER: "No supported driver.",
    }
)


def describe(code: int) -> str:
    """Translate a driver error code, falling back to a fixed text for unknown codes."""
    try:
        return _DESCRIPTIONS.get(int(code), UNKNOWN_ERROR_DESCRIPTION)
    except (TypeError, ValueError):
        return UNKNOWN_ERROR_DESCRIPTION


def catalog() -> Mapping[int, str]:
    return _DESCRIPTIONS

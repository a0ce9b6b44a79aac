from __future__ import annotations

import ctypes
import ctypes.util
import logging
from pathlib import Path
from threading import RLock
from typing import Any

from .errors import TactorBackendUnavailableError

logger = logging.getLogger(__name__)

LIBRARY_NAME = "TactorInterface"
LINEAR_RAMP = 1
DEVICE_NAME_MAX_BYTES = 63

_c_int = ctypes.c_int
_PROTOTYPES: dict[str, tuple[Any, tuple[Any, ...]]] = {
    "InitializeTI": (_c_int, ()),
    "ShutdownTI": (_c_int, ()),
    "UpdateTI": (_c_int, ()),
    "GetLastEAIError": (_c_int, ()),
    "Discover": (_c_int, (_c_int,)),
    "GetDiscoveredDeviceName": (ctypes.c_char_p, (_c_int,)),
    "Connect": (_c_int, (ctypes.c_char_p, _c_int, ctypes.c_void_p)),
    "Close": (_c_int, (_c_int,)),
    "SetTimeFactor": (_c_int, (_c_int,)),
    "Pulse": (_c_int, (_c_int, _c_int, _c_int, _c_int)),
    "ChangeGain": (_c_int, (_c_int, _c_int, _c_int, _c_int)),
    "ChangeFreq": (_c_int, (_c_int, _c_int, _c_int, _c_int)),
    "RampGain": (_c_int, (_c_int, _c_int, _c_int, _c_int, _c_int, _c_int, _c_int)),
    "RampFreq": (_c_int, (_c_int, _c_int, _c_int, _c_int, _c_int, _c_int, _c_int)),
    "Stop": (_c_int, (_c_int, _c_int)),
    "SetTactors": (_c_int, (_c_int, _c_int, _c_int, ctypes.c_ubyte)),
    "BeginStoreTAction": (_c_int, (_c_int, _c_int)),
    "FinishStoreTAction": (_c_int, (_c_int,)),
    "PlayStoredTAction": (_c_int, (_c_int, _c_int, _c_int)),
}


class TactorInterfaceDriver:
    """Driver facade backed by the vendor ``TactorInterface`` shared library.

    The library is loaded lazily on the first call so that commands which never
    touch the hardware (help, list, error lookup) work without it installed.
    """

    name = "tactor_interface"

    def __init__(
        self,
        library_path: str | Path | None = None,
        *,
        library: Any | None = None,
        **_: Any,
    ) -> None:
        self._library_path = None if library_path is None else Path(library_path).expanduser()
        self._library = library
        self._prototypes_applied = False
        self._lock = RLock()

    @property
    def loaded(self) -> bool:
        return self._library is not None

    def load(self) -> Any:
        with self._lock:
            if self._library is None:
                self._library = _load_library(self._library_path)
            if not self._prototypes_applied:
                _apply_prototypes(self._library)
                self._prototypes_applied = True
            return self._library

    def version_string(self) -> str:
        location = "auto" if self._library_path is None else str(self._library_path)
        return f"{LIBRARY_NAME}/{location}"

    def initialize(self) -> int:
        return self._invoke("InitializeTI")

    def shutdown(self) -> int:
        return self._invoke("ShutdownTI")

    def update(self) -> int:
        return self._invoke("UpdateTI")

    def last_error(self) -> int:
        return self._invoke("GetLastEAIError")

    def discover(self, device_type: int) -> int:
        return self._invoke("Discover", device_type)

    def discovered_device_name(self, index: int) -> str | None:
        raw = self.load().GetDiscoveredDeviceName(int(index))
        if not raw:
            return None
        if isinstance(raw, bytes):
            return raw.decode("ascii", errors="replace")
        return str(raw)

    def connect(self, name: str, device_type: int) -> int:
        encoded = name.encode("ascii", errors="replace")[:DEVICE_NAME_MAX_BYTES]
        return int(self.load().Connect(encoded, int(device_type), None))

    def close(self, device_id: int) -> int:
        return self._invoke("Close", device_id)

    def set_time_factor(self, value: int) -> int:
        return self._invoke("SetTimeFactor", value)

    def pulse(self, device_id: int, tactor: int, duration: int, delay: int) -> int:
        return self._invoke("Pulse", device_id, tactor, duration, delay)

    def change_gain(self, device_id: int, tactor: int, gain: int, delay: int) -> int:
        return self._invoke("ChangeGain", device_id, tactor, gain, delay)

    def change_freq(self, device_id: int, tactor: int, freq: int, delay: int) -> int:
        return self._invoke("ChangeFreq", device_id, tactor, freq, delay)

    def ramp_gain(
        self,
        device_id: int,
        tactor: int,
        start_gain: int,
        end_gain: int,
        duration: int,
        delay: int,
    ) -> int:
        return self._invoke(
            "RampGain", device_id, tactor, start_gain, end_gain, duration, LINEAR_RAMP, delay
        )

    def ramp_freq(
        self,
        device_id: int,
        tactor: int,
        start_freq: int,
        end_freq: int,
        duration: int,
        delay: int,
    ) -> int:
        return self._invoke(
            "RampFreq", device_id, tactor, start_freq, end_freq, duration, LINEAR_RAMP, delay
        )

    def stop(self, device_id: int, delay: int) -> int:
        return self._invoke("Stop", device_id, delay)

    def set_tactors(self, device_id: int, delay: int, bank: int, states: int) -> int:
        return self._invoke("SetTactors", device_id, delay, bank, states & 0xFF)

    def begin_store_taction(self, device_id: int, tac_id: int) -> int:
        return self._invoke("BeginStoreTAction", device_id, tac_id)

    def finish_store_taction(self, device_id: int) -> int:
        return self._invoke("FinishStoreTAction", device_id)

    def play_stored_taction(self, device_id: int, delay: int, tac_id: int) -> int:
        return self._invoke("PlayStoredTAction", device_id, delay, tac_id)

    def _invoke(self, function: str, *args: int) -> int:
        library = self.load()
        result = int(getattr(library, function)(*(int(arg) for arg in args)))
        logger.debug("%s%s -> %d", function, args, result)
        return result


def resolve_library_path(library_path: Path | None) -> str:
    if library_path is not None:
        if not library_path.exists():
            raise TactorBackendUnavailableError(
                f"TactorInterface library does not exist: {library_path}"
            )
        return str(library_path)

    found = ctypes.util.find_library(LIBRARY_NAME)
    if found is None:
        raise TactorBackendUnavailableError(
            "TactorInterface library was not found. Set TACTOR_LIBRARY_PATH or "
            "driver.library_path to the vendor library location."
        )
    return found


def _load_library(library_path: Path | None) -> Any:
    resolved = resolve_library_path(library_path)
    try:
        library = ctypes.CDLL(resolved)
    except OSError as exc:
        raise TactorBackendUnavailableError(
            f"Failed to load TactorInterface library from {resolved}: {exc}"
        ) from exc
    logger.info("Loaded TactorInterface library from %s", resolved)
    return library


def _apply_prototypes(library: Any) -> None:
    missing: list[str] = []
    for function_name, (restype, argtypes) in _PROTOTYPES.items():
        function = getattr(library, function_name, None)
        if function is None:
            missing.append(function_name)
            continue
        function.restype = restype
        function.argtypes = list(argtypes)
    if missing:
        raise TactorBackendUnavailableError(
            "TactorInterface library is missing exports: " + ", ".join(sorted(missing))
        )

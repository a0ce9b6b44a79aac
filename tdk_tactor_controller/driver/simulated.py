from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .error_catalog import (
    ERROR_BAD_PARAMETER,
    ERROR_CONNECTION,
    ERROR_NO_INITIALIZATION,
    ERROR_NULL_HANDLE,
)

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_NAMES = ("DEV0",)
DEFAULT_TACTOR_COUNT = 8
FAILURE = -1


@dataclass(frozen=True)
class DriverCall:
    function: str
    args: tuple[Any, ...]
    result: int


class SimulatedTactorDriver:
    """In-process stand-in for the TactorInterface library.

    Mirrors the vendor's return-code contract (negative result plus a detailed
    last-error code) and records every call, so sessions can be exercised
    without hardware.
    """

    name = "simulated"

    def __init__(
        self,
        device_names: Sequence[str] = DEFAULT_DEVICE_NAMES,
        tactor_count: int = DEFAULT_TACTOR_COUNT,
        **_: Any,
    ) -> None:
        if tactor_count <= 0:
            raise ValueError("tactor_count must be positive.")
        self._device_names = tuple(str(name) for name in device_names)
        self._tactor_count = int(tactor_count)
        self._initialized = False
        self._last_error = 0
        self._time_factor = 1
        self._discovered: tuple[str, ...] = ()
        self._connections: dict[int, str] = {}
        self._next_device_id = 0
        self._stored_tactions: dict[int, set[int]] = {}
        self._recording: dict[int, int] = {}
        self._injected: dict[str, list[int]] = {}
        self.calls: list[DriverCall] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def connections(self) -> dict[int, str]:
        return dict(self._connections)

    @property
    def time_factor(self) -> int:
        return self._time_factor

    def version_string(self) -> str:
        return f"simulated/{len(self._device_names)}-devices"

    def inject_failure(self, function: str, code: int, *, times: int = 1) -> None:
        """Make the next ``times`` calls of ``function`` fail with ``code``."""
        self._injected.setdefault(function, []).extend([int(code)] * times)

    def count(self, function: str) -> int:
        return sum(1 for call in self.calls if call.function == function)

    def initialize(self) -> int:
        def run() -> int:
            self._initialized = True
            return 0

        return self._record("InitializeTI", (), run, requires_init=False)

    def shutdown(self) -> int:
        def run() -> int:
            self._initialized = False
            self._connections.clear()
            self._discovered = ()
            self._recording.clear()
            return 0

        return self._record("ShutdownTI", (), run, requires_init=False)

    def update(self) -> int:
        return self._record("UpdateTI", (), lambda: 0)

    def last_error(self) -> int:
        return self._last_error

    def discover(self, device_type: int) -> int:
        def run() -> int:
            self._discovered = self._device_names
            return len(self._discovered)

        return self._record("Discover", (device_type,), run)

    def discovered_device_name(self, index: int) -> str | None:
        if not self._initialized:
            self._last_error = ERROR_NO_INITIALIZATION
            return None
        if index < 0 or index >= len(self._discovered):
            self._last_error = ERROR_BAD_PARAMETER
            return None
        return self._discovered[index]

    def connect(self, name: str, device_type: int) -> int:
        def run() -> int:
            if name not in self._device_names:
                return self._fail(ERROR_CONNECTION)
            device_id = self._next_device_id
            self._next_device_id += 1
            self._connections[device_id] = name
            return device_id

        return self._record("Connect", (name, device_type), run)

    def close(self, device_id: int) -> int:
        def run() -> int:
            if device_id not in self._connections:
                return self._fail(ERROR_NULL_HANDLE)
            del self._connections[device_id]
            self._recording.pop(device_id, None)
            return 0

        return self._record("Close", (device_id,), run)

    def set_time_factor(self, value: int) -> int:
        def run() -> int:
            if not 1 <= value <= 255:
                return self._fail(ERROR_BAD_PARAMETER)
            self._time_factor = value
            return 0

        return self._record("SetTimeFactor", (value,), run)

    def pulse(self, device_id: int, tactor: int, duration: int, delay: int) -> int:
        return self._actuate("Pulse", device_id, tactor, (duration, delay))

    def change_gain(self, device_id: int, tactor: int, gain: int, delay: int) -> int:
        return self._actuate("ChangeGain", device_id, tactor, (gain, delay))

    def change_freq(self, device_id: int, tactor: int, freq: int, delay: int) -> int:
        return self._actuate("ChangeFreq", device_id, tactor, (freq, delay))

    def ramp_gain(
        self,
        device_id: int,
        tactor: int,
        start_gain: int,
        end_gain: int,
        duration: int,
        delay: int,
    ) -> int:
        return self._actuate(
            "RampGain", device_id, tactor, (start_gain, end_gain, duration, delay)
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
        return self._actuate(
            "RampFreq", device_id, tactor, (start_freq, end_freq, duration, delay)
        )

    def stop(self, device_id: int, delay: int) -> int:
        return self._device_call("Stop", device_id, (delay,), lambda: 0)

    def set_tactors(self, device_id: int, delay: int, bank: int, states: int) -> int:
        def run() -> int:
            if bank < 0 or bank * 8 >= self._tactor_count or not 0 <= states <= 0xFF:
                return self._fail(ERROR_BAD_PARAMETER)
            return 0

        return self._device_call("SetTactors", device_id, (delay, bank, states), run)

    def begin_store_taction(self, device_id: int, tac_id: int) -> int:
        def run() -> int:
            self._recording[device_id] = tac_id
            return 0

        return self._device_call("BeginStoreTAction", device_id, (tac_id,), run)

    def finish_store_taction(self, device_id: int) -> int:
        def run() -> int:
            tac_id = self._recording.pop(device_id, None)
            if tac_id is None:
                return self._fail(ERROR_BAD_PARAMETER)
            self._stored_tactions.setdefault(device_id, set()).add(tac_id)
            return 0

        return self._device_call("FinishStoreTAction", device_id, (), run)

    def play_stored_taction(self, device_id: int, delay: int, tac_id: int) -> int:
        def run() -> int:
            if tac_id not in self._stored_tactions.get(device_id, set()):
                return self._fail(ERROR_BAD_PARAMETER)
            return 0

        return self._device_call("PlayStoredTAction", device_id, (delay, tac_id), run)

    def _actuate(
        self, function: str, device_id: int, tactor: int, values: tuple[int, ...]
    ) -> int:
        def run() -> int:
            if not 1 <= tactor <= self._tactor_count:
                return self._fail(ERROR_BAD_PARAMETER)
            return 0

        return self._device_call(function, device_id, (tactor, *values), run)

    def _device_call(
        self,
        function: str,
        device_id: int,
        extra: tuple[Any, ...],
        action: Any,
    ) -> int:
        def run() -> int:
            if device_id not in self._connections:
                return self._fail(ERROR_NULL_HANDLE)
            return int(action())

        return self._record(function, (device_id, *extra), run)

    def _record(
        self,
        function: str,
        args: tuple[Any, ...],
        action: Any,
        *,
        requires_init: bool = True,
    ) -> int:
        injected = self._injected.get(function)
        if injected:
            result = self._fail(injected.pop(0))
        elif requires_init and not self._initialized:
            result = self._fail(ERROR_NO_INITIALIZATION)
        else:
            result = int(action())
        self.calls.append(DriverCall(function=function, args=args, result=result))
        logger.debug("simulated %s%s -> %d", function, args, result)
        return result

    def _fail(self, code: int) -> int:
        self._last_error = code
        return FAILURE

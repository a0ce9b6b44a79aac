from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum
from threading import RLock

from tdk_tactor_controller.driver.base import DriverFacade
from tdk_tactor_controller.driver.error_catalog import describe
from tdk_tactor_controller.driver.errors import (
    TactorConnectionStateError,
    TactorDriverError,
    TactorLookupError,
)

logger = logging.getLogger(__name__)

TACTORS_PER_BANK = 8


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CONNECTED = "connected"


@dataclass(frozen=True)
class DeviceRecord:
    device_id: int
    device_type: int
    name: str


@dataclass
class SessionState:
    initialized: bool = False
    devices: dict[int, DeviceRecord] = field(default_factory=dict)

    @property
    def connected(self) -> bool:
        return bool(self.devices)

    @property
    def phase(self) -> SessionPhase:
        if self.devices:
            return SessionPhase.CONNECTED
        if self.initialized:
            return SessionPhase.READY
        return SessionPhase.UNINITIALIZED


@dataclass(frozen=True)
class SessionSnapshot:
    phase: SessionPhase
    initialized: bool
    devices: tuple[DeviceRecord, ...]
    driver: str


def raise_for_result(
    driver: DriverFacade,
    result: int,
    function: str,
    *,
    error_type: type[TactorDriverError] = TactorDriverError,
) -> int:
    """Return ``result`` unchanged, or raise with the driver's last error code if negative."""
    if result < 0:
        raise error_type(function, driver.last_error())
    return result


class DeviceSession:
    """Lifecycle of the tactor interface and its single device connection.

    Uninitialized -> Ready (``initialize``) -> Connected (``connect``), with
    ``shutdown`` returning to Uninitialized from any phase. A finalizer bound to
    the session state releases the driver at interpreter exit if ``shutdown``
    was never called.
    """

    def __init__(self, driver: DriverFacade) -> None:
        self._driver = driver
        self._state = SessionState()
        self._lock = RLock()
        self._finalizer = self._arm_finalizer()

    @property
    def driver(self) -> DriverFacade:
        return self._driver

    @property
    def lock(self) -> RLock:
        return self._lock

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            return self._state.phase

    @property
    def initialized(self) -> bool:
        with self._lock:
            return self._state.initialized

    @property
    def devices(self) -> tuple[DeviceRecord, ...]:
        with self._lock:
            return tuple(self._state.devices.values())

    @property
    def active_device(self) -> DeviceRecord | None:
        with self._lock:
            return next(iter(self._state.devices.values()), None)

    @property
    def exit_hook_armed(self) -> bool:
        return self._finalizer.alive

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                phase=self._state.phase,
                initialized=self._state.initialized,
                devices=tuple(self._state.devices.values()),
                driver=getattr(self._driver, "name", type(self._driver).__name__),
            )

    def check_connection(self) -> bool:
        with self._lock:
            return self._state.connected

    def initialize(self) -> None:
        with self._lock:
            if not self._finalizer.alive:
                self._finalizer = self._arm_finalizer()
            if self._state.initialized:
                return
            raise_for_result(self._driver, self._driver.initialize(), "InitializeTI")
            self._state.initialized = True
            logger.info("Tactor interface initialized (%s).", self.snapshot().driver)

    def shutdown(self) -> None:
        with self._lock:
            _release(self._driver, self._state, raise_on_failure=True)

    def finalize(self) -> None:
        """Run the exit cleanup now; later calls and interpreter exit are no-ops."""
        self._finalizer()

    def refresh(self) -> None:
        with self._lock:
            raise_for_result(self._driver, self._driver.update(), "UpdateTI")

    def discover(self, device_type: int) -> int:
        with self._lock:
            return raise_for_result(self._driver, self._driver.discover(device_type), "Discover")

    def get_name(self, index: int) -> str:
        with self._lock:
            name = self._driver.discovered_device_name(index)
            if name is None:
                raise TactorLookupError("GetDiscoveredDeviceName", self._driver.last_error())
            return name

    def connect(self, name: str, device_type: int) -> int:
        with self._lock:
            current = self.active_device
            if current is not None:
                raise TactorConnectionStateError(
                    f"Device '{current.name}' (id {current.device_id}) is already connected; "
                    "close current connection first."
                )
            device_id = raise_for_result(
                self._driver, self._driver.connect(name, device_type), "Connect"
            )
            self._state.devices[device_id] = DeviceRecord(
                device_id=device_id, device_type=device_type, name=name
            )
            logger.info("Connected to '%s' (type %d) as device %d.", name, device_type, device_id)
            return device_id

    def close(self, device_id: int) -> None:
        with self._lock:
            if device_id not in self._state.devices:
                raise TactorConnectionStateError(f"Device {device_id} is not connected.")
            raise_for_result(self._driver, self._driver.close(device_id), "Close")
            record = self._state.devices.pop(device_id)
            logger.info("Closed device %d ('%s').", device_id, record.name)

    def set_time_factor(self, value: int) -> None:
        with self._lock:
            raise_for_result(self._driver, self._driver.set_time_factor(value), "SetTimeFactor")

    def pulse(self, device_id: int, tactor: int, duration: int, delay: int) -> None:
        with self._lock:
            result = self._driver.pulse(device_id, tactor, duration, delay)
            raise_for_result(self._driver, result, "Pulse")

    def change_gain(self, device_id: int, tactor: int, gain: int, delay: int) -> None:
        with self._lock:
            result = self._driver.change_gain(device_id, tactor, gain, delay)
            raise_for_result(self._driver, result, "ChangeGain")

    def change_freq(self, device_id: int, tactor: int, freq: int, delay: int) -> None:
        with self._lock:
            result = self._driver.change_freq(device_id, tactor, freq, delay)
            raise_for_result(self._driver, result, "ChangeFreq")

    def ramp_gain(
        self,
        device_id: int,
        tactor: int,
        start_gain: int,
        end_gain: int,
        duration: int,
        delay: int,
    ) -> None:
        with self._lock:
            result = self._driver.ramp_gain(
                device_id, tactor, start_gain, end_gain, duration, delay
            )
            raise_for_result(self._driver, result, "RampGain")

    def ramp_freq(
        self,
        device_id: int,
        tactor: int,
        start_freq: int,
        end_freq: int,
        duration: int,
        delay: int,
    ) -> None:
        with self._lock:
            result = self._driver.ramp_freq(
                device_id, tactor, start_freq, end_freq, duration, delay
            )
            raise_for_result(self._driver, result, "RampFreq")

    def stop(self, device_id: int, delay: int = 0) -> None:
        with self._lock:
            raise_for_result(self._driver, self._driver.stop(device_id, delay), "Stop")

    def set_state(self, device_id: int, state_bitmask: int, delay: int = 0) -> None:
        if state_bitmask < 0:
            raise ValueError("state_bitmask must be non-negative.")
        bank_count = max(1, -(-state_bitmask.bit_length() // TACTORS_PER_BANK))
        with self._lock:
            for bank in range(bank_count):
                states = (state_bitmask >> (bank * TACTORS_PER_BANK)) & 0xFF
                result = self._driver.set_tactors(device_id, delay, bank, states)
                raise_for_result(self._driver, result, "SetTactors")

    def begin_store_taction(self, device_id: int, tac_id: int) -> None:
        with self._lock:
            result = self._driver.begin_store_taction(device_id, tac_id)
            raise_for_result(self._driver, result, "BeginStoreTAction")

    def finish_store_taction(self, device_id: int) -> None:
        with self._lock:
            result = self._driver.finish_store_taction(device_id)
            raise_for_result(self._driver, result, "FinishStoreTAction")

    def play_stored_taction(self, device_id: int, tac_id: int, delay: int = 0) -> None:
        with self._lock:
            result = self._driver.play_stored_taction(device_id, delay, tac_id)
            raise_for_result(self._driver, result, "PlayStoredTAction")

    def _arm_finalizer(self) -> weakref.finalize:
        # The callback must not reference ``self`` or the session would never be collected.
        return weakref.finalize(self, _release_at_exit, self._driver, self._state, self._lock)


def _release(driver: DriverFacade, state: SessionState, *, raise_on_failure: bool) -> None:
    if not state.initialized and not state.devices:
        return

    for device_id in list(state.devices):
        try:
            result = driver.close(device_id)
        except Exception as exc:
            logger.warning("Closing device %d raised %s: %s", device_id, type(exc).__name__, exc)
            continue
        if result < 0:
            code = driver.last_error()
            logger.warning(
                "Close failed for device %d with error code: %d (%s)",
                device_id,
                code,
                describe(code),
            )
    state.devices.clear()

    try:
        result = driver.shutdown()
    finally:
        state.initialized = False

    if result < 0:
        error = TactorDriverError("ShutdownTI", driver.last_error())
        if raise_on_failure:
            raise error
        logger.warning("%s", error)
        return
    logger.info("Tactor interface shut down.")


def _release_at_exit(driver: DriverFacade, state: SessionState, lock: RLock) -> None:
    with lock:
        try:
            _release(driver, state, raise_on_failure=False)
        except Exception as exc:
            logger.warning("Tactor cleanup at exit failed: %s: %s", type(exc).__name__, exc)

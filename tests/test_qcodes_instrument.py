from __future__ import annotations

import itertools

import pytest

from tdk_tactor_controller.driver.error_catalog import ERROR_NULL_HANDLE
from tdk_tactor_controller.driver.errors import TactorConnectionStateError, TactorDriverError
from tdk_tactor_controller.driver.simulated import SimulatedTactorDriver
from tdk_tactor_controller.qcodes_driver import QcodesTactor
from tdk_tactor_controller.session import SessionPhase, build_dispatcher

_names = itertools.count()


def _instrument(**kwargs) -> tuple[QcodesTactor, SimulatedTactorDriver]:
    driver = SimulatedTactorDriver(device_names=("DEV0", "DEV1"))
    instrument = QcodesTactor(
        f"tactor_test_{next(_names)}",
        dispatcher=build_dispatcher(driver),
        **kwargs,
    )
    return instrument, driver


def test_instrument_initializes_and_connects_through_dispatcher() -> None:
    instrument, driver = _instrument(device_name="DEV1")
    try:
        assert driver.count("InitializeTI") == 1
        assert instrument.connected() is True
        assert instrument.device_id() == 0
        assert instrument.get_idn()["serial"] == "DEV1"
    finally:
        instrument.close()


def test_discover_updates_count_parameter() -> None:
    instrument, _ = _instrument()
    try:
        assert instrument.discovered_count() is None
        assert instrument.discover() == 2
        assert instrument.discovered_count() == 2
        assert instrument.device_name(1) == "DEV1"
    finally:
        instrument.close()


def test_actuation_methods_use_connected_device() -> None:
    instrument, driver = _instrument(device_name="DEV0")
    try:
        instrument.pulse(1, 100)
        instrument.change_freq(2, 300)
        instrument.set_state(0b11)
        instrument.stop()

        functions = [call.function for call in driver.calls]
        assert functions.count("UpdateTI") == 4
        assert driver.calls[-1].args == (0, 0)
    finally:
        instrument.close()


def test_time_factor_parameter_validates_range() -> None:
    instrument, driver = _instrument()
    try:
        instrument.time_factor(25)
        assert driver.time_factor == 25
        with pytest.raises(ValueError):
            instrument.time_factor(0)
    finally:
        instrument.close()


def test_actuation_without_device_is_connection_state_error() -> None:
    instrument, driver = _instrument()
    try:
        with pytest.raises(TactorConnectionStateError, match="connect_device"):
            instrument.pulse(1, 100)
        assert driver.count("Pulse") == 0
    finally:
        instrument.close()


def test_disconnect_allows_new_connection() -> None:
    instrument, driver = _instrument(device_name="DEV0")
    try:
        instrument.disconnect_device()
        assert instrument.connected() is False
        assert instrument.connect_device("DEV1") == 1
        assert driver.connections == {1: "DEV1"}
    finally:
        instrument.close()


def test_owned_dispatcher_is_shut_down_on_close(tmp_path) -> None:
    config_file = tmp_path / "tactor.yaml"
    config_file.write_text("driver:\n  backend: simulated\n", encoding="utf-8")

    instrument = QcodesTactor(
        f"tactor_test_{next(_names)}", config_file=config_file, device_name="DEV0"
    )
    session = instrument.dispatcher.session
    assert session.phase is SessionPhase.CONNECTED

    instrument.close()

    assert session.phase is SessionPhase.UNINITIALIZED


def test_raw_dispatch_leaves_connection_errors_to_driver() -> None:
    instrument, driver = _instrument()
    try:
        with pytest.raises(TactorDriverError) as exc_info:
            instrument.dispatch("pulse", 0, 1, 100, 0)
        assert exc_info.value.function == "Pulse"
        assert exc_info.value.code == ERROR_NULL_HANDLE
        assert driver.count("Pulse") == 1
    finally:
        instrument.close()

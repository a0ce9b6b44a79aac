from __future__ import annotations

import ctypes
from types import SimpleNamespace

import pytest

from tdk_tactor_controller.driver import tactor_interface
from tdk_tactor_controller.driver.errors import TactorBackendUnavailableError
from tdk_tactor_controller.driver.tactor_interface import (
    LINEAR_RAMP,
    TactorInterfaceDriver,
    resolve_library_path,
)
from tdk_tactor_controller.session.device import DeviceSession


def _fake_library(
    calls: list[tuple], *, names: tuple[bytes, ...] = (b"DEV0",)
) -> SimpleNamespace:
    def recorder(function: str, result: int = 0):
        def call(*args):
            calls.append((function, args))
            return result

        return call

    library = SimpleNamespace(
        **{name: recorder(name) for name in tactor_interface._PROTOTYPES},
    )
    library.Discover = recorder("Discover", len(names))
    library.GetLastEAIError = recorder("GetLastEAIError", 202005)
    library.GetDiscoveredDeviceName = lambda index: names[index] if index < len(names) else None
    return library


def test_driver_does_not_load_library_until_first_call(monkeypatch) -> None:
    def fail_load(path):
        raise AssertionError("library loaded eagerly")

    monkeypatch.setattr(tactor_interface, "_load_library", fail_load)

    driver = TactorInterfaceDriver()

    assert driver.loaded is False
    assert driver.version_string() == "TactorInterface/auto"


def test_calls_forward_to_vendor_exports() -> None:
    calls: list[tuple] = []
    driver = TactorInterfaceDriver(library=_fake_library(calls))

    assert driver.initialize() == 0
    assert driver.discover(1) == 1
    assert driver.pulse(0, 1, 100, 0) == 0
    assert driver.stop(0, 5) == 0
    assert driver.play_stored_taction(0, 10, 3) == 0

    assert calls == [
        ("InitializeTI", ()),
        ("Discover", (1,)),
        ("Pulse", (0, 1, 100, 0)),
        ("Stop", (0, 5)),
        ("PlayStoredTAction", (0, 10, 3)),
    ]


def test_ramps_use_linear_ramp_function() -> None:
    calls: list[tuple] = []
    driver = TactorInterfaceDriver(library=_fake_library(calls))

    driver.ramp_gain(0, 1, 10, 200, 500, 0)
    driver.ramp_freq(0, 1, 300, 3000, 500, 25)

    assert calls == [
        ("RampGain", (0, 1, 10, 200, 500, LINEAR_RAMP, 0)),
        ("RampFreq", (0, 1, 300, 3000, 500, LINEAR_RAMP, 25)),
    ]


def test_connect_encodes_and_truncates_name() -> None:
    calls: list[tuple] = []
    driver = TactorInterfaceDriver(library=_fake_library(calls))

    driver.connect("D" * 80, 1)

    function, (name, device_type, callback) = calls[0]
    assert function == "Connect"
    assert name == b"D" * 63
    assert device_type == 1
    assert callback is None


def test_set_tactors_masks_state_byte() -> None:
    calls: list[tuple] = []
    driver = TactorInterfaceDriver(library=_fake_library(calls))

    driver.set_tactors(0, 0, 1, 0x1FF)

    assert calls == [("SetTactors", (0, 0, 1, 0xFF))]


def test_discovered_device_name_decodes_and_reports_missing() -> None:
    driver = TactorInterfaceDriver(library=_fake_library([], names=(b"EAI-1", b"EAI-2")))

    assert driver.discovered_device_name(1) == "EAI-2"
    assert driver.discovered_device_name(5) is None


def test_session_over_fake_library_translates_last_error() -> None:
    calls: list[tuple] = []
    library = _fake_library(calls)
    library.Close = lambda device_id: -1
    session = DeviceSession(TactorInterfaceDriver(library=library))
    session.initialize()
    session.connect("DEV0", 1)

    session.shutdown()

    assert calls[-2:] == [("GetLastEAIError", ()), ("ShutdownTI", ())]


def test_missing_exports_make_backend_unavailable() -> None:
    library = SimpleNamespace(InitializeTI=lambda: 0)
    driver = TactorInterfaceDriver(library=library)

    with pytest.raises(TactorBackendUnavailableError, match="missing exports"):
        driver.initialize()


def test_resolve_library_path_requires_existing_explicit_path(tmp_path) -> None:
    library = tmp_path / "TactorInterface.dll"

    with pytest.raises(TactorBackendUnavailableError, match="does not exist"):
        resolve_library_path(library)

    library.write_bytes(b"")
    assert resolve_library_path(library) == str(library)


def test_resolve_library_path_searches_system(monkeypatch) -> None:
    monkeypatch.setattr(tactor_interface.ctypes.util, "find_library", lambda name: None)
    with pytest.raises(TactorBackendUnavailableError, match="TACTOR_LIBRARY_PATH"):
        resolve_library_path(None)

    monkeypatch.setattr(
        tactor_interface.ctypes.util, "find_library", lambda name: f"lib{name}.so"
    )
    assert resolve_library_path(None) == "libTactorInterface.so"


def test_load_failure_is_backend_unavailable(tmp_path, monkeypatch) -> None:
    library = tmp_path / "TactorInterface.dll"
    library.write_bytes(b"not a library")

    def broken_cdll(path):
        raise OSError("invalid ELF header")

    monkeypatch.setattr(tactor_interface.ctypes, "CDLL", broken_cdll)
    driver = TactorInterfaceDriver(library_path=library)

    with pytest.raises(TactorBackendUnavailableError, match="invalid ELF header"):
        driver.initialize()
    assert driver.loaded is False


def test_load_applies_prototypes_to_exports() -> None:
    library = _fake_library([])
    driver = TactorInterfaceDriver(library=library)

    driver.load()

    assert library.Pulse.restype is ctypes.c_int
    assert library.Pulse.argtypes == [ctypes.c_int] * 4
    assert library.GetDiscoveredDeviceName.restype is ctypes.c_char_p
    assert library.SetTactors.argtypes[-1] is ctypes.c_ubyte

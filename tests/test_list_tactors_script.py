from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

from tdk_tactor_controller.driver.error_catalog import ERROR_INTERNAL, ERROR_TIMEOUT
from tdk_tactor_controller.driver.simulated import SimulatedTactorDriver

SCRIPT_PATH = Path(__file__).resolve().parents[1] / "scripts" / "list_tactors.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("list_tactors_script", SCRIPT_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_lists_discovered_devices(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TACTOR_SIM_DEVICES", "LEFT,RIGHT")
    monkeypatch.setattr(sys, "argv", ["list_tactors.py", "--backend", "simulated", "--json"])

    exit_code = _load_script().main()

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["devices"] == ["LEFT", "RIGHT"]


def test_discover_failure_is_reported_even_if_cleanup_fails(
    tmp_path, monkeypatch, capsys
) -> None:
    monkeypatch.chdir(tmp_path)
    module = _load_script()
    driver = SimulatedTactorDriver()
    driver.inject_failure("Discover", ERROR_TIMEOUT)
    driver.inject_failure("ShutdownTI", ERROR_INTERNAL)
    monkeypatch.setattr(module, "build_driver_from_settings", lambda settings: driver)
    monkeypatch.setattr(sys, "argv", ["list_tactors.py", "--backend", "simulated"])

    exit_code = module.main()

    assert exit_code == 1
    message = "Device listing failed: Discover failed with error code: 202007"
    assert message in capsys.readouterr().err
    assert driver.count("ShutdownTI") == 1

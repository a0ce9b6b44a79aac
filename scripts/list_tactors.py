from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace

from tdk_tactor_controller.config import load_settings
from tdk_tactor_controller.driver import TactorError, build_driver_from_settings
from tdk_tactor_controller.session import build_dispatcher


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Initialize the tactor interface, discover devices and list their names."
    )
    parser.add_argument(
        "--config-file",
        help="Path to YAML config file. Defaults to TACTOR_CONFIG_FILE or config/default.yaml.",
    )
    parser.add_argument("--backend", help="Driver backend override (example: simulated).")
    parser.add_argument(
        "--device-type",
        type=int,
        default=1,
        help="Device type to discover (USB = 1).",
    )
    parser.add_argument("--json", action="store_true", help="Print deterministic JSON output.")
    args = parser.parse_args()

    try:
        settings = load_settings(config_file=args.config_file)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    backend = args.backend or settings.driver.backend
    try:
        if args.backend:
            settings = replace(settings, driver=replace(settings.driver, backend=args.backend))
        dispatcher = build_dispatcher(build_driver_from_settings(settings))
        dispatcher("initialize")
        try:
            count = int(dispatcher("discover", args.device_type))
            names = [dispatcher("getName", index) for index in range(count)]
        finally:
            dispatcher.session.finalize()
    except TactorError as exc:
        print(f"Device listing failed: {exc}", file=sys.stderr)
        return 1

    report = {"backend": backend, "device_type": args.device_type, "devices": names}
    if args.json:
        print(json.dumps(report, indent=2, sort_keys=True))
    else:
        print(f"backend: {backend}")
        print(f"devices found: {len(names)}")
        for index, name in enumerate(names):
            print(f"  [{index}] {name}")

    return 0 if names else 1


if __name__ == "__main__":
    raise SystemExit(main())

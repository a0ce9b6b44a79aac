from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import asdict, is_dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from tdk_tactor_controller.config import TactorSettings, load_settings, resolve_config_path
from tdk_tactor_controller.driver import available_backends, build_driver_from_settings
from tdk_tactor_controller.driver.error_catalog import catalog, describe
from tdk_tactor_controller.driver.errors import (
    TactorBackendUnavailableError,
    TactorConnectionStateError,
    TactorDriverError,
    TactorError,
    TactorUsageError,
)
from tdk_tactor_controller.session import (
    DEFAULT_REGISTRY,
    CommandSpec,
    Dispatcher,
    build_dispatcher,
)
from tdk_tactor_controller.session import registry as commands
from tdk_tactor_controller.version import __version__

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_INPUT = 3
EXIT_BACKEND_UNAVAILABLE = 4
EXIT_DRIVER_ERROR = 5
EXIT_CONNECTION_STATE = 6

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_NO_AUTO_INITIALIZE = frozenset(
    {
        commands.CODE_INITIALIZE,
        commands.CODE_SHUTDOWN,
        commands.CODE_CHECK_CONNECTION,
        commands.CODE_HELP,
        commands.CODE_LIST,
    }
)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    try:
        _configure_logging(args)
        return int(args.handler(args))
    except TactorError as exc:
        return _emit_error(
            args,
            exit_code=_exit_code_for(exc),
            message=str(exc),
            error_type=type(exc).__name__,
            details=_error_details(exc),
        )
    except ValueError as exc:
        return _emit_error(
            args,
            exit_code=EXIT_INVALID_INPUT,
            message=str(exc),
            error_type=type(exc).__name__,
        )
    except KeyboardInterrupt:
        return _emit_error(
            args,
            exit_code=EXIT_FAILED,
            message="Interrupted by user.",
            error_type="KeyboardInterrupt",
        )
    except Exception as exc:  # pragma: no cover
        return _emit_error(
            args,
            exit_code=EXIT_FAILED,
            message=f"Unexpected error: {exc}",
            error_type=type(exc).__name__,
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tactorctl",
        description="TDK vibrotactor command dispatcher.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "Quick start:\n"
            "  tactorctl commands --text\n"
            "  tactorctl call discover 1\n"
            "  tactorctl call --discover 1 getName 0\n"
            "  tactorctl script session.yaml\n"
            "  tactorctl describe-error 202000"
        ),
    )
    parser.add_argument("--version", action="version", version=f"tactorctl {__version__}")
    parser.add_argument(
        "--log-level",
        choices=("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"),
        help="Override the configured log level.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_call = subparsers.add_parser(
        "call",
        help="Dispatch one command in a fresh session.",
        description=(
            "Dispatch one command by name or numeric code.\n"
            "The session initializes first (except for initialize/shutdown/help/list)\n"
            "and always shuts down afterwards. Use --discover before getName.\n"
            "Device commands (pulse, stop, ...) need a connection; run them with 'script'."
        ),
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "Examples:\n"
            "  tactorctl call discover 1\n"
            "  tactorctl call --discover 1 7 0\n"
            "  tactorctl call help pulse"
        ),
    )
    _add_runtime_args(parser_call)
    parser_call.add_argument("token", help="Command name or numeric code.")
    parser_call.add_argument("values", nargs="*", help="Positional command arguments.")
    parser_call.add_argument(
        "--no-auto-initialize",
        action="store_true",
        help="Do not initialize the session before dispatching.",
    )
    parser_call.add_argument(
        "--discover",
        type=int,
        metavar="TYPE",
        help="Discover devices of this type before dispatching (USB = 1).",
    )
    parser_call.set_defaults(handler=_cmd_call)

    parser_script = subparsers.add_parser(
        "script",
        help="Run a YAML list of commands in one session.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "Script format:\n"
            "  steps:\n"
            "    - command: initialize\n"
            "    - command: connect\n"
            "      args: [DEV0, 1]\n"
            "      save_as: device\n"
            "    - command: pulse\n"
            "      args: [$device, 1, 100, 0]"
        ),
    )
    _add_runtime_args(parser_script)
    parser_script.add_argument("file", type=Path, help="YAML script path.")
    parser_script.set_defaults(handler=_cmd_script)

    parser_commands = subparsers.add_parser("commands", help="List command names and codes.")
    _add_json_arg(parser_commands)
    parser_commands.set_defaults(handler=_cmd_commands)

    parser_describe = subparsers.add_parser(
        "describe-error", help="Translate a driver error code."
    )
    _add_json_arg(parser_describe)
    parser_describe.add_argument("code", type=int, help="Driver error code.")
    parser_describe.set_defaults(handler=_cmd_describe_error)

    parser_errors = subparsers.add_parser("errors", help="List the known driver error codes.")
    _add_json_arg(parser_errors)
    parser_errors.set_defaults(handler=_cmd_errors)

    parser_backends = subparsers.add_parser("backends", help="List registered driver backends.")
    _add_runtime_args(parser_backends)
    parser_backends.set_defaults(handler=_cmd_backends)

    parser_doctor = subparsers.add_parser(
        "doctor",
        help="Check configuration and driver availability.",
    )
    _add_runtime_args(parser_doctor)
    parser_doctor.add_argument(
        "--probe-type",
        type=int,
        help="Also initialize, discover this device type and list names.",
    )
    parser_doctor.set_defaults(handler=_cmd_doctor)

    return parser


def _add_runtime_args(parser: argparse.ArgumentParser) -> None:
    _add_json_arg(parser)
    parser.add_argument("--config-file", help="Runtime config YAML path.")
    parser.add_argument("--backend", help="Driver backend override (e.g. simulated).")


def _add_json_arg(parser: argparse.ArgumentParser) -> None:
    format_group = parser.add_mutually_exclusive_group()
    format_group.add_argument(
        "--json",
        action="store_true",
        dest="json",
        default=True,
        help="Print JSON output (default).",
    )
    format_group.add_argument(
        "--text",
        action="store_false",
        dest="json",
        help="Print text output.",
    )


def _cmd_call(args: argparse.Namespace) -> int:
    token = _coerce_token(args.token)
    with _dispatcher_context(args) as dispatcher:
        spec = _try_resolve(dispatcher, token)
        values = tuple(args.values) if spec is None else _coerce_values(spec, args.values)
        auto_initialize = not args.no_auto_initialize
        if spec is not None and spec.code not in _NO_AUTO_INITIALIZE and auto_initialize:
            dispatcher.dispatch(commands.CODE_INITIALIZE)
        if spec is not None and args.discover is not None:
            dispatcher.dispatch(commands.CODE_DISCOVER, args.discover)

        result = dispatcher.dispatch(token, *values)
        assert spec is not None

        if not args.json and isinstance(result, str):
            print(result)
            return EXIT_OK

        payload = {
            "ok": True,
            "command": spec.name,
            "code": spec.code,
            "result": result,
            "session": dispatcher.session.snapshot(),
        }
    _print_payload(payload, as_json=args.json)
    return EXIT_OK


def _cmd_script(args: argparse.Namespace) -> int:
    steps = load_script(args.file)
    results: list[dict[str, Any]] = []
    variables: dict[str, Any] = {}

    with _dispatcher_context(args) as dispatcher:
        for index, step in enumerate(steps):
            token = step["command"]
            values = tuple(_substitute(value, variables) for value in step["args"])
            try:
                result = dispatcher.dispatch(token, *values)
            except TactorError as exc:
                payload = {
                    "ok": False,
                    "steps": results,
                    "failed_step": {"index": index, "command": token, "args": list(values)},
                    "error": {
                        "type": type(exc).__name__,
                        "message": str(exc),
                        **_error_details(exc),
                    },
                    "exit_code": _exit_code_for(exc),
                }
                _print_payload(payload, as_json=args.json)
                return _exit_code_for(exc)

            if step["save_as"] is not None:
                variables[step["save_as"]] = result
            results.append({"index": index, "command": token, "result": result})
            logger.debug("script step %d (%s) -> %r", index, token, result)

        payload = {
            "ok": True,
            "steps": results,
            "variables": variables,
            "session": dispatcher.session.snapshot(),
        }
    _print_payload(payload, as_json=args.json)
    return EXIT_OK


def _cmd_commands(args: argparse.Namespace) -> int:
    if not args.json:
        print(DEFAULT_REGISTRY.render_list())
        return EXIT_OK

    payload = {"commands": [_describe_spec(spec) for spec in DEFAULT_REGISTRY]}
    _print_payload(payload, as_json=True)
    return EXIT_OK


def _cmd_describe_error(args: argparse.Namespace) -> int:
    code = int(args.code)
    payload = {"code": code, "description": describe(code), "known": code in catalog()}
    _print_payload(payload, as_json=args.json)
    return EXIT_OK


def _cmd_errors(args: argparse.Namespace) -> int:
    payload = {"errors": {str(code): text for code, text in sorted(catalog().items())}}
    _print_payload(payload, as_json=args.json)
    return EXIT_OK


def _cmd_backends(args: argparse.Namespace) -> int:
    settings = _load_runtime_settings(args)
    payload = {
        "configured": settings.driver.backend,
        "backends": {name: list(aliases) for name, aliases in available_backends().items()},
    }
    _print_payload(payload, as_json=args.json)
    return EXIT_OK


def _cmd_doctor(args: argparse.Namespace) -> int:
    settings = _load_runtime_settings(args)
    checks: list[dict[str, Any]] = []

    try:
        driver = build_driver_from_settings(settings)
    except TactorBackendUnavailableError as exc:
        checks.append({"name": "backend", "ok": False, "detail": str(exc)})
        driver = None
    else:
        checks.append({"name": "backend", "ok": True, "detail": driver.version_string()})

    if driver is not None:
        loader = getattr(driver, "load", None)
        if callable(loader):
            try:
                loader()
            except TactorBackendUnavailableError as exc:
                checks.append({"name": "library", "ok": False, "detail": str(exc)})
            else:
                checks.append({"name": "library", "ok": True, "detail": "loaded"})

    if driver is not None and args.probe_type is not None and all(c["ok"] for c in checks):
        dispatcher = build_dispatcher(driver)
        try:
            dispatcher.dispatch(commands.CODE_INITIALIZE)
            count = int(dispatcher.dispatch(commands.CODE_DISCOVER, args.probe_type))
            names = [dispatcher.dispatch(commands.CODE_GET_NAME, index) for index in range(count)]
            detail = {"count": count, "names": names}
            checks.append({"name": "discover", "ok": True, "detail": detail})
        except TactorError as exc:
            checks.append({"name": "discover", "ok": False, "detail": str(exc)})
        finally:
            dispatcher.session.finalize()

    payload = {
        "config": {
            "file": resolve_config_path(getattr(args, "config_file", None)),
            "backend": settings.driver.backend,
            "library_path": settings.driver.library_path,
            "log_level": settings.logging.level,
        },
        "checks": checks,
    }
    _print_payload(payload, as_json=args.json)
    return EXIT_OK if all(check["ok"] for check in checks) else EXIT_FAILED


def load_script(path: str | Path) -> list[dict[str, Any]]:
    """Load and normalize a YAML command script into ``{command, args, save_as}`` steps."""
    script_path = Path(path).expanduser()
    if not script_path.exists():
        raise ValueError(f"Script file does not exist: {script_path}")

    with script_path.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle)

    if isinstance(loaded, dict):
        loaded = loaded.get("steps")
    if not isinstance(loaded, list) or not loaded:
        raise ValueError("Script must contain a non-empty 'steps' list.")

    steps: list[dict[str, Any]] = []
    for index, raw_step in enumerate(loaded):
        if isinstance(raw_step, (str, int)) and not isinstance(raw_step, bool):
            raw_step = {"command": raw_step}
        if not isinstance(raw_step, dict):
            raise ValueError(f"Script step {index} must be a mapping.")

        command = raw_step.get("command")
        if command is None or isinstance(command, bool):
            raise ValueError(f"Script step {index} is missing 'command'.")

        raw_args = raw_step.get("args", [])
        if raw_args is None:
            raw_args = []
        if not isinstance(raw_args, list):
            raise ValueError(f"Script step {index} 'args' must be a list.")

        save_as = raw_step.get("save_as")
        if save_as is not None and not str(save_as).strip():
            raise ValueError(f"Script step {index} 'save_as' cannot be empty.")

        steps.append(
            {
                "command": command,
                "args": list(raw_args),
                "save_as": None if save_as is None else str(save_as).strip(),
            }
        )
    return steps


@contextmanager
def _dispatcher_context(args: argparse.Namespace) -> Iterator[Dispatcher]:
    settings = _load_runtime_settings(args)
    dispatcher = build_dispatcher(build_driver_from_settings(settings))
    try:
        yield dispatcher
    finally:
        dispatcher.session.finalize()


def _load_runtime_settings(args: argparse.Namespace) -> TactorSettings:
    settings = load_settings(config_file=getattr(args, "config_file", None))
    backend = getattr(args, "backend", None)
    if backend:
        settings = replace(settings, driver=replace(settings.driver, backend=backend))
    return settings


def _configure_logging(args: argparse.Namespace) -> None:
    level = args.log_level
    if level is None:
        level = load_settings(config_file=getattr(args, "config_file", None)).logging.level
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _try_resolve(dispatcher: Dispatcher, token: object) -> CommandSpec | None:
    try:
        return dispatcher.registry.resolve(token)
    except TactorUsageError:
        return None


def _coerce_token(raw: str) -> str | int:
    text = raw.strip()
    if _INTEGER_PATTERN.match(text):
        return int(text)
    return text


def _coerce_values(spec: CommandSpec, raw_values: Sequence[str]) -> tuple[Any, ...]:
    coerced: list[Any] = []
    for index, raw in enumerate(raw_values):
        kind = spec.arguments[index].kind if index < len(spec.arguments) else "str"
        if kind in {"int", "token"} and _INTEGER_PATTERN.match(raw.strip()):
            coerced.append(int(raw.strip()))
        else:
            coerced.append(raw)
    return tuple(coerced)


def _substitute(value: Any, variables: Mapping[str, Any]) -> Any:
    if isinstance(value, str) and value.startswith("$") and len(value) > 1:
        name = value[1:]
        if name not in variables:
            raise ValueError(f"Script variable '{name}' is not defined.")
        return variables[name]
    return value


def _describe_spec(spec: CommandSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "code": spec.code,
        "aliases": list(spec.aliases),
        "usage": spec.usage(),
        "summary": spec.summary,
        "min_args": spec.min_args,
        "max_args": spec.max_args,
        "refresh_first": spec.refresh_first,
        "unverified": spec.unverified,
    }


def _exit_code_for(exc: TactorError) -> int:
    if isinstance(exc, TactorUsageError):
        return EXIT_INVALID_INPUT
    if isinstance(exc, TactorBackendUnavailableError):
        return EXIT_BACKEND_UNAVAILABLE
    if isinstance(exc, TactorDriverError):
        return EXIT_DRIVER_ERROR
    if isinstance(exc, TactorConnectionStateError):
        return EXIT_CONNECTION_STATE
    return EXIT_FAILED


def _error_details(exc: TactorError) -> dict[str, Any]:
    if isinstance(exc, TactorDriverError):
        return {"function": exc.function, "code": exc.code, "description": exc.description}
    if isinstance(exc, TactorUsageError):
        return {"command": exc.command, "help": exc.help_text}
    return {}


def _emit_error(
    args: argparse.Namespace,
    *,
    exit_code: int,
    message: str,
    error_type: str,
    details: Mapping[str, Any] | None = None,
) -> int:
    payload = {
        "ok": False,
        "error": {"type": error_type, "message": message, **dict(details or {})},
        "exit_code": exit_code,
    }
    if bool(getattr(args, "json", False)):
        print(json.dumps(_json_safe(payload), indent=2, sort_keys=True))
    else:
        print(message, file=sys.stderr)
        help_text = (details or {}).get("help")
        if help_text:
            print(help_text, file=sys.stderr)
    return exit_code


def _print_payload(payload: Mapping[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(_json_safe(dict(payload)), indent=2, sort_keys=True))
        return

    for key, value in payload.items():
        safe_value = _json_safe(value)
        if isinstance(safe_value, (dict, list)):
            print(f"{key}: {json.dumps(safe_value, ensure_ascii=True, sort_keys=True)}")
        else:
            print(f"{key}: {safe_value}")


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return _json_safe(value.value)
    if isinstance(value, (str, int, float, bool)):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return _json_safe(asdict(value))
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


if __name__ == "__main__":
    raise SystemExit(main())

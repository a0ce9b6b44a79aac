from __future__ import annotations

import numbers
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from tdk_tactor_controller.driver.errors import (
    TactorBadArgumentsError,
    TactorUnknownCommandError,
    TactorUsageError,
)

UNRECOGNIZED_CODE = 0
MAX_CODE = 255
ARG_KINDS = frozenset({"int", "str", "token"})
# Integer arguments cross the driver boundary as C int.
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
NON_NEGATIVE_ARGS = frozenset({"duration", "delay"})

CODE_INITIALIZE = 1
CODE_SHUTDOWN = 2
CODE_DISCOVER = 3
CODE_CONNECT = 4
CODE_PULSE = 5
CODE_CHANGE_GAIN = 6
CODE_GET_NAME = 7
CODE_CHECK_CONNECTION = 8
CODE_SET_TIME_FACTOR = 9
CODE_CHANGE_FREQ = 10
CODE_RAMP_GAIN = 11
CODE_RAMP_FREQ = 12
CODE_STOP = 13
CODE_SET_STATE = 14
CODE_BEGIN_STORE_TACTION = 15
CODE_FINISH_STORE_TACTION = 16
CODE_PLAY_STORED_TACTION = 17
CODE_HELP = 18
CODE_LIST = 19


@dataclass(frozen=True)
class ArgSpec:
    name: str
    kind: str = "int"
    required: bool = True
    default: Any = None
    min_value: int | None = None
    max_value: int | None = None

    def usage(self) -> str:
        return f"<{self.name}>" if self.required else f"[{self.name}]"


@dataclass(frozen=True)
class CommandSpec:
    name: str
    code: int
    summary: str
    arguments: tuple[ArgSpec, ...] = ()
    aliases: tuple[str, ...] = ()
    refresh_first: bool = False
    unverified: bool = False

    @property
    def min_args(self) -> int:
        return sum(1 for argument in self.arguments if argument.required)

    @property
    def max_args(self) -> int:
        return len(self.arguments)

    @property
    def tokens(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    def usage(self) -> str:
        parts = [f"'{self.name}'", *(argument.usage() for argument in self.arguments)]
        return ", ".join(parts)


class CommandRegistry:
    """Immutable two-way table between command names and numeric codes."""

    def __init__(self, specs: Iterable[CommandSpec]) -> None:
        by_name: dict[str, CommandSpec] = {}
        by_code: dict[int, CommandSpec] = {}
        ordered: list[CommandSpec] = []
        for spec in specs:
            if not 0 < spec.code <= MAX_CODE:
                raise ValueError(
                    f"Command '{spec.name}' code {spec.code} is outside 1-{MAX_CODE}."
                )
            if spec.code in by_code:
                raise ValueError(f"Duplicate command code {spec.code} for '{spec.name}'.")
            for argument in spec.arguments:
                if argument.kind not in ARG_KINDS:
                    raise ValueError(
                        f"Command '{spec.name}' argument '{argument.name}' has unknown kind "
                        f"'{argument.kind}'."
                    )
            _check_optional_order(spec)
            for token in spec.tokens:
                if token in by_name:
                    raise ValueError(f"Duplicate command name '{token}'.")
                by_name[token] = spec
            by_code[spec.code] = spec
            ordered.append(spec)

        self._by_name: Mapping[str, CommandSpec] = MappingProxyType(by_name)
        self._by_code: Mapping[int, CommandSpec] = MappingProxyType(by_code)
        self._specs = tuple(ordered)

    def __iter__(self) -> Iterator[CommandSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def specs(self) -> tuple[CommandSpec, ...]:
        return self._specs

    def resolve(self, token: object) -> CommandSpec:
        if isinstance(token, str):
            spec = self._by_name.get(token)
            if spec is None:
                raise TactorUnknownCommandError(f"Unknown command: {token}", command=token)
            return spec

        if isinstance(token, bool):
            code = None
        elif isinstance(token, numbers.Integral):
            code = int(token)
        elif isinstance(token, numbers.Real) and float(token).is_integer():
            code = int(token)
        else:
            code = None

        if code is not None:
            spec = None if code == UNRECOGNIZED_CODE else self._by_code.get(code)
            if spec is None:
                raise TactorUnknownCommandError(
                    f"Unknown command code: {code}", command=str(code)
                )
            return spec

        raise TactorUsageError(
            "First argument must be a command string or integer code, "
            f"got {type(token).__name__}."
        )

    def validate(self, spec: CommandSpec, args: Sequence[Any]) -> tuple[Any, ...]:
        provided = len(args)
        if provided < spec.min_args or provided > spec.max_args:
            raise TactorBadArgumentsError(
                f"{spec.name} requires {_describe_arity(spec)}, got {provided}. "
                f"Usage: {spec.usage()}",
                command=spec.name,
            )

        normalized: list[Any] = []
        for index, argument in enumerate(spec.arguments):
            if index >= provided:
                normalized.append(argument.default)
                continue
            normalized.append(_coerce_argument(spec, argument, args[index]))
        return tuple(normalized)

    def render_help(self, token: object = None) -> str:
        if token is not None:
            spec = self.resolve(token)
            return _render_command_help(spec)

        lines = [
            "TDK Vibrotactor Interface Help:",
            "-------------------------------",
            "Usage: dispatch(<command>, <args>...)",
            "",
            "Commands:",
        ]
        for spec in self._specs:
            lines.append(f"  {spec.usage()}")
            lines.append(f"      {_summary_text(spec)}")
        lines.extend(
            [
                "",
                "Alternative: use integer codes instead of names to skip name lookup:",
                "  " + ", ".join(f"{spec.code} = '{spec.name}'" for spec in self._specs),
                "",
                "Examples:",
                "  dispatch('initialize')",
                "  dispatch('discover', 1)",
                "  dispatch('connect', 'DeviceName', 1)",
                "  dispatch('pulse', device_id, 1, 100, 0)",
                "  dispatch('shutdown')",
            ]
        )
        return "\n".join(lines)

    def render_list(self) -> str:
        width = max(len(", ".join(spec.tokens)) for spec in self._specs)
        lines = [f"{'code':>4}  {'command':<{width}}  summary"]
        for spec in self._specs:
            names = ", ".join(spec.tokens)
            lines.append(f"{spec.code:>4}  {names:<{width}}  {spec.summary}")
        return "\n".join(lines)


def _render_command_help(spec: CommandSpec) -> str:
    lines = [f"{spec.name} (code {spec.code})"]
    if spec.aliases:
        lines.append("  aliases: " + ", ".join(spec.aliases))
    lines.append(f"  usage: {spec.usage()}")
    lines.append(f"  {_summary_text(spec)}")
    for argument in spec.arguments:
        detail = f"    {argument.name}: {argument.kind}"
        if argument.min_value is not None and argument.max_value is not None:
            detail += f" in [{argument.min_value}, {argument.max_value}]"
        elif argument.min_value is not None:
            detail += f" >= {argument.min_value}"
        elif argument.max_value is not None:
            detail += f" <= {argument.max_value}"
        if not argument.required:
            detail += f" (default {argument.default})"
        lines.append(detail)
    return "\n".join(lines)


def _summary_text(spec: CommandSpec) -> str:
    if spec.unverified:
        return f"{spec.summary} (unverified on hardware)"
    return spec.summary


def _describe_arity(spec: CommandSpec) -> str:
    if spec.min_args == spec.max_args:
        noun = "argument" if spec.max_args == 1 else "arguments"
        return f"{spec.max_args} {noun}"
    return f"{spec.min_args} to {spec.max_args} arguments"


def _check_optional_order(spec: CommandSpec) -> None:
    seen_optional = False
    for argument in spec.arguments:
        if not argument.required:
            seen_optional = True
        elif seen_optional:
            raise ValueError(
                f"Command '{spec.name}' declares required argument '{argument.name}' "
                "after an optional one."
            )


def _coerce_argument(spec: CommandSpec, argument: ArgSpec, value: Any) -> Any:
    if argument.kind == "token":
        if isinstance(value, str) or (
            isinstance(value, numbers.Integral) and not isinstance(value, bool)
        ):
            return value
        raise TactorBadArgumentsError(
            f"{spec.name} argument '{argument.name}' must be a command name or code.",
            command=spec.name,
        )

    if argument.kind == "str":
        if not isinstance(value, str):
            raise TactorBadArgumentsError(
                f"{spec.name} argument '{argument.name}' must be a string.",
                command=spec.name,
            )
        return value

    if isinstance(value, bool):
        coerced = None
    elif isinstance(value, numbers.Integral):
        coerced = int(value)
    elif isinstance(value, numbers.Real) and float(value).is_integer():
        coerced = int(value)
    else:
        coerced = None

    if coerced is None:
        raise TactorBadArgumentsError(
            f"{spec.name} argument '{argument.name}' must be an integer, got {value!r}.",
            command=spec.name,
        )

    lower = INT32_MIN if argument.min_value is None else argument.min_value
    upper = INT32_MAX if argument.max_value is None else argument.max_value
    if coerced < lower:
        raise TactorBadArgumentsError(
            f"{spec.name} argument '{argument.name}' {coerced} is below minimum {lower}.",
            command=spec.name,
        )
    if coerced > upper:
        raise TactorBadArgumentsError(
            f"{spec.name} argument '{argument.name}' {coerced} is above maximum {upper}.",
            command=spec.name,
        )
    return coerced


def _int_arg(name: str, **options: Any) -> ArgSpec:
    if name in NON_NEGATIVE_ARGS:
        options.setdefault("min_value", 0)
    return ArgSpec(name, **options)


def _device_args(*names: str) -> tuple[ArgSpec, ...]:
    return tuple(_int_arg(name) for name in ("device_id", *names))


DEFAULT_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("initialize", CODE_INITIALIZE, "Initialize the tactor interface."),
    CommandSpec(
        "shutdown",
        CODE_SHUTDOWN,
        "Close every connected device and shut the tactor interface down.",
    ),
    CommandSpec(
        "discover",
        CODE_DISCOVER,
        "Discover devices of the given type (e.g. USB = 1); returns the count.",
        arguments=(ArgSpec("device_type"),),
    ),
    CommandSpec(
        "connect",
        CODE_CONNECT,
        "Connect to a device by name and type; returns the device id.",
        arguments=(ArgSpec("name", kind="str"), ArgSpec("device_type")),
    ),
    CommandSpec(
        "pulse",
        CODE_PULSE,
        "Pulse a tactor for duration ms after delay ms.",
        arguments=_device_args("tactor", "duration", "delay"),
        refresh_first=True,
    ),
    CommandSpec(
        "changeGain",
        CODE_CHANGE_GAIN,
        "Change the gain of a tactor.",
        arguments=_device_args("tactor", "gain", "delay"),
        refresh_first=True,
    ),
    CommandSpec(
        "getName",
        CODE_GET_NAME,
        "Name of a device from the (0-indexed) discovered list.",
        arguments=(ArgSpec("index"),),
    ),
    CommandSpec(
        "checkConnection",
        CODE_CHECK_CONNECTION,
        "Whether a device is currently connected.",
    ),
    CommandSpec(
        "setTimeFactor",
        CODE_SET_TIME_FACTOR,
        "Set the controller time factor.",
        arguments=(ArgSpec("value", min_value=1, max_value=255),),
        unverified=True,
    ),
    CommandSpec(
        "changeFreq",
        CODE_CHANGE_FREQ,
        "Change the frequency (Hz) of a tactor.",
        arguments=(
            ArgSpec("device_id"),
            ArgSpec("tactor"),
            ArgSpec("freq", min_value=300, max_value=3550),
            _int_arg("delay"),
        ),
        refresh_first=True,
    ),
    CommandSpec(
        "rampGain",
        CODE_RAMP_GAIN,
        "Linearly ramp a tactor's gain over duration ms.",
        arguments=_device_args("tactor", "start_gain", "end_gain", "duration", "delay"),
        refresh_first=True,
        unverified=True,
    ),
    CommandSpec(
        "rampFreq",
        CODE_RAMP_FREQ,
        "Linearly ramp a tactor's frequency over duration ms.",
        arguments=(
            ArgSpec("device_id"),
            ArgSpec("tactor"),
            ArgSpec("start_freq", min_value=300, max_value=3550),
            ArgSpec("end_freq", min_value=300, max_value=3550),
            _int_arg("duration"),
            _int_arg("delay"),
        ),
        refresh_first=True,
        unverified=True,
    ),
    CommandSpec(
        "stop",
        CODE_STOP,
        "Stop all tactors on a device.",
        arguments=(ArgSpec("device_id"), _int_arg("delay", required=False, default=0)),
        refresh_first=True,
    ),
    CommandSpec(
        "setState",
        CODE_SET_STATE,
        "Switch tactors on/off from a bitmask (bit 0 = tactor 1).",
        arguments=(ArgSpec("device_id"), ArgSpec("state_bitmask", min_value=0)),
        refresh_first=True,
    ),
    CommandSpec(
        "beginStoreTAction",
        CODE_BEGIN_STORE_TACTION,
        "Start recording a TAction under the given id.",
        arguments=_device_args("tac_id"),
        unverified=True,
    ),
    CommandSpec(
        "finishStoreTAction",
        CODE_FINISH_STORE_TACTION,
        "Finish recording the current TAction.",
        arguments=_device_args(),
        unverified=True,
    ),
    CommandSpec(
        "playStoredTAction",
        CODE_PLAY_STORED_TACTION,
        "Play a stored TAction.",
        arguments=(
            ArgSpec("device_id"),
            ArgSpec("tac_id"),
            _int_arg("delay", required=False, default=0),
        ),
        refresh_first=True,
        unverified=True,
    ),
    CommandSpec(
        "help",
        CODE_HELP,
        "Show this help, or the usage of one command.",
        arguments=(ArgSpec("command", kind="token", required=False),),
        aliases=("h",),
    ),
    CommandSpec(
        "list",
        CODE_LIST,
        "List command names and codes.",
        aliases=("l",),
    ),
)

DEFAULT_REGISTRY = CommandRegistry(DEFAULT_COMMANDS)

from __future__ import annotations

import pytest

from tdk_tactor_controller.driver.errors import (
    TactorBadArgumentsError,
    TactorUnknownCommandError,
    TactorUsageError,
)
from tdk_tactor_controller.session import registry as commands
from tdk_tactor_controller.session.registry import (
    DEFAULT_REGISTRY,
    ArgSpec,
    CommandRegistry,
    CommandSpec,
)

EXPECTED_CODES = {
    "initialize": 1,
    "shutdown": 2,
    "discover": 3,
    "connect": 4,
    "pulse": 5,
    "changeGain": 6,
    "getName": 7,
    "checkConnection": 8,
    "setTimeFactor": 9,
    "changeFreq": 10,
    "rampGain": 11,
    "rampFreq": 12,
    "stop": 13,
    "setState": 14,
    "beginStoreTAction": 15,
    "finishStoreTAction": 16,
    "playStoredTAction": 17,
    "help": 18,
    "list": 19,
}

REFRESHING = {
    "pulse",
    "changeGain",
    "changeFreq",
    "rampGain",
    "rampFreq",
    "stop",
    "setState",
    "playStoredTAction",
}


def test_default_registry_codes_match_command_table() -> None:
    assert {spec.name: spec.code for spec in DEFAULT_REGISTRY} == EXPECTED_CODES


def test_name_and_code_resolve_to_same_spec() -> None:
    for spec in DEFAULT_REGISTRY:
        assert DEFAULT_REGISTRY.resolve(spec.name) is spec
        assert DEFAULT_REGISTRY.resolve(spec.code) is spec


def test_help_and_list_aliases() -> None:
    assert DEFAULT_REGISTRY.resolve("h").code == commands.CODE_HELP
    assert DEFAULT_REGISTRY.resolve("l").code == commands.CODE_LIST


def test_refresh_first_flags() -> None:
    flagged = {spec.name for spec in DEFAULT_REGISTRY if spec.refresh_first}
    assert flagged == REFRESHING


def test_names_are_case_sensitive() -> None:
    with pytest.raises(TactorUnknownCommandError):
        DEFAULT_REGISTRY.resolve("Pulse")


@pytest.mark.parametrize("code", [0, 20, 255, -3])
def test_unknown_codes_are_rejected(code: int) -> None:
    with pytest.raises(TactorUnknownCommandError, match="Unknown command code"):
        DEFAULT_REGISTRY.resolve(code)


@pytest.mark.parametrize("token", [1.5, True, b"pulse", ["pulse"]])
def test_non_command_tokens_are_usage_errors(token: object) -> None:
    with pytest.raises(TactorUsageError, match="command string or integer code"):
        DEFAULT_REGISTRY.resolve(token)


def test_validate_enforces_arity() -> None:
    pulse = DEFAULT_REGISTRY.resolve("pulse")

    with pytest.raises(TactorBadArgumentsError, match="requires 4 arguments, got 3") as exc_info:
        DEFAULT_REGISTRY.validate(pulse, (0, 1, 100))
    assert exc_info.value.command == "pulse"

    with pytest.raises(TactorBadArgumentsError):
        DEFAULT_REGISTRY.validate(pulse, (0, 1, 100, 0, 5))


def test_validate_fills_optional_defaults() -> None:
    stop = DEFAULT_REGISTRY.resolve("stop")
    play = DEFAULT_REGISTRY.resolve("playStoredTAction")

    assert DEFAULT_REGISTRY.validate(stop, (0,)) == (0, 0)
    assert DEFAULT_REGISTRY.validate(stop, (0, 25)) == (0, 25)
    assert DEFAULT_REGISTRY.validate(play, (0, 3)) == (0, 3, 0)


def test_validate_coerces_integral_floats_and_rejects_others() -> None:
    pulse = DEFAULT_REGISTRY.resolve("pulse")

    assert DEFAULT_REGISTRY.validate(pulse, (0.0, 1.0, 100, 0)) == (0, 1, 100, 0)
    with pytest.raises(TactorBadArgumentsError, match="must be an integer"):
        DEFAULT_REGISTRY.validate(pulse, (0, 1.5, 100, 0))
    with pytest.raises(TactorBadArgumentsError, match="must be an integer"):
        DEFAULT_REGISTRY.validate(pulse, (0, "1", 100, 0))
    with pytest.raises(TactorBadArgumentsError, match="must be an integer"):
        DEFAULT_REGISTRY.validate(pulse, (0, True, 100, 0))


def test_validate_requires_string_device_name() -> None:
    connect = DEFAULT_REGISTRY.resolve("connect")

    assert DEFAULT_REGISTRY.validate(connect, ("DEV0", 1)) == ("DEV0", 1)
    with pytest.raises(TactorBadArgumentsError, match="must be a string"):
        DEFAULT_REGISTRY.validate(connect, (7, 1))


@pytest.mark.parametrize(
    ("name", "args"),
    [
        ("setTimeFactor", (0,)),
        ("setTimeFactor", (256,)),
        ("changeFreq", (0, 1, 299, 0)),
        ("changeFreq", (0, 1, 3551, 0)),
        ("rampFreq", (0, 1, 300, 4000, 100, 0)),
        ("setState", (0, -1)),
    ],
)
def test_validate_enforces_documented_ranges(name: str, args: tuple[int, ...]) -> None:
    spec = DEFAULT_REGISTRY.resolve(name)
    with pytest.raises(TactorBadArgumentsError):
        DEFAULT_REGISTRY.validate(spec, args)


def test_help_argument_accepts_name_or_code() -> None:
    spec = DEFAULT_REGISTRY.resolve("help")

    assert DEFAULT_REGISTRY.validate(spec, ()) == (None,)
    assert DEFAULT_REGISTRY.validate(spec, ("pulse",)) == ("pulse",)
    assert DEFAULT_REGISTRY.validate(spec, (5,)) == (5,)
    with pytest.raises(TactorBadArgumentsError):
        DEFAULT_REGISTRY.validate(spec, (1.5,))


def test_render_help_lists_every_command_and_unverified_marker() -> None:
    text = DEFAULT_REGISTRY.render_help()

    assert text.startswith("TDK Vibrotactor Interface Help:")
    for name in EXPECTED_CODES:
        assert f"'{name}'" in text
    assert "1 = 'initialize'" in text
    assert "(unverified on hardware)" in text


def test_render_help_for_single_command() -> None:
    text = DEFAULT_REGISTRY.render_help("changeFreq")

    assert text.splitlines()[0] == "changeFreq (code 10)"
    assert "freq: int in [300, 3550]" in text
    assert DEFAULT_REGISTRY.render_help(10) == text


def test_render_list_has_one_row_per_command() -> None:
    lines = DEFAULT_REGISTRY.render_list().splitlines()

    assert len(lines) == len(DEFAULT_REGISTRY) + 1
    assert "help, h" in lines[commands.CODE_HELP]


def test_registry_rejects_duplicate_codes_and_names() -> None:
    with pytest.raises(ValueError, match="Duplicate command code"):
        CommandRegistry([CommandSpec("a", 1, "a"), CommandSpec("b", 1, "b")])
    with pytest.raises(ValueError, match="Duplicate command name"):
        CommandRegistry([CommandSpec("a", 1, "a"), CommandSpec("b", 2, "b", aliases=("a",))])


def test_registry_rejects_out_of_range_codes() -> None:
    with pytest.raises(ValueError, match="outside"):
        CommandRegistry([CommandSpec("zero", 0, "reserved for unrecognized commands")])
    with pytest.raises(ValueError, match="outside"):
        CommandRegistry([CommandSpec("big", 256, "too large")])


def test_registry_rejects_required_after_optional() -> None:
    spec = CommandSpec(
        "odd",
        1,
        "odd",
        arguments=(ArgSpec("first", required=False, default=0), ArgSpec("second")),
    )
    with pytest.raises(ValueError, match="after an optional one"):
        CommandRegistry([spec])


def test_registry_rejects_unknown_argument_kind() -> None:
    with pytest.raises(ValueError, match="unknown kind"):
        CommandRegistry([CommandSpec("odd", 1, "odd", arguments=(ArgSpec("x", kind="float"),))])


def test_integral_float_codes_resolve() -> None:
    assert DEFAULT_REGISTRY.resolve(5.0).name == "pulse"


@pytest.mark.parametrize(
    ("name", "args"),
    [
        ("pulse", (0, 1, 2**32 + 100, 0)),
        ("pulse", (0, 2**31, 100, 0)),
        ("pulse", (0, 1, -5, 0)),
        ("changeGain", (0, 1, 200, -1)),
        ("connect", ("DEV0", 2**32 + 1)),
        ("discover", (-(2**31) - 1,)),
        ("stop", (0, -10)),
    ],
)
def test_integer_arguments_must_fit_driver_int(name: str, args: tuple) -> None:
    spec = DEFAULT_REGISTRY.resolve(name)
    with pytest.raises(TactorBadArgumentsError, match="minimum|maximum"):
        DEFAULT_REGISTRY.validate(spec, args)


def test_integer_argument_bounds_are_inclusive() -> None:
    pulse = DEFAULT_REGISTRY.resolve("pulse")

    assert DEFAULT_REGISTRY.validate(pulse, (0, 1, commands.INT32_MAX, 0)) == (
        0,
        1,
        commands.INT32_MAX,
        0,
    )


def test_command_help_shows_lower_bound_only() -> None:
    text = DEFAULT_REGISTRY.render_help("pulse")

    assert "duration: int >= 0" in text
    assert "tactor: int\n" in text

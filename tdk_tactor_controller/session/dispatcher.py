from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from tdk_tactor_controller.config import load_settings
from tdk_tactor_controller.driver.base import DriverFacade
from tdk_tactor_controller.driver.errors import (
    TactorBadArgumentsError,
    TactorUnknownCommandError,
    TactorUsageError,
)
from tdk_tactor_controller.driver.factory import build_driver_from_settings

from . import registry as commands
from .device import DeviceSession
from .registry import DEFAULT_REGISTRY, CommandRegistry, CommandSpec

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
Echo = Callable[[str], None]


class Dispatcher:
    """Single entry point routing a command name or code to the device session.

    Names and codes resolve to the same :class:`CommandSpec` and run the same
    handler, keyed by the numeric code.
    """

    def __init__(
        self,
        session: DeviceSession,
        *,
        registry: CommandRegistry = DEFAULT_REGISTRY,
        echo: Echo | None = None,
    ) -> None:
        self._session = session
        self._registry = registry
        self._echo = echo
        self._handlers: Mapping[int, Handler] = self._build_handlers()

        missing = sorted(spec.name for spec in registry if spec.code not in self._handlers)
        if missing:
            raise ValueError("No handler registered for commands: " + ", ".join(missing))

    @property
    def session(self) -> DeviceSession:
        return self._session

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    def dispatch(self, token: object = None, *args: Any) -> Any:
        if token is None:
            help_text = self._registry.render_help()
            self._emit(help_text)
            return help_text

        spec = self._resolve(token)
        normalized = self._validate(spec, args)
        logger.debug("dispatch %s (code %d) args=%s", spec.name, spec.code, normalized)

        handler = self._handlers[spec.code]
        with self._session.lock:
            if spec.refresh_first:
                self._session.refresh()
            return handler(*normalized)

    def __call__(self, token: object = None, *args: Any) -> Any:
        return self.dispatch(token, *args)

    def _resolve(self, token: object) -> CommandSpec:
        try:
            return self._registry.resolve(token)
        except TactorUsageError as exc:
            exc.help_text = self._registry.render_help()
            self._emit(exc.help_text)
            raise

    def _validate(self, spec: CommandSpec, args: tuple[Any, ...]) -> tuple[Any, ...]:
        try:
            return self._registry.validate(spec, args)
        except TactorBadArgumentsError as exc:
            exc.help_text = self._registry.render_help(spec.code)
            self._emit(exc.help_text)
            raise

    def _emit(self, text: str) -> None:
        if self._echo is not None:
            self._echo(text)

    def _help(self, token: object = None) -> str:
        try:
            text = self._registry.render_help(token)
        except TactorUnknownCommandError as exc:
            exc.help_text = self._registry.render_help()
            self._emit(exc.help_text)
            raise
        self._emit(text)
        return text

    def _list(self) -> str:
        text = self._registry.render_list()
        self._emit(text)
        return text

    def _build_handlers(self) -> dict[int, Handler]:
        session = self._session
        return {
            commands.CODE_INITIALIZE: session.initialize,
            commands.CODE_SHUTDOWN: session.shutdown,
            commands.CODE_DISCOVER: session.discover,
            commands.CODE_CONNECT: session.connect,
            commands.CODE_PULSE: session.pulse,
            commands.CODE_CHANGE_GAIN: session.change_gain,
            commands.CODE_GET_NAME: session.get_name,
            commands.CODE_CHECK_CONNECTION: session.check_connection,
            commands.CODE_SET_TIME_FACTOR: session.set_time_factor,
            commands.CODE_CHANGE_FREQ: session.change_freq,
            commands.CODE_RAMP_GAIN: session.ramp_gain,
            commands.CODE_RAMP_FREQ: session.ramp_freq,
            commands.CODE_STOP: session.stop,
            commands.CODE_SET_STATE: session.set_state,
            commands.CODE_BEGIN_STORE_TACTION: session.begin_store_taction,
            commands.CODE_FINISH_STORE_TACTION: session.finish_store_taction,
            commands.CODE_PLAY_STORED_TACTION: session.play_stored_taction,
            commands.CODE_HELP: self._help,
            commands.CODE_LIST: self._list,
        }


def build_dispatcher(driver: DriverFacade, *, echo: Echo | None = None) -> Dispatcher:
    return Dispatcher(DeviceSession(driver), echo=echo)


def create_dispatcher(
    *,
    config_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    echo: Echo | None = None,
) -> Dispatcher:
    settings = load_settings(config_file=config_file, env=env)
    return build_dispatcher(build_driver_from_settings(settings), echo=echo)

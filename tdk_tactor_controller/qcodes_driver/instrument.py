from __future__ import annotations

from pathlib import Path
from typing import Any

from qcodes.instrument import Instrument
from qcodes.validators import Bool, Ints

from tdk_tactor_controller.driver.errors import TactorConnectionStateError
from tdk_tactor_controller.session import DeviceRecord, Dispatcher, create_dispatcher
from tdk_tactor_controller.session.device import SessionSnapshot

DEFAULT_DEVICE_TYPE = 1


class QcodesTactor(Instrument):  # type: ignore[misc,unused-ignore]
    def __init__(
        self,
        name: str,
        *,
        dispatcher: Dispatcher | None = None,
        config_file: str | Path | None = None,
        device_name: str | None = None,
        device_type: int = DEFAULT_DEVICE_TYPE,
        auto_initialize: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(name=name, **kwargs)

        self._owns_dispatcher = dispatcher is None
        self._dispatcher = (
            create_dispatcher(config_file=config_file) if dispatcher is None else dispatcher
        )
        self._discovered_count: int | None = None

        self.add_parameter(
            "connected",
            label="Device connected",
            get_cmd=lambda: bool(self.dispatch("checkConnection")),
            set_cmd=False,
            vals=Bool(),
        )
        self.add_parameter(
            "device_id",
            label="Active device id",
            get_cmd=self._active_device_id,
            set_cmd=False,
        )
        self.add_parameter(
            "discovered_count",
            label="Devices found by the last discover",
            get_cmd=lambda: self._discovered_count,
            set_cmd=False,
        )
        self.add_parameter(
            "time_factor",
            label="Controller time factor",
            get_cmd=False,
            set_cmd=lambda value: self.dispatch("setTimeFactor", int(value)),
            vals=Ints(1, 255),
        )

        if auto_initialize:
            self.dispatch("initialize")
        if device_name is not None:
            self.connect_device(device_name, device_type)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def close(self) -> None:
        try:
            if self._owns_dispatcher:
                self._dispatcher.session.shutdown()
        finally:
            super().close()

    def get_idn(self) -> dict[str, str | None]:
        record = self._dispatcher.session.active_device
        return {
            "vendor": "Engineering Acoustics Inc",
            "model": "TDK Tactor",
            "serial": None if record is None else record.name,
            "firmware": self._dispatcher.session.driver.version_string(),
        }

    def session_snapshot(self) -> SessionSnapshot:
        return self._dispatcher.session.snapshot()

    def dispatch(self, command: object, *args: Any) -> Any:
        return self._dispatcher.dispatch(command, *args)

    def discover(self, device_type: int = DEFAULT_DEVICE_TYPE) -> int:
        count = int(self.dispatch("discover", device_type))
        self._discovered_count = count
        return count

    def device_name(self, index: int) -> str:
        return str(self.dispatch("getName", index))

    def connect_device(self, name: str, device_type: int = DEFAULT_DEVICE_TYPE) -> int:
        return int(self.dispatch("connect", name, device_type))

    def disconnect_device(self) -> None:
        record = self._require_device()
        self._dispatcher.session.close(record.device_id)

    def pulse(self, tactor: int, duration: int, delay: int = 0) -> None:
        self.dispatch("pulse", self._require_device().device_id, tactor, duration, delay)

    def change_gain(self, tactor: int, gain: int, delay: int = 0) -> None:
        self.dispatch("changeGain", self._require_device().device_id, tactor, gain, delay)

    def change_freq(self, tactor: int, freq: int, delay: int = 0) -> None:
        self.dispatch("changeFreq", self._require_device().device_id, tactor, freq, delay)

    def ramp_gain(
        self, tactor: int, start_gain: int, end_gain: int, duration: int, delay: int = 0
    ) -> None:
        self.dispatch(
            "rampGain",
            self._require_device().device_id,
            tactor,
            start_gain,
            end_gain,
            duration,
            delay,
        )

    def ramp_freq(
        self, tactor: int, start_freq: int, end_freq: int, duration: int, delay: int = 0
    ) -> None:
        self.dispatch(
            "rampFreq",
            self._require_device().device_id,
            tactor,
            start_freq,
            end_freq,
            duration,
            delay,
        )

    def stop(self, delay: int = 0) -> None:
        self.dispatch("stop", self._require_device().device_id, delay)

    def set_state(self, state_bitmask: int) -> None:
        self.dispatch("setState", self._require_device().device_id, state_bitmask)

    def begin_store_taction(self, tac_id: int) -> None:
        self.dispatch("beginStoreTAction", self._require_device().device_id, tac_id)

    def finish_store_taction(self) -> None:
        self.dispatch("finishStoreTAction", self._require_device().device_id)

    def play_stored_taction(self, tac_id: int, delay: int = 0) -> None:
        self.dispatch("playStoredTAction", self._require_device().device_id, tac_id, delay)

    def _active_device_id(self) -> int | None:
        record = self._dispatcher.session.active_device
        return None if record is None else record.device_id

    def _require_device(self) -> DeviceRecord:
        """Active device for the convenience methods, which take no device id.

        Raw ``dispatch`` calls skip this check and leave connection errors to the driver.
        """
        record = self._dispatcher.session.active_device
        if record is None:
            raise TactorConnectionStateError(
                f"Instrument '{self.name}' has no connected device; call connect_device first."
            )
        return record

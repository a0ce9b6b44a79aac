from __future__ import annotations

from typing import Protocol


class DriverFacade(Protocol):
    """Capability interface over the vendor TactorInterface library.

    Every call mirrors the vendor's C contract: a negative result means
    failure and :meth:`last_error` returns the detailed error code.
    """

    name: str

    def initialize(self) -> int: ...

    def shutdown(self) -> int: ...

    def update(self) -> int: ...

    def last_error(self) -> int: ...

    def discover(self, device_type: int) -> int: ...

    def discovered_device_name(self, index: int) -> str | None: ...

    def connect(self, name: str, device_type: int) -> int: ...

    def close(self, device_id: int) -> int: ...

    def set_time_factor(self, value: int) -> int: ...

    def pulse(self, device_id: int, tactor: int, duration: int, delay: int) -> int: ...

    def change_gain(self, device_id: int, tactor: int, gain: int, delay: int) -> int: ...

    def change_freq(self, device_id: int, tactor: int, freq: int, delay: int) -> int: ...

    def ramp_gain(
        self,
        device_id: int,
        tactor: int,
        start_gain: int,
        end_gain: int,
        duration: int,
        delay: int,
    ) -> int: ...

    def ramp_freq(
        self,
        device_id: int,
        tactor: int,
        start_freq: int,
        end_freq: int,
        duration: int,
        delay: int,
    ) -> int: ...

    def stop(self, device_id: int, delay: int) -> int: ...

    def set_tactors(self, device_id: int, delay: int, bank: int, states: int) -> int: ...

    def begin_store_taction(self, device_id: int, tac_id: int) -> int: ...

    def finish_store_taction(self, device_id: int) -> int: ...

    def play_stored_taction(self, device_id: int, delay: int, tac_id: int) -> int: ...

    def version_string(self) -> str: ...

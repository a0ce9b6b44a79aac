from __future__ import annotations

from .error_catalog import describe


class TactorError(RuntimeError):
    pass


class TactorUsageError(TactorError):
    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        help_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.help_text = help_text


class TactorUnknownCommandError(TactorUsageError):
    pass


class TactorBadArgumentsError(TactorUsageError):
    pass


class TactorDriverError(TactorError):
    def __init__(self, function: str, code: int, description: str | None = None) -> None:
        self.function = function
        self.code = int(code)
        self.description = describe(self.code) if description is None else description
        super().__init__(
            f"{function} failed with error code: {self.code} ({self.description})"
        )


class TactorLookupError(TactorDriverError):
    pass


class TactorConnectionStateError(TactorError):
    pass


class TactorBackendUnavailableError(TactorError):
    pass

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .base import DriverFacade
from .errors import TactorBackendUnavailableError

BackendFactory = Callable[..., DriverFacade]
_BACKEND_FACTORIES: dict[str, BackendFactory] = {}
_BACKEND_ALIASES: dict[str, str] = {}
_DEFAULT_BACKENDS_REGISTERED = False


def register_backend(name: str, factory: BackendFactory, *, aliases: Sequence[str] = ()) -> None:
    normalized_name = _normalize_key(name)
    _BACKEND_FACTORIES[normalized_name] = factory
    _BACKEND_ALIASES[normalized_name] = normalized_name
    for alias in aliases:
        normalized_alias = _normalize_key(alias)
        _BACKEND_FACTORIES[normalized_alias] = factory
        _BACKEND_ALIASES[normalized_alias] = normalized_name


def build_driver(name: str, *, options: Mapping[str, Any] | None = None) -> DriverFacade:
    _ensure_default_backends_registered()
    factory = _BACKEND_FACTORIES.get(_normalize_key(name))
    if factory is None:
        available = ", ".join(sorted(_BACKEND_FACTORIES))
        raise TactorBackendUnavailableError(
            f"Unknown driver backend '{name}'. Available backends: {available}"
        )
    return factory(**dict(options or {}))


def available_backends() -> dict[str, tuple[str, ...]]:
    """Map each canonical backend name to its registered aliases."""
    _ensure_default_backends_registered()
    grouped: dict[str, list[str]] = {}
    for key, canonical in _BACKEND_ALIASES.items():
        entry = grouped.setdefault(canonical, [])
        if key != canonical:
            entry.append(key)
    return {name: tuple(sorted(aliases)) for name, aliases in sorted(grouped.items())}


def canonical_backend_name(name: str) -> str:
    _ensure_default_backends_registered()
    key = _normalize_key(name)
    canonical = _BACKEND_ALIASES.get(key)
    if canonical is None:
        raise TactorBackendUnavailableError(f"Unknown driver backend '{name}'.")
    return canonical


def _ensure_default_backends_registered() -> None:
    global _DEFAULT_BACKENDS_REGISTERED
    if _DEFAULT_BACKENDS_REGISTERED:
        return

    from .simulated import SimulatedTactorDriver
    from .tactor_interface import TactorInterfaceDriver

    register_backend(
        "tactor_interface",
        TactorInterfaceDriver,
        aliases=("tdk", "eai"),
    )
    register_backend("simulated", SimulatedTactorDriver, aliases=("sim",))
    _DEFAULT_BACKENDS_REGISTERED = True


def _normalize_key(value: str) -> str:
    return "".join(char for char in value.strip().lower() if char.isalnum() or char == "_")

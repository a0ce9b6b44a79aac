from __future__ import annotations

import atexit
import importlib.resources as resources
from contextlib import ExitStack
from functools import cache
from pathlib import Path

RESOURCE_PACKAGE = "tdk_tactor_controller.resources"
CONFIG_DIRECTORY = "config"

_EXTRACTED_FILES = ExitStack()
atexit.register(_EXTRACTED_FILES.close)


def packaged_config_names() -> tuple[str, ...]:
    directory = resources.files(RESOURCE_PACKAGE).joinpath(CONFIG_DIRECTORY)
    return tuple(
        sorted(entry.name for entry in directory.iterdir() if entry.name.endswith(".yaml"))
    )


@cache
def packaged_config_path(name: str) -> Path:
    """Return a filesystem path for a packaged config file.

    Zipped installs extract the file once; the copy lives until interpreter exit.
    """
    available = packaged_config_names()
    if name not in available:
        listed = ", ".join(available) or "none"
        raise ValueError(f"Packaged config file does not exist: {name}. Available: {listed}")
    traversable = resources.files(RESOURCE_PACKAGE).joinpath(CONFIG_DIRECTORY).joinpath(name)
    return _EXTRACTED_FILES.enter_context(resources.as_file(traversable))

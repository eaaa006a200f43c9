import importlib
import inspect
import pkgutil
from collections.abc import Generator
from typing import NoReturn

from igloo import exts
from igloo.log import get_logger
from igloo.metadata import ExtMetadata


log = get_logger(__name__)


def unqualify(name: str) -> str:
    """Return an unqualified name given a qualified module/package `name`."""
    return name.rsplit(".", maxsplit=1)[-1]


def walk_extensions() -> Generator[tuple[str, ExtMetadata], None, None]:
    """Yield extension names and their metadata from the igloo.exts subpackage."""

    def on_error(name: str) -> NoReturn:
        raise ImportError(name=name)  # pragma: no cover

    for module in pkgutil.walk_packages(exts.__path__, f"{exts.__name__}.", onerror=on_error):
        if unqualify(module.name).startswith("_"):
            # Ignore module/package names starting with an underscore.
            continue

        imported = importlib.import_module(module.name)
        if not inspect.isfunction(getattr(imported, "setup", None)):
            # If it lacks a setup function, it's not an extension.
            continue

        ext_metadata = getattr(imported, "EXT_METADATA", None)
        if ext_metadata is None:
            log.trace(f"Extension {module.name!r} is missing an EXT_METADATA variable. Assuming defaults.")
            ext_metadata = ExtMetadata()
        elif not isinstance(ext_metadata, ExtMetadata):
            log.error(f"Extension {module.name!r} contains an invalid EXT_METADATA variable. Loading with defaults.")
            ext_metadata = ExtMetadata()

        yield module.name, ext_metadata

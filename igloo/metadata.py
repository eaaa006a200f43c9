from dataclasses import dataclass


@dataclass(kw_only=True)
class ExtMetadata:
    """Ext metadata class to determine if extension should load at runtime depending on bot configuration."""

    core: bool = False
    "Whether or not to always load by default."

"""
The configuration schema.

Every setting a guild can change lives at a `section.key` path declared in `SCHEMA`.
The stored document for a guild is a mapping of section name to a mapping of key to value,
and every path below must resolve to a value when read, either the stored one or the default.

Adding a setting means adding an entry here; the services, the sync layer and the commands
all read this table rather than knowing about individual settings.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from typing import Any

from igloo.config.models import ConfigValue, SettingSpec
from igloo.errors import InvalidPath, ValidationError


__all__ = (
    "SCHEMA",
    "apply_defaults",
    "default_config",
    "get_spec",
    "is_known_path",
    "iter_paths",
    "validate_value",
)

ConfigDict = dict[str, dict[str, Any]]


SCHEMA: dict[str, dict[str, SettingSpec]] = {
    "tickets": {
        "category": SettingSpec(
            type="string",
            required=True,
            description="Channel category new ticket channels are created in.",
        ),
        "support_role": SettingSpec(
            type="string",
            required=True,
            description="Role which can see and answer every ticket.",
        ),
        "log_channel": SettingSpec(
            type="string",
            description="Channel ticket events are logged to.",
        ),
        "auto_close_hours": SettingSpec(
            type="number",
            default=72,
            min=1,
            max=720,
            description="Hours without activity before a ticket is closed automatically.",
        ),
        "max_open_tickets": SettingSpec(
            type="number",
            default=5,
            min=1,
            max=50,
            description="How many tickets a single member may have open at once.",
        ),
        "welcome_message": SettingSpec(
            type="string",
            max_length=2000,
            description="Message posted at the top of every new ticket.",
        ),
    },
    "shop": {
        "channel": SettingSpec(
            type="string",
            required=True,
            description="Channel the shop is displayed in.",
        ),
        "customer_role": SettingSpec(
            type="string",
            description="Role given to members after their first purchase.",
        ),
        "currency": SettingSpec(
            type="string",
            default="USD",
            description="Currency prices are shown in.",
        ),
        "tax_rate": SettingSpec(
            type="number",
            default=0,
            min=0,
            max=50,
            description="Tax percentage added to every order.",
        ),
    },
    "general": {
        "prefix": SettingSpec(
            type="string",
            default="!",
            max_length=5,
            description="Prefix for text based commands.",
        ),
        "locale": SettingSpec(
            type="string",
            default="en-US",
            description="Language used for bot responses.",
        ),
        "timezone": SettingSpec(
            type="string",
            default="UTC",
            description="Timezone used when showing dates.",
        ),
    },
}


def iter_paths() -> Iterator[tuple[str, str, SettingSpec]]:
    """Yield every `(section, key, spec)` in the schema, in declaration order."""
    for section, settings in SCHEMA.items():
        for key, spec in settings.items():
            yield section, key, spec


def is_known_path(section: str, key: str) -> bool:
    return key in SCHEMA.get(section, {})


def get_spec(section: str, key: str) -> SettingSpec:
    """Return the spec for a path, raising InvalidPath if the schema does not declare it."""
    try:
        return SCHEMA[section][key]
    except KeyError:
        raise InvalidPath(section, key) from None


def validate_value(section: str, key: str, value: ConfigValue) -> None:
    """Raise ValidationError naming the violated constraint if `value` cannot be stored at `section.key`."""
    spec = get_spec(section, key)
    constraint = spec.check(value)
    if constraint is not None:
        raise ValidationError.for_setting(section, key, constraint)


def default_config() -> ConfigDict:
    """Build a complete document holding only defaults. Settings without a default are None."""
    return {
        section: {key: spec.default_value() for key, spec in settings.items()} for section, settings in SCHEMA.items()
    }


def apply_defaults(config: Mapping[str, Any]) -> ConfigDict:
    """
    Return a copy of `config` where every schema path absent from it holds its default.

    Present values are never overwritten, and sections the schema does not know about are kept as they are.
    """
    result: ConfigDict = copy.deepcopy(dict(config))
    for section, settings in SCHEMA.items():
        stored = result.get(section)
        if not isinstance(stored, dict):
            stored = result[section] = {}
        for key, spec in settings.items():
            if key not in stored:
                stored[key] = spec.default_value()
    return result

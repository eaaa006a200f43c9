from igloo.config._validate_schema import _check_schema
from igloo.config.models import ConfigValue, SettingSpec
from igloo.config.schema import (
    SCHEMA,
    ConfigDict,
    apply_defaults,
    default_config,
    get_spec,
    is_known_path,
    iter_paths,
    validate_value,
)


__all__ = (
    "SCHEMA",
    "ConfigDict",
    "ConfigValue",
    "SettingSpec",
    "apply_defaults",
    "default_config",
    "get_spec",
    "is_known_path",
    "iter_paths",
    "validate_value",
)

_check_schema(SCHEMA)

del _check_schema

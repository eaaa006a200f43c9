from __future__ import annotations

import copy
import math
import numbers
from dataclasses import dataclass
from typing import Any, Literal, Union


ConfigValue = Union[str, int, float, bool, None]
SettingType = Literal["string", "number", "boolean"]

_PYTHON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
}
_TRUE_WORDS = frozenset({"true", "yes", "on", "enable", "enabled", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "disable", "disabled", "0"})
_UNSET_WORDS = frozenset({"none", "unset", "null"})


@dataclass(kw_only=True, frozen=True)
class SettingSpec:
    """Declares the type and constraints of a single `section.key` setting."""

    type: SettingType
    description: str
    required: bool = False
    default: ConfigValue = None
    min: float | None = None
    max: float | None = None
    max_length: int | None = None

    def __post_init__(self) -> None:
        if self.type not in _PYTHON_TYPES:
            raise ValueError("type must be one of string, number, or boolean")
        if self.max_length is not None and self.type != "string":
            raise ValueError("max_length can only be set on string settings")
        if (self.min is not None or self.max is not None) and self.type != "number":
            raise ValueError("min and max can only be set on number settings")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not be greater than max")

    def has_default(self) -> bool:
        """Whether this setting resolves to something other than unset when absent."""
        return self.default is not None

    def check(self, value: Any) -> str | None:
        """
        Return the first constraint that `value` violates, or None if it is acceptable.

        Unset values (None) are only acceptable on settings which are not required.
        """
        if self.required and (value is None or value == ""):
            return "is required"
        if value is None:
            return None

        if self.type == "number":
            # bool is an int subclass but never a valid number here
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
                return "must be a number"
        elif not isinstance(value, _PYTHON_TYPES[self.type]):
            return f"must be a {self.type}"

        if self.max_length is not None and len(value) > self.max_length:
            return f"must be at most {self.max_length} characters"
        if self.min is not None and value < self.min:
            return f"must be at least {_fmt(self.min)}"
        if self.max is not None and value > self.max:
            return f"must be at most {_fmt(self.max)}"
        return None

    def parse(self, raw: str) -> ConfigValue:
        """
        Convert text typed by a user into a value of this setting's type.

        "none" and "unset" clear the setting. Raises ValueError if the text cannot be converted.
        """
        raw = raw.strip()
        if raw.lower() in _UNSET_WORDS:
            return None
        if self.type == "boolean":
            if raw.lower() in _TRUE_WORDS:
                return True
            if raw.lower() in _FALSE_WORDS:
                return False
            msg = f"{raw!r} is not a yes or no value"
            raise ValueError(msg)
        if self.type == "number":
            try:
                number = float(raw)
            except ValueError:
                msg = f"{raw!r} is not a number"
                raise ValueError(msg) from None
            if not math.isfinite(number):
                msg = f"{raw!r} is not a finite number"
                raise ValueError(msg)
            return int(number) if number.is_integer() and "." not in raw else number
        return raw

    def default_value(self) -> ConfigValue:
        """Return a fresh copy of the default."""
        return copy.copy(self.default)


def _fmt(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)

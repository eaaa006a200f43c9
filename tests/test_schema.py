"""Tests for the configuration schema and value validation."""

import pytest

from igloo.config import SCHEMA, SettingSpec, apply_defaults, default_config, get_spec, iter_paths, validate_value
from igloo.errors import InvalidPath, ValidationError


class TestValidateValue:
    """Tests for validate_value."""

    def test_accepts_value_within_bounds(self):
        validate_value("tickets", "max_open_tickets", 5)
        validate_value("shop", "tax_rate", 12.5)
        validate_value("general", "prefix", "?")

    def test_rejects_value_below_minimum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_value("tickets", "max_open_tickets", 0)
        assert exc_info.value.constraint == "must be at least 1"
        assert exc_info.value.section == "tickets"
        assert exc_info.value.key == "max_open_tickets"
        assert str(exc_info.value) == "tickets.max_open_tickets must be at least 1"

    def test_rejects_value_above_maximum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_value("shop", "tax_rate", 50.5)
        assert exc_info.value.constraint == "must be at most 50"

    def test_required_setting_cannot_be_unset(self):
        for value in (None, ""):
            with pytest.raises(ValidationError) as exc_info:
                validate_value("tickets", "category", value)
            assert exc_info.value.constraint == "is required"

    def test_optional_setting_can_be_unset(self):
        validate_value("tickets", "log_channel", None)
        validate_value("tickets", "auto_close_hours", None)

    def test_type_is_checked_before_range(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_value("tickets", "max_open_tickets", "100")
        assert exc_info.value.constraint == "must be a number"

    def test_bool_is_not_a_number(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_value("tickets", "max_open_tickets", True)
        assert exc_info.value.constraint == "must be a number"

    def test_non_finite_number_is_rejected(self):
        for value in (float("nan"), float("inf")):
            with pytest.raises(ValidationError):
                validate_value("shop", "tax_rate", value)

    def test_string_setting_rejects_numbers(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_value("shop", "currency", 5)
        assert exc_info.value.constraint == "must be a string"

    def test_max_length(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_value("general", "prefix", "toolong")
        assert exc_info.value.constraint == "must be at most 5 characters"

    def test_unknown_path(self):
        with pytest.raises(InvalidPath) as exc_info:
            validate_value("tickets", "unknown_key", 1)
        assert str(exc_info.value) == "Invalid config path: tickets.unknown_key"

    def test_unknown_section(self):
        with pytest.raises(InvalidPath):
            get_spec("nope", "category")


class TestSettingSpec:
    """Tests for SettingSpec construction and parsing."""

    def test_max_length_only_on_strings(self):
        with pytest.raises(ValueError):
            SettingSpec(type="number", description="x", max_length=3)

    def test_bounds_only_on_numbers(self):
        with pytest.raises(ValueError):
            SettingSpec(type="string", description="x", min=1)

    def test_min_above_max(self):
        with pytest.raises(ValueError):
            SettingSpec(type="number", description="x", min=5, max=1)

    def test_parse_number(self):
        spec = get_spec("tickets", "max_open_tickets")
        assert spec.parse("5") == 5
        assert isinstance(spec.parse("5"), int)
        assert spec.parse(" 2.5 ") == 2.5
        assert isinstance(spec.parse("5.0"), float)

    def test_parse_rejects_garbage_number(self):
        spec = get_spec("tickets", "max_open_tickets")
        with pytest.raises(ValueError, match="is not a number"):
            spec.parse("five")
        with pytest.raises(ValueError, match="is not a finite number"):
            spec.parse("inf")

    def test_parse_boolean(self):
        spec = SettingSpec(type="boolean", description="x")
        assert spec.parse("Yes") is True
        assert spec.parse("off") is False
        with pytest.raises(ValueError, match="yes or no"):
            spec.parse("maybe")

    def test_parse_unset(self):
        assert get_spec("tickets", "log_channel").parse("none") is None
        assert get_spec("tickets", "max_open_tickets").parse("unset") is None

    def test_parse_string_is_kept(self):
        assert get_spec("tickets", "category").parse(" 123456789012345678 ") == "123456789012345678"


class TestDefaults:
    """Tests for default_config and apply_defaults."""

    def test_default_config_covers_every_path(self):
        config = default_config()
        for section, key, spec in iter_paths():
            assert config[section][key] == spec.default

    def test_default_config_values(self):
        config = default_config()
        assert config["tickets"]["category"] is None
        assert config["tickets"]["auto_close_hours"] == 72
        assert config["tickets"]["max_open_tickets"] == 5
        assert config["shop"]["currency"] == "USD"
        assert config["general"]["prefix"] == "!"

    def test_defaults_satisfy_their_own_constraints(self):
        for _, _, spec in iter_paths():
            if spec.has_default():
                assert spec.check(spec.default) is None

    def test_apply_defaults_fills_missing_keys(self):
        stored = {"tickets": {"max_open_tickets": 3}}
        config = apply_defaults(stored)
        assert config["tickets"]["max_open_tickets"] == 3
        assert config["tickets"]["auto_close_hours"] == 72
        assert set(config) >= set(SCHEMA)

    def test_apply_defaults_keeps_present_values(self):
        stored = {"shop": {"currency": "EUR", "customer_role": None}}
        config = apply_defaults(stored)
        assert config["shop"]["currency"] == "EUR"
        assert config["shop"]["customer_role"] is None

    def test_apply_defaults_keeps_unknown_sections(self):
        stored = {"payment": {"stripe_enabled": True}}
        config = apply_defaults(stored)
        assert config["payment"] == {"stripe_enabled": True}

    def test_apply_defaults_does_not_mutate_input(self):
        stored = {"tickets": {"max_open_tickets": 3}}
        apply_defaults(stored)
        assert stored == {"tickets": {"max_open_tickets": 3}}

    def test_apply_defaults_replaces_malformed_section(self):
        config = apply_defaults({"general": "oops"})
        assert config["general"]["prefix"] == "!"

from igloo.config.models import SettingSpec


__all__ = ()


def _check_schema(schema: dict[str, dict[str, SettingSpec]]) -> None:
    for section, settings in schema.items():
        assert settings, f"section {section} declares no settings"
        for key, spec in settings.items():
            assert isinstance(spec, SettingSpec)
            assert 0 < len(spec.description) < 100, f"{section}.{key} needs a short description"
            if spec.default is not None and spec.check(spec.default) is not None:
                raise ValueError(f"The default of {section}.{key} does not satisfy its own constraints")

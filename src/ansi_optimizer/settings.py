from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence, TypedDict, Required

from ansi_optimizer._loop import loop_last


@dataclass
class Setting:
    """A setting or group of setting."""

    key: str
    title: str
    type: str = "object"
    help: str = ""
    validate: list[dict] | None = None
    children: list[Setting] | None = None


class SchemaDict(TypedDict, total=False):
    """Typing for schema data structure."""

    key: Required[str]
    title: Required[str]
    type: Required[str]
    help: str
    default: object
    fields: list[SchemaDict]
    validate: list[dict]


type SettingsType = dict[str, object]


INPUT_TYPES = {"boolean", "integer", "string", "choices"}

PYTHON_TYPES: dict[str, type | tuple[type, ...]] = {
    "boolean": bool,
    "integer": int,
    "string": str,
    "choices": str,
}


class SettingsError(Exception):
    """Base class for settings related errors."""


class InvalidKey(SettingsError):
    """The key is not in the schema."""


class InvalidValue(SettingsError):
    """The value was not of the expected type."""


def parse_key(key: str) -> Sequence[str]:
    return key.split(".")


def get_setting[ExpectType](
    settings: dict[str, object], key: str, expect_type: type[ExpectType] = object
) -> ExpectType:
    """Get a key from a settings structure.

    Args:
        settings: A settings dictionary.
        key: A dot delimited key, e.g. "optimizer.fold_cursor"
        expect_type: The expected type of the value.

    Raises:
        InvalidValue: If the value is not the expected type.
        KeyError: If the key doesn't exist in settings.

    Returns:
        The value matching they key.
    """
    for last, key_component in loop_last(parse_key(key)):
        if last:
            result = settings[key_component]
            if not isinstance(result, expect_type):
                raise InvalidValue(
                    f"Expected {expect_type.__name__} type; found {result!r}"
                )
            return result
        else:
            sub_settings = settings[key_component]
            assert isinstance(sub_settings, dict)
            settings = sub_settings
    raise KeyError(key)


def validate_value(schema: SchemaDict, value: object) -> None:
    """Check a value against the schema for a single setting.

    Raises:
        InvalidValue: If the value is the wrong type, or fails validation.
    """
    key = schema["key"]
    expect_type = PYTHON_TYPES[schema["type"]]
    # bool is a subclass of int, but true isn't a valid count
    if not isinstance(value, expect_type) or (
        schema["type"] == "integer" and isinstance(value, bool)
    ):
        raise InvalidValue(f"{key!r} should be {schema['type']}; found {value!r}")
    for rule in schema.get("validate", []):
        match rule:
            case {"type": "minimum", "value": minimum} if value < minimum:
                raise InvalidValue(f"{key!r} should be at least {minimum}")
            case {"type": "maximum", "value": maximum} if value > maximum:
                raise InvalidValue(f"{key!r} should be at most {maximum}")
            case {"type": "choices", "value": choices} if value not in choices:
                raise InvalidValue(f"{key!r} should be one of {choices!r}")


class Schema:
    def __init__(self, schema: list[SchemaDict]) -> None:
        self.schema = schema

    def get_schema(self, key: str) -> SchemaDict:
        """Get the schema for a dot delimited key.

        Raises:
            InvalidKey: If the key is not in the schema.
        """
        fields = self.schema
        for last, key_component in loop_last(parse_key(key)):
            for sub_schema in fields:
                if sub_schema["key"] == key_component:
                    break
            else:
                raise InvalidKey(f"No setting called {key!r}")
            if last:
                return sub_schema
            fields = sub_schema.get("fields", [])
        raise InvalidKey(f"No setting called {key!r}")

    def set_value(self, settings: SettingsType, key: str, value: object) -> None:
        """Set a value, validating it against the schema.

        Raises:
            InvalidKey: If the key is not in the schema.
            InvalidValue: If the value is not valid for the key.
        """
        sub_schema = self.get_schema(key)
        if sub_schema["type"] not in INPUT_TYPES:
            raise InvalidKey(f"{key!r} is a group of settings")
        validate_value(sub_schema, value)
        for last, key_component in loop_last(parse_key(key)):
            if last:
                settings[key_component] = value
            else:
                sub_settings = settings.setdefault(key_component, {})
                assert isinstance(sub_settings, dict)
                settings = sub_settings

    def build_default(self) -> dict[str, object]:
        settings: dict[str, object] = {}

        def set_defaults(schema: list[SchemaDict], settings: dict[str, object]) -> None:
            sub_settings: SettingsType
            for sub_schema in schema:
                key = sub_schema["key"]
                assert isinstance(sub_schema, dict)
                type = sub_schema["type"]
                if type in INPUT_TYPES:
                    if (default := sub_schema.get("default")) is not None:
                        settings[key] = default

                elif type == "object":
                    if fields := sub_schema.get("fields"):
                        sub_settings = settings[key] = {}
                        set_defaults(fields, sub_settings)

        set_defaults(self.schema, settings)
        return settings

    def merge(self, settings: SettingsType, values: SettingsType) -> list[str]:
        """Merge values from a settings file over defaults.

        Values which are not in the schema are ignored.

        Args:
            settings: Settings to update (typically from `build_default`).
            values: Values loaded from a file.

        Raises:
            InvalidValue: If a known key has an invalid value.

        Returns:
            List of keys that were ignored.
        """
        ignored: list[str] = []

        def merge_values(prefix: str, values: SettingsType) -> None:
            for key, value in values.items():
                name = f"{prefix}{key}"
                if isinstance(value, dict):
                    merge_values(f"{name}.", value)
                    continue
                try:
                    self.set_value(settings, name, value)
                except InvalidKey:
                    ignored.append(name)

        merge_values("", values)
        return ignored

    def get_form_settings(self, settings: dict[str, object]) -> Sequence[Setting]:
        form_settings: list[Setting] = []

        def iter_settings(name: str, schema: SchemaDict) -> Iterable[Setting]:
            schema_type = schema.get("type")
            assert schema_type is not None
            if schema_type in INPUT_TYPES:
                yield Setting(
                    name,
                    schema["title"],
                    schema_type,
                    help=schema.get("help", ""),
                    validate=schema.get("validate"),
                )

            elif schema_type == "object":
                yield Setting(
                    name,
                    schema["title"],
                    schema_type,
                    help=schema.get("help", ""),
                    validate=schema.get("validate"),
                    children=[
                        setting
                        for schema in schema.get("fields", [])
                        for setting in iter_settings(f"{name}.{schema['key']}", schema)
                    ],
                )

        for schema in self.schema:
            form_settings.extend(
                iter_settings(schema["key"], schema),
            )
        return form_settings


class Settings:
    """Stores schema backed settings."""

    def __init__(self, schema: Schema, settings: dict[str, object]) -> None:
        self._schema = schema
        self._settings = settings

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def data(self) -> dict[str, object]:
        """The settings data, as it would be written to a file."""
        return self._settings

    def get[ExpectType](
        self, key: str, expect_type: type[ExpectType] = object
    ) -> ExpectType:
        return get_setting(self._settings, key, expect_type=expect_type)

    def set(self, key: str, value: object) -> None:
        self._schema.set_value(self._settings, key, value)


def load_settings(schema: Schema, path: Path | None) -> Settings:
    """Load settings from a JSON file, over the schema defaults.

    Args:
        schema: The settings schema.
        path: Path to a settings file, or `None` for defaults only. A path that
            doesn't exist is the same as `None`.

    Raises:
        SettingsError: If the file can't be read or parsed.
        InvalidValue: If the file contains an invalid value.

    Returns:
        Settings.
    """
    settings = schema.build_default()
    if path is None or not path.exists():
        return Settings(schema, settings)
    try:
        values = json.loads(path.read_text("utf-8"))
    except (OSError, UnicodeDecodeError) as error:
        raise SettingsError(f"Unable to read {str(path)!r}; {error}") from None
    except json.JSONDecodeError as error:
        raise SettingsError(f"Invalid JSON in {str(path)!r}; {error}") from None
    if not isinstance(values, dict):
        raise SettingsError(f"Expected an object in {str(path)!r}")
    schema.merge(settings, values)
    return Settings(schema, settings)


def write_settings(settings: Settings, path: Path) -> None:
    """Write settings to a JSON file."""
    path.write_text(json.dumps(settings.data, indent=4), "utf-8")

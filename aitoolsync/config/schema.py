"""
Settings Schema.

Declares the fields of a settings table and checks values read from TOML.

Key features:
- One ConfigField per setting: type, default, description and bounds
- Integer bounds compare the value, string bounds compare its length
- Unknown keys are rejected so typos in the settings file surface early
"""

from dataclasses import dataclass
from typing import Any

_BOUNDED_TYPES = (int, float, str)


class SchemaError(Exception):
    """A field declaration is inconsistent."""

    pass


class ValidationError(SchemaError):
    """A settings value does not satisfy its field."""

    pass


def _matches_type(value: Any, type_: type) -> bool:
    # bool is an int subclass; TOML keeps them apart
    if isinstance(value, bool) and type_ is not bool:
        return False
    return isinstance(value, type_)


@dataclass
class ConfigField:
    """
    Declaration of one setting.

    Attributes:
        type_: Python type the TOML value must have
        default: Value used when the key is absent
        description: Written above the key as a comment
        min: Lower bound (value for numbers, length for strings)
        max: Upper bound (value for numbers, length for strings)
        choices: Closed set of accepted values
    """

    type_: type
    default: Any
    description: str = ""
    min: Any = None
    max: Any = None
    choices: list[Any] | None = None

    def __post_init__(self):
        if not _matches_type(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self.type_.__name__}"
            )
        has_bounds = self.min is not None or self.max is not None
        if has_bounds and self.type_ not in _BOUNDED_TYPES:
            raise SchemaError(f"min/max constraints do not apply to {self.type_.__name__}")
        if self.choices is not None and self.default not in self.choices:
            raise SchemaError(f"Default value {self.default!r} not in choices {self.choices}")

    def constraints(self) -> list[str]:
        """Human-readable constraints, for comments in generated files."""
        parts = []
        if self.min is not None:
            parts.append(f"min: {self.min}")
        if self.max is not None:
            parts.append(f"max: {self.max}")
        if self.choices is not None:
            parts.append(f"choices: {self.choices}")
        return parts

    def validate(self, value: Any) -> None:
        """
        Check a value read from the settings file.

        Raises:
            ValidationError: If the value has the wrong type or is out of bounds
        """
        if not _matches_type(value, self.type_):
            raise ValidationError(
                f"Expected type {self.type_.__name__}, got {type(value).__name__}"
            )
        if self.choices is not None and value not in self.choices:
            raise ValidationError(f"Value {value!r} not in allowed choices {self.choices}")

        if self.type_ is str:
            self._check_bounds(len(value), "length")
        elif self.type_ in (int, float):
            self._check_bounds(value, "value")

    def _check_bounds(self, measured: Any, what: str) -> None:
        if self.min is not None and measured < self.min:
            raise ValidationError(f"{what} {measured} is below the minimum of {self.min}")
        if self.max is not None and measured > self.max:
            raise ValidationError(f"{what} {measured} is above the maximum of {self.max}")


def validate_config(config: dict[str, Any], schema: dict[str, ConfigField]) -> dict[str, Any]:
    """
    Validate a settings table and fill in defaults.

    Args:
        config: Values read from the file
        schema: Field name -> ConfigField

    Returns:
        Every schema field, taken from ``config`` when present

    Raises:
        ValidationError: If a key is unknown or a value is invalid
    """
    unknown = sorted(set(config) - set(schema))
    if unknown:
        raise ValidationError(f"Unknown configuration field: {', '.join(unknown)}")

    values = generate_default_config(schema)
    for name, value in config.items():
        try:
            schema[name].validate(value)
        except ValidationError as e:
            raise ValidationError(f"Field '{name}': {e}") from e
        values[name] = value
    return values


def generate_default_config(schema: dict[str, ConfigField]) -> dict[str, Any]:
    return {name: field.default for name, field in schema.items()}

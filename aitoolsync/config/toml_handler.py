"""
Settings file I/O.

Key features:
- Reading with tomllib
- Writing with tomlkit so generated comments survive
- A commented document built from a schema
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from aitoolsync.config.schema import ConfigField

HEADER_COMMENT = "ai-tool-sync plugin settings"


class TOMLError(Exception):
    """The settings file could not be read or written."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Parse a settings file.

    Raises:
        TOMLError: If the file is missing, unreadable or not valid TOML
    """
    try:
        data = file_path.read_bytes()
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except OSError as e:
        raise TOMLError(f"Cannot read {file_path}: {e}") from e

    try:
        return tomllib.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e


def write_toml(file_path: Path, data: dict[str, Any] | tomlkit.TOMLDocument) -> None:
    """
    Write a settings file, creating its directory.

    Raises:
        TOMLError: If the file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(tomlkit.dumps(data), encoding="utf-8")
    except OSError as e:
        raise TOMLError(f"Cannot write {file_path}: {e}") from e


def generate_toml_from_schema(
    section: str,
    schema: dict[str, ConfigField],
    config_data: dict[str, Any],
) -> tomlkit.TOMLDocument:
    """
    Build a document holding one table, each key preceded by its description.

    Args:
        section: Table name
        schema: Field name -> ConfigField
        config_data: Values to write; schema defaults fill the gaps

    Returns:
        tomlkit document
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment(HEADER_COMMENT))
    doc.add(tomlkit.nl())

    table = tomlkit.table()
    for name, field in schema.items():
        if field.description:
            table.add(tomlkit.comment(field.description))
        constraints = field.constraints()
        if constraints:
            table.add(tomlkit.comment(f"Constraints: {', '.join(constraints)}"))
        table.add(name, config_data.get(name, field.default))
        table.add(tomlkit.nl())

    doc.add(section, table)
    return doc

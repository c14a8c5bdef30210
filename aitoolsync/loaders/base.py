"""
Base loader types.

Every loader returns a ``LoadResult``; failures are recorded as ``LoadError``
items rather than raised.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from aitoolsync.parsers import ContentType, ParsedContent

# Default subdirectory names per content type
DEFAULT_DIRECTORIES: dict[ContentType, tuple[str, ...]] = {
    ContentType.RULE: ("rules",),
    ContentType.PERSONA: ("personas", "agents"),
    ContentType.COMMAND: ("commands",),
    ContentType.HOOK: ("hooks",),
}


@dataclass
class LoadError:
    """
    A single failure encountered while loading.

    Attributes:
        kind: What failed (file, directory, or a content type value)
        path: Source, path or URL concerned
        message: Human-readable description
    """

    kind: str
    path: str
    message: str


@dataclass
class LoadResult:
    """Everything loaded from one source."""

    source: str
    rules: list[ParsedContent] = field(default_factory=list)
    personas: list[ParsedContent] = field(default_factory=list)
    commands: list[ParsedContent] = field(default_factory=list)
    hooks: list[ParsedContent] = field(default_factory=list)
    errors: list[LoadError] = field(default_factory=list)

    def add(self, item: ParsedContent) -> None:
        """Append a parsed item to the list matching its kind."""
        self.items_for(item.kind).append(item)

    def items_for(self, kind: ContentType) -> list[ParsedContent]:
        return {
            ContentType.RULE: self.rules,
            ContentType.PERSONA: self.personas,
            ContentType.COMMAND: self.commands,
            ContentType.HOOK: self.hooks,
        }[kind]

    def add_error(self, kind: str, path: str, message: str) -> None:
        self.errors.append(LoadError(kind=kind, path=path, message=message))

    @property
    def is_empty(self) -> bool:
        return not (self.rules or self.personas or self.commands or self.hooks)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        return (
            f"{len(self.rules)} rules, {len(self.personas)} personas, "
            f"{len(self.commands)} commands, {len(self.hooks)} hooks"
        )


@dataclass
class LoaderOptions:
    """
    Options shared by all loaders.

    Attributes:
        base_path: Directory relative paths are resolved against
    """

    base_path: Path | None = None


class Loader(Protocol):
    """Interface implemented by every loader."""

    name: str

    def can_load(self, source: str) -> bool: ...

    async def load(self, source: str, options: LoaderOptions | None = None) -> LoadResult: ...

"""
Plugin settings - TOML-based configuration.

Settings live in the ``[plugins]`` table of ``.ai-tool-sync/config.toml``:

    [plugins]
    cache_dir = ".ai-tool-sync"
    git_cache_ttl = 86400
    token_env = "GITHUB_TOKEN"

Example usage:
    settings = load_settings()
    result = await GitLoader().load("github:acme/rules", settings.to_git_options())
"""

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aitoolsync.config.schema import (
    ConfigField,
    SchemaError,
    ValidationError,
    generate_default_config,
    validate_config,
)
from aitoolsync.config.toml_handler import (
    TOMLError,
    generate_toml_from_schema,
    read_toml,
    write_toml,
)
from aitoolsync.loaders.git import DEFAULT_GIT_CACHE_DIR, GitLoaderOptions, resolve_cache_root
from aitoolsync.loaders.url import UrlLoaderOptions
from aitoolsync.plugin.update import UpdateCheckOptions

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(DEFAULT_GIT_CACHE_DIR) / "config.toml"

SETTINGS_SECTION = "plugins"

URL_CACHE_SUBDIR = "url-cache"

SETTINGS_SCHEMA: dict[str, ConfigField] = {
    "cache_dir": ConfigField(str, DEFAULT_GIT_CACHE_DIR, "Base cache directory", min=1),
    "git_cache_ttl": ConfigField(
        int, 86400, "Seconds before a cached git clone is refetched (0 = always)", min=0
    ),
    "url_cache_ttl": ConfigField(
        int, 3600, "Seconds before a cached URL body is refetched (0 = no cache)", min=0
    ),
    "git_timeout": ConfigField(int, 300, "Seconds allowed per git command", min=1),
    "url_timeout": ConfigField(int, 30, "Seconds allowed per HTTP request", min=1),
    "clone_depth": ConfigField(int, 1, "Shallow clone depth (0 = full history)", min=0),
    "use_ssh": ConfigField(bool, False, "Clone github:/gitlab:/bitbucket: sources over SSH"),
    "token_env": ConfigField(
        str, "", "Environment variable holding a token for private HTTPS repositories"
    ),
}


class ConfigError(Exception):
    """Raised when the settings file is unusable."""

    pass


@dataclass
class PluginSettings:
    """Validated plugin settings."""

    cache_dir: str = DEFAULT_GIT_CACHE_DIR
    git_cache_ttl: int = 86400
    url_cache_ttl: int = 3600
    git_timeout: int = 300
    url_timeout: int = 30
    clone_depth: int = 1
    use_ssh: bool = False
    token_env: str = ""

    @property
    def token(self) -> str | None:
        """Token read from ``token_env``; never persisted."""
        if not self.token_env:
            return None
        return os.environ.get(self.token_env) or None

    def cache_root(self, base_path: Path | None = None) -> Path:
        return resolve_cache_root(self.cache_dir, base_path)

    def to_git_options(self, base_path: Path | None = None) -> GitLoaderOptions:
        return GitLoaderOptions(
            base_path=base_path,
            cache_dir=self.cache_dir,
            cache_ttl=float(self.git_cache_ttl),
            depth=self.clone_depth,
            use_ssh=self.use_ssh,
            timeout=float(self.git_timeout),
            token=self.token,
        )

    def to_url_options(self, base_path: Path | None = None) -> UrlLoaderOptions:
        return UrlLoaderOptions(
            base_path=base_path,
            timeout=float(self.url_timeout),
            cache_ttl=float(self.url_cache_ttl),
            cache_dir=self.cache_root(base_path) / URL_CACHE_SUBDIR,
        )

    def to_check_options(self) -> UpdateCheckOptions:
        return UpdateCheckOptions(use_ssh=self.use_ssh, token=self.token)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def load_settings(path: Path | None = None) -> PluginSettings:
    """
    Load plugin settings.

    Args:
        path: Settings file; ``.ai-tool-sync/config.toml`` if None

    Returns:
        PluginSettings (defaults if the file does not exist)

    Raises:
        ConfigError: If the file cannot be parsed or fails validation
    """
    path = path or DEFAULT_CONFIG_FILE
    if not path.exists():
        logger.debug("No settings file at %s, using defaults", path)
        return PluginSettings()

    try:
        data = read_toml(path)
    except TOMLError as e:
        raise ConfigError(str(e)) from e

    section = data.get(SETTINGS_SECTION, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{SETTINGS_SECTION}] in {path} must be a table")

    try:
        values = validate_config(section, SETTINGS_SCHEMA)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    return PluginSettings(**values)


def write_default_config(
    path: Path | None = None,
    settings: PluginSettings | None = None,
    overwrite: bool = False,
) -> Path:
    """
    Write a commented settings file.

    Args:
        path: Target file; ``.ai-tool-sync/config.toml`` if None
        settings: Values to write; defaults if None
        overwrite: Replace an existing file

    Returns:
        The written path

    Raises:
        ConfigError: If the file exists and ``overwrite`` is False, or cannot be written
    """
    path = path or DEFAULT_CONFIG_FILE
    if path.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {path}")

    values = settings.to_dict() if settings else generate_default_config(SETTINGS_SCHEMA)
    doc = generate_toml_from_schema(SETTINGS_SECTION, SETTINGS_SCHEMA, values)

    try:
        write_toml(path, doc)
    except TOMLError as e:
        raise ConfigError(str(e)) from e

    return path


__all__ = [
    "ConfigError",
    "ConfigField",
    "DEFAULT_CONFIG_FILE",
    "PluginSettings",
    "SETTINGS_SCHEMA",
    "URL_CACHE_SUBDIR",
    "SchemaError",
    "ValidationError",
    "load_settings",
    "write_default_config",
]

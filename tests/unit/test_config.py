"""
Tests for plugin settings.

This test suite covers:
1. Schema field validation (type mismatch, constraint violation)
2. Loading settings (defaults, partial files, invalid files)
3. Writing a commented default file
4. Conversion to loader options
"""

from pathlib import Path

import pytest

from aitoolsync.config import (
    ConfigError,
    ConfigField,
    PluginSettings,
    SETTINGS_SCHEMA,
    SchemaError,
    ValidationError,
    load_settings,
    write_default_config,
)
from aitoolsync.config.schema import generate_default_config, validate_config
from aitoolsync.config.toml_handler import TOMLError, read_toml


class TestSchemaValidation:
    """Test schema field validation."""

    def test_field_default_type_mismatch(self):
        """ConfigField should reject a default that doesn't match its type."""
        with pytest.raises(SchemaError, match="does not match type"):
            ConfigField(int, "not an int", "Bad default")

    def test_bool_is_not_an_int(self):
        """ConfigField should not accept booleans for integer fields."""
        field = ConfigField(int, 1, "Depth", min=0)

        with pytest.raises(ValidationError, match="Expected type int"):
            field.validate(True)

    def test_min_max_constraints(self):
        """ConfigField should enforce numeric bounds."""
        field = ConfigField(int, 50, "Number with range", min=0, max=100)

        field.validate(0)
        field.validate(100)
        with pytest.raises(ValidationError, match="value -1 is below the minimum of 0"):
            field.validate(-1)
        with pytest.raises(ValidationError, match="value 101 is above the maximum of 100"):
            field.validate(101)

    def test_string_length(self):
        """ConfigField should enforce string length bounds."""
        field = ConfigField(str, "abc", "Name", min=1)

        with pytest.raises(ValidationError, match="length 0 is below the minimum of 1"):
            field.validate("")

    def test_constraints_rejected_for_bool(self):
        """ConfigField should not allow min/max on booleans."""
        with pytest.raises(SchemaError, match="min/max constraints do not apply to bool"):
            ConfigField(bool, False, "Flag", min=0)

    def test_choices(self):
        """ConfigField should enforce allowed choices."""
        field = ConfigField(str, "a", "Choice", choices=["a", "b"])

        field.validate("b")
        with pytest.raises(ValidationError, match="not in allowed choices"):
            field.validate("c")

    def test_validate_config_fills_defaults(self):
        """validate_config should merge defaults for missing fields."""
        values = validate_config({"clone_depth": 0}, SETTINGS_SCHEMA)

        assert values["clone_depth"] == 0
        assert values["git_cache_ttl"] == 86400
        assert set(values) == set(SETTINGS_SCHEMA)

    def test_validate_config_unknown_field(self):
        """validate_config should reject unknown fields."""
        with pytest.raises(ValidationError, match="Unknown configuration field: colour"):
            validate_config({"colour": "blue"}, SETTINGS_SCHEMA)

    def test_validate_config_names_field(self):
        """validate_config should name the failing field."""
        with pytest.raises(ValidationError, match="Field 'git_timeout'"):
            validate_config({"git_timeout": 0}, SETTINGS_SCHEMA)

    def test_defaults_match_settings(self):
        """Schema defaults and PluginSettings defaults should agree."""
        assert generate_default_config(SETTINGS_SCHEMA) == PluginSettings().to_dict()


class TestLoadSettings:
    """Test reading the settings file."""

    def test_missing_file_uses_defaults(self, tmp_path):
        """Should fall back to defaults without a file."""
        assert load_settings(tmp_path / "config.toml") == PluginSettings()

    def test_partial_file(self, tmp_path):
        """Should read given fields and default the rest."""
        path = tmp_path / "config.toml"
        path.write_text('[plugins]\nclone_depth = 0\nuse_ssh = true\ntoken_env = "GH_TOKEN"\n')

        settings = load_settings(path)

        assert settings.clone_depth == 0
        assert settings.use_ssh is True
        assert settings.token_env == "GH_TOKEN"
        assert settings.url_cache_ttl == 3600

    def test_file_without_section(self, tmp_path):
        """Should use defaults when the [plugins] table is absent."""
        path = tmp_path / "config.toml"
        path.write_text("[other]\nkey = 1\n")

        assert load_settings(path) == PluginSettings()

    def test_invalid_value(self, tmp_path):
        """Should raise ConfigError for values that fail validation."""
        path = tmp_path / "config.toml"
        path.write_text('[plugins]\ngit_cache_ttl = "soon"\n')

        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(path)

    def test_malformed_toml(self, tmp_path):
        """Should raise ConfigError for unparsable files."""
        path = tmp_path / "config.toml"
        path.write_text("[plugins\n")

        with pytest.raises(ConfigError, match="Failed to parse TOML"):
            load_settings(path)

    def test_section_must_be_table(self, tmp_path):
        """Should reject a non-table [plugins] value."""
        path = tmp_path / "config.toml"
        path.write_text('plugins = "yes"\n')

        with pytest.raises(ConfigError, match="must be a table"):
            load_settings(path)

    def test_read_toml_missing(self, tmp_path):
        """read_toml should raise TOMLError for missing files."""
        with pytest.raises(TOMLError, match="not found"):
            read_toml(tmp_path / "none.toml")


class TestWriteDefaultConfig:
    """Test writing the commented settings file."""

    def test_writes_comments_and_values(self, tmp_path):
        """Should write every field with its description."""
        path = write_default_config(tmp_path / "sub" / "config.toml")

        text = path.read_text()
        assert "[plugins]" in text
        assert "# Seconds before a cached git clone is refetched (0 = always)" in text
        assert "# Constraints: min: 1" in text
        assert load_settings(path) == PluginSettings()

    def test_round_trip_custom_settings(self, tmp_path):
        """Should write given settings so they load back unchanged."""
        settings = PluginSettings(cache_dir="/var/cache/ats", git_timeout=60, use_ssh=True)

        path = write_default_config(tmp_path / "config.toml", settings)

        assert load_settings(path) == settings

    def test_refuses_to_overwrite(self, tmp_path):
        """Should not replace an existing file unless asked."""
        path = tmp_path / "config.toml"
        path.write_text("# mine\n")

        with pytest.raises(ConfigError, match="already exists"):
            write_default_config(path)
        assert path.read_text() == "# mine\n"

        write_default_config(path, overwrite=True)
        assert "[plugins]" in path.read_text()


class TestOptionConversion:
    """Test conversion to loader options."""

    def test_git_options(self, tmp_path):
        """Should carry git settings into GitLoaderOptions."""
        settings = PluginSettings(git_cache_ttl=0, clone_depth=0, git_timeout=12)

        options = settings.to_git_options(tmp_path)

        assert options.base_path == tmp_path
        assert options.cache_ttl == 0
        assert options.depth == 0
        assert options.timeout == 12
        assert options.token is None

    def test_url_options(self, tmp_path):
        """Should place the URL disk cache under the cache root."""
        options = PluginSettings(url_timeout=5).to_url_options(tmp_path)

        assert options.timeout == 5
        assert options.cache_dir == tmp_path / ".ai-tool-sync" / "url-cache"

    def test_token_from_environment(self, monkeypatch):
        """Should read the token from the named variable only."""
        monkeypatch.setenv("ATS_TEST_TOKEN", "secret")
        settings = PluginSettings(token_env="ATS_TEST_TOKEN")

        assert settings.token == "secret"
        assert settings.to_check_options().token == "secret"
        assert "secret" not in repr(settings.to_git_options())
        assert PluginSettings().token is None

    def test_cache_root(self, tmp_path):
        """Should resolve relative cache dirs against the base path."""
        assert PluginSettings().cache_root(tmp_path) == tmp_path / ".ai-tool-sync"
        assert PluginSettings(cache_dir=str(tmp_path)).cache_root() == Path(tmp_path)

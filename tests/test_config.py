"""Tests for configuration loading and runtime settings."""

from pathlib import Path

import pytest

from conftest import write
from kb_automation.config import DEFAULT_CONFIG, BadgeConfig, KBConfig, KBSettings
from kb_automation.errors import InvalidConfigError, MissingConfigError


class TestKBConfig:
    """Tests for KBConfig defaults and validation."""

    def test_defaults(self):
        config = KBConfig()

        assert config.documents == ["README.md", "docs/**/*.md"]
        assert config.update_targets == ["README.md"]
        assert config.marker_start == "UPDATE-START"
        assert config.badges == [BadgeConfig(label="Last Updated", message="{{ date }}", color="blue")]
        assert config.timestamp_format == "%Y-%m-%d %H:%M UTC"
        assert config.mermaid_directions == ["LR"]
        assert config.max_age_days is None
        assert DEFAULT_CONFIG.to_dict() == config.to_dict()

    def test_string_becomes_list(self):
        assert KBConfig(documents="*.md").documents == ["*.md"]

    def test_directions_normalized(self):
        assert KBConfig(mermaid_directions=["lr", "td"]).mermaid_directions == ["LR", "TD"]

    @pytest.mark.parametrize("kwargs", [
        {"mermaid_directions": ["SIDEWAYS"]},
        {"marker_start": "SAME", "marker_end": "SAME"},
        {"marker_start": ""},
        {"max_age_days": -1},
        {"max_age_days": "30"},
        {"timestamp_format": "%Y-%m-%d %f"},
        {"rules": {"placeholder": "fatal"}},
        {"rules": ["placeholder"]},
        {"exclude": 5},
        {"badges": [{"label": "x"}]},
        {"badges": [{"label": "x", "message": "y", "size": "big"}]},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(InvalidConfigError):
            KBConfig(**kwargs)

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            KBConfig.from_dict({"documnets": ["*.md"]})
        assert exc_info.value.key == "documnets"

    def test_resolve_relative_and_excluded(self, tmp_path):
        config = KBConfig(root=tmp_path, exclude=["docs/archive/*"])

        assert config.resolve("docs/a.md") == tmp_path / "docs" / "a.md"
        assert config.relative(tmp_path / "docs" / "a.md") == "docs/a.md"
        assert config.is_excluded(tmp_path / "docs" / "archive" / "old.md")
        assert not config.is_excluded(tmp_path / "docs" / "a.md")


class TestLoading:
    """Tests for reading kb.yaml."""

    def test_from_yaml(self, tmp_path):
        path = write(tmp_path, "kb.yaml", (
            "documents: [README.md]\n"
            "max_age_days: 90\n"
            "badges:\n"
            "  - label: Docs\n"
            "    message: '{{ documents }}'\n"
            "    color: green\n"
            "rules:\n"
            "  placeholder: error\n"
        ))
        config = KBConfig.from_yaml(path)

        assert config.root == tmp_path
        assert config.documents == ["README.md"]
        assert config.max_age_days == 90
        assert config.badges[0].color == "green"
        assert config.rules == {"placeholder": "error"}

    def test_unquoted_off_severity(self, tmp_path):
        """Test that 'off' read as a YAML boolean still disables the rule."""
        path = write(tmp_path, "kb.yaml", "rules:\n  placeholder: off\n")
        assert KBConfig.from_yaml(path).rules == {"placeholder": "off"}

    def test_empty_yaml_is_defaults(self, tmp_path):
        path = write(tmp_path, "kb.yaml", "")
        assert KBConfig.from_yaml(path).documents == KBConfig().documents

    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingConfigError):
            KBConfig.from_yaml(tmp_path / "nope.yaml")

    def test_not_a_mapping(self, tmp_path):
        path = write(tmp_path, "kb.yaml", "- a\n- b\n")
        with pytest.raises(InvalidConfigError):
            KBConfig.from_yaml(path)

    def test_yaml_syntax_error(self, tmp_path):
        path = write(tmp_path, "kb.yaml", "documents: [unclosed\n")
        with pytest.raises(InvalidConfigError) as exc_info:
            KBConfig.from_yaml(path)
        assert exc_info.value.__cause__ is not None

    def test_load_prefers_explicit_path(self, tmp_path):
        write(tmp_path, "kb.yaml", "documents: [a.md]\n")
        other = write(tmp_path, "conf/other.yaml", "documents: [b.md]\n")

        assert KBConfig.load(tmp_path).documents == ["a.md"]
        config = KBConfig.load(tmp_path, other)
        assert config.documents == ["b.md"]
        assert config.root == tmp_path

    def test_load_without_file(self, tmp_path):
        config = KBConfig.load(tmp_path)
        assert config.root == tmp_path
        assert config.documents == KBConfig().documents

    def test_load_missing_explicit_path(self, tmp_path):
        with pytest.raises(MissingConfigError):
            KBConfig.load(tmp_path, tmp_path / "absent.yaml")


class TestKBSettings:
    """Tests for KB_* environment settings."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("KB_LOG_LEVEL", "KB_LOG_JSON", "KB_CONFIG", "KB_ROOT"):
            monkeypatch.delenv(name, raising=False)

        settings = KBSettings()

        assert settings.log_level == "WARNING"
        assert settings.log_json is False
        assert settings.config is None
        assert settings.root == Path(".")

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("KB_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("KB_LOG_JSON", "true")
        monkeypatch.setenv("KB_ROOT", str(tmp_path))

        settings = KBSettings()

        assert settings.log_level == "DEBUG"
        assert settings.log_json is True
        assert settings.root == tmp_path

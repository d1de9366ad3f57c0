"""Tests for the update block and report renderers."""

from datetime import datetime, timezone

import pytest

from conftest import EXPECTED_BLOCK
from kb_automation.config import BadgeConfig, KBConfig
from kb_automation.errors import RenderError
from kb_automation.markers import find_timestamps
from kb_automation.renderers import ReportRenderer, UpdateBlockRenderer


# =============================================================================
# Update block
# =============================================================================

class TestUpdateBlockRenderer:
    """Tests for UpdateBlockRenderer."""

    def test_default_block(self, now):
        """Test the default badge and timestamp line."""
        content = UpdateBlockRenderer(KBConfig(), now=now).render()
        assert content == EXPECTED_BLOCK

    def test_block_passes_timestamp_check(self, now):
        """Test that the rendered timestamp is found with the same config."""
        config = KBConfig(timestamp_label="Updated", timestamp_format="%d %b %Y, %H:%M")
        content = UpdateBlockRenderer(config, now=now).render()

        [stamp] = find_timestamps(content, config.timestamp_label, config.timestamp_format)
        assert stamp.value == now

    def test_naive_clock_renders_utc_zone(self, now):
        """Test that a naive clock is taken as UTC so zone directives are filled."""
        config = KBConfig(timestamp_format="%Y-%m-%d %H:%M %z")
        content = UpdateBlockRenderer(config, now=now.replace(tzinfo=None)).render()

        assert content.endswith("_Last updated: 2026-10-17 09:30 +0000_")
        [stamp] = find_timestamps(content, config.timestamp_label, config.timestamp_format)
        assert stamp.value == now

    def test_badges_use_context(self, now):
        """Test that badge messages are templates over the update context."""
        config = KBConfig(badges=[
            {"label": "Docs", "message": "{{ documents }} docs", "color": "green"},
            {"label": "Build", "message": "passing", "link": "https://ci.example.com"},
        ])
        content = UpdateBlockRenderer(config, now=now, context={"documents": 3}).render()
        first_line = content.splitlines()[0]

        assert "![Docs](https://img.shields.io/badge/Docs-3%20docs-green)" in first_line
        assert "[![Build](https://img.shields.io/badge/Build-passing-blue)](https://ci.example.com)" in first_line

    def test_no_badges(self, now):
        """Test that only the timestamp line remains without badges."""
        content = UpdateBlockRenderer(KBConfig(badges=[]), now=now).render()
        assert content == "_Last updated: 2026-10-17 09:30 UTC_"

    def test_undefined_variable(self, now):
        """Test that unknown names in a badge message fail loudly."""
        config = KBConfig(badges=[BadgeConfig(label="X", message="{{ nope }}")])
        with pytest.raises(RenderError):
            UpdateBlockRenderer(config, now=now).render()

    def test_template_override(self, tmp_path, now):
        """Test that template_dir replaces the packaged template."""
        (tmp_path / "update_block.md.j2").write_text("Updated {{ timestamp }}\n", encoding="utf-8")
        config = KBConfig(template_dir=tmp_path)

        assert UpdateBlockRenderer(config, now=now).render() == "Updated 2026-10-17 09:30 UTC"

    def test_default_clock_is_utc(self):
        """Test that the renderer falls back to the current UTC time."""
        renderer = UpdateBlockRenderer(KBConfig())
        assert renderer.now.tzinfo == timezone.utc


# =============================================================================
# Report
# =============================================================================

class TestReportRenderer:
    """Tests for ReportRenderer."""

    @pytest.fixture
    def stats(self):
        return {
            "documents": [
                {"path": "README.md", "title": "Knowledge | Base", "headings": 3, "words": 120,
                 "diagrams": 1, "tables": 1, "links": 4},
                {"path": "docs/x.md", "title": None, "headings": 0, "words": 5,
                 "diagrams": 0, "tables": 0, "links": 0},
            ],
            "totals": {"documents": 2, "words": 125, "diagrams": 1, "tables": 1,
                       "links": 4, "external_links": 1},
        }

    def test_render_produces_markdown(self, stats):
        """Test heading, rows and totals."""
        content = ReportRenderer(stats, now=datetime(2026, 10, 17, tzinfo=timezone.utc)).render()

        assert content.startswith("# Knowledge Base Report")
        assert "_Generated 2026-10-17 00:00 UTC_" in content
        assert "| `README.md` | Knowledge \\| Base | 3 | 120 | 1 | 1 | 4 |" in content
        assert "| `docs/x.md` | - |" in content
        assert "**Totals:** 2 documents, 125 words" in content
        assert "## Lint" not in content

    def test_render_lint_summary(self, stats):
        """Test that lint counts and per-rule findings are listed."""
        lint = {"ok": False, "errors": 2, "warnings": 1, "by_rule": {"link-target": 2, "placeholder": 1}}
        content = ReportRenderer(stats, lint=lint).render()

        assert "## Lint" in content
        assert "2 errors, 1 warnings." in content
        assert "| `link-target` | 2 |" in content

    def test_render_clean_lint(self, stats):
        lint = {"ok": True, "errors": 0, "warnings": 0, "by_rule": {}}
        content = ReportRenderer(stats, lint=lint).render()
        assert "No errors (0 warnings)." in content

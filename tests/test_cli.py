"""Tests for the kbdocs command line."""

import json

import pytest
from click.testing import CliRunner

from conftest import README, write
from kb_automation import __version__
from kb_automation.cli import cli

NOW = "2026-10-17T09:30:00Z"


@pytest.fixture
def runner(monkeypatch, tmp_path_factory):
    """CLI runner isolated from KB_* variables and any .env file."""
    for name in ("KB_LOG_LEVEL", "KB_LOG_JSON", "KB_CONFIG", "KB_ROOT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))
    return CliRunner()


def invoke(runner, root, *args):
    return runner.invoke(cli, ["--root", str(root), *args])


class TestGlobalOptions:
    """Tests for group-level options."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("update", "lint", "stats", "report", "mermaid", "rules"):
            assert command in result.output

    def test_missing_config_file(self, runner, kb_root):
        result = invoke(runner, kb_root, "--config", str(kb_root / "absent.yaml"), "stats")
        assert result.exit_code == 2
        assert "error:" in result.output

    def test_invalid_config(self, runner, kb_root):
        write(kb_root, "kb.yaml", "unknown_key: 1\n")
        result = invoke(runner, kb_root, "stats")
        assert result.exit_code == 2
        assert "unknown_key" in result.output


class TestUpdateCommand:
    """Tests for 'kbdocs update'."""

    def test_update(self, runner, kb_root):
        result = invoke(runner, kb_root, "update", "--now", NOW)

        assert result.exit_code == 0, result.output
        assert "updated" in result.output
        assert "_Last updated: 2026-10-17 09:30 UTC_" in (kb_root / "README.md").read_text(encoding="utf-8")

    def test_check_out_of_date(self, runner, kb_root):
        result = invoke(runner, kb_root, "update", "--check", "--now", NOW)

        assert result.exit_code == 1
        assert "out of date" in result.output
        assert (kb_root / "README.md").read_text(encoding="utf-8") == README

    def test_check_up_to_date(self, runner, kb_root):
        invoke(runner, kb_root, "update", "--now", NOW)
        result = invoke(runner, kb_root, "update", "--check", "--now", NOW)
        assert result.exit_code == 0, result.output

    def test_bad_now(self, runner, kb_root):
        result = invoke(runner, kb_root, "update", "--now", "yesterday")
        assert result.exit_code == 2

    def test_broken_markers(self, runner, kb_root):
        write(kb_root, "README.md", "# T\n<!--UPDATE-END-->\n")
        result = invoke(runner, kb_root, "update", "--now", NOW)
        assert result.exit_code == 2
        assert "README.md:2:" in result.output


class TestLintCommand:
    """Tests for 'kbdocs lint'."""

    def test_clean(self, runner, kb_root):
        result = invoke(runner, kb_root, "lint")
        assert result.exit_code == 0, result.output
        assert "0 errors" in result.output

    def test_findings(self, runner, kb_root):
        write(kb_root, "docs/broken.md", "# Broken\n\n[x](missing.md)\n")
        result = invoke(runner, kb_root, "lint")

        assert result.exit_code == 1
        assert "docs/broken.md:3: error [link-target]" in result.output

    def test_json_output(self, runner, kb_root):
        write(kb_root, "docs/broken.md", "# Broken\n\nTODO\n")
        result = invoke(runner, kb_root, "lint", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["warnings"] == 1
        assert data["issues"][0]["rule"] == "placeholder"

    def test_paths_and_rules(self, runner, kb_root):
        path = write(kb_root, "docs/broken.md", "## no title\n\nTODO\n")
        result = invoke(runner, kb_root, "lint", "--json", "--rule", "heading-h1", str(path))

        data = json.loads(result.stdout)
        assert result.exit_code == 1
        assert [i["rule"] for i in data["issues"]] == ["heading-h1"]

    def test_unknown_rule(self, runner, kb_root):
        result = invoke(runner, kb_root, "lint", "--rule", "nope")
        assert result.exit_code == 2


class TestOtherCommands:
    """Tests for stats, report, mermaid and rules."""

    def test_stats_json(self, runner, kb_root):
        result = invoke(runner, kb_root, "stats", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["totals"]["documents"] == 2

    def test_stats_table(self, runner, kb_root):
        result = invoke(runner, kb_root, "stats")
        assert result.exit_code == 0
        assert "total" in result.output

    def test_report_stdout(self, runner, kb_root):
        result = invoke(runner, kb_root, "report")
        assert result.exit_code == 0
        assert result.stdout.startswith("# Knowledge Base Report")

    def test_report_file(self, runner, kb_root, tmp_path):
        output = tmp_path / "REPORT.md"
        result = invoke(runner, kb_root, "report", "--no-lint", "-o", str(output))

        assert result.exit_code == 0
        content = output.read_text(encoding="utf-8")
        assert "`docs/guide.md`" in content
        assert "## Lint" not in content

    def test_mermaid_valid(self, runner, kb_root):
        result = invoke(runner, kb_root, "mermaid", str(kb_root / "docs" / "guide.md"), "--json")

        assert result.exit_code == 0
        [diagram] = json.loads(result.stdout)
        assert diagram["type"] == "flowchart"
        assert diagram["nodes"] == 2

    def test_mermaid_invalid(self, runner, kb_root):
        path = write(kb_root, "docs/bad.md", "# Bad\n\n```mermaid\nflowchart LR\n  A -->\n```\n")
        result = invoke(runner, kb_root, "mermaid", str(path))

        assert result.exit_code == 1
        assert "link without target" in result.output

    def test_rules(self, runner, kb_root):
        write(kb_root, "kb.yaml", "rules:\n  placeholder: error\n")
        result = invoke(runner, kb_root, "rules")

        assert result.exit_code == 0
        assert "placeholder" in result.output

"""
CLI for knowledge-base maintenance.

Usage:
    kbdocs update                 # refresh the README badge/timestamp block
    kbdocs update --check         # exit 1 if the block is out of date
    kbdocs lint                   # editorial checks over all documents
    kbdocs lint --json docs/x.md  # machine-readable findings for one file
    kbdocs stats
    kbdocs report -o REPORT.md
    kbdocs mermaid docs/devops-tools.md
    kbdocs rules

Exit codes: 0 success, 1 findings or out-of-date check, 2 usage or
configuration error.
"""

from __future__ import annotations

import functools
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kb_automation import __version__
from kb_automation.config import KBConfig, KBSettings
from kb_automation.errors import KBError
from kb_automation.lint.engine import Linter, available_rules
from kb_automation.logging import LogContext, configure_logging, get_logger
from kb_automation.orchestrator import KnowledgeBaseOrchestrator
from kb_automation.parser.markdown import load_document
from kb_automation.parser.mermaid import validate_document

EXIT_FINDINGS = 1
EXIT_USAGE = 2

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


@dataclass
class CliState:
    """Options shared by all sub-commands."""
    root: Path
    config_path: Path | None

    def config(self) -> KBConfig:
        return KBConfig.load(self.root, self.config_path)

    def orchestrator(self, now: datetime | None = None) -> KnowledgeBaseOrchestrator:
        return KnowledgeBaseOrchestrator(self.root, config=self.config(), now=now)


def _fail(error: KBError) -> NoReturn:
    logger.error("command_failed", **error.to_dict())
    err_console.print(f"[bold red]error:[/bold red] {escape(str(error))}", soft_wrap=True)
    raise SystemExit(EXIT_USAGE)


def handles_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Turn KBError into an error message and exit code 2."""
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except KBError as e:
            _fail(e)
    return wrapper


def _parse_now(value: str | None) -> datetime | None:
    if value is None:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise click.BadParameter(f"'{value}' is not an ISO 8601 timestamp", param_hint="--now") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@click.group()
@click.version_option(version=__version__, prog_name="kbdocs")
@click.option(
    "--root", "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Repository root (default: $KB_ROOT or the current directory).",
)
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: $KB_CONFIG or <root>/kb.yaml when present).",
)
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: $KB_LOG_LEVEL).")
@click.option("--json-logs", is_flag=True, help="Emit log lines as JSON on stderr.")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, config_path: Path | None, log_level: str | None, json_logs: bool):
    """Knowledge-base maintenance toolkit.

    Keeps the README update block current and checks the Markdown and
    Mermaid content of the knowledge base.
    """
    settings = KBSettings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=True if (json_logs or settings.log_json) else None,
    )
    ctx.obj = CliState(
        root=root or settings.root,
        config_path=config_path or settings.config,
    )


@cli.command()
@click.option("--check", is_flag=True, help="Do not write; exit 1 if a target would change.")
@click.option("--now", "now_value", default=None, help="ISO 8601 time to stamp instead of the current time.")
@click.pass_obj
@handles_errors
def update(state: CliState, check: bool, now_value: str | None):
    """Refresh the badge and timestamp between the update markers.

    Examples:
        kbdocs update
        kbdocs update --check
        kbdocs update --now 2026-10-17T09:30:00Z
    """
    orchestrator = state.orchestrator(now=_parse_now(now_value))
    with LogContext(command="update"):
        results = orchestrator.update(check=check)

    table = Table(title="Update regions")
    table.add_column("Document", style="cyan")
    table.add_column("Regions", justify="right")
    table.add_column("Status")
    for result in results.values():
        if result.regions == 0:
            status = "[yellow]no region[/yellow]"
        elif result.written:
            status = "[green]updated[/green]"
        elif result.changed:
            status = "[yellow]out of date[/yellow]"
        else:
            status = "unchanged"
        table.add_row(result.path, str(result.regions), status)
    console.print(table)

    if check and any(r.changed for r in results.values()):
        console.print("[bold red]Update block is out of date.[/bold red] Run 'kbdocs update'.")
        raise SystemExit(EXIT_FINDINGS)


@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--rule", "rule_ids", multiple=True, help="Run only this rule (repeatable).")
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON.")
@click.option("--now", "now_value", default=None, help="ISO 8601 time used for staleness checks.")
@click.pass_obj
@handles_errors
def lint(state: CliState, paths: tuple[Path, ...], rule_ids: tuple[str, ...], as_json: bool, now_value: str | None):
    """Check documents for broken structure, links, diagrams and markers.

    Lints every configured document, or only PATHS when given.
    """
    orchestrator = state.orchestrator(now=_parse_now(now_value))
    with LogContext(command="lint"):
        report = orchestrator.lint(rules=rule_ids or None, paths=paths or None)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        for issue in report.issues:
            style = "red" if issue.severity == "error" else "yellow"
            console.print(escape(issue.format()), style=style, soft_wrap=True)
        if report.issues:
            console.print()
        summary = (
            f"{len(report.documents)} documents checked: "
            f"{len(report.errors)} errors, {len(report.warnings)} warnings"
        )
        if report.ok:
            console.print(f"[bold green]✅ {summary}[/bold green]")
        else:
            console.print(f"[bold red]❌ {summary}[/bold red]")

    if not report.ok:
        raise SystemExit(EXIT_FINDINGS)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
@handles_errors
def stats(state: CliState, as_json: bool):
    """Show document statistics (headings, words, diagrams, tables, links)."""
    data = state.orchestrator().get_stats()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="Knowledge base")
    table.add_column("Document", style="cyan")
    for column in ("Headings", "Words", "Diagrams", "Tables", "Links"):
        table.add_column(column, justify="right")
    for doc in data["documents"]:
        table.add_row(
            doc["path"], str(doc["headings"]), str(doc["words"]),
            str(doc["diagrams"]), str(doc["tables"]), str(doc["links"]),
        )
    totals = data["totals"]
    table.add_row(
        "[bold]total[/bold]", str(totals["headings"]), str(totals["words"]),
        str(totals["diagrams"]), str(totals["tables"]), str(totals["links"]),
    )
    console.print(table)


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file instead of stdout.")
@click.option("--no-lint", is_flag=True, help="Leave out the lint summary.")
@click.pass_obj
@handles_errors
def report(state: CliState, output: Path | None, no_lint: bool):
    """Render a Markdown summary of the knowledge base."""
    content = state.orchestrator().report(include_lint=not no_lint)
    if output is None:
        click.echo(content, nl=False)
        return
    output.write_text(content, encoding="utf-8")
    console.print(f"✅ Report written to {escape(str(output))}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
@handles_errors
def mermaid(state: CliState, path: Path, as_json: bool):
    """Parse the Mermaid diagrams of one document."""
    diagrams = validate_document(load_document(path))

    if as_json:
        click.echo(json.dumps([d.to_dict() for d in diagrams], indent=2))
    else:
        console.print(f"\n[bold blue]🧜 Mermaid diagrams in {escape(str(path))}[/bold blue]\n")
        table = Table()
        table.add_column("Line", justify="right")
        table.add_column("Type", style="cyan")
        table.add_column("Direction")
        table.add_column("Nodes", justify="right")
        table.add_column("Edges", justify="right")
        table.add_column("Status", justify="center")
        for diagram in diagrams:
            table.add_row(
                str(diagram.start_line - 1),
                diagram.diagram_type or "?",
                diagram.direction or "-",
                str(len(diagram.nodes)),
                str(len(diagram.edges)),
                "✅" if diagram.valid else "❌",
            )
        console.print(table)
        for diagram in diagrams:
            for diagnostic in diagram.diagnostics:
                style = "red" if diagnostic.severity == "error" else "yellow"
                console.print(
                    escape(f"{path}:{diagnostic.line}: {diagnostic.severity}: {diagnostic.message}"),
                    style=style,
                    soft_wrap=True,
                )

    if any(not d.valid for d in diagrams):
        raise SystemExit(EXIT_FINDINGS)


@cli.command()
@click.pass_obj
@handles_errors
def rules(state: CliState):
    """List lint rules with their default and effective severities."""
    linter = Linter(state.config())
    table = Table(title="Lint rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Default")
    table.add_column("Effective")
    table.add_column("Description")
    for lint_rule in available_rules():
        table.add_row(lint_rule.id, lint_rule.severity, linter.severity(lint_rule), lint_rule.description)
    console.print(table)


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

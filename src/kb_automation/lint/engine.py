"""
Lint engine: runs registered rules over documents and collects issues.

Examples:
    >>> linter = Linter(KBConfig(root=Path(".")))
    >>> report = linter.lint_paths([Path("README.md")])
    >>> report.ok
    True
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from kb_automation.config import KBConfig
from kb_automation.errors import InvalidConfigError
from kb_automation.lint import rules as _rules  # noqa: F401  (registers rules)
from kb_automation.lint.base import RULES, LintContext, LintRule
from kb_automation.logging import get_logger
from kb_automation.parser.markdown import MarkdownDocument, load_document

logger = get_logger(__name__)


@dataclass
class LintIssue:
    """A finding with its effective severity."""
    path: str
    line: int
    rule: str
    severity: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "line": self.line,
            "rule": self.rule,
            "severity": self.severity,
            "message": self.message,
        }

    def format(self) -> str:
        return f"{self.path}:{self.line}: {self.severity} [{self.rule}] {self.message}"


@dataclass
class LintReport:
    """Issues of one lint run, sorted by path, line and rule."""
    issues: list[LintIssue] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.issues.sort(key=lambda i: (i.path, i.line, i.rule))

    @property
    def errors(self) -> list[LintIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[LintIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def ok(self) -> bool:
        return not self.errors

    def by_rule(self) -> dict[str, int]:
        counts = Counter(i.rule for i in self.issues)
        return dict(sorted(counts.items()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "documents": len(self.documents),
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "by_rule": self.by_rule(),
            "issues": [i.to_dict() for i in self.issues],
        }


class Linter:
    """Run lint rules with the severities configured for a repository.

    Manifesto:
        Editorial checks are data. The linter never stops at the first
        problem: every document is checked by every enabled rule and the
        report carries all findings, so one run shows everything that
        needs fixing.

    Features:
        - Severity overrides from ``rules:`` in kb.yaml (``off`` disables)
        - Optional subset of rules (``kbdocs lint --rule ...``)
        - Shared context: linked documents and diagrams parsed once

    Guardrails:
        - Unknown rule ids in config or selection raise InvalidConfigError
        - A naive ``now`` is taken as UTC
    """

    def __init__(
        self,
        config: KBConfig,
        now: datetime | None = None,
        rules: Iterable[str] | None = None,
    ):
        self.config = config
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self.now = now

        for rule_id in config.rules:
            if rule_id not in RULES:
                raise InvalidConfigError(f"rules.{rule_id}", rule_id, f"Unknown lint rule: {rule_id}")

        selected = list(rules) if rules else list(RULES)
        for rule_id in selected:
            if rule_id not in RULES:
                raise InvalidConfigError("rule", rule_id, f"Unknown lint rule: {rule_id}")
        self.selected = selected

    def severity(self, lint_rule: LintRule) -> str:
        """Effective severity of a rule after config overrides."""
        return self.config.rules.get(lint_rule.id, lint_rule.severity)

    def lint_document(self, doc: MarkdownDocument, ctx: LintContext | None = None) -> list[LintIssue]:
        ctx = ctx or LintContext(config=self.config, now=self.now)
        ctx.register(doc)
        path = self.config.relative(doc.path) if doc.path is not None else doc.name

        issues = []
        for rule_id in self.selected:
            lint_rule = RULES[rule_id]
            severity = self.severity(lint_rule)
            if severity == "off":
                continue
            overridden = lint_rule.id in self.config.rules
            for finding in lint_rule.check_fn(doc, ctx):
                issues.append(LintIssue(
                    path=path,
                    line=finding.line,
                    rule=lint_rule.id,
                    severity=severity if overridden or not finding.severity else finding.severity,
                    message=finding.message,
                ))
        return issues

    def lint_documents(self, docs: Iterable[MarkdownDocument]) -> LintReport:
        ctx = LintContext(config=self.config, now=self.now)
        docs = list(docs)
        for doc in docs:
            ctx.register(doc)

        issues: list[LintIssue] = []
        names: list[str] = []
        for doc in docs:
            doc_issues = self.lint_document(doc, ctx)
            names.append(self.config.relative(doc.path) if doc.path is not None else doc.name)
            issues.extend(doc_issues)
            logger.debug("document_linted", path=names[-1], issues=len(doc_issues))

        report = LintReport(issues=issues, documents=names)
        logger.info(
            "lint_finished",
            documents=len(names),
            errors=len(report.errors),
            warnings=len(report.warnings),
        )
        return report

    def lint_paths(self, paths: Iterable[Path]) -> LintReport:
        """Load and lint specific files (DocumentNotFoundError if missing)."""
        return self.lint_documents(load_document(Path(p)) for p in paths)


def available_rules() -> list[LintRule]:
    """Registered rules in registration order."""
    return list(RULES.values())

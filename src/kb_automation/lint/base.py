"""
Lint rule definitions and the shared lint context.

A rule is declarative: an id, a default severity, a one-line description
and a check function. The check receives a scanned document plus the
``LintContext`` and yields ``Finding`` objects; the engine turns findings
into ``LintIssue`` records with the effective severity.

Examples:
    >>> @rule("no-tabs", "warning", "tab characters in prose")
    ... def check_tabs(doc, ctx):
    ...     for number, line in enumerate(doc.lines, start=1):
    ...         if "\\t" in line and not doc.is_in_code(number):
    ...             yield Finding(number, "tab character")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from kb_automation.config import KBConfig
from kb_automation.errors import MarkerError
from kb_automation.markers import UpdateRegion, find_regions
from kb_automation.parser.markdown import MarkdownDocument, load_document
from kb_automation.parser.mermaid import MermaidDiagram, validate_document


@dataclass
class Finding:
    """A problem reported by a rule check.

    ``severity`` overrides the rule's default for this finding only (used
    for Mermaid warnings reported under ``mermaid-syntax``).
    """
    line: int
    message: str
    severity: str | None = None


CheckFn = Callable[[MarkdownDocument, "LintContext"], Iterable[Finding]]


@dataclass
class LintRule:
    """Definition of a lint rule.

    Attributes:
        id: Unique identifier used in output and config overrides
        severity: Default severity (``error`` or ``warning``)
        description: One-line summary shown by ``kbdocs rules``
        check_fn: Function (document, context) -> findings
    """
    id: str
    severity: str
    description: str
    check_fn: CheckFn


RULES: dict[str, LintRule] = {}


def rule(rule_id: str, severity: str, description: str) -> Callable[[CheckFn], CheckFn]:
    """Register a check function as a lint rule."""
    def decorator(fn: CheckFn) -> CheckFn:
        RULES[rule_id] = LintRule(id=rule_id, severity=severity, description=description, check_fn=fn)
        return fn
    return decorator


@dataclass
class LintContext:
    """State shared by all rules during one lint run.

    Caches documents loaded for cross-document anchor checks, parsed
    Mermaid diagrams and update regions, so each is computed once.
    """
    config: KBConfig
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _documents: dict[Path, MarkdownDocument] = field(default_factory=dict)
    _diagrams: dict[int, list[MermaidDiagram]] = field(default_factory=dict)
    _regions: dict[int, list[UpdateRegion] | MarkerError] = field(default_factory=dict)

    def register(self, doc: MarkdownDocument) -> None:
        if doc.path is not None:
            self._documents[doc.path.resolve()] = doc

    def document(self, path: Path) -> MarkdownDocument:
        """Load (once) a document referenced by a link."""
        key = Path(path).resolve()
        if key not in self._documents:
            self._documents[key] = load_document(key)
        return self._documents[key]

    def diagrams(self, doc: MarkdownDocument) -> list[MermaidDiagram]:
        key = id(doc)
        if key not in self._diagrams:
            self._diagrams[key] = validate_document(doc)
        return self._diagrams[key]

    def regions(self, doc: MarkdownDocument) -> list[UpdateRegion]:
        """Update regions of a document; raises MarkerError when unbalanced."""
        key = id(doc)
        if key not in self._regions:
            try:
                self._regions[key] = find_regions(doc.text, self.config.marker_start, self.config.marker_end)
            except MarkerError as e:
                self._regions[key] = e
        result = self._regions[key]
        if isinstance(result, MarkerError):
            raise result
        return result

    def is_update_target(self, doc: MarkdownDocument) -> bool:
        if doc.path is None:
            return False
        resolved = doc.path.resolve()
        return any(self.config.resolve(t).resolve() == resolved for t in self.config.update_targets)

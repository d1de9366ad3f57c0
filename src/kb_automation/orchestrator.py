"""
Knowledge-base orchestrator.

Coordinates the maintenance commands: discovering documents, rewriting the
update region, running lint and collecting statistics.

Example:
    >>> orchestrator = KnowledgeBaseOrchestrator(Path("."))
    >>> orchestrator.update()
    {'README.md': UpdateResult(path='README.md', regions=1, changed=True, written=True)}
    >>> orchestrator.lint().ok
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from kb_automation.config import KBConfig
from kb_automation.errors import DocumentNotFoundError, MarkerError, StorageError
from kb_automation.lint.engine import LintReport, Linter
from kb_automation.logging import get_logger
from kb_automation.markers import replace_regions
from kb_automation.parser.markdown import MarkdownDocument, load_document
from kb_automation.parser.mermaid import validate_document
from kb_automation.renderers.report import ReportRenderer
from kb_automation.renderers.update_block import UpdateBlockRenderer

logger = get_logger(__name__)


@dataclass
class UpdateResult:
    """Outcome of updating one target document."""
    path: str
    regions: int
    changed: bool
    written: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "regions": self.regions,
            "changed": self.changed,
            "written": self.written,
        }


class KnowledgeBaseOrchestrator:
    """Orchestrate maintenance of the knowledge base.

    Manifesto:
        One object knows where the documents are and how each command
        treats them. The CLI stays a thin layer of options and output.

    Architecture:
        ```
        KnowledgeBaseOrchestrator
              │
              ├──► discover()  globs - exclude ──► paths
              │
              ├──► load()      paths ──► MarkdownDocument[] (cached)
              │
              ├──► update()    UpdateBlockRenderer ──► replace_regions ──► write
              │
              ├──► lint()      Linter.lint_documents(load())
              │
              └──► get_stats() / report()
        ```

    Guardrails:
        - update() writes a file only when its content changes
        - update(check=True) never writes
        - Markers are validated before anything is written
    """

    def __init__(
        self,
        root: Path,
        config: KBConfig | None = None,
        now: datetime | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            root: Repository root
            config: Configuration (loaded from ``<root>/kb.yaml`` if omitted)
            now: Clock value for timestamps and staleness (current UTC time
                if omitted)
        """
        self.root = Path(root)
        self.config = config or KBConfig.load(self.root)
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self.now = now
        self._documents: list[MarkdownDocument] | None = None

    def discover(self) -> list[Path]:
        """Expand the document globs into a sorted, de-duplicated path list."""
        found: dict[Path, None] = {}
        for pattern in self.config.documents:
            for path in sorted(self.config.root.glob(pattern)):
                if path.is_file() and not self.config.is_excluded(path):
                    found[path] = None
        paths = sorted(found, key=lambda p: self.config.relative(p))
        logger.debug("documents_discovered", count=len(paths))
        return paths

    def load(self) -> list[MarkdownDocument]:
        """Load every discovered document (cached for the orchestrator's lifetime)."""
        if self._documents is None:
            self._documents = [load_document(p) for p in self.discover()]
            for doc in self._documents:
                logger.debug("document_loaded", path=self.config.relative(doc.path), lines=len(doc.lines))
        return self._documents

    def render_update_block(self) -> str:
        docs = self.load()
        diagrams = sum(len(d.mermaid_blocks) for d in docs)
        renderer = UpdateBlockRenderer(
            self.config,
            now=self.now,
            context={"documents": len(docs), "diagrams": diagrams},
        )
        return renderer.render()

    def update(self, check: bool = False) -> dict[str, UpdateResult]:
        """Rewrite the update region of every update target.

        Args:
            check: Only report what would change

        Returns:
            Dict mapping target path to its UpdateResult
        """
        block = self.render_update_block()
        pending: list[tuple[str, Path, str, str, int]] = []

        # Every target is read and replaced before any file is written
        for target in self.config.update_targets:
            path = self.config.resolve(target)
            if not path.is_file():
                raise DocumentNotFoundError(str(path))

            with open(path, encoding="utf-8", newline="") as f:
                text = f.read()
            try:
                new_text, count = replace_regions(
                    text, block, self.config.marker_start, self.config.marker_end,
                )
            except MarkerError as e:
                raise e.with_context(path=target)
            pending.append((target, path, text, new_text, count))

        results: dict[str, UpdateResult] = {}
        for target, path, text, new_text, count in pending:
            changed = new_text != text
            written = False
            if changed and not check:
                try:
                    path.write_text(new_text, encoding="utf-8", newline="")
                except OSError as e:
                    raise StorageError(f"Cannot write {target}: {e}", cause=e).with_context(path=target)
                written = True
                self._documents = None

            if count == 0:
                logger.warning("update_target_without_region", path=target)
            else:
                logger.info("region_updated", path=target, regions=count, changed=changed, written=written)
            results[target] = UpdateResult(path=target, regions=count, changed=changed, written=written)

        return results

    def lint(self, rules: Iterable[str] | None = None, paths: Iterable[Path] | None = None) -> LintReport:
        """Lint the knowledge base (or specific files)."""
        linter = Linter(self.config, now=self.now, rules=rules)
        if paths:
            return linter.lint_paths(paths)
        return linter.lint_documents(self.load())

    def document_stats(self, doc: MarkdownDocument) -> dict[str, Any]:
        diagrams = validate_document(doc)
        return {
            "path": self.config.relative(doc.path),
            "title": doc.title,
            "headings": len(doc.headings),
            "words": doc.word_count,
            "code_blocks": len(doc.code_blocks),
            "diagrams": len(diagrams),
            "invalid_diagrams": sum(1 for d in diagrams if not d.valid),
            "tables": len(doc.tables),
            "links": len(doc.links),
            "external_links": sum(1 for link in doc.links if link.is_external),
        }

    def get_stats(self) -> dict[str, Any]:
        """Per-document and total counts."""
        documents = [self.document_stats(doc) for doc in self.load()]
        totals: dict[str, Any] = {"documents": len(documents)}
        for key in ("headings", "words", "code_blocks", "diagrams", "invalid_diagrams",
                    "tables", "links", "external_links"):
            totals[key] = sum(d[key] for d in documents)
        return {"documents": documents, "totals": totals}

    def report(self, include_lint: bool = True) -> str:
        """Render the Markdown knowledge-base report."""
        lint = self.lint().to_dict() if include_lint else None
        renderer = ReportRenderer(
            self.get_stats(),
            lint=lint,
            template_dir=self.config.template_dir,
            now=self.now,
        )
        return renderer.render() + "\n"

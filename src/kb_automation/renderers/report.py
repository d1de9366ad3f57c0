"""
Knowledge-base report renderer.

Generates a Markdown summary of the knowledge base from the statistics
collected by the orchestrator.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from kb_automation.renderers.base import BaseRenderer


class ReportRenderer(BaseRenderer):
    """Render the knowledge-base report.

    Features:
        - One table row per document (title, headings, words, diagrams,
          tables, links)
        - Totals line
        - Lint summary when a report is supplied
    """

    template_name = "report.md.j2"

    def __init__(
        self,
        stats: dict[str, Any],
        lint: dict[str, Any] | None = None,
        template_dir: Path | None = None,
        now: datetime | None = None,
    ):
        super().__init__(template_dir=template_dir, now=now)
        self.stats = stats
        self.lint = lint

    def render(self) -> str:
        metadata = self._get_metadata()
        return self._render_template(
            documents=self.stats.get("documents", []),
            totals=self.stats.get("totals", {}),
            lint=self.lint,
            **metadata,
        )

"""
Update block renderer.

Produces the text placed between ``<!--UPDATE-START-->`` and
``<!--UPDATE-END-->``: the configured shields.io badges followed by the
timestamp line.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from kb_automation.config import BadgeConfig, KBConfig
from kb_automation.markers import shields_escape
from kb_automation.renderers.base import BaseRenderer

SHIELDS_URL = "https://img.shields.io/badge"


class UpdateBlockRenderer(BaseRenderer):
    """Render the README update block.

    Features:
        - Badge messages are Jinja2 expressions (``{{ date }}``,
          ``{{ documents }} docs``)
        - Timestamp line always matches ``timestamp_label`` and
          ``timestamp_format``, so a freshly rendered block passes the
          ``timestamp-format`` lint rule

    Examples:
        >>> renderer = UpdateBlockRenderer(KBConfig(), now=datetime(2026, 10, 17, 9, 30))
        >>> print(renderer.render())
        ![Last Updated](https://img.shields.io/badge/Last%20Updated-2026--10--17-blue)
        <BLANKLINE>
        _Last updated: 2026-10-17 09:30 UTC_
    """

    template_name = "update_block.md.j2"

    def __init__(
        self,
        config: KBConfig,
        now: datetime | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(template_dir=config.template_dir, now=now)
        self.config = config
        self.extra_context = dict(context or {})

    def build_context(self) -> dict[str, Any]:
        """Values available to badge messages and the template."""
        context = {
            "documents": 0,
            "diagrams": 0,
        }
        context.update(self.extra_context)
        context.update({
            "now": self.now,
            "date": self.now.strftime(self.config.date_format),
            "timestamp": self.now.strftime(self.config.timestamp_format),
        })
        return context

    def render_badge(self, badge: BadgeConfig, context: dict[str, Any]) -> str:
        message = self._render_string(badge.message, **context).strip()
        url = f"{SHIELDS_URL}/{shields_escape(badge.label)}-{shields_escape(message)}-{shields_escape(badge.color)}"
        image = f"![{badge.label}]({url})"
        if badge.link:
            return f"[{image}]({badge.link})"
        return image

    def render(self) -> str:
        context = self.build_context()
        badges = [self.render_badge(b, context) for b in self.config.badges]
        return self._render_template(
            badges=badges,
            timestamp_label=self.config.timestamp_label,
            **context,
        ).strip("\n")

"""
Base renderer for knowledge-base output.

Provides the Jinja2 environment shared by all renderers: packaged
templates, optional user overrides and the custom filters used by the
templates.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)

from kb_automation.errors import RenderError
from kb_automation.markers import shields_escape

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


def table_cell(value: Any) -> str:
    """Make a value safe for a Markdown table cell."""
    if value is None:
        return "-"
    return str(value).replace("|", "\\|").replace("\n", " ")


class BaseRenderer(ABC):
    """Base class for renderers.

    Manifesto:
        Renderers turn toolkit data into Markdown. Templates own the
        layout; renderers own the data assembly. A repository can override
        any packaged template by placing a file with the same name in
        ``template_dir``.

    Architecture:
        ```
        data ──► Renderer._context()
                       │
                       ▼
               Jinja2 Template (template_dir → packaged templates)
                       │
                       ▼
               Rendered Markdown
        ```

    Tags:
        - renderer
        - template
        - jinja2
    """

    # Template file name
    template_name: str = ""

    def __init__(
        self,
        template_dir: Path | None = None,
        now: datetime | None = None,
    ):
        """Initialize the renderer.

        Args:
            template_dir: Directory whose templates override the packaged ones
            now: Clock value used for timestamps (defaults to current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self.now = now

        loaders = [FileSystemLoader(str(TEMPLATE_DIR))]
        if template_dir is not None:
            loaders.insert(0, FileSystemLoader(str(template_dir)))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self.env.filters["shields"] = shields_escape
        self.env.filters["cell"] = table_cell

    @abstractmethod
    def render(self) -> str:
        """Render the document.

        Returns:
            Rendered content as string
        """

    def _render_template(self, template_name: str | None = None, **context: Any) -> str:
        name = template_name or self.template_name
        try:
            return self.env.get_template(name).render(**context)
        except TemplateError as e:
            raise RenderError(f"Cannot render {name}: {e}", cause=e).with_context(template=name)

    def _render_string(self, source: str, **context: Any) -> str:
        try:
            return self.env.from_string(source).render(**context)
        except TemplateError as e:
            raise RenderError(f"Cannot render {source!r}: {e}", cause=e)

    def _get_metadata(self) -> dict[str, Any]:
        """Common metadata for templates."""
        return {
            "now": self.now,
            "generated_at": self.now.strftime("%Y-%m-%d %H:%M UTC"),
        }

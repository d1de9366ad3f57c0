"""
Renderers module.

Jinja2-based renderers for the README update block and the
knowledge-base report.
"""

from kb_automation.renderers.base import BaseRenderer
from kb_automation.renderers.report import ReportRenderer
from kb_automation.renderers.update_block import UpdateBlockRenderer

__all__ = [
    "BaseRenderer",
    "ReportRenderer",
    "UpdateBlockRenderer",
]

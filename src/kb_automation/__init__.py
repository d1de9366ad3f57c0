"""
kb_automation - maintenance toolkit for the DevOps knowledge base.

Keeps the README's auto-updated badge/timestamp block current and checks
the Markdown documents and their Mermaid diagrams.

Usage:
    >>> from kb_automation import KnowledgeBaseOrchestrator
    >>> orchestrator = KnowledgeBaseOrchestrator(Path("."))
    >>> orchestrator.update(check=True)
"""

__version__ = "0.1.0"

from kb_automation.config import KBConfig, KBSettings
from kb_automation.errors import KBError
from kb_automation.lint import Linter, LintReport
from kb_automation.orchestrator import KnowledgeBaseOrchestrator, UpdateResult

__all__ = [
    "__version__",
    "KBConfig",
    "KBSettings",
    "KBError",
    "Linter",
    "LintReport",
    "KnowledgeBaseOrchestrator",
    "UpdateResult",
]

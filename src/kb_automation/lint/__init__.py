"""
Lint module: editorial checks for knowledge-base documents.
"""

from kb_automation.lint.base import RULES, Finding, LintContext, LintRule, rule
from kb_automation.lint.engine import LintIssue, LintReport, Linter, available_rules

__all__ = [
    "RULES",
    "Finding",
    "LintContext",
    "LintRule",
    "rule",
    "LintIssue",
    "LintReport",
    "Linter",
    "available_rules",
]

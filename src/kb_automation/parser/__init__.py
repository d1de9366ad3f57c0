"""
Parser module for knowledge-base documents.

Scans Markdown into headings, code blocks, tables and links, and
validates the Mermaid diagrams embedded in them.
"""

from kb_automation.parser.markdown import (
    CodeBlock,
    Heading,
    Link,
    MarkdownDocument,
    Table,
    load_document,
    parse_markdown,
    slugify,
)
from kb_automation.parser.mermaid import MermaidDiagram, parse_mermaid, validate_document

__all__ = [
    "CodeBlock",
    "Heading",
    "Link",
    "MarkdownDocument",
    "Table",
    "load_document",
    "parse_markdown",
    "slugify",
    "MermaidDiagram",
    "parse_mermaid",
    "validate_document",
]

"""
Editorial lint rules for knowledge-base documents.

Each function is registered with ``@rule`` and yields ``Finding`` objects.
Rules never raise for content problems; a missing link target or a broken
diagram is a finding, not an exception.
"""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Iterator
from urllib.parse import unquote

from kb_automation.errors import KBError, MarkerError
from kb_automation.lint.base import Finding, LintContext, rule
from kb_automation.markers import find_timestamps
from kb_automation.parser.markdown import CODE_SPAN_RE, MarkdownDocument

_SAME_DIRECTION = {"TD": "TB"}


# =============================================================================
# Structure
# =============================================================================


@rule("fence-unclosed", "error", "fenced code block is never closed")
def check_fence_unclosed(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    for block in doc.code_blocks:
        if not block.closed:
            yield Finding(block.start_line, f"code fence {block.fence} is never closed")


@rule("heading-h1", "error", "document must have exactly one H1 heading")
def check_heading_h1(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    h1s = [h for h in doc.headings if h.level == 1]
    if not h1s:
        yield Finding(1, "document has no H1 heading")
        return
    for extra in h1s[1:]:
        yield Finding(extra.line, f"additional H1 heading '{extra.text}' (first H1 on line {h1s[0].line})")


@rule("heading-increment", "warning", "heading levels increase one step at a time")
def check_heading_increment(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    previous = None
    for heading in doc.headings:
        if previous is not None and heading.level > previous + 1:
            yield Finding(heading.line, f"heading level jumps from H{previous} to H{heading.level}")
        previous = heading.level


@rule("table-columns", "error", "table rows have as many cells as the header")
def check_table_columns(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    for table in doc.tables:
        for row in table.rows:
            if len(row.cells) != table.column_count:
                yield Finding(
                    row.line,
                    f"table row has {len(row.cells)} cells, header has {table.column_count}",
                )


# =============================================================================
# Links
# =============================================================================


def _link_file(doc: MarkdownDocument, ctx: LintContext, target: str) -> Path:
    target = unquote(target)
    if target.startswith("/"):
        return ctx.config.root / target.lstrip("/")
    base = doc.path.parent if doc.path is not None else ctx.config.root
    return base / target


@rule("link-target", "error", "relative links and images point at existing files")
def check_link_target(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    for link in doc.links:
        if link.is_external or not link.path:
            continue
        if not _link_file(doc, ctx, link.path).exists():
            kind = "image" if link.is_image else "link"
            yield Finding(link.line, f"{kind} target '{link.path}' does not exist")


@rule("link-anchor", "error", "#anchors point at headings of the target document")
def check_link_anchor(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    for link in doc.links:
        fragment = link.fragment
        if link.is_external or not fragment:
            continue

        if link.path:
            target = _link_file(doc, ctx, link.path)
            if target.suffix.lower() != ".md" or not target.is_file():
                continue
            try:
                target_doc = ctx.document(target)
            except KBError:
                continue
            where = link.path
        else:
            target_doc = doc
            where = "this document"

        anchor = unquote(fragment).lower()
        if anchor not in target_doc.anchors:
            yield Finding(link.line, f"anchor '#{fragment}' not found in {where}")


# =============================================================================
# Mermaid
# =============================================================================


@rule("mermaid-syntax", "error", "Mermaid blocks parse as valid diagrams")
def check_mermaid_syntax(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    for diagram in ctx.diagrams(doc):
        for diagnostic in diagram.diagnostics:
            severity = "warning" if diagnostic.severity == "warning" else None
            yield Finding(diagnostic.line, diagnostic.message, severity)


@rule("mermaid-type", "warning", "Mermaid diagram type is one of mermaid_types")
def check_mermaid_type(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    allowed = ctx.config.mermaid_types
    for diagram in ctx.diagrams(doc):
        if diagram.diagram_type and diagram.diagram_type not in allowed:
            yield Finding(
                diagram.start_line,
                f"diagram type '{diagram.diagram_type}' is not one of: {', '.join(allowed)}",
            )


@rule("mermaid-direction", "warning", "flowchart direction is one of mermaid_directions")
def check_mermaid_direction(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    allowed = {_SAME_DIRECTION.get(d, d) for d in ctx.config.mermaid_directions}
    if not allowed:
        return
    for diagram in ctx.diagrams(doc):
        if not diagram.is_flowchart or diagram.direction is None:
            continue
        if _SAME_DIRECTION.get(diagram.direction, diagram.direction) not in allowed:
            yield Finding(
                diagram.start_line,
                f"flowchart direction {diagram.direction} is not one of: "
                f"{', '.join(ctx.config.mermaid_directions)}",
            )


# =============================================================================
# Update region
# =============================================================================


@rule("update-markers", "error", "update markers are balanced; update targets contain a region")
def check_update_markers(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    try:
        regions = ctx.regions(doc)
    except MarkerError as e:
        yield Finding(e.context.line or 1, e.message)
        return
    if not regions and ctx.is_update_target(doc):
        yield Finding(
            1,
            f"update target has no <!--{ctx.config.marker_start}--> ... "
            f"<!--{ctx.config.marker_end}--> region",
        )


def _region_timestamps(doc: MarkdownDocument, ctx: LintContext):
    try:
        regions = ctx.regions(doc)
    except MarkerError:
        return []
    config = ctx.config
    return [
        (region, find_timestamps(
            region.content,
            config.timestamp_label,
            config.timestamp_format,
            line_offset=region.start_line - 1,
        ))
        for region in regions
    ]


@rule("timestamp-format", "error", "every update region has a valid timestamp line")
def check_timestamp_format(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    config = ctx.config
    for region, stamps in _region_timestamps(doc, ctx):
        if not stamps:
            yield Finding(
                region.start_line,
                f"update region has no '{config.timestamp_label}: <timestamp>' line "
                f"matching '{config.timestamp_format}'",
            )
        for stamp in stamps:
            if stamp.value is None:
                yield Finding(stamp.line, f"timestamp '{stamp.raw}' is not a valid date")


@rule("timestamp-stale", "warning", "update timestamp is younger than max_age_days")
def check_timestamp_stale(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    max_age = ctx.config.max_age_days
    if max_age is None:
        return
    for _, stamps in _region_timestamps(doc, ctx):
        for stamp in stamps:
            if stamp.value is None:
                continue
            age = ctx.now - stamp.value
            if age > timedelta(days=max_age):
                yield Finding(
                    stamp.line,
                    f"timestamp {stamp.raw} is {age.days} days old (limit {max_age})",
                )


# =============================================================================
# Prose
# =============================================================================


@rule("placeholder", "warning", "no placeholder words outside code")
def check_placeholder(doc: MarkdownDocument, ctx: LintContext) -> Iterator[Finding]:
    words = [w for w in ctx.config.placeholder_words if w]
    if not words:
        return
    pattern = re.compile(r"\b(" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)
    for number, line in enumerate(doc.lines, start=1):
        if doc.is_in_code(number):
            continue
        match = pattern.search(CODE_SPAN_RE.sub(" ", line))
        if match:
            yield Finding(number, f"placeholder '{match.group(1)}'")

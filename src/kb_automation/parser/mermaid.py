"""
Mermaid diagram validator.

Parses the body of ```` ```mermaid ```` blocks so that broken diagrams are
caught before a viewer renders them as an error box. Flowcharts (the only
diagram type used by the knowledge base) are parsed statement by
statement; other diagram types are recognised by their header and their
body is accepted as-is.

Problems are collected as ``Diagnostic`` entries rather than raised: a
document with three broken diagrams reports all three.

Architecture:
    ```
    source ──► strip frontmatter / %% comments
                 │
                 ▼
             header ──► diagram type + direction
                 │
                 ▼ (flowchart / graph only)
             per line ──► keyword statement (subgraph, end, classDef, ...)
                      └─► node/link chain: group (link group)*
                 │
                 ▼
             deferred checks: unclosed subgraphs, linkStyle indexes,
                              undefined classes, empty diagram
    ```

Examples:
    >>> diagram = parse_mermaid("flowchart LR\\n  A[Commit] --> B{Tests pass?}\\n  B -->|yes| C([Deploy])")
    >>> diagram.direction, len(diagram.nodes), len(diagram.edges)
    ('LR', 3, 2)
    >>> diagram.valid
    True
    >>> parse_mermaid("flowchart LR\\n  A --> ").diagnostics[0].message
    'link without target'

Guardrails:
    - Never raise on bad input; every problem becomes a Diagnostic
    - Diagnostic lines are document lines when ``start_line`` is given

Tags:
    parser, mermaid, flowchart, validation
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

FLOWCHART_TYPES = ("flowchart", "graph")

DIAGRAM_TYPES = FLOWCHART_TYPES + (
    "sequenceDiagram",
    "classDiagram",
    "classDiagram-v2",
    "stateDiagram",
    "stateDiagram-v2",
    "erDiagram",
    "gantt",
    "pie",
    "journey",
    "gitGraph",
    "mindmap",
    "timeline",
    "quadrantChart",
    "requirementDiagram",
    "C4Context",
    "C4Container",
    "C4Component",
    "C4Dynamic",
    "C4Deployment",
    "sankey-beta",
    "xychart-beta",
    "block-beta",
)

DIRECTIONS = ("TB", "TD", "BT", "RL", "LR")

# Opening delimiter -> {closing delimiter: shape}. Longest openers first.
SHAPES: list[tuple[str, dict[str, str]]] = [
    ("(((", {")))": "double-circle"}),
    ("((", {"))": "circle"}),
    ("([", {"])": "stadium"}),
    ("[[", {"]]": "subroutine"}),
    ("[(", {")]": "cylinder"}),
    ("{{", {"}}": "hexagon"}),
    ("[/", {"/]": "parallelogram", "\\]": "trapezoid"}),
    ("[\\", {"\\]": "parallelogram-alt", "/]": "trapezoid-alt"}),
    ("[", {"]": "rect"}),
    ("(", {")": "round"}),
    ("{", {"}": "rhombus"}),
    (">", {"]": "asymmetric"}),
]

KEYWORD_RE = re.compile(r"^(subgraph|end|direction|classDef|class|style|linkStyle|click)(?=\s|;|$)")
ID_RE = re.compile(r"\w+(?:-\w+)*")
CLASS_SUFFIX_RE = re.compile(r":::(\w[\w-]*)")
LINK_RE = re.compile(
    r"(?P<head>[<ox])?"
    r"(?:(?P<dotted>-\.+-)|(?P<thick>={2,})|(?P<solid>-{2,})|(?P<invisible>~{3,}))"
    r"(?P<tail>[>ox])?"
)
TEXT_LINK_RE = re.compile(
    r"(?P<head>[<ox])?"
    r"(?:--\s*(?P<solid_text>(?:(?!--)[^|])+?)\s*(?P<solid_tail>-{3,}|-{2,}[>ox])"
    r"|-\.\s*(?P<dotted_text>(?:(?!\.-)[^|])+?)\s*(?P<dotted_tail>\.-+[>ox]?)"
    r"|==\s*(?P<thick_text>(?:(?!==)[^|])+?)\s*(?P<thick_tail>={3,}|={2,}[>ox]))"
)
SUBGRAPH_RE = re.compile(r"^(\w[\w-]*)\s*\[(.*)\]$")


@dataclass
class Diagnostic:
    """A problem found in a diagram."""
    line: int
    message: str
    severity: str = "error"


@dataclass
class Node:
    id: str
    label: str | None
    shape: str
    line: int


@dataclass
class Edge:
    source: str
    target: str
    arrow: str
    label: str | None
    line: int


@dataclass
class Subgraph:
    id: str
    title: str
    line: int


@dataclass
class MermaidDiagram:
    """Result of parsing one Mermaid block."""
    diagram_type: str | None
    direction: str | None = None
    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    subgraphs: list[Subgraph] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    start_line: int = 1

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "warning"]

    @property
    def is_flowchart(self) -> bool:
        return self.diagram_type in FLOWCHART_TYPES

    def to_dict(self) -> dict:
        return {
            "type": self.diagram_type,
            "direction": self.direction,
            "start_line": self.start_line,
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "subgraphs": len(self.subgraphs),
            "valid": self.valid,
            "diagnostics": [
                {"line": d.line, "severity": d.severity, "message": d.message}
                for d in self.diagnostics
            ],
        }


class _StatementError(Exception):
    """Aborts parsing of the current line."""


class FlowchartParser:
    """Statement parser for ``flowchart``/``graph`` bodies.

    One instance parses one diagram; ``feed()`` is called per source line
    and ``finish()`` runs the checks that need the whole diagram.
    """

    def __init__(self, diagram: MermaidDiagram):
        self.diagram = diagram
        self.subgraph_stack: list[Subgraph] = []
        self.class_defs: set[str] = set()
        self.class_uses: list[tuple[str, int]] = []
        self.link_styles: list[tuple[list[str], int]] = []
        self.statements = 0
        # Per-line scanner state
        self.s = ""
        self.pos = 0
        self.line = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def feed(self, text: str, line: int) -> None:
        self.s, self.pos, self.line = text, 0, line
        try:
            while True:
                self._skip_ws()
                if self._at_end():
                    return
                if self.s[self.pos] == ";":
                    self.pos += 1
                    continue
                self._statement()
        except _StatementError as e:
            self._error(str(e))

    def finish(self) -> None:
        for subgraph in self.subgraph_stack:
            self._error(f"subgraph '{subgraph.id}' is never closed", subgraph.line)

        edge_count = len(self.diagram.edges)
        for indexes, line in self.link_styles:
            for index in indexes:
                if index == "default":
                    continue
                if not index.isdigit():
                    self._error(f"linkStyle index '{index}' is not a number", line)
                elif int(index) >= edge_count:
                    self._error(
                        f"linkStyle index {index} is out of range ({edge_count} links defined)",
                        line,
                    )

        for name, line in self.class_uses:
            if name not in self.class_defs:
                self._warn(f"class '{name}' is not defined by classDef", line)

        if self.statements == 0:
            self._error("diagram has no statements", self.diagram.start_line)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _statement(self) -> None:
        # Counted up front so a statement that fails to parse is not also
        # reported as an empty diagram
        self.statements += 1
        keyword = KEYWORD_RE.match(self.s[self.pos:])
        if keyword:
            self.pos += keyword.end()
            rest = self._rest_of_statement()
            self._keyword(keyword.group(1), rest)
            return
        self._chain()

    def _rest_of_statement(self) -> str:
        end = self.s.find(";", self.pos)
        if end == -1:
            end = len(self.s)
        rest = self.s[self.pos:end].strip()
        self.pos = end
        return rest

    def _keyword(self, keyword: str, rest: str) -> None:
        args = rest.split()
        if keyword == "subgraph":
            self._subgraph(rest)
        elif keyword == "end":
            if rest:
                raise _StatementError(f"unexpected text after 'end': '{rest}'")
            if not self.subgraph_stack:
                raise _StatementError("'end' without matching 'subgraph'")
            self.subgraph_stack.pop()
        elif keyword == "direction":
            if len(args) != 1 or args[0] not in DIRECTIONS:
                raise _StatementError(f"invalid direction '{rest}'")
        elif keyword == "classDef":
            if len(args) < 2:
                raise _StatementError("classDef requires a class name and styles")
            self.class_defs.update(n for n in args[0].split(",") if n)
        elif keyword == "class":
            if len(args) < 2:
                raise _StatementError("class requires node ids and a class name")
            self.class_uses.append((args[-1], self.line))
        elif keyword == "style":
            if len(args) < 2:
                raise _StatementError("style requires a node id and styles")
        elif keyword == "linkStyle":
            if len(args) < 2:
                raise _StatementError("linkStyle requires link indexes and styles")
            self.link_styles.append(([i for i in args[0].split(",") if i], self.line))
        elif keyword == "click":
            if len(args) < 2:
                raise _StatementError("click requires a node id and an action")

    def _subgraph(self, rest: str) -> None:
        if not rest:
            raise _StatementError("subgraph requires an id or title")
        match = SUBGRAPH_RE.match(rest)
        if match:
            sub_id, title = match.group(1), match.group(2).strip().strip('"')
        elif rest.startswith('"') and rest.endswith('"') and len(rest) > 1:
            sub_id = title = rest[1:-1]
        else:
            sub_id = title = rest
        subgraph = Subgraph(id=sub_id, title=title, line=self.line)
        self.subgraph_stack.append(subgraph)
        self.diagram.subgraphs.append(subgraph)

    def _chain(self) -> None:
        sources = self._node_group()
        while True:
            self._skip_ws()
            if self._at_end() or self.s[self.pos] == ";":
                return
            arrow, label = self._link()
            if arrow is None:
                raise _StatementError(f"unexpected text '{self.s[self.pos:].strip()}'")
            self._skip_ws()
            if self._at_end() or self.s[self.pos] == ";":
                raise _StatementError("link without target")
            targets = self._node_group()
            for source in sources:
                for target in targets:
                    self.diagram.edges.append(Edge(
                        source=source, target=target, arrow=arrow, label=label, line=self.line,
                    ))
            sources = targets

    def _node_group(self) -> list[str]:
        ids = [self._node()]
        while True:
            save = self.pos
            self._skip_ws()
            if not self._at_end() and self.s[self.pos] == "&":
                self.pos += 1
                self._skip_ws()
                ids.append(self._node())
            else:
                self.pos = save
                return ids

    def _node(self) -> str:
        match = ID_RE.match(self.s, self.pos)
        if not match:
            found = self.s[self.pos:].strip()
            raise _StatementError(f"expected a node id, found '{found}'")
        node_id = match.group(0)
        self.pos = match.end()

        label = None
        shape = "rect"
        for opener, closers in SHAPES:
            if self.s.startswith(opener, self.pos):
                self.pos += len(opener)
                label, shape = self._label(opener, closers)
                break

        suffix = CLASS_SUFFIX_RE.match(self.s, self.pos)
        if suffix:
            self.class_uses.append((suffix.group(1), self.line))
            self.pos = suffix.end()

        existing = self.diagram.nodes.get(node_id)
        if existing is None:
            self.diagram.nodes[node_id] = Node(id=node_id, label=label, shape=shape, line=self.line)
        elif label is not None:
            existing.label, existing.shape = label, shape
        return node_id

    def _label(self, opener: str, closers: dict[str, str]) -> tuple[str, str]:
        expected = " or ".join(f"'{c}'" for c in closers)
        if self.s.startswith('"', self.pos):
            end_quote = self.s.find('"', self.pos + 1)
            if end_quote == -1:
                raise _StatementError("unterminated quoted label")
            label = self.s[self.pos + 1:end_quote]
            self.pos = end_quote + 1
            for closer, shape in closers.items():
                if self.s.startswith(closer, self.pos):
                    self.pos += len(closer)
                    return label, shape
            raise _StatementError(f"expected {expected} after quoted label")

        best: tuple[int, str, str] | None = None
        for closer, shape in closers.items():
            index = self.s.find(closer, self.pos)
            if index != -1 and (best is None or index < best[0]):
                best = (index, closer, shape)
        if best is None:
            raise _StatementError(f"unterminated node label, expected {expected}")
        index, closer, shape = best
        label = self.s[self.pos:index].strip()
        if any(ch in label for ch in "[](){}"):
            raise _StatementError(f"label '{label}' contains brackets; wrap it in double quotes")
        self.pos = index + len(closer)
        return label, shape

    def _link(self) -> tuple[str | None, str | None]:
        match = LINK_RE.match(self.s, self.pos)
        if match and self._plain_link_is_complete(match):
            self.pos = match.end()
            arrow = match.group(0)
            label = self._pipe_label()
            return arrow, label

        match = TEXT_LINK_RE.match(self.s, self.pos)
        if match:
            self.pos = match.end()
            text = match.group("solid_text") or match.group("dotted_text") or match.group("thick_text")
            tail = match.group("solid_tail") or match.group("dotted_tail") or match.group("thick_tail")
            arrow = (match.group("head") or "") + tail
            label = text.strip().strip('"')
            pipe = self._pipe_label()
            return arrow, pipe if pipe is not None else label

        return None, None

    @staticmethod
    def _plain_link_is_complete(match: re.Match[str]) -> bool:
        tail = match.group("tail")
        if match.group("solid"):
            return tail is not None or len(match.group("solid")) >= 3
        if match.group("thick"):
            return tail is not None or len(match.group("thick")) >= 3
        if match.group("invisible"):
            return match.group("head") is None and tail is None
        return True

    def _pipe_label(self) -> str | None:
        save = self.pos
        self._skip_ws()
        if self._at_end() or self.s[self.pos] != "|":
            self.pos = save
            return None
        end = self.s.find("|", self.pos + 1)
        if end == -1:
            raise _StatementError("unterminated link label")
        label = self.s[self.pos + 1:end].strip().strip('"')
        self.pos = end + 1
        return label

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _skip_ws(self) -> None:
        while self.pos < len(self.s) and self.s[self.pos] in " \t":
            self.pos += 1

    def _at_end(self) -> bool:
        return self.pos >= len(self.s)

    def _error(self, message: str, line: int | None = None) -> None:
        self.diagram.diagnostics.append(Diagnostic(line=line or self.line, message=message))

    def _warn(self, message: str, line: int | None = None) -> None:
        self.diagram.diagnostics.append(
            Diagnostic(line=line or self.line, message=message, severity="warning")
        )


def _strip_frontmatter(lines: list[str]) -> int:
    """Index of the first line after an optional ``---`` frontmatter block."""
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index < len(lines) and lines[index].strip() == "---":
        for end in range(index + 1, len(lines)):
            if lines[end].strip() == "---":
                return end + 1
    return 0


def _is_comment(line: str) -> bool:
    return line.startswith("%%")


def parse_mermaid(source: str, start_line: int = 1) -> MermaidDiagram:
    """Parse one Mermaid diagram.

    Args:
        source: Content of the code block (without fences)
        start_line: Document line of the first content line

    Returns:
        MermaidDiagram with nodes, edges and diagnostics
    """
    lines = source.splitlines()
    diagram = MermaidDiagram(diagram_type=None, start_line=start_line)
    index = _strip_frontmatter(lines)

    header_index = None
    while index < len(lines):
        stripped = lines[index].strip()
        if stripped and not _is_comment(stripped):
            header_index = index
            break
        index += 1

    if header_index is None:
        diagram.diagnostics.append(Diagnostic(line=start_line, message="empty diagram"))
        return diagram

    header_line = start_line + header_index
    header, _, inline_body = lines[header_index].strip().partition(";")
    tokens = header.split()
    kind = tokens[0]

    if kind not in DIAGRAM_TYPES:
        diagram.diagnostics.append(Diagnostic(line=header_line, message=f"unknown diagram type '{kind}'"))
        return diagram
    diagram.diagram_type = kind

    if kind not in FLOWCHART_TYPES:
        return diagram

    diagram.direction = "TB"
    if len(tokens) > 2:
        diagram.diagnostics.append(Diagnostic(
            line=header_line, message=f"unexpected text after direction: '{' '.join(tokens[2:])}'",
        ))
    if len(tokens) > 1:
        direction = tokens[1].upper()
        if direction not in DIRECTIONS:
            diagram.diagnostics.append(Diagnostic(line=header_line, message=f"unknown direction '{tokens[1]}'"))
        else:
            diagram.direction = direction

    parser = FlowchartParser(diagram)
    if inline_body.strip():
        parser.feed(inline_body, header_line)
    for offset, line in enumerate(lines[header_index + 1:], start=header_index + 1):
        stripped = line.strip()
        if not stripped or _is_comment(stripped):
            continue
        parser.feed(stripped, start_line + offset)
    parser.finish()
    return diagram


def validate_document(doc) -> list[MermaidDiagram]:
    """Parse every Mermaid block of a ``MarkdownDocument``."""
    return [
        parse_mermaid(block.content, start_line=block.content_start_line)
        for block in doc.mermaid_blocks
    ]

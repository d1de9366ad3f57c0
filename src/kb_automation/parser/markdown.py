"""
Line-oriented Markdown scanner.

Extracts the constructs the toolkit checks (headings, fenced code blocks,
pipe tables, links) from a knowledge-base document while tracking line
numbers. It is deliberately not a full CommonMark parser: setext headings,
HTML blocks and reference-style link *uses* are not interpreted.

Architecture:
    ```
    text ──► lines
              │
              ├──► fence pass ──► CodeBlock[] + code line set
              │
              └──► prose pass (lines outside fences)
                        ├──► Heading[]   (ATX only)
                        ├──► Table[]     (header + delimiter + body)
                        └──► Link[]      (inline + reference definitions)
    ```

Examples:
    >>> doc = parse_markdown("# Title\\n\\nSee [setup](docs/setup.md#install).\\n")
    >>> doc.title
    'Title'
    >>> doc.links[0].path, doc.links[0].fragment
    ('docs/setup.md', 'install')

Guardrails:
    - Anything inside a fenced block is content, never structure
    - Line numbers are 1-based and refer to the original text

Tags:
    parser, markdown, scanner
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from kb_automation.errors import DocumentNotFoundError, SourceError

FENCE_OPEN_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")
FENCE_CLOSE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})[ \t]*$")
HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
DELIMITER_CELL_RE = re.compile(r"^\s*:?-+:?\s*$")
CODE_SPAN_RE = re.compile(r"(`+)(.+?)\1")
LINK_RE = re.compile(
    r"(!?)\[((?:[^\[\]]|\[[^\]]*\])*)\]"
    r"\(\s*(<[^>]*>|[^)\s]+)(?:\s+(?:\"[^\"]*\"|'[^']*'))?\s*\)"
)
REFERENCE_DEF_RE = re.compile(r"^ {0,3}\[(?!\^)([^\]]+)\]:\s*(<[^>]*>|\S+)")
EXTERNAL_RE = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*://|mailto:|tel:)")
WORD_RE = re.compile(r"\w[\w'’-]*")


@dataclass
class Heading:
    """An ATX heading."""
    level: int
    text: str
    line: int
    anchor: str = ""


@dataclass
class CodeBlock:
    """A fenced code block.

    ``start_line`` is the opening fence, ``end_line`` the closing fence (or
    the last line of the file when the block is never closed).
    """
    language: str
    info: str
    content: str
    start_line: int
    end_line: int
    fence: str
    closed: bool = True

    @property
    def is_mermaid(self) -> bool:
        return self.language.lower() == "mermaid"

    @property
    def content_start_line(self) -> int:
        """Document line of the first content line."""
        return self.start_line + 1


@dataclass
class TableRow:
    """A table body row."""
    cells: list[str]
    line: int


@dataclass
class Table:
    """A pipe table: header row, delimiter row and body rows."""
    line: int
    header: list[str]
    separator_line: int
    rows: list[TableRow] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.header)


@dataclass
class Link:
    """An inline link, image or reference definition."""
    text: str
    target: str
    line: int
    is_image: bool = False

    @property
    def is_external(self) -> bool:
        return bool(EXTERNAL_RE.match(self.target))

    @property
    def path(self) -> str:
        return self.target.split("#", 1)[0]

    @property
    def fragment(self) -> str | None:
        if "#" not in self.target:
            return None
        return self.target.split("#", 1)[1]


@dataclass
class MarkdownDocument:
    """Scanned representation of one Markdown file."""
    path: Path | None
    text: str
    lines: list[str]
    headings: list[Heading] = field(default_factory=list)
    code_blocks: list[CodeBlock] = field(default_factory=list)
    tables: list[Table] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)
    code_lines: set[int] = field(default_factory=set)

    @property
    def name(self) -> str:
        return self.path.as_posix() if self.path else "<text>"

    @property
    def title(self) -> str | None:
        """Text of the first H1 heading."""
        for heading in self.headings:
            if heading.level == 1:
                return heading.text
        return None

    @property
    def anchors(self) -> set[str]:
        return {h.anchor for h in self.headings}

    @property
    def mermaid_blocks(self) -> list[CodeBlock]:
        return [b for b in self.code_blocks if b.is_mermaid]

    @property
    def word_count(self) -> int:
        """Words of prose, excluding code blocks, code spans and link targets."""
        total = 0
        for number, line in enumerate(self.lines, start=1):
            if number in self.code_lines:
                continue
            prose = CODE_SPAN_RE.sub(" ", line)
            prose = re.sub(r"\]\([^)]*\)", "]", prose)
            prose = re.sub(r"<!--.*?-->", " ", prose)
            total += len(WORD_RE.findall(prose))
        return total

    def is_in_code(self, line: int) -> bool:
        """Check whether a 1-based line belongs to a fenced code block."""
        return line in self.code_lines


def slugify(text: str) -> str:
    """GitHub-style heading anchor.

    >>> slugify("CI/CD: Pipelines & `Tools`")
    'cicd-pipelines--tools'
    """
    slug = text.strip().lower()
    slug = re.sub(r"<[^>]+>", "", slug)
    slug = re.sub(r"!?\[([^\]]*)\]\([^)]*\)", r"\1", slug)
    slug = re.sub(r"[^\w\- ]", "", slug)
    return slug.replace(" ", "-")


def split_table_row(line: str) -> list[str]:
    """Split a pipe-table row into stripped cells.

    Escaped pipes and pipes inside code spans stay in the cell.
    """
    s = line.strip()
    cells: list[str] = []
    buf: list[str] = []
    in_code = False
    ended_with_pipe = False
    i = 0
    while i < len(s):
        ch = s[i]
        ended_with_pipe = False
        if ch == "\\" and i + 1 < len(s) and s[i + 1] == "|":
            buf.append("|")
            i += 2
            continue
        if ch == "`":
            in_code = not in_code
        elif ch == "|" and not in_code:
            cells.append("".join(buf).strip())
            buf = []
            ended_with_pipe = True
            i += 1
            continue
        buf.append(ch)
        i += 1

    if not ended_with_pipe:
        cells.append("".join(buf).strip())
    if s.startswith("|") and cells:
        cells = cells[1:]
    return cells


def _scan_fences(lines: list[str]) -> tuple[list[CodeBlock], set[int]]:
    blocks: list[CodeBlock] = []
    code_lines: set[int] = set()
    i = 0
    while i < len(lines):
        match = FENCE_OPEN_RE.match(lines[i])
        if not match:
            i += 1
            continue

        fence, info = match.group(2), match.group(3).strip()
        if fence[0] == "`" and "`" in info:
            # Backtick fences cannot carry backticks in the info string
            i += 1
            continue

        start = i
        content: list[str] = []
        closed = False
        i += 1
        while i < len(lines):
            close = FENCE_CLOSE_RE.match(lines[i])
            if close and close.group(1)[0] == fence[0] and len(close.group(1)) >= len(fence):
                closed = True
                break
            content.append(lines[i])
            i += 1

        end = i if closed else len(lines) - 1
        language = info.split()[0] if info else ""
        blocks.append(CodeBlock(
            language=language,
            info=info,
            content="\n".join(content),
            start_line=start + 1,
            end_line=end + 1,
            fence=fence,
            closed=closed,
        ))
        code_lines.update(range(start + 1, end + 2))
        i += 1
    return blocks, code_lines


def _scan_links(text: str, line: int) -> list[Link]:
    links = []
    for match in LINK_RE.finditer(text):
        target = match.group(3)
        if target.startswith("<") and target.endswith(">"):
            target = target[1:-1]
        link_text = match.group(2)
        links.append(Link(text=link_text, target=target, line=line, is_image=bool(match.group(1))))
        # Badges are images nested inside links
        links.extend(_scan_links(link_text, line))
    return links


def _assign_anchors(headings: list[Heading]) -> None:
    seen: dict[str, int] = {}
    for heading in headings:
        base = slugify(heading.text)
        count = seen.get(base, 0)
        heading.anchor = base if count == 0 else f"{base}-{count}"
        seen[base] = count + 1


def parse_markdown(text: str, path: Path | None = None) -> MarkdownDocument:
    """Scan Markdown text into a ``MarkdownDocument``.

    Args:
        text: Document content
        path: Source path, used for reporting only

    Returns:
        MarkdownDocument with headings, code blocks, tables and links
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines()
    blocks, code_lines = _scan_fences(lines)
    doc = MarkdownDocument(
        path=Path(path) if path is not None else None,
        text=text,
        lines=lines,
        code_blocks=blocks,
        code_lines=code_lines,
    )

    i = 0
    while i < len(lines):
        number = i + 1
        line = lines[i]
        if number in code_lines:
            i += 1
            continue

        heading = HEADING_RE.match(line)
        if heading:
            doc.headings.append(Heading(
                level=len(heading.group(1)),
                text=(heading.group(2) or "").strip(),
                line=number,
            ))
            i += 1
            continue

        if "|" in line and i + 1 < len(lines) and (number + 1) not in code_lines:
            table = _match_table(lines, i, code_lines)
            if table is not None:
                doc.tables.append(table)
                for row_line in [table.line] + [r.line for r in table.rows]:
                    doc.links.extend(_scan_links(CODE_SPAN_RE.sub(" ", lines[row_line - 1]), row_line))
                i = (table.rows[-1].line if table.rows else table.separator_line)
                continue

        reference = REFERENCE_DEF_RE.match(line)
        if reference:
            target = reference.group(2).strip("<>")
            doc.links.append(Link(text=reference.group(1), target=target, line=number))
            i += 1
            continue

        doc.links.extend(_scan_links(CODE_SPAN_RE.sub(" ", line), number))
        i += 1

    _assign_anchors(doc.headings)
    return doc


def _match_table(lines: list[str], index: int, code_lines: set[int]) -> Table | None:
    delimiter = lines[index + 1]
    if "|" not in delimiter:
        return None
    header = split_table_row(lines[index])
    delimiter_cells = split_table_row(delimiter)
    if not delimiter_cells or len(delimiter_cells) != len(header):
        return None
    if not all(DELIMITER_CELL_RE.match(cell) for cell in delimiter_cells):
        return None

    table = Table(line=index + 1, header=header, separator_line=index + 2)
    j = index + 2
    while j < len(lines):
        row = lines[j]
        if (j + 1) in code_lines or not row.strip() or "|" not in row:
            break
        table.rows.append(TableRow(cells=split_table_row(row), line=j + 1))
        j += 1
    return table


def load_document(path: Path) -> MarkdownDocument:
    """Read and scan a Markdown file.

    Raises:
        DocumentNotFoundError: if the file does not exist
        SourceError: if the file cannot be read or decoded
    """
    path = Path(path)
    if not path.is_file():
        raise DocumentNotFoundError(str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceError(f"Cannot read {path}: {e}", cause=e).with_context(path=str(path))
    return parse_markdown(text, path)

"""
Update regions: the badge/timestamp block in the README.

A region is the text between two HTML comment markers::

    <!--UPDATE-START-->
    ![Last Updated](https://img.shields.io/badge/Last%20Updated-2026--10--17-blue)

    _Last updated: 2026-10-17 09:30 UTC_
    <!--UPDATE-END-->

Everything outside the markers is preserved byte for byte, including the
file's line endings. Markers shown inside fenced code blocks (for example
in documentation explaining the convention) are not regions.

Examples:
    >>> text = "intro\\n<!--UPDATE-START-->\\nold\\n<!--UPDATE-END-->\\n"
    >>> new_text, count = replace_regions(text, "new")
    >>> count
    1
    >>> replace_regions(new_text, "new")[0] == new_text
    True

Guardrails:
    - Unbalanced or nested markers raise MarkerError; nothing is rewritten
    - Replacing twice with the same block is a no-op the second time
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

from kb_automation.errors import InvalidConfigError, MarkerError
from kb_automation.parser.markdown import CODE_SPAN_RE, parse_markdown

DEFAULT_START = "UPDATE-START"
DEFAULT_END = "UPDATE-END"

_DIRECTIVES = {
    "Y": r"\d{4}",
    "y": r"\d{2}",
    "m": r"\d{1,2}",
    "d": r"\d{1,2}",
    "H": r"\d{1,2}",
    "I": r"\d{1,2}",
    "M": r"\d{2}",
    "S": r"\d{2}",
    "p": r"(?:AM|PM)",
    "b": r"[A-Za-z]{3}",
    "B": r"[A-Za-z]+",
    "a": r"[A-Za-z]{3}",
    "A": r"[A-Za-z]+",
    "j": r"\d{3}",
    "Z": r"[A-Za-z]+",
    "z": r"[+-]\d{4}",
    "%": "%",
}


@dataclass
class UpdateRegion:
    """One marker pair.

    ``start_offset``/``end_offset`` delimit the inner text (after the
    opening marker, before the closing marker).
    """
    start_line: int
    end_line: int
    start_offset: int
    end_offset: int
    content: str


@dataclass
class TimestampMatch:
    """A ``<label>: <timestamp>`` occurrence."""
    line: int
    raw: str
    value: datetime | None


def _marker_re(name: str) -> re.Pattern[str]:
    return re.compile(r"<!--\s*" + re.escape(name) + r"\s*-->")


def find_regions(
    text: str,
    start: str = DEFAULT_START,
    end: str = DEFAULT_END,
) -> list[UpdateRegion]:
    """Locate every update region in ``text``.

    Raises:
        MarkerError: closing marker without opening marker, nested opening
            marker, or opening marker never closed
    """
    code_lines = parse_markdown(text).code_lines
    start_re, end_re = _marker_re(start), _marker_re(end)

    tokens: list[tuple[int, int, str, int]] = []
    offset = 0
    for number, line in enumerate(text.splitlines(keepends=True), start=1):
        if number not in code_lines:
            spans = [m.span() for m in CODE_SPAN_RE.finditer(line)]
            for kind, marker_re in (("start", start_re), ("end", end_re)):
                for match in marker_re.finditer(line):
                    if any(s <= match.start() < e for s, e in spans):
                        continue
                    tokens.append((offset + match.start(), offset + match.end(), kind, number))
        offset += len(line)
    tokens.sort()

    regions: list[UpdateRegion] = []
    opened: tuple[int, int, str, int] | None = None
    for token in tokens:
        token_start, token_end, kind, number = token
        if kind == "start":
            if opened is not None:
                raise MarkerError(
                    f"<!--{start}--> opened again before <!--{end}--> (region opened on line {opened[3]})"
                ).with_context(line=number, rule="update-markers")
            opened = token
            continue

        if opened is None:
            raise MarkerError(
                f"<!--{end}--> without a preceding <!--{start}-->"
            ).with_context(line=number, rule="update-markers")
        regions.append(UpdateRegion(
            start_line=opened[3],
            end_line=number,
            start_offset=opened[1],
            end_offset=token_start,
            content=text[opened[1]:token_start],
        ))
        opened = None

    if opened is not None:
        raise MarkerError(
            f"<!--{start}--> is never closed by <!--{end}-->"
        ).with_context(line=opened[3], rule="update-markers")
    return regions


def replace_regions(
    text: str,
    block: str,
    start: str = DEFAULT_START,
    end: str = DEFAULT_END,
) -> tuple[str, int]:
    """Replace the inner text of every region with ``block``.

    Returns:
        Tuple of (new text, number of regions replaced)
    """
    regions = find_regions(text, start, end)
    if not regions:
        return text, 0

    newline = "\r\n" if "\r\n" in text else "\n"
    body = block.strip("\r\n").replace("\r\n", "\n").replace("\n", newline)
    inner = f"{newline}{body}{newline}"

    pieces: list[str] = []
    cursor = 0
    for region in regions:
        pieces.append(text[cursor:region.start_offset])
        pieces.append(inner)
        cursor = region.end_offset
    pieces.append(text[cursor:])
    return "".join(pieces), len(regions)


def shields_escape(value: str) -> str:
    """Escape text for a shields.io static badge path segment.

    >>> shields_escape("2026-10-17")
    '2026--10--17'
    >>> shields_escape("Last Updated")
    'Last%20Updated'
    """
    return quote(str(value).replace("-", "--").replace("_", "__"), safe="-_.~")


def timestamp_pattern(fmt: str) -> str:
    """Translate a strftime format into a regular expression.

    Raises:
        InvalidConfigError: for directives that cannot be matched reliably
    """
    parts: list[str] = []
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch != "%":
            parts.append(re.escape(ch))
            i += 1
            continue
        if i + 1 >= len(fmt):
            raise InvalidConfigError("timestamp_format", fmt, "timestamp_format ends with a lone '%'")
        directive = fmt[i + 1]
        if directive not in _DIRECTIVES:
            raise InvalidConfigError(
                "timestamp_format",
                fmt,
                f"Unsupported directive %{directive} in timestamp_format",
            )
        parts.append(_DIRECTIVES[directive] if directive != "%" else "%")
        i += 2
    return "".join(parts)


def parse_timestamp(raw: str, fmt: str) -> datetime | None:
    """Parse a timestamp; naive values are taken as UTC."""
    try:
        value = datetime.strptime(raw, fmt)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def find_timestamps(
    text: str,
    label: str,
    fmt: str,
    line_offset: int = 0,
) -> list[TimestampMatch]:
    """Find ``<label>: <timestamp>`` occurrences, one per line at most.

    Args:
        text: Text to search
        label: Text preceding the colon (case-insensitive)
        fmt: strftime format of the timestamp
        line_offset: Added to line numbers (for text cut from a document)
    """
    regex = re.compile(re.escape(label) + r":\s*(" + timestamp_pattern(fmt) + r")", re.IGNORECASE)
    matches = []
    for number, line in enumerate(text.splitlines(), start=1):
        match = regex.search(line)
        if match:
            raw = match.group(1)
            matches.append(TimestampMatch(
                line=number + line_offset,
                raw=raw,
                value=parse_timestamp(raw, fmt),
            ))
    return matches

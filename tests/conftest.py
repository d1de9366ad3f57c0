"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from kb_automation.config import KBConfig

NOW = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)

EXPECTED_BLOCK = (
    "![Last Updated](https://img.shields.io/badge/Last%20Updated-2026--10--17-blue)\n"
    "\n"
    "_Last updated: 2026-10-17 09:30 UTC_"
)

README = """\
# Test Knowledge Base

<!--UPDATE-START-->
![Last Updated](https://img.shields.io/badge/Last%20Updated-2026--01--01-blue)

_Last updated: 2026-01-01 00:00 UTC_
<!--UPDATE-END-->

Read the [guide](docs/guide.md#setup) first.
"""

GUIDE = """\
# Guide

## Setup

Install the tools.

| Tool | Purpose |
|---|---|
| git | Version control |

```mermaid
flowchart LR
    A[Write] --> B[Review]
```

Back to the [index](../README.md).
"""


def write(root: Path, relative: str, text: str, newline: str | None = None) -> Path:
    """Write a file below root, creating parent directories."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline=newline)
    return path


@pytest.fixture
def now():
    """Fixed clock for timestamps and staleness."""
    return NOW


@pytest.fixture
def kb_root(tmp_path):
    """A small, lint-clean knowledge base with a stale update block."""
    write(tmp_path, "README.md", README)
    write(tmp_path, "docs/guide.md", GUIDE)
    return tmp_path


@pytest.fixture
def config(kb_root):
    """Default configuration rooted at the temporary knowledge base."""
    return KBConfig(root=kb_root)

"""Tests for the Markdown document scanner."""

import pytest

from kb_automation.errors import DocumentNotFoundError
from kb_automation.parser.markdown import (
    load_document,
    parse_markdown,
    slugify,
    split_table_row,
)


# =============================================================================
# Headings
# =============================================================================

class TestHeadings:
    """Tests for ATX heading detection and anchors."""

    def test_levels_and_lines(self):
        """Test that headings carry level, text and line."""
        doc = parse_markdown("# Title\n\ntext\n\n## Section ##\n### Sub\n")

        assert [(h.level, h.text, h.line) for h in doc.headings] == [
            (1, "Title", 1),
            (2, "Section", 5),
            (3, "Sub", 6),
        ]
        assert doc.title == "Title"

    def test_hash_without_space_is_not_heading(self):
        """Test that '#tag' is prose."""
        doc = parse_markdown("#tag\n")
        assert doc.headings == []

    def test_headings_inside_fences_ignored(self):
        """Test that '#' lines in code blocks are not headings."""
        doc = parse_markdown("# Title\n\n```bash\n# a comment\n```\n")
        assert [h.text for h in doc.headings] == ["Title"]

    def test_duplicate_anchors_get_suffix(self):
        """Test GitHub-style de-duplication of anchors."""
        doc = parse_markdown("# Doc\n## Setup\n## Setup\n## Setup\n")
        assert [h.anchor for h in doc.headings] == ["doc", "setup", "setup-1", "setup-2"]

    def test_slugify(self):
        """Test slug rules for punctuation, markup and spaces."""
        assert slugify("CI/CD: Pipelines & `Tools`") == "cicd-pipelines--tools"
        assert slugify("Infrastructure as Code") == "infrastructure-as-code"
        assert slugify("snake_case and kebab-case") == "snake_case-and-kebab-case"


# =============================================================================
# Code blocks
# =============================================================================

class TestCodeBlocks:
    """Tests for fenced code blocks."""

    def test_block_fields(self):
        """Test language, content and line numbers of a closed block."""
        doc = parse_markdown("intro\n```mermaid\nflowchart LR\n  A --> B\n```\n")
        block = doc.code_blocks[0]

        assert block.language == "mermaid"
        assert block.is_mermaid
        assert block.content == "flowchart LR\n  A --> B"
        assert (block.start_line, block.end_line) == (2, 5)
        assert block.content_start_line == 3
        assert block.closed
        assert doc.mermaid_blocks == [block]

    def test_unclosed_fence_runs_to_end(self):
        """Test that an unclosed fence is reported and swallows the rest."""
        doc = parse_markdown("# T\n```python\nx = 1\n## Not a heading\n")
        block = doc.code_blocks[0]

        assert not block.closed
        assert block.end_line == 4
        assert [h.text for h in doc.headings] == ["T"]

    def test_closing_fence_must_match(self):
        """Test that a shorter or different fence does not close a block."""
        doc = parse_markdown("````\n```\n~~~\n````\nafter\n")
        block = doc.code_blocks[0]

        assert block.closed
        assert block.content == "```\n~~~"
        assert not doc.is_in_code(5)
        assert doc.is_in_code(1) and doc.is_in_code(4)


# =============================================================================
# Tables
# =============================================================================

class TestTables:
    """Tests for pipe tables."""

    def test_table_rows(self):
        """Test header, separator and body rows."""
        doc = parse_markdown("| A | B |\n|---|:-:|\n| 1 | 2 |\n| 3 | 4 |\n\nafter | pipe\n")
        table = doc.tables[0]

        assert table.header == ["A", "B"]
        assert table.separator_line == 2
        assert [r.cells for r in table.rows] == [["1", "2"], ["3", "4"]]
        assert [r.line for r in table.rows] == [3, 4]
        assert table.column_count == 2

    def test_escaped_and_code_pipes_do_not_split(self):
        """Test that \\| and pipes in code spans stay in the cell."""
        assert split_table_row(r"| a \| b | `x | y` |") == ["a | b", "`x | y`"]

    def test_no_delimiter_row_is_not_table(self):
        """Test that a line with pipes alone is not a table."""
        doc = parse_markdown("a | b\nplain text\n")
        assert doc.tables == []


# =============================================================================
# Links
# =============================================================================

class TestLinks:
    """Tests for links, images and reference definitions."""

    def test_inline_links(self):
        """Test text, target, path and fragment."""
        doc = parse_markdown('See [guide](docs/guide.md#setup "Guide") and [site](https://example.com).\n')
        first, second = doc.links

        assert (first.text, first.path, first.fragment) == ("guide", "docs/guide.md", "setup")
        assert not first.is_external
        assert second.is_external
        assert second.fragment is None

    def test_badge_image_inside_link(self):
        """Test that an image nested in a link is collected too."""
        doc = parse_markdown("[![Build](img/build.svg)](https://ci.example.com)\n")
        targets = {(link.target, link.is_image) for link in doc.links}

        assert targets == {("https://ci.example.com", False), ("img/build.svg", True)}

    def test_links_in_code_ignored(self):
        """Test that links in code spans and fences are not collected."""
        doc = parse_markdown("`[a](b.md)`\n```\n[c](d.md)\n```\n")
        assert doc.links == []

    def test_reference_definition(self):
        """Test that reference definitions are collected as links."""
        doc = parse_markdown("[docs]: <docs/index.md>\n")
        assert doc.links[0].target == "docs/index.md"

    def test_footnote_definition_is_not_link(self):
        """Test that footnote definitions are not read as reference links."""
        doc = parse_markdown("# Doc\n\nSee note[^1].\n\n[^1]: Source material here.\n")
        assert doc.links == []

    def test_links_in_table_cells(self):
        """Test that links inside table rows are collected."""
        doc = parse_markdown("| Doc |\n|---|\n| [A](a.md) |\n")
        assert [(link.target, link.line) for link in doc.links] == [("a.md", 3)]


# =============================================================================
# Documents
# =============================================================================

class TestDocument:
    """Tests for document-level helpers and loading."""

    def test_word_count_excludes_code(self):
        """Test that code, link targets and comments are not words."""
        doc = parse_markdown("Hello world `code` [link](x.md) <!--UPDATE-START-->\n```\nnot counted\n```\n")
        assert doc.word_count == 3

    def test_load_document(self, tmp_path):
        """Test loading from disk strips a BOM."""
        path = tmp_path / "doc.md"
        path.write_text("\ufeff# Title\n", encoding="utf-8")

        doc = load_document(path)

        assert doc.path == path
        assert doc.title == "Title"
        assert not doc.text.startswith("\ufeff")

    def test_load_missing_document(self, tmp_path):
        """Test that a missing file raises DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError) as exc_info:
            load_document(tmp_path / "missing.md")
        assert exc_info.value.context.path.endswith("missing.md")

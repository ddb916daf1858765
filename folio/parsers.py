"""Source parsers for Folio.

Parsers turn an authored file into a SourceDocument: its frontmatter and an
ordered list of content blocks. Each parser handles one file format.

Key classes:
- MarkdownParser: ``.md`` files with optional YAML frontmatter.
- NotebookParser: Jupyter ``.ipynb`` notebooks (nbformat 4).
- ParserRegistry: Picks the parser for a path.

Markdown is parsed with mistune's AST mode. Standalone images, links,
headings and code become their own blocks; everything else is kept as
Markdown text in a Paragraph and rendered later.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import mistune
from mistune.renderers.markdown import MarkdownRenderer

from .blocks import CodeExample, ContentBlock, Heading, Image, Link, Paragraph
from .extractors import extract_frontmatter
from .utils import is_markdown, is_notebook

_ast_markdown = mistune.create_markdown(renderer="ast")
_markdown_writer = MarkdownRenderer()

# Notebook cell tags understood by Jupyter Book; kept for compatibility
REMOVE_CELL_TAG = "remove-cell"
REMOVE_OUTPUT_TAG = "remove-output"


@dataclass
class SourceDocument:
    """Result of parsing one source file."""

    frontmatter: dict[str, Any] = field(default_factory=dict)
    blocks: list[ContentBlock] = field(default_factory=list)


def _plain_text(tokens: list[dict[str, Any]]) -> str:
    parts: list[str] = []
    for token in tokens:
        kind = token["type"]
        if kind in ("softbreak", "linebreak"):
            parts.append(" ")
        elif "children" in token:
            parts.append(_plain_text(token["children"]))
        else:
            parts.append(token.get("raw", ""))
    return "".join(parts)


def _is_blank(token: dict[str, Any]) -> bool:
    if token["type"] in ("softbreak", "linebreak"):
        return True
    return token["type"] == "text" and not token.get("raw", "").strip()


def _drop_reference_labels(token: dict[str, Any]) -> None:
    # Reference definitions are not carried into block text; inline the URL instead.
    token.pop("label", None)
    for child in token.get("children", ()):
        _drop_reference_labels(child)


def _token_to_block(token: dict[str, Any], state) -> ContentBlock | None:
    kind = token["type"]
    if kind == "blank_line":
        return None
    if kind == "heading":
        text = " ".join(_plain_text(token["children"]).split())
        return Heading(text=text, level=token["attrs"]["level"])
    if kind == "block_code":
        info = (token.get("attrs") or {}).get("info") or ""
        language = info.split()[0] if info.strip() else None
        return CodeExample(source_text=token["raw"].rstrip("\n"), language=language)
    if kind == "paragraph":
        children = [c for c in token["children"] if not _is_blank(c)]
        if len(children) == 1:
            only = children[0]
            attrs = only.get("attrs") or {}
            if only["type"] == "image":
                return Image(
                    uri=attrs["url"],
                    alt_text=_plain_text(only["children"]),
                    title=attrs.get("title"),
                )
            if only["type"] == "link":
                return Link(uri=attrs["url"], label=_plain_text(only["children"]))
    _drop_reference_labels(token)
    text = _markdown_writer.render_token(token, state).strip()
    return Paragraph(text=text) if text else None


def parse_markdown_blocks(text: str) -> list[ContentBlock]:
    """Split Markdown text into an ordered list of content blocks.

    Args:
        text: Markdown source without frontmatter.

    Returns:
        Blocks in source order.
    """
    if not text.strip():
        return []
    tokens, state = _ast_markdown.parse(text)
    blocks: list[ContentBlock] = []
    for token in tokens:
        block = _token_to_block(token, state)
        if block is not None:
            blocks.append(block)
    return blocks


class MarkdownParser:
    """Parses Markdown files with optional YAML frontmatter."""

    @property
    def source_type(self) -> str:
        return "markdown"

    def can_parse(self, path: Path) -> bool:
        return is_markdown(path)

    def parse(self, text: str, path: Path) -> SourceDocument:
        frontmatter, body = extract_frontmatter(text)
        return SourceDocument(frontmatter=frontmatter, blocks=parse_markdown_blocks(body))


def _join_source(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "".join(str(v) for v in value)
    return str(value)


def _object(value: Any, where: str) -> dict[str, Any]:
    """``value`` if it is a JSON object, ``{}`` if missing; ValueError otherwise."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{where} is not an object")
    return value


def _notebook_language(notebook: dict[str, Any], name: str) -> str:
    metadata = _object(notebook.get("metadata"), f"{name}: notebook metadata")
    kernelspec = _object(metadata.get("kernelspec"), f"{name}: kernelspec")
    language_info = _object(metadata.get("language_info"), f"{name}: language_info")
    return kernelspec.get("language") or language_info.get("name") or "python"


def _output_blocks(cell: dict[str, Any], where: str) -> list[CodeExample]:
    """Collect text outputs of a code cell as language-less code blocks."""
    outputs = cell.get("outputs") or []
    if not isinstance(outputs, list):
        raise ValueError(f"{where} outputs are not a list")
    blocks: list[CodeExample] = []
    for number, raw in enumerate(outputs):
        output = _object(raw, f"{where} output {number}")
        kind = output.get("output_type")
        if kind == "stream":
            text = _join_source(output.get("text"))
        elif kind in ("execute_result", "display_data"):
            data = _object(output.get("data"), f"{where} output {number} data")
            if any(key.startswith("image/") for key in data):
                continue
            text = _join_source(data.get("text/plain"))
        else:
            continue
        if text.strip():
            blocks.append(CodeExample(source_text=text.rstrip("\n"), language=None))
    return blocks


class NotebookParser:
    """Parses Jupyter notebooks.

    A raw cell at the top of the notebook holding a ``---`` delimited YAML
    block supplies the frontmatter. Markdown cells are parsed like Markdown
    files, code cells become CodeExample blocks in the kernel language and
    their text outputs follow them as plain CodeExample blocks.
    """

    @property
    def source_type(self) -> str:
        return "notebook"

    def can_parse(self, path: Path) -> bool:
        return is_notebook(path)

    def parse(self, text: str, path: Path) -> SourceDocument:
        notebook = json.loads(text)
        if not isinstance(notebook, dict) or not isinstance(notebook.get("cells"), list):
            raise ValueError(f"{path.name} is not a Jupyter notebook (no cell list)")

        language = _notebook_language(notebook, path.name)
        document = SourceDocument()
        seen_content = False
        for number, raw in enumerate(notebook["cells"]):
            where = f"{path.name}: cell {number}"
            cell = _object(raw, where)
            cell_type = cell.get("cell_type")
            source = _join_source(cell.get("source"))
            tags = _object(cell.get("metadata"), f"{where} metadata").get("tags") or []
            if not isinstance(tags, list):
                raise ValueError(f"{where} tags are not a list")
            tags = set(map(str, tags))
            if REMOVE_CELL_TAG in tags:
                continue
            if cell_type == "raw":
                if not seen_content and not document.frontmatter:
                    document.frontmatter, _ = extract_frontmatter(source.strip() + "\n")
                continue
            if not source.strip():
                continue
            seen_content = True
            if cell_type == "markdown":
                document.blocks.extend(parse_markdown_blocks(source))
            elif cell_type == "code":
                document.blocks.append(
                    CodeExample(source_text=source.rstrip("\n"), language=language)
                )
                if REMOVE_OUTPUT_TAG not in tags:
                    document.blocks.extend(_output_blocks(cell, where))
        return document


class ParserRegistry:
    """Registry for source parsers.

    New formats can be registered without modifying existing parsers.
    """

    def __init__(self):
        self._parsers: list = []
        self.register(MarkdownParser())
        self.register(NotebookParser())

    def register(self, parser) -> None:
        self._parsers.append(parser)

    def get_parser(self, path: Path):
        """Return the first parser that accepts the path, or None."""
        for parser in self._parsers:
            if parser.can_parse(path):
                return parser
        return None

    def accepts(self, path: Path) -> bool:
        return self.get_parser(path) is not None


default_parser_registry = ParserRegistry()

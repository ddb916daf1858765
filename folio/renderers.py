"""Content block renderers for Folio.

Each renderer turns one content block variant into HTML. The registry maps
blocks to renderers; a body element no renderer accepts is an InvalidBlock.

Key classes:
- ParagraphRenderer: Markdown text to HTML via mistune.
- HeadingRenderer: Headings with unique anchor ids.
- ImageRenderer: Figures with page-relative sources resolved.
- LinkRenderer: Standalone links.
- CodeExampleRenderer: Pygments syntax highlighting.
- BlockRendererRegistry: Picks the renderer for a block.

Rendering is deterministic: the same page always yields the same HTML.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import mistune
from markupsafe import Markup, escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .blocks import CodeExample, Heading, Image, Link, Paragraph
from .errors import InvalidBlock, MissingRequiredField
from .utils import resolve_uri

_markdown = mistune.create_markdown(escape=False, plugins=["strikethrough", "url"])

REQUIRED_FIELDS = ("slug", "title")


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class HeadingAnchors:
    """Hands out unique anchor ids: ``intro``, ``intro-1``, ``intro-2``..."""

    def __init__(self):
        self._issued: set[str] = set()

    def allocate(self, text: str) -> str:
        base = _generate_heading_id(text) or "section"
        anchor, suffix = base, 0
        # "Intro 1" slugs to intro-1, which a repeated "Intro" may already hold
        while anchor in self._issued:
            suffix += 1
            anchor = f"{base}-{suffix}"
        self._issued.add(anchor)
        return anchor


@dataclass
class RenderContext:
    """Per-page state shared by block renderers.

    Attributes:
        folder: Site-relative folder of the page, for resolving relative URIs.
        anchors: Heading id allocator for this page.
    """

    folder: str = ""
    anchors: HeadingAnchors = field(default_factory=HeadingAnchors)


class ParagraphRenderer:
    block_type = Paragraph

    def can_render(self, block) -> bool:
        return isinstance(block, self.block_type)

    def render(self, block: Paragraph, context: RenderContext) -> str:
        return _markdown(block.text).strip()


class HeadingRenderer:
    block_type = Heading

    def can_render(self, block) -> bool:
        return isinstance(block, self.block_type)

    def render(self, block: Heading, context: RenderContext) -> str:
        level = min(max(int(block.level), 1), 6)
        anchor = context.anchors.allocate(block.text)
        return f'<h{level} id="{anchor}">{escape(block.text)}</h{level}>'


class ImageRenderer:
    block_type = Image

    def can_render(self, block) -> bool:
        return isinstance(block, self.block_type)

    def render(self, block: Image, context: RenderContext) -> str:
        src = escape(resolve_uri(block.uri, context.folder))
        parts = [f'<figure><img src="{src}" alt="{escape(block.alt_text)}">']
        if block.title:
            parts.append(f"<figcaption>{escape(block.title)}</figcaption>")
        parts.append("</figure>")
        return "".join(parts)


class LinkRenderer:
    block_type = Link

    def can_render(self, block) -> bool:
        return isinstance(block, self.block_type)

    def render(self, block: Link, context: RenderContext) -> str:
        href = escape(resolve_uri(block.uri, context.folder))
        label = escape(block.label or block.uri)
        return f'<p class="link"><a href="{href}">{label}</a></p>'


class CodeExampleRenderer:
    """Renders code with Pygments when the language is known.

    Blocks without a language (notebook output) or with an unknown one are
    emitted as escaped ``<pre><code>``.
    """

    block_type = CodeExample

    def __init__(self, cssclass: str = "highlight"):
        self.formatter = HtmlFormatter(cssclass=cssclass)

    def can_render(self, block) -> bool:
        return isinstance(block, self.block_type)

    def render(self, block: CodeExample, context: RenderContext) -> str:
        if block.language:
            try:
                lexer = get_lexer_by_name(block.language)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                return highlight(block.source_text, lexer, self.formatter).strip()
            lang_class = f' class="language-{escape(block.language)}"'
        else:
            lang_class = ' class="output"'
        return f"<pre><code{lang_class}>{escape(block.source_text)}</code></pre>"


class BlockRendererRegistry:
    """Registry of block renderers.

    New block variants can be supported by registering a renderer.
    """

    def __init__(self):
        self._renderers: list = []
        self.register(ParagraphRenderer())
        self.register(HeadingRenderer())
        self.register(ImageRenderer())
        self.register(LinkRenderer())
        self.register(CodeExampleRenderer())

    def register(self, renderer) -> None:
        self._renderers.append(renderer)

    def get_renderer(self, block):
        """Return the first renderer that accepts the block, or None."""
        for renderer in self._renderers:
            if renderer.can_render(block):
                return renderer
        return None


default_block_registry = BlockRendererRegistry()


def validate_page(page) -> None:
    """Check the fields every rendered page needs.

    Raises:
        MissingRequiredField: If slug or title is absent or blank.
    """
    ref = str(page.path) if getattr(page, "path", None) else str(getattr(page, "slug", ""))
    for name in REQUIRED_FIELDS:
        value = getattr(page, name, None)
        if not isinstance(value, str) or not value.strip():
            raise MissingRequiredField(name, ref)


def render_blocks(page, registry: BlockRendererRegistry | None = None) -> list[str]:
    """Render every body block of a page, in body order.

    Raises:
        InvalidBlock: If a body element has no renderer.
    """
    registry = registry or default_block_registry
    context = RenderContext(folder=page.folder)
    rendered: list[str] = []
    for index, block in enumerate(page.body):
        renderer = registry.get_renderer(block)
        if renderer is None:
            raise InvalidBlock(block, index)
        rendered.append(renderer.render(block, context))
    return rendered


def render_body(page, registry: BlockRendererRegistry | None = None) -> Markup:
    return Markup("\n".join(render_blocks(page, registry)))


def _toc_list(entries: list) -> str:
    items = "".join(
        f'<li><a href="#{escape(anchor)}">{escape(text)}</a>{_toc_list(children)}</li>'
        for anchor, text, children in entries
    )
    return f"<ul>{items}</ul>" if items else ""


def render_toc(page) -> Markup:
    """Nested ``<ul>`` of the page's headings, linked by anchor.

    A heading nests under the closest earlier heading of a smaller level.
    Anchors are allocated the same way HeadingRenderer allocates them.
    """
    anchors = HeadingAnchors()
    top: list = []
    open_levels: list[tuple[int, list]] = []
    for heading in page.headings:
        while open_levels and open_levels[-1][0] >= heading.level:
            open_levels.pop()
        siblings = open_levels[-1][1] if open_levels else top
        children: list = []
        siblings.append((anchors.allocate(heading.text), heading.text, children))
        open_levels.append((heading.level, children))
    return Markup(_toc_list(top))

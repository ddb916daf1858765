import dataclasses
import os
from datetime import date, datetime
from pathlib import Path

import pytest

from folio.blocks import CodeExample, Heading, Image, Paragraph
from folio.content import (
    ContentProcessor,
    DefaultPageBuilder,
    FileContentLoader,
    LayoutResolver,
    Page,
)
from folio.errors import ContentError
from folio.extractors import (
    CategoryExtractor,
    CompositeMetadataExtractor,
    TitleExtractor,
    coerce_date,
)
from folio.parsers import SourceDocument


def create_site(tmp_path: Path) -> Path:
    site = tmp_path / "site"
    (site / "_layouts").mkdir(parents=True)
    (site / "posts").mkdir()
    (site / "_partials").mkdir()
    (site / "posts" / ".ipynb_checkpoints").mkdir()
    (site / "_layouts" / "posts.html.jinja").write_text("{{ page_content }}", encoding="utf-8")
    (site / "_partials" / "nav.md").write_text("# Partial", encoding="utf-8")

    (site / "index.md").write_text("# Home\n\nWelcome.\n", encoding="utf-8")
    (site / "about.md").write_text(
        "---\ntitle: About Me\nauthor: Grace\ncategories: research, teaching\n---\nHello.\n",
        encoding="utf-8",
    )
    (site / "posts" / "index.md").write_text("---\ntitle: Writing\n---\nAll posts.\n", encoding="utf-8")
    (site / "posts" / "2023-03-01-encrypted-inference.md").write_text(
        "---\nimage: hero.png\ndescription: Inference on encrypted data.\n---\n"
        "# Encrypted Inference\n\n## Why\n\nBecause.\n\n![Diagram](diagram.png)\n",
        encoding="utf-8",
    )
    (site / "posts" / "_draft.md").write_text("# Draft\n", encoding="utf-8")
    (site / "posts" / ".ipynb_checkpoints" / "nb-checkpoint.ipynb").write_text("{}", encoding="utf-8")
    (site / "notes.txt").write_text("ignore", encoding="utf-8")
    return site


def test_content_processing_builds_pages(tmp_path):
    site = create_site(tmp_path)
    pages = ContentProcessor(site, default_author="Ada").load()
    by_slug = {p.slug: p for p in pages}
    assert sorted(by_slug) == ["about", "index", "posts", "posts/encrypted-inference"]

    home = by_slug["index"]
    assert home.title == "Home"
    assert home.url == "/"
    assert home.body == (Paragraph("Welcome."),)
    assert home.author == "Ada"

    about = by_slug["about"]
    assert about.title == "About Me"
    assert about.author == "Grace"
    assert about.categories == frozenset({"research", "teaching"})
    assert about.url == "/about/"
    assert about.section == ""

    post = by_slug["posts/encrypted-inference"]
    assert post.title == "Encrypted Inference"
    assert post.date == date(2023, 3, 1)
    assert post.hero_image == "hero.png"
    assert post.description == "Inference on encrypted data."
    assert post.section == "posts"
    assert post.layout == "posts"
    assert post.folder == "posts"
    assert post.body == (Heading("Why", 2), Paragraph("Because."), Image("diagram.png", "Diagram"))
    assert post.local_assets == ["posts/hero.png", "posts/diagram.png"]

    assert by_slug["posts"].url == "/posts/"


def test_content_processing_includes_drafts(tmp_path):
    site = create_site(tmp_path)
    pages = ContentProcessor(site).load(include_drafts=True)
    draft = next(p for p in pages if p.slug == "posts/draft")
    assert draft.draft is True
    assert draft.title == "Draft"


def test_file_loader_order_and_filters(tmp_path):
    site = create_site(tmp_path)
    files = FileContentLoader(site).iter_files()
    rel = [f.relative_to(site).as_posix() for f in files]
    assert rel == sorted(rel)
    assert "notes.txt" not in rel
    assert "_partials/nav.md" not in rel
    assert "posts/_draft.md" not in rel
    assert not any(".ipynb_checkpoints" in r for r in rel)


def test_content_errors_carry_path(tmp_path):
    site = tmp_path / "site"
    site.mkdir()
    bad = site / "broken.ipynb"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ContentError) as exc_info:
        ContentProcessor(site).load()
    assert exc_info.value.source_path == bad
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_page_is_immutable_and_normalized():
    page = Page(
        slug="about",
        title="About",
        categories=["b", "a", "b"],
        body=[Paragraph("x")],
        frontmatter={"title": "About"},
    )
    assert page.body == (Paragraph("x"),)
    assert page.categories == frozenset({"a", "b"})
    assert page.sorted_categories == ["a", "b"]
    with pytest.raises(dataclasses.FrozenInstanceError):
        page.title = "Other"
    with pytest.raises(TypeError):
        page.frontmatter["title"] = "Other"


def test_page_url_and_section():
    assert Page(slug="index", title="Home").url == "/"
    assert Page(slug="posts/index", title="Posts").url == "/posts/"
    assert Page(slug="posts/mpc", title="MPC").url == "/posts/mpc/"
    assert Page(slug="posts/mpc", title="MPC").section == "posts"
    assert Page(slug="about", title="About").section == ""


def test_page_headings_and_local_assets():
    page = Page(
        slug="posts/mpc",
        title="MPC",
        folder="posts",
        hero_image="https://cdn.example.com/hero.jpg",
        body=[
            Heading("One", 2),
            CodeExample("x"),
            Image("/images/shared.png"),
            Image("local.png"),
            Image("local.png"),
            Heading("Two", 3),
        ],
    )
    assert [h.text for h in page.headings] == ["One", "Two"]
    assert page.local_assets == ["images/shared.png", "posts/local.png"]


def test_layout_resolver(tmp_path):
    site = tmp_path / "site"
    (site / "_layouts" / "posts").mkdir(parents=True)
    (site / "_layouts" / "about.jinja").write_text("", encoding="utf-8")
    (site / "_layouts" / "posts" / "special.html").write_text("", encoding="utf-8")
    resolver = LayoutResolver(site)
    assert resolver.resolve(site / "about.md", "") == "about"
    assert resolver.resolve(site / "posts" / "special.md", "posts") == "posts/special"
    assert resolver.resolve(site / "posts" / "other.md", "posts") == "default"
    assert resolver.resolve(site / "other.md", "", "wide") == "wide"


def test_title_extractor_precedence(tmp_path):
    extractor = TitleExtractor()
    path = tmp_path / "2023-01-01-secure-aggregation.md"
    heading_doc = SourceDocument({}, [Heading("From Heading", 1), Paragraph("x")])
    assert extractor.extract(heading_doc, path) == {
        "title": "From Heading",
        "body": [Paragraph("x")],
    }
    assert extractor.extract(SourceDocument({"title": "Explicit"}, heading_doc.blocks), path) == {
        "title": "Explicit"
    }
    assert extractor.extract(SourceDocument({"title": None}, []), path) == {"title": ""}
    assert extractor.extract(SourceDocument({}, [Heading("Sub", 2)]), path) == {
        "title": "Secure Aggregation"
    }


def test_category_extractor_shapes(tmp_path):
    extractor = CategoryExtractor()
    path = tmp_path / "a.md"
    assert extractor.extract(SourceDocument({"categories": "a, b ,"}, []), path) == {
        "categories": frozenset({"a", "b"})
    }
    assert extractor.extract(SourceDocument({"categories": 2023}, []), path) == {
        "categories": frozenset({"2023"})
    }
    assert extractor.extract(SourceDocument({}, []), path) == {"categories": frozenset()}


def test_coerce_date():
    assert coerce_date(date(2023, 3, 1)) == date(2023, 3, 1)
    assert coerce_date(datetime(2023, 3, 1, 12, 30)) == date(2023, 3, 1)
    assert coerce_date("2023-03-01T10:00:00") == date(2023, 3, 1)
    with pytest.raises(ValueError):
        coerce_date("March")


def test_date_falls_back_to_mtime(tmp_path):
    site = tmp_path / "site"
    site.mkdir()
    path = site / "about.md"
    path.write_text("Hello", encoding="utf-8")
    stamp = datetime(2021, 6, 15, 12, 0).timestamp()
    os.utime(path, (stamp, stamp))
    page = DefaultPageBuilder(site).build(path)
    assert page.date == date(2021, 6, 15)
    assert page.title == "About"


def test_explicit_slug_and_custom_extractor(tmp_path):
    site = tmp_path / "site"
    (site / "notes").mkdir(parents=True)
    path = site / "notes" / "n.md"
    path.write_text("---\nslug: /talks/mpc/\ndate: 2020-01-01\n---\nx", encoding="utf-8")
    page = DefaultPageBuilder(site).build(path)
    assert page.slug == "talks/mpc"
    assert page.folder == "notes"

    class FixedSlug:
        def extract(self, document, path):
            return {"slug": "fixed", "title": "Fixed", "date": date(2020, 1, 1)}

    builder = DefaultPageBuilder(site, metadata_extractor=CompositeMetadataExtractor([FixedSlug()]))
    page = builder.build(path)
    assert (page.slug, page.title, page.author) == ("fixed", "Fixed", "")

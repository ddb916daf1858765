"""Naming, URL and filesystem helpers shared across Folio.

Source filenames double as metadata: ``2023-03-01-encrypted-inference.md``
yields the date 2023-03-01, the slug ``encrypted-inference`` and the
fallback title "Encrypted Inference". The URL helpers decide which
references point at files that ship with the site.
"""

from __future__ import annotations

import posixpath
import re
import shutil
from datetime import date
from pathlib import Path

_DATED_NAME_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:-|$)")
_DATE_PREFIX_RE = re.compile(r"^\d+-\d+-\d+-")
_WORD_SPLIT_RE = re.compile(r"[\s_-]+")
_NON_SLUG_RE = re.compile(r"[^a-zA-Z0-9]+")

_LINK_ATTR_RE = re.compile(
    r"""(?P<attr>\b(?:href|src|action)=)(?P<quote>["'])(?P<url>[^"']+)(?P=quote)"""
)

_REMOTE_SCHEMES = ("http://", "https://", "//", "mailto:", "tel:", "data:", "javascript:")


def strip_date_prefix(name: str) -> str:
    """``2023-03-01-notes`` -> ``notes``; other names pass through."""
    return _DATE_PREFIX_RE.sub("", name, count=1)


def slugify(name: str) -> str:
    """Lowercase, hyphen-separated slug of a filename stem.

    The date prefix is dropped. A stem with no letters or digits becomes
    ``index``.
    """
    slug = _NON_SLUG_RE.sub("-", strip_date_prefix(name)).strip("-")
    return slug.lower() or "index"


def titleize(filename: str) -> str:
    """Fallback page title derived from a filename.

    >>> titleize("2024-01-15-hello-world.md")
    'Hello World'
    >>> titleize("encrypted_inference.ipynb")
    'Encrypted Inference'
    """
    stem = strip_date_prefix(Path(filename).stem)
    title = " ".join(word.capitalize() for word in _WORD_SPLIT_RE.split(stem) if word)
    return title or "Untitled"


def extract_date_from_name(name: str) -> date | None:
    """Date encoded as a ``YYYY-MM-DD`` filename prefix, if it is a real date.

    >>> extract_date_from_name("2023-03-01-encrypted-inference")
    datetime.date(2023, 3, 1)
    >>> extract_date_from_name("2024-13-32-post") is None
    True
    """
    found = _DATED_NAME_RE.match(name)
    if found is None:
        return None
    year, month, day = (int(part) for part in found.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_markdown(path: Path) -> bool:
    return path.suffix.lower() == ".md"


def is_notebook(path: Path) -> bool:
    return path.suffix.lower() == ".ipynb"


def is_local_uri(uri: str) -> bool:
    """True when the URI names a file that ships with the site."""
    if not uri or uri.startswith("#") or "{{" in uri:
        return False
    return not uri.lower().startswith(_REMOTE_SCHEMES)


def resolve_uri(uri: str, folder: str) -> str:
    """Make a page-relative URI root-relative.

    ``resolve_uri("hero.png", "posts")`` is ``/posts/hero.png``. Remote and
    already root-relative URIs come back unchanged.
    """
    if uri.startswith("/") or not is_local_uri(uri):
        return uri
    return posixpath.normpath(posixpath.join("/", folder or "", uri))


def join_root_url(root_url: str, path: str) -> str:
    """``join_root_url('https://example.com/', 'about/')`` -> ``https://example.com/about/``."""
    if not root_url:
        return path
    return root_url.rstrip("/") + "/" + path.lstrip("/")


def absolutize_html_urls(html: str, root_url: str) -> str:
    """Prefix root-relative href/src/action values with ``root_url``."""
    if not root_url:
        return html

    def _rewrite(match: re.Match) -> str:
        url = match.group("url")
        if url.startswith("//") or not url.startswith("/"):
            return match.group(0)
        quote = match.group("quote")
        return f"{match.group('attr')}{quote}{join_root_url(root_url, url)}{quote}"

    return _LINK_ATTR_RE.sub(_rewrite, html)


def ensure_clean_dir(path: Path) -> None:
    """Leave ``path`` as an existing, empty directory."""
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)
    if path.exists():
        # rmtree gave up; delete deepest entries first
        leftovers = sorted(path.rglob("*"), key=lambda p: len(p.parts), reverse=True)
        for item in leftovers:
            if item.is_dir() and not item.is_symlink():
                item.rmdir()
            else:
                item.unlink()
        return
    path.mkdir(parents=True)

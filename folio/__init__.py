"""Folio personal site generator.

This package builds a personal website and blog (homepage, about page and
notebook-style posts) from Markdown files and Jupyter notebooks into static HTML.

Authored files are parsed into immutable Page objects whose bodies are ordered
content blocks. Pages are indexed by slug in a Site, rendered through Jinja2
layouts, and written out together with referenced assets and feeds.

The main entry point is the CLI module, which provides the build and serve commands.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"

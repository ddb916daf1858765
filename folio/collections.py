from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence

from .content import Page


def _chronological(page: Page):
    return (page.date, page.slug)


class PageCollection(Sequence[Page]):
    """Immutable list of pages with the filters layouts reach for."""

    def __init__(self, pages: Iterable[Page]):
        self._pages = tuple(pages)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return PageCollection(self._pages[item])
        return self._pages[item]

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def where(self, predicate: Callable[[Page], bool]) -> PageCollection:
        return PageCollection(filter(predicate, self._pages))

    def section(self, name: str) -> PageCollection:
        return self.where(lambda page: page.section == name)

    def with_category(self, category: str) -> PageCollection:
        return self.where(lambda page: category in page.categories)

    def published(self) -> PageCollection:
        return self.where(lambda page: not page.draft)

    def drafts(self) -> PageCollection:
        return self.where(lambda page: page.draft)

    def sorted(self, reverse: bool = True) -> PageCollection:
        """By date then slug; newest first unless ``reverse`` is False."""
        return PageCollection(sorted(self._pages, key=_chronological, reverse=reverse))

    def latest(self, count: int = 5) -> PageCollection:
        return self.sorted()[:count]

    def __repr__(self) -> str:  # pragma: no cover
        return f"<PageCollection of {len(self)}>"


class CategoryCollection(Mapping[str, PageCollection]):
    """Category name to its pages, iterated alphabetically."""

    def __init__(self, groups: Mapping[str, Iterable[Page]]):
        self._groups = {name: PageCollection(groups[name]) for name in sorted(groups)}

    def __getitem__(self, name: str) -> PageCollection:
        return self._groups[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)


def build_category_index(pages: Iterable[Page]) -> CategoryCollection:
    """Group pages by category; each group keeps the input page order."""
    groups: dict[str, list[Page]] = {}
    for page in pages:
        for name in page.sorted_categories:
            groups.setdefault(name, []).append(page)
    return CategoryCollection(groups)

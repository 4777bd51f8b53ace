"""Vault snapshot models and the flatten/summary helpers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

CATEGORY_SEPARATOR = " > "
DEFAULT_CATEGORY_NAME = "Uncategorized"
DEFAULT_PAGE_TITLE = "Untitled"
DEFAULT_PAGE_ICON = "📄"
SUMMARY_HEADER = "## GM Vault Content"
SUMMARY_FOOTER = (
    "Note: The user can reference these pages when asking questions. "
    "You can mention them if relevant to the conversation."
)


@dataclass(frozen=True)
class Page:
    """A single vault page, flattened out of its category tree."""

    id: Optional[str]
    title: str
    category: str
    url: Optional[str] = None
    icon: Optional[str] = None
    visible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "url": self.url,
            "icon": self.icon,
            "visible": self.visible,
        }


@dataclass(frozen=True)
class VaultSnapshot:
    """Flattened view of the peer's vault at a point in time."""

    categories: Tuple[str, ...] = ()
    pages: Tuple[Page, ...] = ()
    last_update: float = field(default_factory=time.time)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def category_count(self) -> int:
        return len(self.categories)

    def pages_by_category(self) -> Dict[str, List[Page]]:
        grouped: Dict[str, List[Page]] = {}
        for page in self.pages:
            grouped.setdefault(page.category, []).append(page)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": list(self.categories),
            "pages": [page.to_dict() for page in self.pages],
            "last_update": self.last_update,
        }


def is_vault_config(config: Any) -> bool:
    """Return True when ``config`` looks like a peer vault payload."""

    if not isinstance(config, Mapping):
        return False
    categories = config.get("categories")
    return isinstance(categories, Sequence) and not isinstance(categories, (str, bytes))


def flatten_vault_config(
    config: Mapping[str, Any],
    *,
    now: Optional[float] = None,
) -> VaultSnapshot:
    """Walk nested categories depth-first and build a fresh snapshot.

    Every visited category contributes its fully-qualified path, and every
    page that is not explicitly hidden contributes one ``Page``. The input is
    only read, never retained.
    """

    categories: List[str] = []
    pages: List[Page] = []
    _walk_categories(config.get("categories"), "", categories, pages)
    return VaultSnapshot(
        categories=tuple(categories),
        pages=tuple(pages),
        last_update=time.time() if now is None else now,
    )


def _walk_categories(
    raw_categories: Any,
    parent_path: str,
    categories: List[str],
    pages: List[Page],
) -> None:
    if not isinstance(raw_categories, Sequence) or isinstance(raw_categories, (str, bytes)):
        return

    for category in raw_categories:
        if not isinstance(category, Mapping):
            continue
        name = str(category.get("name") or DEFAULT_CATEGORY_NAME)
        path = f"{parent_path}{CATEGORY_SEPARATOR}{name}" if parent_path else name
        categories.append(path)

        raw_pages = category.get("pages")
        if isinstance(raw_pages, Sequence) and not isinstance(raw_pages, (str, bytes)):
            for raw_page in raw_pages:
                page = _build_page(raw_page, path)
                if page is not None:
                    pages.append(page)

        _walk_categories(category.get("categories"), path, categories, pages)


def _build_page(raw_page: Any, category_path: str) -> Optional[Page]:
    if not isinstance(raw_page, Mapping):
        return None

    visible = raw_page.get("visible", raw_page.get("isVisible", True))
    if visible is False:
        return None

    page_id = raw_page.get("id")
    return Page(
        id=None if page_id is None else str(page_id),
        title=str(raw_page.get("title") or DEFAULT_PAGE_TITLE),
        category=category_path,
        url=raw_page.get("url") or None,
        icon=raw_page.get("icon") or None,
        visible=True,
    )


def render_summary(snapshot: Optional[VaultSnapshot]) -> str:
    """Render the prompt block describing ``snapshot``.

    Categories are sorted; pages keep their flatten order inside each one.
    The text is lossy and cannot be parsed back into a snapshot.
    """

    if snapshot is None or not snapshot.pages:
        return ""

    lines = [
        "",
        "",
        SUMMARY_HEADER,
        "",
        (
            f"The user has a GM Vault with {snapshot.page_count} pages organized "
            f"in {snapshot.category_count} categories."
        ),
        "",
        "Available pages:",
    ]
    grouped = snapshot.pages_by_category()
    for category in sorted(grouped):
        lines.append("")
        lines.append(f"**{category}:**")
        for page in grouped[category]:
            lines.append(f"- {page.icon or DEFAULT_PAGE_ICON} {page.title}")
    lines.append("")
    lines.append(SUMMARY_FOOTER)
    return "\n".join(lines) + "\n"


__all__ = [
    "CATEGORY_SEPARATOR",
    "DEFAULT_CATEGORY_NAME",
    "DEFAULT_PAGE_ICON",
    "DEFAULT_PAGE_TITLE",
    "Page",
    "VaultSnapshot",
    "flatten_vault_config",
    "is_vault_config",
    "render_summary",
]

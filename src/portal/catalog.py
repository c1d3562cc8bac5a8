"""Catalog Query Engine.

Filters the tool catalog by category and free-text search. Matching rules
live in the declarative CATEGORIES table; the engine itself is stateless
and never mutates the tools it is given.

Callers are expected to reset the search text when the active category
changes. The engine does not enforce this.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from shared.models import Tool, ToolStatus

RECENT_LIMIT = 8


class CategoryKind(str, Enum):
    """How a category selects tools."""
    KEYWORD = "keyword"
    STATUS = "status"
    RECENT = "recent"


@dataclass(frozen=True)
class Category:
    """A catalog category as shown in the category bar."""
    id: str
    label: str
    kind: CategoryKind
    keywords: tuple[str, ...] = field(default_factory=tuple)
    status: Optional[ToolStatus] = None


CATEGORIES: tuple[Category, ...] = (
    Category("new", "Novas Ferramentas", CategoryKind.RECENT),
    Category("ia", "IA", CategoryKind.KEYWORD, keywords=("ia",)),
    Category("espionagem", "Espionagem", CategoryKind.KEYWORD, keywords=("espionagem",)),
    Category("mineracao", "Mineração", CategoryKind.KEYWORD, keywords=("mineração",)),
    Category("seo", "SEO / Análise", CategoryKind.KEYWORD, keywords=("seo",)),
    Category("streaming", "Streaming", CategoryKind.KEYWORD, keywords=("streaming",)),
    Category("design", "Design/Criação", CategoryKind.KEYWORD, keywords=("design", "criação")),
    Category("diversos", "Diversos", CategoryKind.KEYWORD, keywords=("diversos",)),
    Category("offline", "Offline", CategoryKind.STATUS, status=ToolStatus.OFFLINE),
    Category("maintenance", "Em Manutenção", CategoryKind.STATUS, status=ToolStatus.MAINTENANCE),
)

_CATEGORIES_BY_ID = {category.id: category for category in CATEGORIES}


def get_category(category_id: str) -> Optional[Category]:
    """Look up a category by id."""
    return _CATEGORIES_BY_ID.get(category_id)


def list_categories() -> list[Category]:
    return list(CATEGORIES)


def matches(category: Category, tool: Tool) -> bool:
    """
    Per-tool predicate of a keyword or status category.

    Keyword categories match when the lowercased tool category contains
    any keyword as a substring. Recent categories have no per-tool
    predicate and never match here; use select_recent instead.
    """
    if category.kind == CategoryKind.STATUS:
        return tool.status == category.status
    if category.kind == CategoryKind.KEYWORD:
        tags = tool.category.lower()
        return any(keyword in tags for keyword in category.keywords)
    return False


def select_recent(tools: Iterable[Tool], limit: int = RECENT_LIMIT) -> list[Tool]:
    """The `limit` tools with the highest ids, highest first."""
    return sorted(tools, key=lambda t: t.id, reverse=True)[:limit]


def filter_by_category(tools: Sequence[Tool], category_id: Optional[str]) -> list[Tool]:
    """
    Category stage of a query.

    None keeps every tool. Unknown category ids match nothing.
    """
    if category_id is None:
        return list(tools)

    category = get_category(category_id)
    if category is None:
        return []

    if category.kind == CategoryKind.RECENT:
        return select_recent(tools)

    return [tool for tool in tools if matches(category, tool)]


def search(tools: Sequence[Tool], text: str) -> list[Tool]:
    """
    Search stage of a query.

    Keeps tools whose title or category contains the text, ignoring case.
    Blank text keeps every tool.
    """
    needle = (text or "").strip().lower()
    if not needle:
        return list(tools)

    return [
        tool for tool in tools
        if needle in tool.title.lower() or needle in tool.category.lower()
    ]


def query(
    tools: Sequence[Tool],
    category: Optional[str] = None,
    search_text: str = ""
) -> list[Tool]:
    """
    Filter tools by category, then by search text.

    Deterministic and free of side effects. Both stages preserve the
    input order, except the recent category which orders by id descending.

    Args:
        tools: Catalog tools, usually in registration order
        category: Active category id, or None for the whole catalog
        search_text: Free-text search, blank for none

    Returns:
        The matching tools
    """
    return search(filter_by_category(tools, category), search_text)

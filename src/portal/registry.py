"""Tool Registry for the Member Portal.

Holds the catalog of tools and their static metadata. Reads are free of
coordination; administrative writes are serialised per tool id and are
visible to the next read.
"""

import threading
from collections import defaultdict
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from shared.config import load_yaml_config
from shared.errors import ConfigurationError, ToolNotFoundError
from shared.logging import get_logger
from shared.models import Tool, ToolStatus
from shared.schema import CATALOG_SCHEMA, validate_schema

logger = get_logger(__name__)


class ToolRegistry:
    """
    Central registry for catalog tools.

    Responsibilities:
    - Register tools (administrative)
    - Look up tools by id
    - List tools in registration order
    - Apply operator-driven status transitions
    """

    def __init__(self) -> None:
        # dicts keep insertion order, which is the registration order
        self._tools: dict[int, Tool] = {}
        self._registry_lock = threading.Lock()
        self._tool_locks: dict[int, threading.Lock] = defaultdict(threading.Lock)

    def register(self, tool: Tool) -> None:
        """
        Register a tool in the registry.

        Args:
            tool: Tool to register

        Raises:
            ValueError: If the tool id is already registered
        """
        with self._registry_lock:
            if tool.id in self._tools:
                raise ValueError(f"Tool '{tool.id}' is already registered")
            self._tools[tool.id] = tool

        logger.info(
            "Tool registered",
            tool_id=tool.id,
            title=tool.title,
            status=tool.status.value
        )

    def register_many(self, tools: list[Tool]) -> None:
        """Register multiple tools at once."""
        for tool in tools:
            self.register(tool)

    def get(self, tool_id: int) -> Tool:
        """
        Get a tool by id.

        Raises:
            ToolNotFoundError: If no tool has this id
        """
        tool = self._tools.get(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)
        return tool

    def contains(self, tool_id: int) -> bool:
        return tool_id in self._tools

    def list(self) -> list[Tool]:
        """List all tools in registration order."""
        return list(self._tools.values())

    def set_status(self, tool_id: int, status: ToolStatus) -> Tool:
        """
        Apply an operator status transition.

        The stored Tool is replaced, never mutated, so concurrent readers
        always observe either the old or the new tool as a whole.

        Raises:
            ToolNotFoundError: If no tool has this id
        """
        with self._registry_lock:
            if tool_id not in self._tools:
                raise ToolNotFoundError(tool_id)
            lock = self._tool_locks[tool_id]

        with lock:
            current = self.get(tool_id)
            if current.status == status:
                return current
            updated = current.model_copy(update={"status": status})
            self._tools[tool_id] = updated

        logger.info(
            "Tool status changed",
            tool_id=tool_id,
            previous=current.status.value,
            status=status.value
        )
        return updated

    def status_counts(self) -> dict[ToolStatus, int]:
        """Count tools per status."""
        counts = {status: 0 for status in ToolStatus}
        for tool in self._tools.values():
            counts[tool.status] += 1
        return counts

    def __len__(self) -> int:
        return len(self._tools)

    def clear(self) -> None:
        """Clear all registered tools. Use with caution."""
        with self._registry_lock:
            self._tools.clear()
            self._tool_locks.clear()
        logger.warning("Tool registry cleared")


def load_catalog(path: str | Path) -> list[Tool]:
    """
    Load catalog tools from a YAML file.

    The file holds a ``tools`` list; every entry is validated against the
    tool schema before it becomes a Tool. A missing file yields no tools.

    Raises:
        ConfigurationError: If the file or one of its entries is invalid
    """
    data = load_yaml_config(path)
    if not data:
        logger.warning("Catalog file missing or empty", path=str(path))
        return []

    is_valid, errors = validate_schema(data, CATALOG_SCHEMA)
    if not is_valid:
        raise ConfigurationError(f"Invalid catalog '{path}': {'; '.join(errors)}")

    tools = []
    for entry in data["tools"]:
        try:
            tools.append(Tool(**entry))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid tool entry {entry.get('id')!r} in '{path}': {e}"
            ) from e

    logger.info("Catalog loaded", path=str(path), tool_count=len(tools))
    return tools


# Global registry instance
_registry: Optional[ToolRegistry] = None


def get_registry() -> ToolRegistry:
    """Get the global tool registry instance."""
    global _registry
    if _registry is None:
        _registry = ToolRegistry()
    return _registry

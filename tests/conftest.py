"""Shared fixtures for the Member Portal test suite."""

import pytest
from pydantic import SecretStr

from shared.models import CredentialBundle, Tool, ToolStatus, UserContext


def make_tool(tool_id: int, category: str = "IA", status: ToolStatus = ToolStatus.ONLINE, title: str = "") -> Tool:
    return Tool(id=tool_id, title=title or f"Tool {tool_id}", category=category, status=status)


def make_bundle(tool_id: int) -> CredentialBundle:
    return CredentialBundle(
        email=SecretStr(f"user{tool_id}@example.com"),
        password=SecretStr(f"pass-{tool_id}"),
        cookie=SecretStr(f"session_token=tok{tool_id}; path=/"),
    )


@pytest.fixture
def sample_tools() -> list[Tool]:
    """A small catalog covering every category kind and status."""
    return [
        Tool(id=1, title="ChatGPT", category="IA", status=ToolStatus.ONLINE),
        Tool(id=2, title="Semrush", category="SEO / Análise", status=ToolStatus.OFFLINE),
        Tool(id=3, title="AdSpy", category="Espionagem", status=ToolStatus.MAINTENANCE),
        Tool(id=4, title="Canva Pro", category="Design/Criação", status=ToolStatus.ONLINE),
        Tool(id=5, title="Photopea", category="Criação", status=ToolStatus.ONLINE),
        Tool(id=6, title="Netflix", category="Streaming", status=ToolStatus.ONLINE),
        Tool(id=7, title="Dropi", category="Mineração", status=ToolStatus.ONLINE),
        Tool(id=8, title="Midjourney", category="IA / Design", status=ToolStatus.ONLINE),
        Tool(id=9, title="Envato", category="Diversos", status=ToolStatus.OFFLINE),
        Tool(id=10, title="Figma", category="Design", status=ToolStatus.ONLINE),
    ]


@pytest.fixture
def registry(sample_tools):
    from portal.registry import ToolRegistry

    registry = ToolRegistry()
    registry.register_many(sample_tools)
    return registry


@pytest.fixture
def user() -> UserContext:
    return UserContext(user_id="user1", username="member", roles=["member"])


@pytest.fixture
def admin() -> UserContext:
    return UserContext(user_id="admin1", username="operator", roles=["admin"])

"""Shared models, configuration and utilities for the Member Portal."""

from shared.models import (
    CredentialBundle,
    CredentialField,
    DisclosureEvent,
    Tool,
    ToolStatus,
    UserContext,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "CredentialBundle",
    "CredentialField",
    "DisclosureEvent",
    "Tool",
    "ToolStatus",
    "UserContext",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]

"""Core data models for the Member Portal.

This module defines the catalog entities, the credential bundle and the
disclosure records shared by every component of the portal core.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolStatus(str, Enum):
    """Operational status of a tool. Driven by operators, never by members."""
    ONLINE = "online"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class UnavailableReason(str, Enum):
    """Why a disclosure was refused or could not complete."""
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"
    TIMEOUT = "timeout"


class RefusalReason(str, Enum):
    """Reasons carried by a structured refusal on the wire."""
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"
    NOT_FOUND = "not_found"
    UNAUTHENTICATED = "unauthenticated"
    TIMEOUT = "timeout"
    FORBIDDEN = "forbidden"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class StatusInfo:
    """Presentation and policy attributes of a ToolStatus."""
    label: str
    color: str
    allows_disclosure: bool
    unavailable_reason: Optional[UnavailableReason] = None


# Single source for status labels, colors and the disclosure guard.
STATUS_PRESENTATION: dict[ToolStatus, StatusInfo] = {
    ToolStatus.ONLINE: StatusInfo(label="Ativa", color="green", allows_disclosure=True),
    ToolStatus.MAINTENANCE: StatusInfo(
        label="Em Manutenção",
        color="yellow",
        allows_disclosure=False,
        unavailable_reason=UnavailableReason.MAINTENANCE,
    ),
    ToolStatus.OFFLINE: StatusInfo(
        label="Offline",
        color="red",
        allows_disclosure=False,
        unavailable_reason=UnavailableReason.OFFLINE,
    ),
}

_missing = set(ToolStatus) - set(STATUS_PRESENTATION)
if _missing:
    raise RuntimeError(f"STATUS_PRESENTATION lacks entries for {sorted(s.value for s in _missing)}")


class Tool(BaseModel):
    """
    A third-party tool listed in the member catalog.

    The id is immutable; status changes produce a new Tool instance.
    Presentation fields are opaque to the core and passed through.
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Unique tool id, higher means more recent")
    title: str = Field(..., min_length=1)
    category: str = Field(default="", description="Free-form category tags, e.g. 'Design/Criação'")
    status: ToolStatus = Field(default=ToolStatus.ONLINE)

    # Presentation metadata
    logo_image: Optional[str] = None
    bg_color: Optional[str] = None
    text_color: Optional[str] = None
    website: Optional[str] = None

    @property
    def official_url(self) -> str:
        """Official site of the tool, derived from the title when not configured."""
        if self.website:
            return self.website
        slug = "".join(self.title.lower().split())
        return f"https://{slug}.com"

    @property
    def status_info(self) -> StatusInfo:
        return STATUS_PRESENTATION[self.status]


class CredentialField(str, Enum):
    """Field selector for a credential disclosure."""
    EMAIL = "email"
    PASSWORD = "password"
    COOKIE = "cookie"
    ALL = "all"


class CredentialBundle(BaseModel):
    """Access credentials for one tool. Values stay masked until revealed."""
    model_config = ConfigDict(frozen=True)

    email: SecretStr
    password: SecretStr
    cookie: SecretStr

    def reveal(self, field: CredentialField) -> dict[str, str]:
        """Return plain values for the selected field, or all of them."""
        if field == CredentialField.ALL:
            names = [CredentialField.EMAIL, CredentialField.PASSWORD, CredentialField.COOKIE]
        else:
            names = [field]
        return {name.value: getattr(self, name.value).get_secret_value() for name in names}


class UserContext(BaseModel):
    """Authenticated caller identity propagated through the system."""
    user_id: str
    username: str
    email: Optional[str] = None
    roles: list[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles


class DisclosureEvent(BaseModel):
    """
    Immutable audit record of a credential disclosure.

    Captures who revealed which field of which tool, and when.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    tool_id: int
    field: CredentialField
    timestamp: datetime = Field(default_factory=utcnow)
    request_id: Optional[str] = None


class Disclosure(BaseModel):
    """Result of a successful disclosure: the revealed values and the audit event id."""
    tool_id: int
    field: CredentialField
    values: dict[str, str]
    event_id: str


class Refusal(BaseModel):
    """Structured refusal returned to the presentation layer."""
    reason: RefusalReason
    detail: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

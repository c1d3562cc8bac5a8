"""Member Portal - FastAPI Application.

Exposes the catalog, favorites and credential disclosure core to the
presentation layer. Refusals are rendered as ``{reason, detail}`` bodies.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from shared.config import Settings, get_settings
from shared.errors import ConfigurationError, InvalidRequestError, PortalError
from shared.logging import bind_context, clear_context, get_logger, setup_logging
from shared.models import (
    CredentialField,
    DisclosureEvent,
    Refusal,
    RefusalReason,
    Tool,
    ToolStatus,
    UserContext,
)
from portal import catalog
from portal.audit import DisclosureAuditLog, get_audit_log
from portal.auth import AuthConfig, AuthMiddleware, require_admin
from portal.favorites import (
    FavoritesBackend,
    FavoritesStore,
    InMemoryFavoritesBackend,
    JsonFileFavoritesBackend,
)
from portal.registry import ToolRegistry, get_registry, load_catalog
from portal.secret_store import InMemorySecretStore, RemoteSecretStore, SecretStore
from portal.vault import CredentialVault, credential_text

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)

VERSION = "0.1.0"

REFUSAL_STATUS_CODES: dict[RefusalReason, int] = {
    RefusalReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RefusalReason.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    RefusalReason.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    RefusalReason.OFFLINE: status.HTTP_409_CONFLICT,
    RefusalReason.MAINTENANCE: status.HTTP_409_CONFLICT,
    RefusalReason.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    RefusalReason.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
}


# Request/Response Models
class ToolView(BaseModel):
    """A catalog tool as shown to members."""
    id: int
    title: str
    category: str
    status: ToolStatus
    status_label: str
    status_color: str
    logo_image: Optional[str] = None
    bg_color: Optional[str] = None
    text_color: Optional[str] = None
    official_url: str
    favorite: Optional[bool] = None

    @classmethod
    def from_tool(cls, tool: Tool, favorite: Optional[bool] = None) -> "ToolView":
        info = tool.status_info
        return cls(
            id=tool.id,
            title=tool.title,
            category=tool.category,
            status=tool.status,
            status_label=info.label,
            status_color=info.color,
            logo_image=tool.logo_image,
            bg_color=tool.bg_color,
            text_color=tool.text_color,
            official_url=tool.official_url,
            favorite=favorite,
        )


class ToolListResponse(BaseModel):
    tools: list[ToolView]
    count: int
    category: Optional[str] = None
    q: Optional[str] = None


class CategoryView(BaseModel):
    id: str
    label: str
    kind: str


class FavoriteToggleResponse(BaseModel):
    tool_id: int
    favorite: bool


class CredentialResponse(BaseModel):
    """Revealed credentials plus ready-to-copy text."""
    tool_id: int
    field: CredentialField
    values: dict[str, str]
    text: str
    event_id: str


class StatusUpdateRequest(BaseModel):
    status: ToolStatus


class DisclosureListResponse(BaseModel):
    events: list[DisclosureEvent]
    count: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    tool_count: int
    tools_by_status: dict[str, int] = Field(default_factory=dict)


# Global instances
_settings: Optional[Settings] = None
_auth_middleware: Optional[AuthMiddleware] = None
_registry: Optional[ToolRegistry] = None
_favorites: Optional[FavoritesStore] = None
_audit_log: Optional[DisclosureAuditLog] = None
_secret_store: Optional[SecretStore] = None
_vault: Optional[CredentialVault] = None


def build_secret_store(settings: Settings) -> SecretStore:
    """Create the secret store selected in settings."""
    secrets = settings.secrets
    if secrets.backend == "remote":
        if not secrets.remote_url:
            raise ConfigurationError("PORTAL_SECRETS_REMOTE_URL is required for the remote backend")
        return RemoteSecretStore(
            base_url=secrets.remote_url,
            timeout=secrets.timeout_seconds,
            api_token=secrets.api_token,
        )
    return InMemorySecretStore.from_yaml(secrets.secrets_path)


async def build_favorites_backend(settings: Settings) -> FavoritesBackend:
    """Create (and open) the favorites backend selected in settings."""
    if settings.favorites.backend == "file":
        backend = JsonFileFavoritesBackend(settings.favorites.path)
        await backend.open()
        return backend
    return InMemoryFavoritesBackend()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _settings, _auth_middleware, _registry, _favorites, _audit_log, _secret_store, _vault

    _settings = get_settings()
    setup_logging(_settings.log_level, json_output=_settings.environment == "production")
    logger.info("Starting Member Portal", environment=_settings.environment)

    _auth_middleware = AuthMiddleware(AuthConfig(
        secret_key=_settings.auth.secret_key,
        token_expire_minutes=_settings.auth.token_expire_minutes,
        require_auth=_settings.auth.require_auth,
    ))

    _registry = get_registry()
    if not len(_registry):
        _registry.register_many(load_catalog(_settings.catalog_path))

    _favorites = FavoritesStore(await build_favorites_backend(_settings))
    _audit_log = get_audit_log(
        log_path=_settings.audit.log_path,
        enabled=_settings.audit.enabled,
        buffer_size=_settings.audit.buffer_size,
        memory_limit=_settings.audit.memory_limit,
    )
    _secret_store = build_secret_store(_settings)
    _vault = CredentialVault(
        registry=_registry,
        secret_store=_secret_store,
        audit_log=_audit_log,
        timeout_seconds=_settings.secrets.timeout_seconds,
    )

    logger.info("Member Portal started", tool_count=len(_registry))

    yield

    logger.info("Shutting down Member Portal")
    await _audit_log.flush()
    await _secret_store.close()


app = FastAPI(
    title="Member Portal",
    description="Tool catalog, favorites and credential disclosure",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Bind a request id to every log line emitted while serving the request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    clear_context()
    bind_context(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Request-ID"] = request_id
    return response


def refusal_response(reason: RefusalReason, detail: Optional[str] = None) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if reason == RefusalReason.UNAUTHENTICATED else None
    return JSONResponse(
        status_code=REFUSAL_STATUS_CODES[reason],
        content=Refusal(reason=reason, detail=detail).model_dump(mode="json"),
        headers=headers,
    )


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    return refusal_response(exc.reason, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    return refusal_response(RefusalReason.INVALID_REQUEST, "; ".join(messages))


def _initialized(component: Any) -> Any:
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server not initialized"
        )
    return component


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> UserContext:
    """Dependency resolving the authenticated caller."""
    auth: AuthMiddleware = _initialized(_auth_middleware)
    user = auth.resolve(credentials.credentials if credentials else None)
    bind_context(user_id=user.user_id)
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[UserContext]:
    """Dependency resolving the caller when a valid token is present."""
    auth: AuthMiddleware = _initialized(_auth_middleware)
    return auth.resolve_optional(credentials.credentials if credentials else None)


async def get_admin_user(user: UserContext = Depends(get_current_user)) -> UserContext:
    return require_admin(user)


async def _views(tools: list[Tool], user: Optional[UserContext]) -> list[ToolView]:
    if user is None:
        return [ToolView.from_tool(tool) for tool in tools]

    favorites: FavoritesStore = _initialized(_favorites)
    favorite_ids = set(await favorites.list_ids(user.user_id))
    return [ToolView.from_tool(tool, favorite=tool.id in favorite_ids) for tool in tools]


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint."""
    registry: ToolRegistry = _initialized(_registry)
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tool_count=len(registry),
        tools_by_status={s.value: n for s, n in registry.status_counts().items()},
    )


@app.get("/categories", response_model=list[CategoryView], tags=["Catalog"])
async def list_categories():
    """Categories of the catalog bar, in display order."""
    return [
        CategoryView(id=c.id, label=c.label, kind=c.kind.value)
        for c in catalog.list_categories()
    ]


@app.get("/tools", response_model=ToolListResponse, tags=["Catalog"])
async def list_tools(
    category: Optional[str] = None,
    q: str = "",
    user: Optional[UserContext] = Depends(get_optional_user)
):
    """
    List catalog tools.

    Filters by category first, then by the free-text query. Without a
    category the whole catalog is listed in registration order.
    """
    registry: ToolRegistry = _initialized(_registry)

    category = category or None
    if category is not None and catalog.get_category(category) is None:
        raise InvalidRequestError(f"Unknown category '{category}'")

    tools = catalog.query(registry.list(), category, q)
    views = await _views(tools, user)
    return ToolListResponse(tools=views, count=len(views), category=category, q=q or None)


@app.get("/tools/{tool_id}", response_model=ToolView, tags=["Catalog"])
async def get_tool(
    tool_id: int,
    user: Optional[UserContext] = Depends(get_optional_user)
):
    """Get details for a specific tool."""
    registry: ToolRegistry = _initialized(_registry)
    tool = registry.get(tool_id)
    return (await _views([tool], user))[0]


@app.get("/favorites", response_model=ToolListResponse, tags=["Favorites"])
async def list_favorites(user: UserContext = Depends(get_current_user)):
    """The caller's favorite tools. Favorites of removed tools are left out."""
    favorites: FavoritesStore = _initialized(_favorites)
    tools = await favorites.resolve(user.user_id, _initialized(_registry))
    views = [ToolView.from_tool(tool, favorite=True) for tool in tools]
    return ToolListResponse(tools=views, count=len(views))


@app.post("/favorites/{tool_id}/toggle", response_model=FavoriteToggleResponse, tags=["Favorites"])
async def toggle_favorite(tool_id: int, user: UserContext = Depends(get_current_user)):
    """Add the tool to the caller's favorites, or remove it."""
    favorites: FavoritesStore = _initialized(_favorites)
    favorite = await favorites.toggle(user.user_id, tool_id)
    return FavoriteToggleResponse(tool_id=tool_id, favorite=favorite)


@app.post(
    "/tools/{tool_id}/credentials/{field}",
    response_model=CredentialResponse,
    tags=["Credentials"]
)
async def disclose_credentials(
    tool_id: int,
    field: CredentialField,
    request: Request,
    user: UserContext = Depends(get_current_user)
):
    """
    Reveal credentials of an online tool.

    Tools in maintenance or offline are refused with a structured reason.
    Every successful call is audited.
    """
    vault: CredentialVault = _initialized(_vault)
    disclosure = await vault.disclose(
        user, tool_id, field, request_id=getattr(request.state, "request_id", None)
    )
    return CredentialResponse(
        tool_id=disclosure.tool_id,
        field=disclosure.field,
        values=disclosure.values,
        text=credential_text(disclosure),
        event_id=disclosure.event_id,
    )


@app.put("/admin/tools/{tool_id}/status", response_model=ToolView, tags=["Admin"])
async def update_tool_status(
    tool_id: int,
    body: StatusUpdateRequest,
    user: UserContext = Depends(get_admin_user)
):
    """Operator status transition. Takes effect for the next request."""
    registry: ToolRegistry = _initialized(_registry)
    tool = registry.set_status(tool_id, body.status)
    logger.info("Status updated by operator", tool_id=tool_id, status=body.status.value, operator=user.user_id)
    return ToolView.from_tool(tool)


@app.get("/admin/disclosures", response_model=DisclosureListResponse, tags=["Admin"])
async def list_disclosures(
    user_id: Optional[str] = None,
    tool_id: Optional[int] = None,
    field: Optional[CredentialField] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    limit: int = 100,
    admin: UserContext = Depends(get_admin_user)
):
    """Query the disclosure audit log."""
    audit_log: DisclosureAuditLog = _initialized(_audit_log)
    events = await audit_log.query(
        user_id=user_id,
        tool_id=tool_id,
        field=field,
        start_time=_as_utc(start_time),
        end_time=_as_utc(end_time),
        limit=limit,
    )
    return DisclosureListResponse(events=events, count=len(events))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def main():
    """Run the Member Portal."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "portal.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()

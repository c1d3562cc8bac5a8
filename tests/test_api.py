"""Tests for the Member Portal HTTP surface."""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from shared.models import CredentialField, ToolStatus, UserContext

from conftest import make_bundle

SECRET_KEY = "test-secret"


@pytest.fixture
def auth():
    from portal.auth import AuthConfig, AuthMiddleware

    return AuthMiddleware(AuthConfig(secret_key=SECRET_KEY))


@pytest.fixture
def portal_app(registry, sample_tools, auth):
    """Install test instances into the app's module-level singletons."""
    from portal import main
    from portal.audit import DisclosureAuditLog
    from portal.favorites import FavoritesStore
    from portal.secret_store import InMemorySecretStore
    from portal.vault import CredentialVault

    audit_log = DisclosureAuditLog(enabled=False)
    secret_store = InMemorySecretStore({tool.id: make_bundle(tool.id) for tool in sample_tools})

    main._auth_middleware = auth
    main._registry = registry
    main._favorites = FavoritesStore()
    main._audit_log = audit_log
    main._secret_store = secret_store
    main._vault = CredentialVault(registry, secret_store, audit_log)

    yield main

    main._auth_middleware = None
    main._registry = None
    main._favorites = None
    main._audit_log = None
    main._secret_store = None
    main._vault = None


@pytest_asyncio.fixture
async def client(portal_app):
    """Async HTTP client wrapping the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=portal_app.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def member_headers(auth, user):
    return {"Authorization": f"Bearer {auth.create_token(user)}"}


@pytest.fixture
def admin_headers(auth, admin):
    return {"Authorization": f"Bearer {auth.create_token(admin)}"}


class TestCatalogEndpoints:
    """Tests for catalog browsing."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["tool_count"] == 10
        assert body["tools_by_status"] == {"online": 7, "maintenance": 1, "offline": 2}

    @pytest.mark.asyncio
    async def test_categories_in_display_order(self, client):
        response = await client.get("/categories")

        ids = [c["id"] for c in response.json()]
        assert ids[0] == "new"
        assert ids[-2:] == ["offline", "maintenance"]

    @pytest.mark.asyncio
    async def test_list_all_tools_without_auth(self, client):
        response = await client.get("/tools")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 10
        assert body["tools"][0]["favorite"] is None

    @pytest.mark.asyncio
    async def test_list_by_category_and_search(self, client):
        response = await client.get("/tools", params={"category": "design", "q": "canva"})

        body = response.json()
        assert [t["id"] for t in body["tools"]] == [4]
        assert body["category"] == "design"
        assert body["q"] == "canva"

    @pytest.mark.asyncio
    async def test_new_category(self, client):
        response = await client.get("/tools", params={"category": "new"})

        assert [t["id"] for t in response.json()["tools"]] == [10, 9, 8, 7, 6, 5, 4, 3]

    @pytest.mark.asyncio
    async def test_unknown_category_is_invalid_request(self, client):
        response = await client.get("/tools", params={"category": "payments"})

        assert response.status_code == 400
        assert response.json()["reason"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_tool_view_carries_status_presentation(self, client):
        response = await client.get("/tools/3")

        body = response.json()
        assert body["status"] == "maintenance"
        assert body["status_label"] == "Em Manutenção"
        assert body["status_color"] == "yellow"
        assert body["official_url"] == "https://adspy.com"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_not_found(self, client):
        response = await client.get("/tools/999")

        assert response.status_code == 404
        assert response.json()["reason"] == "not_found"


class TestFavoriteEndpoints:
    """Tests for favorites."""

    @pytest.mark.asyncio
    async def test_toggle_requires_authentication(self, client):
        response = await client.post("/favorites/1/toggle")

        assert response.status_code == 401
        assert response.json()["reason"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_toggle_twice_restores_state(self, client, member_headers):
        first = await client.post("/favorites/4/toggle", headers=member_headers)
        second = await client.post("/favorites/4/toggle", headers=member_headers)

        assert first.json() == {"tool_id": 4, "favorite": True}
        assert second.json() == {"tool_id": 4, "favorite": False}

    @pytest.mark.asyncio
    async def test_favorites_listed_and_flagged(self, client, member_headers, registry):
        await client.post("/favorites/6/toggle", headers=member_headers)
        await client.post("/favorites/1/toggle", headers=member_headers)
        await client.post("/favorites/404/toggle", headers=member_headers)

        favorites = await client.get("/favorites", headers=member_headers)
        assert [t["id"] for t in favorites.json()["tools"]] == [6, 1]

        catalog = await client.get("/tools", params={"category": "ia"}, headers=member_headers)
        flags = {t["id"]: t["favorite"] for t in catalog.json()["tools"]}
        assert flags[1] is True
        assert flags[8] is False


class TestCredentialEndpoints:
    """Tests for credential disclosure over HTTP."""

    @pytest.mark.asyncio
    async def test_disclose_requires_authentication(self, client, portal_app):
        response = await client.post("/tools/1/credentials/email")

        assert response.status_code == 401
        assert response.json()["reason"] == "unauthenticated"
        assert portal_app._audit_log.count() == 0

    @pytest.mark.asyncio
    async def test_disclose_email(self, client, member_headers, portal_app):
        response = await client.post(
            "/tools/1/credentials/email",
            headers={**member_headers, "X-Request-ID": "req-42"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["values"] == {"email": "user1@example.com"}
        assert body["text"] == "user1@example.com"
        assert response.headers["X-Request-ID"] == "req-42"

        events = portal_app._audit_log.events()
        assert len(events) == 1
        assert events[0].request_id == "req-42"
        assert events[0].id == body["event_id"]

    @pytest.mark.asyncio
    async def test_disclose_all(self, client, member_headers, portal_app):
        response = await client.post("/tools/4/credentials/all", headers=member_headers)

        body = response.json()
        assert set(body["values"]) == {"email", "password", "cookie"}
        assert body["text"].startswith("Email: user4@example.com\nSenha: pass-4")
        assert [e.field for e in portal_app._audit_log.events()] == [CredentialField.ALL]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool_id, reason", [(2, "offline"), (3, "maintenance")])
    async def test_unavailable_tool_refused(self, client, member_headers, portal_app, tool_id, reason):
        response = await client.post(f"/tools/{tool_id}/credentials/password", headers=member_headers)

        assert response.status_code == 409
        assert response.json()["reason"] == reason
        assert portal_app._audit_log.count() == 0

    @pytest.mark.asyncio
    async def test_unknown_tool_refused(self, client, member_headers):
        response = await client.post("/tools/999/credentials/cookie", headers=member_headers)

        assert response.status_code == 404
        assert response.json()["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_unknown_field_is_invalid_request(self, client, member_headers):
        response = await client.post("/tools/1/credentials/pin", headers=member_headers)

        assert response.status_code == 400
        assert response.json()["reason"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_invalid_token_is_unauthenticated(self, client):
        response = await client.post(
            "/tools/1/credentials/email",
            headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401


class TestAdminEndpoints:
    """Tests for operator endpoints."""

    @pytest.mark.asyncio
    async def test_members_cannot_change_status(self, client, member_headers):
        response = await client.put(
            "/admin/tools/1/status", json={"status": "offline"}, headers=member_headers
        )

        assert response.status_code == 403
        assert response.json()["reason"] == "forbidden"

    @pytest.mark.asyncio
    async def test_status_change_gates_next_disclosure(self, client, admin_headers, member_headers, registry):
        response = await client.put(
            "/admin/tools/1/status", json={"status": "maintenance"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["status_label"] == "Em Manutenção"
        assert registry.get(1).status == ToolStatus.MAINTENANCE

        refused = await client.post("/tools/1/credentials/email", headers=member_headers)
        assert refused.json()["reason"] == "maintenance"

    @pytest.mark.asyncio
    async def test_query_disclosures(self, client, admin_headers, member_headers):
        await client.post("/tools/1/credentials/email", headers=member_headers)
        await client.post("/tools/4/credentials/all", headers=admin_headers)

        response = await client.get(
            "/admin/disclosures", params={"user_id": "user1"}, headers=admin_headers
        )

        body = response.json()
        assert body["count"] == 1
        assert body["events"][0]["tool_id"] == 1
        assert body["events"][0]["field"] == "email"


class TestAuthMiddleware:
    """Tests for token handling."""

    def test_token_round_trip(self, auth):
        user = UserContext(user_id="u9", username="nine", email="n@example.com", roles=["member"])

        resolved = auth.resolve(auth.create_token(user))

        assert resolved == user

    def test_expired_token_rejected(self, auth, user):
        from datetime import timedelta

        from shared.errors import UnauthenticatedError

        token = auth.create_token(user, expires_in=timedelta(seconds=-1))

        with pytest.raises(UnauthenticatedError):
            auth.resolve(token)

    def test_auth_disabled_yields_anonymous(self):
        from portal.auth import ANONYMOUS_USER, AuthConfig, AuthMiddleware

        auth = AuthMiddleware(AuthConfig(secret_key="x", require_auth=False))

        assert auth.resolve(None) == ANONYMOUS_USER

    def test_missing_token_optional(self, auth):
        assert auth.resolve_optional(None) is None

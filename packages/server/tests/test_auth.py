"""
Tests for session authentication and the authorization dependencies.

Covers:
- Session token creation and decoding
- Override-permission claim parsing
- UserContext construction (claims every time, cached mirror fallback)
- Bearer header / session cookie extraction
- Org-scoping, role and permission dependencies
- Error envelope and security headers
"""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest
from fastapi import Depends
from structlog.testing import capture_logs

from app.core.auth import (
    SESSION_COOKIE,
    build_user_context,
    create_session_token,
    decode_session_token,
    get_user_context,
    parse_override_permissions,
    require_org_member,
    require_permission,
    require_roles,
)
from app.core.errors import UnauthorizedError
from app.core.middleware import SECURITY_HEADERS
from app.models.membership import OrganizationMembership
from app.models.organization import Organization
from app.models.user import User
from fleetfusion_shared.schemas.abac import PermissionAction, ResourceType


# ---------------------------------------------------------------------------
# Unit Tests: Session tokens
# ---------------------------------------------------------------------------

class TestSessionTokens:
    def test_create_and_decode(self):
        token, jti = create_session_token("user_1", "org_1", "dispatcher", permissions=["read:billing"])
        claims = decode_session_token(token)
        assert claims["sub"] == "user_1"
        assert claims["org_id"] == "org_1"
        assert claims["jti"] == jti
        assert claims["metadata"]["role"] == "dispatcher"
        assert claims["metadata"]["permissions"] == ["read:billing"]
        assert claims["metadata"]["isActive"] is True

    def test_expired_token(self):
        token, _ = create_session_token("user_1", "org_1", "viewer", expires_delta=timedelta(seconds=-1))
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_session_token(token)

    def test_tampered_token(self):
        token, _ = create_session_token("user_1", "org_1", "viewer")
        with pytest.raises(jwt.PyJWTError):
            decode_session_token(token[:-4] + "AAAA")

    def test_wrong_key(self):
        token = jwt.encode({"sub": "user_1"}, "another-key-entirely-of-decent-length", algorithm="HS256")
        with pytest.raises(jwt.InvalidSignatureError):
            decode_session_token(token)


class TestOverrideClaims:
    def test_parses_valid_entries(self):
        perms = parse_override_permissions(["read:billing", "manage:vehicle"])
        assert [str(p) for p in perms] == ["read:billing", "manage:vehicle"]

    def test_drops_invalid_entries_with_warning(self):
        with capture_logs() as logs:
            perms = parse_override_permissions(["read:billing", "bogus", "fly:load"])
        assert [str(p) for p in perms] == ["read:billing"]
        assert [e["event"] for e in logs].count("auth.invalid_permission_claim") == 2

    @pytest.mark.parametrize("raw", [None, "read:billing", {"read": "billing"}])
    def test_non_list_is_empty(self, raw):
        assert parse_override_permissions(raw) == []


# ---------------------------------------------------------------------------
# UserContext construction
# ---------------------------------------------------------------------------

def _claims(**overrides) -> dict:
    claims = {
        "sub": "user_1",
        "org_id": "org_1",
        "email": "dispatch@example.com",
        "metadata": {"role": "dispatcher", "permissions": [], "isActive": True},
    }
    claims.update(overrides)
    return claims


async def _seed_member(session, role: str = "accountant", is_active: bool = True) -> None:
    session.add(Organization(id="org_1", name="Acme Freight"))
    session.add(User(id="user_1", email="mirror@example.com", is_active=is_active))
    await session.flush()
    session.add(OrganizationMembership(user_id="user_1", organization_id="org_1", role=role))
    await session.commit()


class TestBuildUserContext:
    @pytest.mark.asyncio
    async def test_from_claims(self, session, cache):
        user = await build_user_context(_claims(), session, cache)
        assert user.user_id == "user_1"
        assert user.organization_id == "org_1"
        assert user.role == "dispatcher"
        assert user.email == "dispatch@example.com"
        assert user.is_active

    @pytest.mark.asyncio
    async def test_missing_subject(self, session, cache):
        with pytest.raises(UnauthorizedError):
            await build_user_context(_claims(sub=None), session, cache)

    @pytest.mark.asyncio
    async def test_org_role_claim(self, session, cache):
        claims = _claims(metadata={}, org_role="org:admin")
        user = await build_user_context(claims, session, cache)
        assert user.role == "org:admin"

    @pytest.mark.asyncio
    async def test_role_falls_back_to_mirror(self, session, cache):
        await _seed_member(session, role="accountant")
        user = await build_user_context(_claims(metadata={}), session, cache)
        assert user.role == "accountant"

    @pytest.mark.asyncio
    async def test_mirror_inactive_wins(self, session, cache):
        await _seed_member(session, is_active=False)
        user = await build_user_context(_claims(), session, cache)
        assert not user.is_active

    @pytest.mark.asyncio
    async def test_no_role_anywhere(self, session, cache):
        user = await build_user_context(_claims(metadata={}), session, cache)
        assert user.role is None

    @pytest.mark.asyncio
    async def test_later_inactive_claim_is_honored(self, session, cache):
        first = await build_user_context(_claims(), session, cache)
        second = await build_user_context(
            _claims(metadata={"role": "dispatcher", "isActive": False}), session, cache
        )
        assert first.is_active
        assert not second.is_active

    @pytest.mark.asyncio
    async def test_overrides_not_carried_between_tokens(self, session, cache):
        first = await build_user_context(
            _claims(metadata={"role": "viewer", "permissions": ["manage:user"]}), session, cache
        )
        second = await build_user_context(_claims(metadata={"role": "viewer"}), session, cache)
        assert [str(p) for p in first.permissions] == ["manage:user"]
        assert second.permissions == []

    @pytest.mark.asyncio
    async def test_role_follows_latest_claims(self, session, cache):
        await build_user_context(_claims(), session, cache)
        second = await build_user_context(_claims(metadata={"role": "viewer"}), session, cache)
        assert second.role == "viewer"

    @pytest.mark.asyncio
    async def test_mirror_lookup_cached(self, session, cache):
        await _seed_member(session, role="accountant")
        await build_user_context(_claims(metadata={}), session, cache)
        second = await build_user_context(_claims(metadata={}), session, cache)
        assert second.role == "accountant"
        assert second.email == "dispatch@example.com"
        assert cache.stats()["user_cache_hits"] == 1
        assert cache.get_user("user_1").membership_role == "accountant"

    @pytest.mark.asyncio
    async def test_cached_mirror_inactive_still_wins(self, session, cache):
        await _seed_member(session, is_active=False)
        await build_user_context(_claims(), session, cache)
        second = await build_user_context(_claims(), session, cache)
        assert cache.stats()["user_cache_hits"] == 1
        assert not second.is_active

    @pytest.mark.asyncio
    async def test_cached_mirror_ignored_for_other_org(self, session, cache):
        await build_user_context(_claims(), session, cache)
        other = await build_user_context(_claims(org_id="org_2"), session, cache)
        assert other.organization_id == "org_2"


# ---------------------------------------------------------------------------
# Integration: dependencies on the app
# ---------------------------------------------------------------------------

class TestDependencies:
    """Role and permission gates, exercised through HTTP."""

    @pytest.fixture(autouse=True)
    def gated_routes(self, api):
        @api.get("/whoami")
        async def whoami(user=Depends(get_user_context)):
            return {"user_id": user.user_id, "role": user.role}

        @api.get("/orgs/{orgId}/member-only")
        async def member_only(user=Depends(require_org_member)):
            return {"ok": True}

        @api.get("/orgs/{orgId}/dispatch-only")
        async def dispatch_only(user=Depends(require_roles("dispatcher"))):
            return {"ok": True}

        @api.get("/orgs/{orgId}/billing")
        async def billing(
            user=Depends(require_permission(PermissionAction.READ, ResourceType.BILLING)),
        ):
            return {"ok": True}

    async def _status(self, client, path, headers) -> int:
        return (await client.get(path, headers=headers)).status_code

    @pytest.mark.asyncio
    async def test_no_credentials(self, client):
        resp = await client.get("/whoami")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        resp = await client.get("/whoami", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_bearer_header(self, client, auth_headers):
        resp = await client.get("/whoami", headers=auth_headers("driver"))
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "user_1", "role": "driver"}

    @pytest.mark.asyncio
    async def test_session_cookie(self, client):
        token, _ = create_session_token("user_1", "org_1", "viewer")
        client.cookies.set(SESSION_COOKIE, token)
        resp = await client.get("/whoami")
        assert resp.status_code == 200
        assert resp.json()["role"] == "viewer"

    @pytest.mark.asyncio
    async def test_member_of_org(self, client, auth_headers):
        assert await self._status(client, "/orgs/org_1/member-only", auth_headers()) == 200

    @pytest.mark.asyncio
    async def test_cross_tenant_denied(self, client, auth_headers):
        resp = await client.get("/orgs/org_2/member-only", headers=auth_headers())
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Organization access denied"

    @pytest.mark.asyncio
    async def test_role_gate(self, client, auth_headers):
        path = "/orgs/org_1/dispatch-only"
        assert await self._status(client, path, auth_headers("dispatcher", user_id="u_d")) == 200
        assert await self._status(client, path, auth_headers("admin", user_id="u_a")) == 200
        assert await self._status(client, path, auth_headers("driver", user_id="u_r")) == 403

    @pytest.mark.asyncio
    async def test_role_gate_without_role(self, client, auth_headers):
        assert await self._status(client, "/orgs/org_1/dispatch-only", auth_headers(None)) == 401

    @pytest.mark.asyncio
    async def test_permission_gate(self, client, auth_headers):
        path = "/orgs/org_1/billing"
        assert await self._status(client, path, auth_headers("accountant", user_id="u_acc")) == 200
        assert await self._status(client, path, auth_headers("dispatcher", user_id="u_d")) == 403

    @pytest.mark.asyncio
    async def test_permission_gate_override(self, client, auth_headers):
        headers = auth_headers("dispatcher", permissions=["read:billing"])
        assert await self._status(client, "/orgs/org_1/billing", headers) == 200

    @pytest.mark.asyncio
    async def test_inactive_user_denied(self, client, auth_headers):
        headers = auth_headers("owner", is_active=False)
        assert await self._status(client, "/orgs/org_1/billing", headers) == 403

    @pytest.mark.asyncio
    async def test_same_user_new_token_is_reevaluated(self, client, auth_headers):
        path = "/orgs/org_1/billing"
        assert await self._status(client, path, auth_headers("accountant")) == 200
        assert await self._status(client, path, auth_headers("accountant", is_active=False)) == 403
        assert await self._status(client, path, auth_headers("viewer")) == 403

    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        resp = await client.get("/health")
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers[header] == value
        assert "X-Request-ID" in resp.headers

"""Tests for Supabase Auth login, registration and the current-user endpoint."""

import uuid
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from app.config.permissions_config import get_permission_matrix
from app.modules.auth.schemas import LoginRequest, RegisterRequest
from app.modules.auth.service import AuthService

from tests.conftest import ORG_ID


def make_user(**overrides):
    fields = {
        "id": "user-1",
        "email": "ops@example.com",
        "app_metadata": {"organization_id": ORG_ID},
        "user_metadata": {"full_name": "Ops"},
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class FakeAuth:
    def __init__(self):
        self.users = {"ops@example.com": ("secret", make_user())}
        self.tokens = {}
        self.get_user_calls = 0

    def sign_in_with_password(self, credentials):
        password, user = self.users.get(credentials["email"], (None, None))
        if password != credentials["password"]:
            raise Exception("Invalid login credentials")
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = user
        return SimpleNamespace(user=user, session=SimpleNamespace(access_token=token))

    def sign_up(self, payload):
        if payload["email"] in self.users:
            raise Exception("User already registered")
        user = make_user(id="user-new", email=payload["email"], app_metadata={},
                         user_metadata=payload["options"]["data"])
        self.users[payload["email"]] = (payload["password"], user)
        return SimpleNamespace(user=user)

    def refresh_session(self, refresh_token):
        if refresh_token != "refresh-ok":
            raise Exception("Invalid Refresh Token: Already Used")
        session = SimpleNamespace(access_token="token-refreshed", refresh_token="refresh-next", expires_in=3600)
        return SimpleNamespace(user=make_user(), session=session)

    def sign_out(self):
        return None

    def get_user(self, jwt):
        self.get_user_calls += 1
        if jwt not in self.tokens:
            raise Exception("invalid JWT: token is expired")
        return SimpleNamespace(user=self.tokens[jwt])


@pytest.fixture
def auth_service(fake_supabase):
    fake_supabase.auth = FakeAuth()
    return AuthService(fake_supabase)


class TestAuthService:
    def test_login_returns_organization(self, auth_service):
        token = auth_service.login(LoginRequest(email="ops@example.com", password="secret"))
        assert token.user_id == "user-1"
        assert token.organization_id == ORG_ID
        assert token.access_token.startswith("token-")

    def test_wrong_password(self, auth_service):
        with pytest.raises(HTTPException) as exc:
            auth_service.login(LoginRequest(email="ops@example.com", password="nope"))
        assert exc.value.status_code == 401

    def test_register_keeps_organization_in_metadata(self, auth_service, fake_supabase):
        response = auth_service.register(RegisterRequest(
            email="new@example.com", password="pw", full_name="New", organization_id=ORG_ID
        ))
        assert response.user_id == "user-new"
        _, user = fake_supabase.auth.users["new@example.com"]
        assert user.user_metadata == {"full_name": "New", "organization_id": ORG_ID}

    def test_register_existing_user(self, auth_service):
        with pytest.raises(HTTPException) as exc:
            auth_service.register(RegisterRequest(email="ops@example.com", password="pw"))
        assert exc.value.status_code == 400

    def test_current_user_is_cached(self, auth_service, fake_supabase):
        token = auth_service.login(LoginRequest(email="ops@example.com", password="secret")).access_token

        first = auth_service.get_current_user(token)
        second = auth_service.get_current_user(token)

        assert first == second
        assert first["organization_id"] == ORG_ID
        assert fake_supabase.auth.get_user_calls == 1

    def test_organization_falls_back_to_user_metadata(self, auth_service, fake_supabase):
        user = make_user(id="user-2", app_metadata={}, user_metadata={"organization_id": "org-9"})
        fake_supabase.auth.tokens["token-fallback"] = user
        assert auth_service.get_current_user("token-fallback")["organization_id"] == "org-9"

    def test_refresh(self, auth_service):
        token = auth_service.refresh("refresh-ok")
        assert token.access_token == "token-refreshed"
        assert token.refresh_token == "refresh-next"
        assert token.expires_in == 3600

    def test_refresh_rejected(self, auth_service):
        with pytest.raises(HTTPException) as exc:
            auth_service.refresh("used")
        assert exc.value.status_code == 401

    def test_logout_drops_cached_user(self, auth_service, fake_supabase):
        token = auth_service.login(LoginRequest(email="ops@example.com", password="secret")).access_token
        auth_service.get_current_user(token)
        assert auth_service.logout(token) is True
        auth_service.get_current_user(token)
        assert fake_supabase.auth.get_user_calls == 2

    def test_unknown_token(self, auth_service):
        with pytest.raises(HTTPException) as exc:
            auth_service.get_current_user(f"bogus-{uuid.uuid4().hex}")
        assert exc.value.status_code == 401


class TestMeRoute:
    def test_super_user_holds_every_permission(self, client):
        body = client.get("/api/v1/auth/me").json()
        assert body["permissions"] == [p["name"] for p in get_permission_matrix()["permissions"]]

    def test_member_permissions_come_from_roles(self, client, fake_supabase, as_member):
        fake_supabase.grant(as_member["id"], "textures:read", "playout:read")
        body = client.get("/api/v1/auth/me").json()
        assert body["organization_id"] == ORG_ID
        assert body["permissions"] == ["playout:read", "textures:read"]

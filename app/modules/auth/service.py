import hashlib
import logging
import time
from supabase import Client
from app.modules.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, RegisterResponse
from fastapi import HTTPException
from typing import Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)


class _TokenCache:
    """Resolved users keyed by token hash, kept for ``ttl`` seconds."""

    def __init__(self, ttl: float = 60, max_size: int = 500):
        self.ttl = ttl
        self.max_size = max_size
        self._entries: Dict[str, Tuple[Dict[str, Any], float]] = {}

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = self._key(token)
        entry = self._entries.get(key)
        if entry is None:
            return None
        user_data, expiry = entry
        if time.monotonic() >= expiry:
            del self._entries[key]
            return None
        return user_data

    def put(self, token: str, user_data: Dict[str, Any]):
        now = time.monotonic()
        if len(self._entries) >= self.max_size:
            self._entries = {k: v for k, v in self._entries.items() if v[1] > now}
        if len(self._entries) < self.max_size:
            self._entries[self._key(token)] = (user_data, now + self.ttl)

    def discard(self, token: str):
        self._entries.pop(self._key(token), None)


_token_cache = _TokenCache()


def resolve_organization_id(app_metadata: Dict[str, Any], user_metadata: Dict[str, Any]) -> Optional[str]:
    """Organization set server-side wins over the one written at registration."""
    return app_metadata.get("organization_id") or user_metadata.get("organization_id")


def user_to_dict(user) -> Dict[str, Any]:
    app_metadata = user.app_metadata or {}
    user_metadata = user.user_metadata or {}
    return {
        "id": user.id,
        "email": user.email,
        "organization_id": resolve_organization_id(app_metadata, user_metadata),
        "user_metadata": user_metadata,
        "app_metadata": app_metadata,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


def _token_response(auth_response, fallback_email: str) -> TokenResponse:
    user = auth_response.user
    session = auth_response.session
    user_data = user_to_dict(user)
    return TokenResponse(
        access_token=session.access_token,
        refresh_token=getattr(session, "refresh_token", None),
        expires_in=getattr(session, "expires_in", None),
        user_id=user_data["id"],
        email=user_data["email"] or fallback_email,
        organization_id=user_data["organization_id"],
    )


class AuthService:
    def __init__(self, supabase: Client, cache: Optional[_TokenCache] = None):
        self.supabase = supabase
        self.cache = cache or _token_cache

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Create a Supabase Auth account; the organization goes into user metadata"""
        user_metadata = {
            key: value for key, value in {
                "full_name": register_data.full_name,
                "organization_id": register_data.organization_id,
            }.items() if value
        }
        try:
            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {"data": user_metadata},
            })
        except Exception as e:
            message = str(e).lower()
            if "already registered" in message or "already exists" in message:
                raise HTTPException(status_code=400, detail="User already exists")
            logger.error(f"Registration failed for {register_data.email}: {e}")
            raise HTTPException(status_code=500, detail=f"Registration failed: {str(e)}")

        if not auth_response.user:
            raise HTTPException(status_code=400, detail="Failed to register user")
        logger.info(f"Registered user {auth_response.user.id}")
        return RegisterResponse(
            user_id=auth_response.user.id,
            email=auth_response.user.email or register_data.email,
            message="User registered successfully",
        )

    def login(self, login_data: LoginRequest) -> TokenResponse:
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password,
            })
        except Exception as e:
            message = str(e).lower()
            if "invalid" in message or "credentials" in message:
                raise HTTPException(status_code=401, detail="Invalid email or password")
            raise HTTPException(status_code=500, detail=f"Login failed: {str(e)}")

        if not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return _token_response(auth_response, login_data.email)

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new session"""
        try:
            auth_response = self.supabase.auth.refresh_session(refresh_token)
        except Exception as e:
            logger.warning(f"Session refresh failed: {e}")
            raise HTTPException(status_code=401, detail="Invalid or expired refresh token")
        if not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=401, detail="Invalid or expired refresh token")
        return _token_response(auth_response, "")

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Resolve a bearer token to the user dict the permission checks read"""
        cached = self.cache.get(token)
        if cached is not None:
            return cached
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            message = str(e)
            if "JWT" in message or "expired" in message.lower() or "invalid" in message.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user_data = user_to_dict(user_response.user)
        self.cache.put(token, user_data)
        return user_data

    def logout(self, token: str) -> bool:
        self.cache.discard(token)
        try:
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Sign-out failed: {e}")
            return False

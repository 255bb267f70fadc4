from fastapi import APIRouter, Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.schemas import LoginRequest, RefreshRequest, RegisterRequest, TokenResponse, RegisterResponse
from app.modules.auth.service import AuthService
from app.core.dependencies import get_current_user_id, is_super_user, get_user_permissions
from app.config.permissions_config import PERMISSION_MATRIX
from supabase import Client
from typing import Dict, List

router = APIRouter(prefix="/auth", tags=["auth"])

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_token(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Create an account. Pass organization_id to join an organization."""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    return service.login(login_data)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    request: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Trade a refresh token for a new access token"""
    return service.refresh(request.refresh_token)


@router.post("/logout")
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service),
):
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user(
    current_user: Dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase),
):
    """Current user with the permission names the UI uses to show or hide controls."""
    if is_super_user(current_user, supabase):
        permissions: List[str] = [p["name"] for p in PERMISSION_MATRIX["permissions"]]
    else:
        permissions = get_user_permissions(current_user["id"], supabase)
    return {**current_user, "permissions": permissions}

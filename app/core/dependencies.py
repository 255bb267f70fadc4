"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (role_ids, permission_names)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    user_data = auth_service.get_current_user(token)
    return user_data


def is_super_user(user_data: dict, supabase: Client) -> bool:
    """Check if user is a super user from app_metadata"""
    try:
        # app_metadata is set server-side and cannot be modified by users
        app_metadata = user_data.get("app_metadata", {})
        if app_metadata.get("type") == "super_user":
            return True
        return False
    except Exception:
        return False


def get_organization_id(user_data: dict) -> str:
    """Return the organization the user acts for. Every library row is scoped by it."""
    organization_id = user_data.get("organization_id")
    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of any organization"
        )
    return organization_id


def get_user_role_ids(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[str]:
    """Return role_ids from user_roles. Uses request-scoped cache when provided."""
    if cache is not None and "role_ids" in cache:
        return cache["role_ids"]
    try:
        result = supabase.table("user_roles")\
            .select("role_id")\
            .eq("user_id", user_id)\
            .execute()
        ids = list({r["role_id"] for r in result.data}) if result.data else []
        if cache is not None:
            cache["role_ids"] = ids
        return ids
    except Exception as e:
        logger.error(f"Error getting user role ids: {e}")
        return []


def get_user_permissions(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[str]:
    """Get all permissions for a user through their roles. Populates request-scoped cache when provided."""
    if cache is not None and "permission_names" in cache:
        return cache["permission_names"]
    try:
        role_ids = get_user_role_ids(user_id, supabase, cache)
        if not role_ids:
            names = []
            if cache is not None:
                cache["permission_names"] = names
            return names
        permissions_result = supabase.table("role_permissions")\
            .select("permission_id, permissions(name)")\
            .in_("role_id", role_ids)\
            .execute()
        permissions = set()
        for rp in permissions_result.data or []:
            if rp.get("permissions") and rp["permissions"].get("name"):
                permissions.add(rp["permissions"]["name"])
        names = sorted(permissions)
        if cache is not None:
            cache["permission_names"] = names
        return names
    except Exception as e:
        logger.error(f"Error getting user permissions: {e}")
        return []


def ensure_permission(request: Request, user_data: dict, supabase: Client, required_permission: str) -> dict:
    """Raise 403 unless the user holds required_permission (super users always do)."""
    if is_super_user(user_data, supabase):
        return user_data
    cache = _get_request_cache(request)
    user_permissions = get_user_permissions(user_data["id"], supabase, cache)
    if required_permission not in user_permissions:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient permissions. Required: {required_permission}"
        )
    return user_data


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check_permission(
        request: Request,
        user_data: dict = Depends(get_current_user_id),
        supabase: Client = Depends(get_supabase)
    ) -> dict:
        """Dependency to check if user has required permission"""
        return ensure_permission(request, user_data, supabase, required_permission)
    return check_permission


def check_organization_access(table: str, row_id: str, user_data: dict, supabase: Client) -> dict:
    """Allow if super_user or the row belongs to the user's organization."""
    if is_super_user(user_data, supabase):
        return user_data
    organization_id = get_organization_id(user_data)
    result = supabase.table(table)\
        .select("organization_id")\
        .eq("id", row_id)\
        .maybe_single()\
        .execute()
    if not result or not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{table.rstrip('s').replace('_', ' ').capitalize()} not found"
        )
    if result.data.get("organization_id") != organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This resource belongs to another organization"
        )
    return user_data

from fastapi import APIRouter, Depends, UploadFile, File, Form, Query
from app.database.supabase_client import get_supabase
from app.modules.textures.schemas import (
    TextureResponse, TextureListResponse, TextureUpdate, MediaType,
    BatchTagUpdateRequest, BatchTagUpdateResult, BatchDeleteRequest, BatchDeleteResult
)
from app.modules.textures.service import TextureService
from app.core.dependencies import require_permission, check_organization_access, get_organization_id
from supabase import Client
from typing import List, Optional, Dict

router = APIRouter(prefix="/textures", tags=["textures"])


def get_texture_service(supabase: Client = Depends(get_supabase)) -> TextureService:
    return TextureService(supabase)


def _split_tags(tags: Optional[str]) -> List[str]:
    return [t.strip() for t in (tags or "").split(",") if t.strip()]


@router.get("", response_model=TextureListResponse)
async def list_textures(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    type: Optional[MediaType] = None,
    search: Optional[str] = None,
    tags: Optional[str] = Query(None, description="Comma-separated; textures must carry all of them"),
    user_data: Dict = Depends(require_permission("textures:read")),
    service: TextureService = Depends(get_texture_service),
):
    """List the organization's texture library"""
    return service.list_textures(
        get_organization_id(user_data), limit=limit, offset=offset,
        media_type=type, search=search, tags=_split_tags(tags)
    )


@router.post("", response_model=TextureResponse, status_code=201)
async def upload_texture(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    duration: Optional[float] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user_data: Dict = Depends(require_permission("textures:create")),
    service: TextureService = Depends(get_texture_service),
):
    """
    Upload an image or video to the library. Dimensions, duration and a JPEG
    thumbnail may be supplied by the client; PNG dimensions are read from the file.
    """
    return await service.upload_texture(
        file, get_organization_id(user_data), user_data["id"],
        name=name, tags=_split_tags(tags), width=width, height=height,
        duration=duration, thumbnail=thumbnail
    )


@router.post("/batch/tags", response_model=BatchTagUpdateResult)
async def batch_update_tags(
    request: BatchTagUpdateRequest,
    user_data: Dict = Depends(require_permission("textures:update")),
    service: TextureService = Depends(get_texture_service),
):
    """Set, add or remove tags on several textures at once"""
    return service.batch_update_tags(request.texture_ids, request.tags, request.mode, get_organization_id(user_data))


@router.post("/batch/delete", response_model=BatchDeleteResult)
async def batch_delete(
    request: BatchDeleteRequest,
    user_data: Dict = Depends(require_permission("textures:delete")),
    service: TextureService = Depends(get_texture_service),
):
    return service.batch_delete(request.texture_ids, get_organization_id(user_data))


@router.get("/{texture_id}", response_model=TextureResponse)
async def get_texture(
    texture_id: str,
    user_data: Dict = Depends(require_permission("textures:read")),
    supabase: Client = Depends(get_supabase),
    service: TextureService = Depends(get_texture_service),
):
    check_organization_access("organization_textures", texture_id, user_data, supabase)
    return service.get_texture(texture_id)


@router.patch("/{texture_id}", response_model=TextureResponse)
async def update_texture(
    texture_id: str,
    data: TextureUpdate,
    user_data: Dict = Depends(require_permission("textures:update")),
    supabase: Client = Depends(get_supabase),
    service: TextureService = Depends(get_texture_service),
):
    """Rename or retag a texture"""
    check_organization_access("organization_textures", texture_id, user_data, supabase)
    return service.update_texture(texture_id, data)


@router.delete("/{texture_id}", status_code=204)
async def delete_texture(
    texture_id: str,
    user_data: Dict = Depends(require_permission("textures:delete")),
    supabase: Client = Depends(get_supabase),
    service: TextureService = Depends(get_texture_service),
):
    """Delete a texture and its stored files"""
    check_organization_access("organization_textures", texture_id, user_data, supabase)
    service.delete_texture(texture_id)
    return None

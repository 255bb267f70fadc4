from fastapi import APIRouter, Depends, Request
from app.database.supabase_client import get_supabase
from app.modules.ai_images.schemas import ImageGenerateRequest, ImageEditRequest, GeneratedImage
from app.modules.ai_images.service import ImageGenerationService
from app.modules.textures.service import TextureService
from app.core.dependencies import require_permission, ensure_permission, get_organization_id
from supabase import Client
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai-images", tags=["ai-images"])


def get_image_service() -> ImageGenerationService:
    return ImageGenerationService()


def _save_to_library(
    image: GeneratedImage,
    name: Optional[str],
    tags: List[str],
    user_data: Dict,
    supabase: Client,
) -> GeneratedImage:
    texture = TextureService(supabase).save_ai_generated_texture(
        image.image_base64,
        get_organization_id(user_data),
        user_data["id"],
        name=name,
        tags=tags,
        prompt=image.prompt,
        model=image.model,
    )
    image.texture = texture
    return image


@router.post("/generate", response_model=GeneratedImage)
def generate_image(
    body: ImageGenerateRequest,
    request: Request,
    user_data: Dict = Depends(require_permission("ai_images:generate")),
    supabase: Client = Depends(get_supabase),
    service: ImageGenerationService = Depends(get_image_service),
):
    """
    Generate a 16:9 image from a text prompt. With ``save`` the result is
    also stored in the texture library.
    """
    if body.save:
        ensure_permission(request, user_data, supabase, "textures:create")
    image = service.generate(body.prompt, model=body.model, endpoint=body.endpoint, enhance=body.enhance)
    if body.save:
        image = _save_to_library(image, body.name, body.tags, user_data, supabase)
    return image


@router.post("/edit", response_model=GeneratedImage)
def edit_image(
    body: ImageEditRequest,
    request: Request,
    user_data: Dict = Depends(require_permission("ai_images:generate")),
    supabase: Client = Depends(get_supabase),
    service: ImageGenerationService = Depends(get_image_service),
):
    """Edit an existing image, optionally restricted by a mask"""
    if body.save:
        ensure_permission(request, user_data, supabase, "textures:create")
    image = service.edit(body.source_image, body.prompt, mask_image=body.mask_image, model=body.model)
    if body.save:
        image = _save_to_library(image, body.name, body.tags, user_data, supabase)
    return image

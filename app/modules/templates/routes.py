from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.templates.schemas import (
    TemplateCreate, TemplateUpdate, TemplateResponse,
    ElementCreate, ElementUpdate, ElementResponse,
    BindingCreate, BindingUpdate, BindingResponse,
    AnimationCreate, AnimationResponse, AnimationPhase,
    TemplatePreviewRequest, TemplatePreviewResponse
)
from app.modules.templates.service import TemplateService
from app.core.dependencies import require_permission, check_organization_access, get_organization_id, is_super_user
from supabase import Client
from typing import List, Optional, Dict

router = APIRouter(prefix="/templates", tags=["templates"])


def get_template_service(supabase: Client = Depends(get_supabase)) -> TemplateService:
    return TemplateService(supabase)


@router.get("", response_model=List[TemplateResponse])
async def list_templates(
    layer_id: Optional[str] = None,
    include_archived: bool = False,
    limit: int = 50,
    offset: int = 0,
    user_data: Dict = Depends(require_permission("templates:read")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service),
):
    """List the organization's templates, optionally filtered by layer."""
    organization_id = None if is_super_user(user_data, supabase) else get_organization_id(user_data)
    return service.list_templates(
        organization_id=organization_id, layer_id=layer_id,
        include_archived=include_archived, limit=limit, offset=offset
    )


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(
    template_data: TemplateCreate,
    user_data: Dict = Depends(require_permission("templates:create")),
    service: TemplateService = Depends(get_template_service)
):
    """Create a new graphics template"""
    return service.create_template(template_data, user_data["id"], get_organization_id(user_data))


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    user_data: Dict = Depends(require_permission("templates:read")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service),
):
    """Get template by ID."""
    check_organization_access("templates", template_id, user_data, supabase)
    return service.get_template_by_id(template_id)


@router.put("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: str,
    template_data: TemplateUpdate,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    """Update template"""
    check_organization_access("templates", template_id, user_data, supabase)
    return service.update_template(template_id, template_data)


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: str,
    user_data: Dict = Depends(require_permission("templates:delete")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    """Delete template"""
    check_organization_access("templates", template_id, user_data, supabase)
    service.delete_template(template_id)
    return None


@router.post("/{template_id}/preview", response_model=TemplatePreviewResponse)
async def preview_template(
    template_id: str,
    request: TemplatePreviewRequest,
    user_data: Dict = Depends(require_permission("templates:read")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    """Resolve the template's bindings against a data record"""
    check_organization_access("templates", template_id, user_data, supabase)
    return service.preview_template(template_id, request.record)


# Elements

@router.get("/{template_id}/elements", response_model=List[ElementResponse])
async def list_elements(
    template_id: str,
    user_data: Dict = Depends(require_permission("templates:read")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.list_elements(template_id)


@router.post("/{template_id}/elements", response_model=ElementResponse, status_code=201)
async def create_element(
    template_id: str,
    element_data: ElementCreate,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.create_element(template_id, element_data)


@router.put("/{template_id}/elements/{element_id}", response_model=ElementResponse)
async def update_element(
    template_id: str,
    element_id: str,
    element_data: ElementUpdate,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.update_element(template_id, element_id, element_data)


@router.delete("/{template_id}/elements/{element_id}", status_code=204)
async def delete_element(
    template_id: str,
    element_id: str,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    service.delete_element(template_id, element_id)
    return None


# Bindings

@router.get("/{template_id}/bindings", response_model=List[BindingResponse])
async def list_bindings(
    template_id: str,
    user_data: Dict = Depends(require_permission("templates:read")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.list_bindings(template_id)


@router.post("/{template_id}/bindings", response_model=BindingResponse, status_code=201)
async def create_binding(
    template_id: str,
    binding_data: BindingCreate,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    """Bind an element to a data field. The element must belong to this template."""
    check_organization_access("templates", template_id, user_data, supabase)
    return service.create_binding(template_id, binding_data)


@router.put("/{template_id}/bindings/{binding_id}", response_model=BindingResponse)
async def update_binding(
    template_id: str,
    binding_id: str,
    binding_data: BindingUpdate,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.update_binding(template_id, binding_id, binding_data)


@router.delete("/{template_id}/bindings/{binding_id}", status_code=204)
async def delete_binding(
    template_id: str,
    binding_id: str,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    service.delete_binding(template_id, binding_id)
    return None


# Animations

@router.get("/{template_id}/animations", response_model=List[AnimationResponse])
async def list_animations(
    template_id: str,
    phase: Optional[AnimationPhase] = None,
    user_data: Dict = Depends(require_permission("templates:read")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.list_animations(template_id, phase)


@router.post("/{template_id}/animations", response_model=AnimationResponse, status_code=201)
async def create_animation(
    template_id: str,
    animation_data: AnimationCreate,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    return service.create_animation(template_id, animation_data)


@router.delete("/{template_id}/animations/{animation_id}", status_code=204)
async def delete_animation(
    template_id: str,
    animation_id: str,
    user_data: Dict = Depends(require_permission("templates:update")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service)
):
    check_organization_access("templates", template_id, user_data, supabase)
    service.delete_animation(template_id, animation_id)
    return None

from supabase import Client
from app.modules.templates.schemas import (
    TemplateCreate, TemplateUpdate, TemplateResponse,
    ElementCreate, ElementUpdate, ElementResponse,
    BindingCreate, BindingUpdate, BindingResponse,
    AnimationCreate, AnimationResponse,
    ResolvedElement, TemplatePreviewResponse
)
from app.modules.templates.formatter import NAMED_FORMATTERS
from app.modules.templates.binding_resolver import (
    resolve_element_bindings, should_hide_element, get_default_target_property
)
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


def _options_blob(options) -> Optional[Dict[str, Any]]:
    """Only the options that differ from their defaults are stored"""
    if options is None:
        return None
    return options.model_dump(by_alias=True, exclude_defaults=True)


class TemplateService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    # Templates

    def create_template(self, template_data: TemplateCreate, user_id: str, organization_id: str) -> TemplateResponse:
        """Create a new template"""
        if not template_data.name.strip():
            raise HTTPException(status_code=400, detail="Name must not be empty")
        try:
            result = self.supabase.table("templates").insert({
                "name": template_data.name.strip(),
                "description": template_data.description,
                "project_id": template_data.project_id,
                "layer_id": template_data.layer_id,
                "tags": template_data.tags,
                "width": template_data.width,
                "height": template_data.height,
                "enabled": template_data.enabled,
                "locked": False,
                "archived": False,
                "sort_order": template_data.sort_order,
                "organization_id": organization_id,
                "created_by": user_id
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create template")

            logger.info(f"Created template {result.data[0]['id']} ({template_data.name})")
            return TemplateResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_template_by_id(self, template_id: str) -> TemplateResponse:
        """Get template by ID."""
        try:
            result = self.supabase.table("templates").select("*").eq("id", template_id).maybe_single().execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Template not found")
            return TemplateResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_template(self, template_id: str, template_data: TemplateUpdate) -> TemplateResponse:
        """Update template"""
        if template_data.name is not None and not template_data.name.strip():
            raise HTTPException(status_code=400, detail="Name must not be empty")
        try:
            update_data = template_data.model_dump(exclude_none=True)
            if not update_data:
                return self.get_template_by_id(template_id)
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

            result = self.supabase.table("templates")\
                .update(update_data)\
                .eq("id", template_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Template not found")

            return TemplateResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_templates(
        self,
        organization_id: Optional[str] = None,
        layer_id: Optional[str] = None,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[TemplateResponse]:
        """List templates in display order, optionally filtered by layer."""
        try:
            query = self.supabase.table("templates").select("*")
            if organization_id:
                query = query.eq("organization_id", organization_id)
            if layer_id:
                query = query.eq("layer_id", layer_id)
            if not include_archived:
                query = query.eq("archived", False)
            result = query.order("sort_order").limit(limit).offset(offset).execute()
            return [TemplateResponse(**t) for t in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_template(self, template_id: str) -> bool:
        """Delete template together with its elements, bindings and animations."""
        try:
            self.get_template_by_id(template_id)
            for table in ("bindings", "animations", "elements"):
                self.supabase.table(table).delete().eq("template_id", template_id).execute()
            result = self.supabase.table("templates").delete().eq("id", template_id).execute()
            logger.info(f"Deleted template {template_id}")
            return len(result.data) > 0
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    # Elements

    def list_elements(self, template_id: str) -> List[ElementResponse]:
        try:
            result = self.supabase.table("elements")\
                .select("*")\
                .eq("template_id", template_id)\
                .order("sort_order")\
                .execute()
            return [ElementResponse(**e) for e in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_element(self, template_id: str, element_id: str) -> ElementResponse:
        try:
            result = self.supabase.table("elements").select("*").eq("id", element_id).maybe_single().execute()
            if not result or not result.data or result.data.get("template_id") != template_id:
                raise HTTPException(status_code=404, detail="Element not found")
            return ElementResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_element(self, template_id: str, element_data: ElementCreate) -> ElementResponse:
        self.get_template_by_id(template_id)
        if element_data.parent_element_id:
            self._require_element_in_template(element_data.parent_element_id, template_id, "Parent element")
        try:
            row = element_data.model_dump()
            row["template_id"] = template_id
            result = self.supabase.table("elements").insert(row).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create element")
            return ElementResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_element(self, template_id: str, element_id: str, element_data: ElementUpdate) -> ElementResponse:
        self.get_element(template_id, element_id)
        if element_data.parent_element_id:
            if element_data.parent_element_id == element_id:
                raise HTTPException(status_code=400, detail="An element cannot be its own parent")
            self._require_element_in_template(element_data.parent_element_id, template_id, "Parent element")
        update_data = element_data.model_dump(exclude_none=True)
        if not update_data:
            return self.get_element(template_id, element_id)
        try:
            result = self.supabase.table("elements")\
                .update(update_data)\
                .eq("id", element_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Element not found")
            return ElementResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_element(self, template_id: str, element_id: str) -> bool:
        """Delete element; its bindings and animations go with it."""
        self.get_element(template_id, element_id)
        try:
            for table in ("bindings", "animations"):
                self.supabase.table(table).delete().eq("element_id", element_id).execute()
            result = self.supabase.table("elements").delete().eq("id", element_id).execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _require_element_in_template(self, element_id: str, template_id: str, label: str = "Element") -> Dict[str, Any]:
        """400 unless ``element_id`` is an element of ``template_id``."""
        result = self.supabase.table("elements")\
            .select("id, template_id, element_type")\
            .eq("id", element_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise HTTPException(status_code=400, detail=f"{label} {element_id} does not exist")
        if result.data.get("template_id") != template_id:
            raise HTTPException(status_code=400, detail=f"{label} {element_id} belongs to another template")
        return result.data

    # Bindings

    def list_bindings(self, template_id: str) -> List[BindingResponse]:
        try:
            result = self.supabase.table("bindings").select("*").eq("template_id", template_id).execute()
            return [BindingResponse(**b) for b in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_binding(self, template_id: str, binding_id: str) -> BindingResponse:
        try:
            result = self.supabase.table("bindings").select("*").eq("id", binding_id).maybe_single().execute()
            if not result or not result.data or result.data.get("template_id") != template_id:
                raise HTTPException(status_code=404, detail="Binding not found")
            return BindingResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_binding(self, template_id: str, binding_data: BindingCreate) -> BindingResponse:
        """Bind an element of this template to a data field path"""
        self.get_template_by_id(template_id)
        element = self._require_element_in_template(binding_data.element_id, template_id)
        self._validate_binding_fields(binding_data.binding_key, binding_data.formatter)
        try:
            result = self.supabase.table("bindings").insert({
                "template_id": template_id,
                "element_id": binding_data.element_id,
                "binding_key": binding_data.binding_key.strip(),
                "target_property": binding_data.target_property
                    or get_default_target_property(element.get("element_type") or "text"),
                "binding_type": binding_data.binding_type,
                "default_value": binding_data.default_value,
                "formatter": binding_data.formatter,
                "formatter_options": _options_blob(binding_data.formatter_options),
                "required": binding_data.required
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create binding")
            return BindingResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_binding(self, template_id: str, binding_id: str, binding_data: BindingUpdate) -> BindingResponse:
        existing = self.get_binding(template_id, binding_id)
        if binding_data.element_id and binding_data.element_id != existing.element_id:
            self._require_element_in_template(binding_data.element_id, template_id)
        if binding_data.binding_key is not None or binding_data.formatter is not None:
            self._validate_binding_fields(
                binding_data.binding_key if binding_data.binding_key is not None else existing.binding_key,
                binding_data.formatter,
            )
        update_data = binding_data.model_dump(exclude_none=True, exclude={"formatter_options"})
        if binding_data.formatter_options is not None:
            update_data["formatter_options"] = _options_blob(binding_data.formatter_options)
        if not update_data:
            return existing
        try:
            result = self.supabase.table("bindings")\
                .update(update_data)\
                .eq("id", binding_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Binding not found")
            return BindingResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_binding(self, template_id: str, binding_id: str) -> bool:
        self.get_binding(template_id, binding_id)
        try:
            result = self.supabase.table("bindings").delete().eq("id", binding_id).execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @staticmethod
    def _validate_binding_fields(binding_key: str, formatter: Optional[str]):
        if not binding_key or not binding_key.strip():
            raise HTTPException(status_code=400, detail="Binding key must not be empty")
        if formatter and formatter not in NAMED_FORMATTERS:
            raise HTTPException(
                status_code=400,
                detail=f"Unknown formatter '{formatter}'. Expected one of: {', '.join(NAMED_FORMATTERS)}"
            )

    # Animations

    def list_animations(self, template_id: str, phase: Optional[str] = None) -> List[AnimationResponse]:
        try:
            query = self.supabase.table("animations").select("*").eq("template_id", template_id)
            if phase:
                query = query.eq("phase", phase)
            result = query.execute()
            return [AnimationResponse(**a) for a in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_animation(self, template_id: str, animation_data: AnimationCreate) -> AnimationResponse:
        self._require_element_in_template(animation_data.element_id, template_id)
        try:
            row = animation_data.model_dump()
            row["template_id"] = template_id
            result = self.supabase.table("animations").insert(row).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create animation")
            return AnimationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_animation(self, template_id: str, animation_id: str) -> bool:
        try:
            result = self.supabase.table("animations")\
                .delete()\
                .eq("id", animation_id)\
                .eq("template_id", template_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Animation not found")
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    # Preview

    def preview_template(self, template_id: str, record: Optional[Dict[str, Any]]) -> TemplatePreviewResponse:
        """Resolve every element of a template against one data record"""
        self.get_template_by_id(template_id)
        bindings = self.list_bindings(template_id)
        resolved = []
        for element in self.list_elements(template_id):
            element_dict = element.model_dump()
            resolved.append(ResolvedElement(
                element=resolve_element_bindings(element_dict, bindings, record),
                hidden=should_hide_element(element.id, bindings, record),
            ))
        return TemplatePreviewResponse(template_id=template_id, elements=resolved)

from fastapi import APIRouter, Depends, HTTPException
from app.database.supabase_client import get_supabase
from app.modules.playout.schemas import PlayInRequest, SwitchRequest, LayerStateResponse, LayerStatesResponse
from app.modules.playout.sequencer import OnAirSequencer, OnAirState
from app.modules.templates.service import TemplateService
from app.core.dependencies import require_permission, check_organization_access, get_organization_id, is_super_user
from supabase import Client
from typing import Dict, Iterable, Optional

router = APIRouter(prefix="/playout", tags=["playout"])

# One on-air state per process
sequencer = OnAirSequencer()


def get_sequencer() -> OnAirSequencer:
    return sequencer


def get_template_service(supabase: Client = Depends(get_supabase)) -> TemplateService:
    return TemplateService(supabase)


def _to_response(layer_id: str, state: Optional[OnAirState]) -> LayerStateResponse:
    if state is None:
        return LayerStateResponse(layer_id=layer_id)
    return LayerStateResponse(
        layer_id=layer_id,
        template_id=state.template_id,
        state=state.state,
        pending_switch=state.pending_switch,
    )


def _load_animations(service: TemplateService, on_air: OnAirSequencer, template_ids: Iterable[str]):
    for template_id in template_ids:
        if template_id:
            on_air.set_animations(template_id, service.list_animations(template_id))


@router.get("/layers", response_model=LayerStatesResponse)
async def get_layer_states(
    user_data: Dict = Depends(require_permission("playout:read")),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    """Current on-air state of every active layer"""
    return LayerStatesResponse(layers={
        layer_id: _to_response(layer_id, state) for layer_id, state in on_air.states().items()
    })


@router.get("/layers/{layer_id}", response_model=LayerStateResponse)
async def get_layer_state(
    layer_id: str,
    user_data: Dict = Depends(require_permission("playout:read")),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    return _to_response(layer_id, on_air.get_state(layer_id))


@router.post("/layers/{layer_id}/in", response_model=LayerStateResponse)
async def play_in(
    layer_id: str,
    request: PlayInRequest,
    user_data: Dict = Depends(require_permission("playout:control")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    """Play a template IN on a layer"""
    check_organization_access("templates", request.template_id, user_data, supabase)
    _load_animations(service, on_air, [request.template_id])
    return _to_response(layer_id, on_air.play_in(request.template_id, layer_id))


@router.post("/layers/{layer_id}/out", response_model=LayerStateResponse)
async def play_out(
    layer_id: str,
    user_data: Dict = Depends(require_permission("playout:control")),
    service: TemplateService = Depends(get_template_service),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    """Play the layer's template OUT"""
    current = on_air.get_state(layer_id)
    if current is None:
        raise HTTPException(status_code=409, detail="Nothing is on air in this layer")
    _load_animations(service, on_air, [current.template_id])
    return _to_response(layer_id, on_air.play_out(layer_id))


@router.post("/layers/{layer_id}/switch", response_model=LayerStateResponse)
async def switch_template(
    layer_id: str,
    request: SwitchRequest,
    user_data: Dict = Depends(require_permission("playout:control")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    """Replace the layer's template: OUT the current one, then IN the requested one"""
    check_organization_access("templates", request.template_id, user_data, supabase)
    current = on_air.get_state(layer_id)
    _load_animations(service, on_air, [request.template_id, current.template_id if current else None])
    return _to_response(layer_id, on_air.switch_template(request.template_id, layer_id))


@router.post("/layers/{layer_id}/next", response_model=LayerStateResponse)
async def switch_to_next_template(
    layer_id: str,
    user_data: Dict = Depends(require_permission("playout:control")),
    supabase: Client = Depends(get_supabase),
    service: TemplateService = Depends(get_template_service),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    """Cycle the layer to its next template in display order"""
    organization_id = None if is_super_user(user_data, supabase) else get_organization_id(user_data)
    templates = service.list_templates(organization_id=organization_id, layer_id=layer_id, limit=1000)
    template_ids = [t.id for t in templates]
    _load_animations(service, on_air, template_ids)
    return _to_response(layer_id, on_air.switch_layer_template(layer_id, template_ids))


@router.delete("/layers/{layer_id}", status_code=204)
async def clear_layer(
    layer_id: str,
    user_data: Dict = Depends(require_permission("playout:control")),
    on_air: OnAirSequencer = Depends(get_sequencer),
):
    """Take the layer off air immediately"""
    on_air.clear(layer_id)
    return None

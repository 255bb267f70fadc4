from pydantic import BaseModel
from typing import Optional, Dict, Literal


OnAirPhase = Literal["idle", "in", "loop", "out"]


class PlayInRequest(BaseModel):
    template_id: str


class SwitchRequest(BaseModel):
    template_id: str


class LayerStateResponse(BaseModel):
    layer_id: str
    template_id: Optional[str] = None
    state: OnAirPhase = "idle"
    pending_switch: Optional[str] = None


class LayerStatesResponse(BaseModel):
    layers: Dict[str, LayerStateResponse]

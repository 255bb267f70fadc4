from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime


AnimationPhase = Literal["in", "loop", "out"]
BindingType = Literal["text", "image", "number", "color", "boolean"]
DateFormat = Literal[
    "none", "dd-mm-yyyy", "mm-dd-yyyy", "yyyy-mm-dd",
    "day-month-year", "month-day-year", "written-full",
    "written-short", "day-month", "month-year", "weekday-only",
    "day-only", "month-only", "year-only", "relative",
]


class TemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    layer_id: Optional[str] = None
    project_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    width: Optional[int] = None
    height: Optional[int] = None
    enabled: bool = True
    sort_order: int = 0


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    layer_id: Optional[str] = None
    tags: Optional[List[str]] = None
    width: Optional[int] = None
    height: Optional[int] = None
    enabled: Optional[bool] = None
    locked: Optional[bool] = None
    archived: Optional[bool] = None
    sort_order: Optional[int] = None


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    organization_id: Optional[str] = None
    project_id: Optional[str] = None
    layer_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    enabled: bool = True
    locked: bool = False
    archived: bool = False
    version: int = 1
    sort_order: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ElementCreate(BaseModel):
    name: str
    element_type: str = "text"
    element_id: Optional[str] = None
    parent_element_id: Optional[str] = None
    sort_order: int = 0
    z_index: int = 0
    position_x: float = 0
    position_y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: float = 0
    opacity: float = 1
    content: Dict[str, Any] = Field(default_factory=dict)
    styles: Dict[str, Any] = Field(default_factory=dict)
    visible: bool = True


class ElementUpdate(BaseModel):
    name: Optional[str] = None
    element_type: Optional[str] = None
    parent_element_id: Optional[str] = None
    sort_order: Optional[int] = None
    z_index: Optional[int] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    opacity: Optional[float] = None
    content: Optional[Dict[str, Any]] = None
    styles: Optional[Dict[str, Any]] = None
    visible: Optional[bool] = None
    locked: Optional[bool] = None


class ElementResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    template_id: str
    name: str
    element_type: str = "text"
    element_id: Optional[str] = None
    parent_element_id: Optional[str] = None
    sort_order: int = 0
    z_index: int = 0
    position_x: float = 0
    position_y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: float = 0
    opacity: float = 1
    content: Dict[str, Any] = Field(default_factory=dict)
    styles: Dict[str, Any] = Field(default_factory=dict)
    visible: bool = True
    locked: bool = False


class TextReplacement(BaseModel):
    match: str
    replace: str = ""


class FormatterOptions(BaseModel):
    """Display options stored on a binding as ``formatter_options`` (camelCase keys)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    prefix: Optional[str] = None
    suffix: Optional[str] = None
    hide_on_zero: bool = False
    hide_on_null: bool = False

    text_case: Literal["none", "uppercase", "lowercase", "capitalize", "titlecase"] = "none"
    replacements: List[TextReplacement] = Field(default_factory=list)
    trim_start: int = Field(default=0, ge=0)
    trim_end: int = Field(default=0, ge=0)

    number_format: Literal["none", "comma", "space", "compact"] = "none"
    # -1 drops the fractional part, None leaves the value as it is
    decimals: Optional[int] = Field(default=None, ge=-1)
    decimal_separator: Literal[".", ","] = "."
    round_to: Literal["none", "1", "10", "100", "1000"] = "none"
    show_sign: bool = False
    pad_zeros: int = Field(default=0, ge=0)

    date_format: DateFormat = "none"
    time_format: Literal["none", "12h", "24h"] = "none"
    show_seconds: bool = False

    # Options read by the named formatters
    locale: Optional[str] = None
    currency: Optional[str] = None
    max_length: Optional[int] = Field(default=None, ge=1)
    truncate_suffix: Optional[str] = None


class BindingCreate(BaseModel):
    element_id: str
    binding_key: str
    target_property: Optional[str] = None
    binding_type: BindingType = "text"
    default_value: Optional[str] = None
    formatter: Optional[str] = None
    formatter_options: Optional[FormatterOptions] = None
    required: bool = False


class BindingUpdate(BaseModel):
    element_id: Optional[str] = None
    binding_key: Optional[str] = None
    target_property: Optional[str] = None
    binding_type: Optional[BindingType] = None
    default_value: Optional[str] = None
    formatter: Optional[str] = None
    formatter_options: Optional[FormatterOptions] = None
    required: Optional[bool] = None


class BindingResponse(BaseModel):
    id: str
    template_id: str
    element_id: str
    binding_key: str
    target_property: str = "content.text"
    binding_type: BindingType = "text"
    default_value: Optional[str] = None
    formatter: Optional[str] = None
    formatter_options: Optional[Dict[str, Any]] = None
    required: bool = False


class AnimationCreate(BaseModel):
    element_id: str
    phase: AnimationPhase
    delay: int = Field(default=0, ge=0)
    duration: int = Field(default=500, ge=0)
    iterations: int = 1
    direction: Literal["normal", "reverse", "alternate", "alternate-reverse"] = "normal"
    easing: str = "ease-out"
    preset_id: Optional[str] = None


class AnimationResponse(BaseModel):
    id: str
    template_id: str
    element_id: str
    phase: AnimationPhase
    delay: int = 0
    duration: int = 0
    iterations: int = 1
    direction: str = "normal"
    easing: str = "ease-out"
    preset_id: Optional[str] = None
    created_at: Optional[datetime] = None


class TemplatePreviewRequest(BaseModel):
    record: Optional[Dict[str, Any]] = None


class ResolvedElement(BaseModel):
    element: Dict[str, Any]
    hidden: bool = False


class TemplatePreviewResponse(BaseModel):
    template_id: str
    elements: List[ResolvedElement]

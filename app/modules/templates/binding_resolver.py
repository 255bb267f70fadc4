"""Apply data bindings to element content for a given data record."""

import copy
import re
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from app.modules.data_sources.field_extraction import MISSING, get_nested_value, set_nested_value
from app.modules.templates.formatter import apply_formatter, coerce_options
from app.modules.templates.schemas import BindingResponse

_IMAGE_URL = re.compile(r"^https?://.+\.(jpg|jpeg|png|gif|webp|svg)", re.IGNORECASE)
_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{3,8}$")
_FUNCTION_COLOR = re.compile(r"^(rgb|hsl)a?\(")


def find_binding(element_id: str, bindings: Sequence[BindingResponse]) -> Optional[BindingResponse]:
    return next((b for b in bindings if b.element_id == element_id), None)


def should_hide_element(
    element_id: str,
    bindings: Sequence[BindingResponse],
    record: Optional[Dict[str, Any]],
) -> bool:
    """True when the element's binding asks to hide on a null/empty or zero value."""
    binding = find_binding(element_id, bindings)
    if binding is None or not binding.formatter_options:
        return False
    options = coerce_options(binding.formatter_options)

    raw_value = get_nested_value(record, binding.binding_key) if record else MISSING
    if options.hide_on_null and (raw_value is MISSING or raw_value is None or raw_value == ""):
        return True
    if options.hide_on_zero and raw_value == 0 and not isinstance(raw_value, bool):
        return True
    return False


def resolve_element_bindings(
    element: Dict[str, Any],
    bindings: Sequence[BindingResponse],
    record: Optional[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Return a copy of ``element`` with its bound property set from ``record``.
    The element comes back unchanged when there is no record, no binding, or the
    bound field is absent from the record.
    """
    if not record:
        return element
    binding = find_binding(element["id"], bindings)
    if binding is None:
        return element

    raw_value = get_nested_value(record, binding.binding_key)
    if raw_value is MISSING:
        return element

    value = apply_formatter(raw_value, binding.formatter, binding.formatter_options, now=now)
    resolved = copy.deepcopy(element)
    target = binding.target_property or get_default_target_property(element.get("element_type", "text"))
    set_nested_value(resolved, target, value)
    return resolved


def get_bound_value(binding: BindingResponse, record: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Any:
    """Formatted value for display, falling back to the binding's default."""
    if not record:
        return binding.default_value
    raw_value = get_nested_value(record, binding.binding_key)
    if raw_value is MISSING:
        return binding.default_value
    return apply_formatter(raw_value, binding.formatter, binding.formatter_options, now=now)


def get_default_target_property(element_type: str) -> str:
    if element_type == "image":
        return "content.src"
    return "content.text"


def infer_binding_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        if _IMAGE_URL.match(value):
            return "image"
        if _HEX_COLOR.match(value) or _FUNCTION_COLOR.match(value):
            return "color"
    return "text"

"""
Field-mapping helpers: suggest template-field to source-column pairs by name
similarity and apply a saved mapping to a record or a chunk of rows.
"""

import logging
import re
from typing import Any, Dict, List, Sequence, Union

from app.modules.data_sources.field_extraction import MISSING, get_nested_value
from app.modules.data_sources.schemas import FieldMappingEntry, FieldMappingSuggestion, TemplateMapping

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 50.0
EXACT_SCORE = 100.0
PARTIAL_SCORE = 80.0

_SEPARATORS = re.compile(r"[_-]")
_INDEXES = re.compile(r"\[\d+\]")
_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


def _normalize_template_field(name: str) -> str:
    return _SEPARATORS.sub("", name.lower())


def _normalize_source_column(column: str) -> str:
    leaf = column.split(".")[-1] or column
    return _INDEXES.sub("", _SEPARATORS.sub("", leaf.lower()))


def calculate_similarity(first: str, second: str) -> float:
    """Share of the shorter string's characters found in the longer one, scaled to the longer length."""
    longer, shorter = (first, second) if len(first) > len(second) else (second, first)
    if not longer:
        return 100.0
    matches = sum(1 for ch in shorter if ch in longer)
    return matches / len(longer) * 100


def score_match(template_field: str, source_column: str) -> float:
    clean_template = _normalize_template_field(template_field)
    clean_source = _normalize_source_column(source_column)
    if clean_source == clean_template:
        return EXACT_SCORE
    if clean_source in clean_template or clean_template in clean_source:
        return PARTIAL_SCORE
    return calculate_similarity(clean_template, clean_source)


def auto_detect_mappings(
    source_columns: Sequence[str],
    template_fields: Sequence[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> List[FieldMappingSuggestion]:
    """Best source column per template field, kept only when it clears ``threshold``."""
    suggestions: List[FieldMappingSuggestion] = []
    for template_field in template_fields:
        best_column = None
        best_score = 0.0
        for column in source_columns:
            score = score_match(template_field, column)
            if score > best_score and score > threshold:
                best_column, best_score = column, score
        if best_column is not None:
            suggestions.append(FieldMappingSuggestion(
                template_field=template_field,
                source_column=best_column,
                confidence=round(best_score, 2),
            ))
    logger.debug(f"Auto-detected {len(suggestions)} of {len(template_fields)} field mappings")
    return suggestions


def _lookup(row: Dict[str, Any], column: Union[str, int]) -> Any:
    if isinstance(column, int):
        values = list(row.values())
        return values[column] if 0 <= column < len(values) else None
    if column in row:
        return row[column]
    value = get_nested_value(row, column)
    return None if value is MISSING else value


def _render_combined(row: Dict[str, Any], template: str) -> str:
    def replace(match: "re.Match[str]") -> str:
        value = _lookup(row, match.group(1).strip())
        return "" if value is None else str(value)
    return _PLACEHOLDER.sub(replace, template)


def _resolve_entry(entry: FieldMappingEntry, rows: Sequence[Dict[str, Any]]) -> Any:
    index = entry.row_index or 0
    if index >= len(rows):
        return None
    row = rows[index]
    if entry.combined_fields:
        return _render_combined(row, entry.combined_fields.template)
    return _lookup(row, entry.source_column)


def apply_template_mapping(
    data: Union[Dict[str, Any], Sequence[Dict[str, Any]]],
    mapping: TemplateMapping,
) -> Dict[str, Any]:
    """
    Build a template payload from one record, or from one chunk of rows where each
    entry's ``row_index`` picks the row inside the chunk. Missing rows map to None.
    """
    rows = [data] if isinstance(data, dict) else list(data)
    return {entry.template_field: _resolve_entry(entry, rows) for entry in mapping.field_mappings}

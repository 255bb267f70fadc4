import csv
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.modules.data_sources.field_extraction import MISSING, get_nested_value
from app.modules.data_sources.schemas import FilterCondition

logger = logging.getLogger(__name__)

DELIMITER_CANDIDATES = ["\t", ",", ";", "|"]
_DETECT_SAMPLE_LINES = 10


@dataclass
class ParsedFile:
    headers: List[str]
    rows: List[Dict[str, Any]]
    delimiter: str
    total_rows: int = 0
    skipped_lines: int = 0
    extra_values: int = 0


def skip_leading_lines(content: str, header_row_number: int) -> str:
    """Drop the ``header_row_number - 1`` lines that precede the header row."""
    if header_row_number < 1:
        raise ValueError("header_row_number must be at least 1")
    remaining = content
    for _ in range(header_row_number - 1):
        newline_index = remaining.find("\n")
        if newline_index == -1:
            break
        remaining = remaining[newline_index + 1:]
    return remaining


def _dedupe_headers(headers: Sequence[str]) -> List[str]:
    seen: Dict[str, int] = {}
    result = []
    for header in headers:
        name = header.strip()
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        result.append(name)
    return result


def parse_delimited(
    content: str,
    delimiter: str = ",",
    has_headers: bool = True,
    header_row_number: int = 1,
    preview: Optional[int] = None,
    custom_headers: Optional[Sequence[str]] = None,
) -> ParsedFile:
    """
    Parse CSV/TSV-style text into dict rows.

    ``header_row_number`` is 1-based; lines before it are skipped verbatim.
    Without headers, columns are named ``Column1..N`` after the first row's width.
    ``custom_headers`` renames columns by position. ``preview`` caps the rows kept
    while ``total_rows`` still counts every non-empty data row.
    """
    if not delimiter:
        raise ValueError("Delimiter must not be empty")
    body = skip_leading_lines(content, header_row_number)
    reader = csv.reader(io.StringIO(body), delimiter=delimiter)
    records = [r for r in reader if any(cell.strip() for cell in r)]

    if not records:
        return ParsedFile(headers=[], rows=[], delimiter=delimiter, skipped_lines=header_row_number - 1)

    if has_headers:
        headers = _dedupe_headers(records[0])
        data_rows = records[1:]
    else:
        headers = [f"Column{i + 1}" for i in range(len(records[0]))]
        data_rows = records

    if custom_headers:
        renamed = list(headers)
        for index, name in enumerate(custom_headers):
            if index < len(renamed) and name and name.strip():
                renamed[index] = name.strip()
        headers = renamed

    rows: List[Dict[str, Any]] = []
    extra_values = 0
    for values in data_rows:
        if preview is not None and len(rows) >= preview:
            break
        if len(values) > len(headers):
            extra_values += len(values) - len(headers)
        padded = list(values) + [""] * (len(headers) - len(values))
        rows.append(dict(zip(headers, padded)))

    if extra_values:
        logger.warning(f"Dropped {extra_values} values beyond the {len(headers)} header columns")

    return ParsedFile(
        headers=headers,
        rows=rows,
        delimiter=delimiter,
        total_rows=len(data_rows),
        skipped_lines=header_row_number - 1,
        extra_values=extra_values,
    )


def detect_delimiter(content: str, candidates: Sequence[str] = DELIMITER_CANDIDATES) -> str:
    """Pick the delimiter whose per-line count is consistent (and largest) across the first lines."""
    lines = [line for line in content.splitlines() if line.strip()][:_DETECT_SAMPLE_LINES]
    if not lines:
        return ","

    best = ","
    best_score = (False, 0.0)
    for candidate in candidates:
        counts = [line.count(candidate) for line in lines]
        if not any(counts):
            continue
        consistent = len(set(counts)) == 1
        average = sum(counts) / len(counts)
        score = (consistent, average)
        if score > best_score:
            best, best_score = candidate, score
    return best


def parse_json_content(content: str, data_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """Turn a JSON document into a list of records, optionally under a dotted data path."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON format: {e.msg}") from e

    if data_path:
        data = get_nested_value(data, data_path)
        if data is MISSING:
            raise ValueError(f"Data path '{data_path}' not found in document")

    if data is None:
        return []
    if isinstance(data, list):
        return [item if isinstance(item, dict) else {"value": item} for item in data]
    if isinstance(data, dict):
        return [data]
    return [{"value": data}]


def _cell_text(row: Dict[str, Any], field_name: str) -> str:
    value = row.get(field_name)
    return "" if value is None else str(value).strip()


def matches_filter(row: Dict[str, Any], condition: FilterCondition) -> bool:
    value = _cell_text(row, condition.field)
    compare = str(condition.value).strip()
    operator = condition.operator

    if operator == "==":
        return value == compare
    if operator == "!=":
        return value != compare
    if operator == "contains":
        return compare.lower() in value.lower()
    if operator == "startsWith":
        return value.lower().startswith(compare.lower())
    if operator == "endsWith":
        return value.lower().endswith(compare.lower())
    if operator in ("in", "notIn"):
        options = [v.strip().lower() for v in compare.split(",")]
        found = value.lower() in options
        return found if operator == "in" else not found
    return True


def filter_rows(
    rows: Iterable[Dict[str, Any]],
    filters: Sequence[FilterCondition],
    logic: str = "AND",
) -> List[Dict[str, Any]]:
    """Keep rows matching ALL (``AND``) or ANY (``OR``) of the conditions."""
    active = [f for f in filters if f.field]
    if not active:
        return list(rows)
    combine = any if logic == "OR" else all
    return [row for row in rows if combine(matches_filter(row, f) for f in active)]


def chunk_rows(rows: Sequence[Dict[str, Any]], chunk_size: int) -> List[List[Dict[str, Any]]]:
    """Group consecutive rows; the last chunk may be shorter."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [list(rows[i:i + chunk_size]) for i in range(0, len(rows), chunk_size)]

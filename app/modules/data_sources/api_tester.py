"""Test an API source configuration by calling it and listing the fields of its reply."""

import ipaddress
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException
from pydantic import ValidationError

from app.config import settings
from app.modules.data_sources.field_extraction import extract_json_fields
from app.modules.data_sources.file_parser import parse_json_content
from app.modules.data_sources.request_auth import build_authenticated_request, convert_legacy_auth
from app.modules.data_sources.schemas import ApiConfig, ApiTestResult

logger = logging.getLogger(__name__)

UNREACHABLE_HINT = "Connection failed - the target server may be unreachable or refused the request"
SAMPLE_SIZE = 5


def _is_internal_host(host: str) -> bool:
    if host in ("localhost", "") or host.endswith(".localhost") or host.endswith(".internal"):
        return True
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local or address.is_reserved


def load_api_config(raw_config: Dict[str, Any]) -> ApiConfig:
    """Validate a wizard API config after folding the legacy ``auth_required`` shape."""
    try:
        return ApiConfig(**{**raw_config, **convert_legacy_auth(raw_config)})
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid API configuration: {e.errors()[0]['msg']}")


class ApiTester:
    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.api_test_timeout
        self.transport = transport

    def test(self, raw_config: Dict[str, Any]) -> ApiTestResult:
        api_config = load_api_config(raw_config)
        if not api_config.url:
            raise HTTPException(status_code=400, detail="API URL is required")
        url = httpx.URL(api_config.url)
        if url.scheme not in ("http", "https"):
            raise HTTPException(status_code=400, detail="API URL must use http or https")
        if _is_internal_host(url.host):
            raise HTTPException(status_code=400, detail="API URL must point to a public host")

        headers, params = build_authenticated_request(api_config)
        headers.setdefault("Content-Type", "application/json")
        content = api_config.body if api_config.body and api_config.method in ("POST", "PUT", "PATCH") else None

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(api_config.method, url, headers=headers, params=params, content=content)
        except httpx.HTTPError as e:
            logger.warning(f"API test request to {url.host} failed: {e}")
            raise HTTPException(status_code=502, detail=f"{UNREACHABLE_HINT}: {str(e)}")

        if response.status_code >= 400:
            raise HTTPException(
                status_code=502,
                detail=f"HTTP error {response.status_code}: {response.reason_phrase}",
            )

        try:
            records = parse_json_content(response.text, api_config.data_path)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        fields = extract_json_fields(records)
        logger.info(f"API test against {url.host} returned {len(records)} records, {len(fields)} fields")
        return ApiTestResult(
            status=response.status_code,
            fields=fields,
            record_count=len(records),
            sample=records[:SAMPLE_SIZE],
        )

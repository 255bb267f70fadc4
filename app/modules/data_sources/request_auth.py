import base64
import hashlib
import hmac
import time
import uuid
from typing import Any, Dict, Optional, Tuple

from app.modules.data_sources.schemas import ApiConfig, AuthConfig

DEFAULT_KEY_HEADER = "X-API-Key"
DEFAULT_KEY_PARAM = "api_key"
DEFAULT_SIGNATURE_HEADER = "X-Signature"


def _sign(auth: AuthConfig, payload: str) -> str:
    digest = hashlib.sha512 if auth.signature_algorithm == "sha512" else hashlib.sha256
    return hmac.new(auth.secret_key.encode("utf-8"), payload.encode("utf-8"), digest).hexdigest()


def build_authenticated_request(
    api_config: ApiConfig,
    now: Optional[float] = None,
    nonce: Optional[str] = None,
) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Return the headers and query params an API source's auth settings call for."""
    headers: Dict[str, str] = dict(api_config.headers)
    params: Dict[str, str] = {}
    auth = api_config.auth_config

    if api_config.auth_type == "basic":
        if auth.username and auth.password:
            token = base64.b64encode(f"{auth.username}:{auth.password}".encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {token}"

    elif api_config.auth_type in ("bearer", "oauth2"):
        if auth.token:
            headers["Authorization"] = f"Bearer {auth.token}"

    elif api_config.auth_type == "api_key_header":
        if auth.api_key:
            headers[auth.key_header_name or DEFAULT_KEY_HEADER] = auth.api_key

    elif api_config.auth_type == "api_key_query":
        if auth.api_key:
            params[auth.key_param_name or DEFAULT_KEY_PARAM] = auth.api_key

    elif api_config.auth_type == "hmac":
        if auth.secret_key:
            parts = [api_config.method, api_config.url or ""]
            if auth.include_timestamp:
                timestamp = str(int(now if now is not None else time.time()))
                headers["X-Timestamp"] = timestamp
                parts.append(timestamp)
            if auth.include_nonce:
                nonce_value = nonce or uuid.uuid4().hex
                headers["X-Nonce"] = nonce_value
                parts.append(nonce_value)
            if api_config.body:
                parts.append(api_config.body)
            headers[auth.signature_header or DEFAULT_SIGNATURE_HEADER] = _sign(auth, "\n".join(parts))

    elif api_config.auth_type == "custom":
        headers.update(auth.custom_headers)
        params.update(auth.custom_params)

    return headers, params


def convert_legacy_auth(integration: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise the older ``auth_required`` + basic/bearer shape to ``auth_type``/``auth_config``."""
    legacy_config = integration.get("auth_config") or {}
    if integration.get("auth_type") and "auth_required" not in integration:
        return {"auth_type": integration["auth_type"], "auth_config": legacy_config}

    if not integration.get("auth_required"):
        return {"auth_type": "none", "auth_config": {}}

    if integration.get("auth_type") == "basic":
        return {
            "auth_type": "basic",
            "auth_config": {
                "username": legacy_config.get("username"),
                "password": legacy_config.get("password"),
            },
        }
    if integration.get("auth_type") == "bearer":
        return {"auth_type": "bearer", "auth_config": {"token": legacy_config.get("token")}}

    return {"auth_type": "none", "auth_config": {}}

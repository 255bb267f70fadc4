"""
Thin wrapper around Supabase edge-function invocation.
Functions are addressed by name; bodies and replies are JSON.
"""

import json
import logging
from typing import Any, Dict, Optional

from supabase import Client

logger = logging.getLogger(__name__)


class EdgeFunctionError(Exception):
    def __init__(self, function_name: str, message: str):
        super().__init__(message)
        self.function_name = function_name
        self.message = message


def invoke_edge_function(supabase: Client, function_name: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Invoke a named edge function and return its JSON reply as a dict."""
    try:
        response = supabase.functions.invoke(
            function_name,
            invoke_options={"body": body or {}, "responseType": "json"},
        )
    except Exception as e:
        logger.error(f"Edge function {function_name} failed: {e}")
        raise EdgeFunctionError(function_name, str(e)) from e

    if isinstance(response, (bytes, bytearray)):
        response = response.decode("utf-8") if response else ""
    if isinstance(response, str):
        if not response.strip():
            return {}
        try:
            response = json.loads(response)
        except json.JSONDecodeError:
            return {"message": response}
    if response is None:
        return {}
    if not isinstance(response, dict):
        return {"data": response}
    if response.get("error"):
        error = response["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise EdgeFunctionError(function_name, message or "Edge function returned an error")
    return response

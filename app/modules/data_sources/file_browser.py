"""Client for the local file-listing sidecar (``{action, relativePath}`` over HTTP POST)."""

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException

from app.config import settings
from app.modules.data_sources.schemas import DirectoryListing, FileEntry, FileReadResponse

logger = logging.getLogger(__name__)

CORS_HINT = " (the file server must allow requests from this service; check its CORS settings)"


class FileBrowserClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or settings.file_server_url
        self.timeout = timeout if timeout is not None else settings.file_server_timeout
        self.transport = transport

    def _post(self, action: str, relative_path: str) -> Dict[str, Any]:
        if not self.base_url:
            raise HTTPException(status_code=503, detail="File server URL is not configured")
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.base_url, json={"action": action, "relativePath": relative_path})
        except httpx.HTTPError as e:
            logger.error(f"File server request failed ({action} {relative_path!r}): {e}")
            detail = f"File server unreachable: {str(e)}"
            if "cors" in str(e).lower():
                detail += CORS_HINT
            raise HTTPException(status_code=502, detail=detail)

        try:
            data = response.json()
        except ValueError:
            raise HTTPException(status_code=502, detail=f"File server returned a non-JSON reply ({response.status_code})")

        error = data.get("error") if isinstance(data, dict) else None
        if error or response.status_code >= 400 or not isinstance(data, dict) or not data.get("success"):
            message = error.get("message") if isinstance(error, dict) else error
            message = message or f"File server request failed ({response.status_code})"
            if "cors" in str(message).lower():
                message = f"{message}{CORS_HINT}"
            status_code = 404 if response.status_code == 404 or "not found" in str(message).lower() else 502
            raise HTTPException(status_code=status_code, detail=str(message))
        return data

    def list_directory(self, relative_path: str = "") -> DirectoryListing:
        data = self._post("list", relative_path)
        entries = [FileEntry(**entry) for entry in data.get("entries") or []]
        return DirectoryListing(path=relative_path, entries=entries)

    def read_file(self, relative_path: str) -> FileReadResponse:
        if not relative_path:
            raise HTTPException(status_code=400, detail="Please enter a file path")
        data = self._post("read", relative_path)
        metadata = dict(data.get("metadata") or {})
        extension = relative_path.rsplit(".", 1)[-1].lower() if "." in relative_path else None
        metadata.setdefault("format", format_from_extension(extension))
        return FileReadResponse(
            path=relative_path,
            content=data.get("content") or "",
            metadata=metadata,
            size=data.get("size"),
            modified=data.get("modified"),
        )


def format_from_extension(extension: Optional[str]) -> str:
    """Map a sidecar-reported extension to the file_config format."""
    if extension in ("csv", "tsv", "json"):
        return extension
    return "txt"

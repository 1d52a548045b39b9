from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class HttpResponse:
    """HTTP response data."""

    status_code: int
    headers: Dict[str, str]
    text: str
    json: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class HttpStatusError(Exception):
    """Raised for responses with a status code of 400 or above."""

    def __init__(self, status_code: int, url: str, body: str = "", payload: Any = None):
        self.status_code = status_code
        self.url = url
        self.body = body
        self.payload = payload
        super().__init__(f"HTTP {status_code} for {url}: {body[:200]}")


def error_summary(payload: Optional[Any], fallback: str = "") -> str:
    """Best-effort human-readable message from an API error body."""
    if isinstance(payload, dict):
        # Marketo: {"errors": [{"code": "...", "message": "..."}]}
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            return ", ".join(str(e.get("message") or e.get("code")) for e in errors if isinstance(e, dict))
        # Alfresco: {"error": {"briefSummary": "...", "statusCode": 404}}
        err = payload.get("error")
        if isinstance(err, dict):
            return str(err.get("briefSummary") or err.get("statusCode") or fallback)
    return fallback

from __future__ import annotations

from typing import Protocol

import requests

from marketo_archive.core.models import RequestSpec
from marketo_archive.http.response import HttpResponse, HttpStatusError, error_summary
from marketo_archive.utils.logging import get_logger


class HttpClient(Protocol):
    """Protocol for HTTP clients."""

    def send(self, req: RequestSpec) -> HttpResponse: ...


class RequestsHttpClient:
    """
    HTTP client using the requests library.

    Performs a single attempt per call; retries and re-authentication are the
    caller's concern. Responses with status >= 400 raise HttpStatusError.
    """

    def __init__(self, timeout_s: int = 30, session: requests.Session | None = None):
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.log = get_logger("marketo_archive.http")

    def send(self, req: RequestSpec) -> HttpResponse:
        """Send an HTTP request and return the decoded response."""
        is_json_body = isinstance(req.body, (dict, list))
        self.log.debug("%s %s", req.method, req.url)

        r = self.session.request(
            method=req.method,
            url=req.url,
            headers=req.headers,
            params=req.params or None,
            json=req.body if is_json_body else None,
            data=req.form if req.form else (None if is_json_body else req.body),
            files=req.files or None,
            timeout=self.timeout_s,
        )
        ct = r.headers.get("Content-Type", "")

        js = None
        if "application/json" in ct.lower():
            try:
                js = r.json()
            except ValueError:
                js = None

        resp = HttpResponse(status_code=r.status_code, headers=dict(r.headers), text=r.text, json=js)

        if resp.status_code >= 400:
            raise HttpStatusError(
                status_code=resp.status_code,
                url=req.url,
                body=error_summary(js, fallback=resp.text or ""),
                payload=js,
            )

        return resp

    def close(self) -> None:
        self.session.close()

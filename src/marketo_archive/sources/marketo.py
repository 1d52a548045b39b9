from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from marketo_archive.core.models import CandidateItem, ItemPayload, RequestSpec
from marketo_archive.http.client import HttpClient, RequestsHttpClient
from marketo_archive.http.response import HttpStatusError
from marketo_archive.http.retry import RetryExecutor
from marketo_archive.utils.logging import get_logger
from marketo_archive.utils.time import parse_timestamp, to_iso

# Marketo body-level error codes
TOKEN_ERROR_CODES = {"601", "602"}
RATE_LIMIT_CODES = {"606", "615"}
NOT_FOUND_CODES = {"702", "709"}

TOKEN_EXPIRY_MARGIN_S = 300


class MarketoApiError(Exception):
    """A Marketo response with ``success: false``."""

    def __init__(self, message: str, codes: Optional[List[str]] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.codes = list(codes or [])
        self.retryable = retryable

    @classmethod
    def from_payload(cls, path: str, payload: Dict[str, Any]) -> "MarketoApiError":
        errors = [e for e in payload.get("errors") or [] if isinstance(e, dict)]
        codes = [str(e.get("code")) for e in errors]
        message = ", ".join(str(e.get("message") or e.get("code")) for e in errors) or "unknown error"
        retryable = True if RATE_LIMIT_CODES.intersection(codes) else False
        return cls(f"Marketo API {path} failed: {message}", codes=codes, retryable=retryable)

    @property
    def is_token_error(self) -> bool:
        return bool(TOKEN_ERROR_CODES.intersection(self.codes))

    @property
    def is_not_found(self) -> bool:
        return bool(NOT_FOUND_CODES.intersection(self.codes))


class MarketoAuthError(Exception):
    """Failed to obtain an access token."""

    retryable = False


class MarketoClient:
    """
    Source adapter for Marketo email assets.

    Authenticates with OAuth2 client credentials, caches the token until
    shortly before expiry and re-authenticates once when a call reports an
    expired or invalid token.
    """

    def __init__(
        self,
        endpoint: str,
        client_id: str,
        client_secret: str,
        http: Optional[HttpClient] = None,
        retry: Optional[RetryExecutor] = None,
        page_size: int = 200,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.http = http or RequestsHttpClient(timeout_s=30)
        self.retry = retry or RetryExecutor()
        self.page_size = page_size
        self._monotonic = monotonic
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0
        self.log = get_logger("marketo_archive.marketo")

    # ---------- SourceSystem ----------

    def list_changed_since(self, since: datetime) -> List[CandidateItem]:
        """
        Page through every email asset.

        The asset listing has no server-side date filter, so the whole listing
        is drained and returned as-is; `since` is only logged here and the
        window is applied by the change set resolver.
        """
        self.log.info("Fetching emails (window starts %s)", to_iso(since))
        items: List[CandidateItem] = []
        offset = 0

        while True:
            payload = self._request("GET", "/rest/asset/v1/emails.json", params={"offset": offset, "maxReturn": self.page_size})
            page = payload.get("result") or []

            for raw in page:
                item = self._to_candidate(raw)
                if item is not None:
                    items.append(item)

            self.log.debug("Fetched email page: offset=%s count=%s", offset, len(page))

            if not self._has_more(payload, page):
                break
            offset += self.page_size

        self.log.info("Finished fetching emails: total=%s", len(items))
        return items

    def fetch_payload(self, item_id: int) -> Optional[ItemPayload]:
        """Fetch HTML and envelope fields of one email; None when Marketo has no such content."""
        self.log.debug("Fetching email content: id=%s", item_id)
        try:
            content = self._request("GET", f"/rest/asset/v1/email/{item_id}/fullContent.json")
        except MarketoApiError as e:
            if e.is_not_found:
                return None
            raise
        except HttpStatusError as e:
            if e.status_code == 404:
                return None
            raise

        results = content.get("result") or []
        if not results:
            return None
        body = results[0]
        html = body.get("content") or body.get("htmlContent")

        detail = self._request("GET", f"/rest/asset/v1/email/{item_id}.json")
        email = (detail.get("result") or [{}])[0]

        return ItemPayload(
            html_body=html,
            text_body=body.get("textContent"),
            subject=_field_value(email.get("subject")),
            sender_name=_field_value(email.get("fromName")),
            sender_address=_field_value(email.get("fromEmail")),
        )

    # ---------- Transport ----------

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, body: Any = None) -> Dict[str, Any]:
        return self.retry.execute(
            lambda: self._call_with_reauth(method, path, params, body),
            context=f"Marketo API {method} {path}",
        )

    def _call_with_reauth(self, method: str, path: str, params: Optional[Dict[str, Any]], body: Any) -> Dict[str, Any]:
        try:
            return self._call(method, path, params, body)
        except (HttpStatusError, MarketoApiError) as e:
            if not self._is_auth_error(e):
                raise
            self.log.warning("Auth error, attempting to re-authenticate")
            self._access_token = None
            return self._call(method, path, params, body)

    def _call(self, method: str, path: str, params: Optional[Dict[str, Any]], body: Any) -> Dict[str, Any]:
        token = self._ensure_token()
        resp = self.http.send(
            RequestSpec(
                url=f"{self.endpoint}{path}",
                method=method,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                params=dict(params or {}),
                body=body,
            )
        )
        payload = resp.json if isinstance(resp.json, dict) else {}
        if payload.get("success") is False:
            raise MarketoApiError.from_payload(path, payload)
        return payload

    def _ensure_token(self) -> str:
        if self._access_token and self._monotonic() < self._token_expires_at:
            return self._access_token
        self._authenticate()
        return self._access_token

    def _authenticate(self) -> None:
        self.log.debug("Authenticating with Marketo API")
        try:
            resp = self.http.send(
                RequestSpec(
                    url=f"{self.endpoint}/identity/oauth/token",
                    params={
                        "grant_type": "client_credentials",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                )
            )
        except HttpStatusError as e:
            raise MarketoAuthError(f"Marketo authentication failed: {e}") from e

        data = resp.json if isinstance(resp.json, dict) else {}
        token = data.get("access_token")
        if not token:
            raise MarketoAuthError("Marketo authentication failed: no access_token in response")

        expires_in = int(data.get("expires_in") or 0)
        self._access_token = token
        # short-lived (reused) tokens keep half their remaining life
        margin = min(TOKEN_EXPIRY_MARGIN_S, expires_in / 2)
        self._token_expires_at = self._monotonic() + max(expires_in - margin, 0)
        self.log.info("Successfully authenticated with Marketo API")

    @staticmethod
    def _is_auth_error(exc: Exception) -> bool:
        if isinstance(exc, HttpStatusError):
            return exc.status_code == 401
        if isinstance(exc, MarketoApiError):
            return exc.is_token_error
        return False

    def _has_more(self, payload: Dict[str, Any], page: List[Dict[str, Any]]) -> bool:
        if not page:
            return False
        more = payload.get("moreResult")
        if more is not None:
            return bool(more)
        return len(page) >= self.page_size

    def _to_candidate(self, raw: Dict[str, Any]) -> Optional[CandidateItem]:
        created = parse_timestamp(raw.get("createdAt"))
        updated = parse_timestamp(raw.get("updatedAt")) or created
        if raw.get("id") is None or created is None:
            self.log.warning("Skipping email with unusable id/timestamps: %r", raw.get("id"))
            return None

        folder = raw.get("folder") if isinstance(raw.get("folder"), dict) else {}
        return CandidateItem(
            id=int(raw["id"]),
            display_name=str(raw.get("name") or raw["id"]),
            created_at=created,
            updated_at=updated,
            group_label=folder.get("folderName") or None,
            raw=raw,
        )

    def close(self) -> None:
        if hasattr(self.http, "close"):
            self.http.close()


def _field_value(field: Any) -> Optional[str]:
    """Unwrap Marketo's ``{"type": ..., "value": ...}`` envelope."""
    if isinstance(field, dict):
        field = field.get("value")
    return str(field) if field not in (None, "") else None

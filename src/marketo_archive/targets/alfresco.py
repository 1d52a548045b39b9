from __future__ import annotations

import base64
import mimetypes
from typing import Any, Callable, Dict, Optional, Sequence, Union

from marketo_archive.core.models import RepositoryNode, RequestSpec
from marketo_archive.http.client import HttpClient, RequestsHttpClient
from marketo_archive.http.response import HttpResponse, HttpStatusError
from marketo_archive.http.retry import RetryExecutor
from marketo_archive.utils.logging import get_logger

API_PATH = "/alfresco/api/-default-/public/alfresco/versions/1"
AUTH_PATH = "/alfresco/api/-default-/public/authentication/versions/1/tickets"

# relativePath lookups start at -root-, which is Company Home itself
_ROOT_PREFIX = "Company Home"


class AlfrescoError(Exception):
    """Repository precondition or response-shape failure."""

    retryable = False


class AlfrescoClient:
    """
    Target adapter for the Alfresco public REST API.

    All paths handed to the engine are relative to `base_path`, the archive
    root, which must already exist.
    """

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        base_path: str,
        http: Optional[HttpClient] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        self.url = url.rstrip("/")
        self.api = f"{self.url}{API_PATH}"
        self.username = username
        self.password = password
        self.base_path = normalize_base_path(base_path)
        self.http = http or RequestsHttpClient(timeout_s=60)
        self.retry = retry or RetryExecutor()
        self._ticket: Optional[str] = None
        self.log = get_logger("marketo_archive.alfresco")

    # ---------- TargetSystem ----------

    def ensure_container_path(self, segments: Sequence[str]) -> str:
        """Resolve the archive root, then create each missing folder below it."""
        root = self.get_node_by_path(self.base_path)
        if root is None:
            raise AlfrescoError(f"Base path does not exist: {self.base_path}")

        current = root
        for segment in [s for s in segments if s]:
            node = self.find_child_by_name(current.id, segment)
            if node is None:
                node = self._create_folder(current.id, segment)
            current = node

        if segments:
            self.log.debug("Folder path ready: %s/%s node=%s", self.base_path, "/".join(segments), current.id)
        return current.id

    def find_child_by_name(self, container_id: str, name: str) -> Optional[RepositoryNode]:
        self.log.debug("Checking if node exists: parent=%s name=%s", container_id, name)
        try:
            resp = self._request(RequestSpec(url=f"{self.api}/nodes/{container_id}", params={"relativePath": name}))
        except HttpStatusError as e:
            if e.status_code == 404:
                return None
            raise
        return self._node(resp)

    def create_child(
        self,
        container_id: str,
        name: str,
        content: Union[str, bytes],
        properties: Dict[str, Any],
    ) -> RepositoryNode:
        self.log.debug("Uploading file: parent=%s name=%s", container_id, name)
        data = content.encode("utf-8") if isinstance(content, str) else content
        mime = mimetypes.guess_type(name)[0] or "application/octet-stream"

        form = {"name": name, "nodeType": "cm:content"}
        form.update({k: _form_value(v) for k, v in properties.items()})

        try:
            resp = self._request(
                RequestSpec(
                    url=f"{self.api}/nodes/{container_id}/children",
                    method="POST",
                    form=form,
                    files={"filedata": (name, data, mime)},
                ),
                context=f"Upload file {name}",
            )
        except HttpStatusError as e:
            if e.status_code != 409:
                raise
            # An earlier attempt whose response was lost may have committed.
            existing = self.find_child_by_name(container_id, name)
            if existing is None:
                raise
            self.log.info("File already present after conflict: id=%s name=%s", existing.id, name)
            return existing

        node = self._node(resp)
        self.log.debug("File uploaded: id=%s name=%s", node.id, name)
        return node

    def set_properties(self, node_id: str, properties: Dict[str, Any]) -> None:
        self.log.debug("Updating node properties: node=%s keys=%s", node_id, sorted(properties))
        self._request(
            RequestSpec(
                url=f"{self.api}/nodes/{node_id}",
                method="PUT",
                headers={"Content-Type": "application/json"},
                body={"properties": properties},
            )
        )
        self.log.info("Node properties updated: node=%s", node_id)

    # ---------- Helpers ----------

    def get_node_by_path(self, path: str) -> Optional[RepositoryNode]:
        """Look up a node by path relative to the repository root; None when absent."""
        try:
            resp = self._request(RequestSpec(url=f"{self.api}/nodes/-root-", params={"relativePath": path}))
        except HttpStatusError as e:
            if e.status_code == 404:
                return None
            raise
        return self._node(resp)

    def _create_folder(self, parent_id: str, name: str) -> RepositoryNode:
        try:
            resp = self._request(
                RequestSpec(
                    url=f"{self.api}/nodes/{parent_id}/children",
                    method="POST",
                    headers={"Content-Type": "application/json"},
                    body={"name": name, "nodeType": "cm:folder"},
                )
            )
        except HttpStatusError as e:
            if e.status_code != 409:
                raise
            # Created concurrently by someone else; use theirs.
            existing = self.find_child_by_name(parent_id, name)
            if existing is None:
                raise
            return existing

        node = self._node(resp)
        self.log.info("Folder created: id=%s name=%s", node.id, name)
        return node

    def _request(self, req: RequestSpec, context: Optional[str] = None) -> HttpResponse:
        return self.retry.execute(
            lambda: self._call_with_reauth(req),
            context=context or f"Alfresco API {req.method} {req.url.replace(self.api, '')}",
        )

    def _call_with_reauth(self, req: RequestSpec) -> HttpResponse:
        try:
            return self._call(req)
        except HttpStatusError as e:
            if e.status_code != 401:
                raise
            self.log.warning("Auth error, attempting to re-authenticate")
            self._ticket = None
            return self._call(req)

    def _call(self, req: RequestSpec) -> HttpResponse:
        headers = {**req.headers, **self._auth_headers()}
        return self.http.send(
            RequestSpec(
                url=req.url,
                method=req.method,
                headers=headers,
                params=req.params,
                body=req.body,
                form=req.form,
                files=req.files,
            )
        )

    def _auth_headers(self) -> Dict[str, str]:
        if not self._ticket:
            self._authenticate()
        token = base64.b64encode(self._ticket.encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}

    def _authenticate(self) -> None:
        self.log.debug("Authenticating with Alfresco")
        try:
            resp = self.http.send(
                RequestSpec(
                    url=f"{self.url}{AUTH_PATH}",
                    method="POST",
                    headers={"Content-Type": "application/json"},
                    body={"userId": self.username, "password": self.password},
                )
            )
        except HttpStatusError as e:
            raise AlfrescoError(f"Alfresco authentication failed: {e}") from e

        entry = (resp.json or {}).get("entry") if isinstance(resp.json, dict) else None
        if not entry or not entry.get("id"):
            raise AlfrescoError("Alfresco authentication failed: no ticket in response")
        self._ticket = entry["id"]
        self.log.info("Successfully authenticated with Alfresco")

    @staticmethod
    def _node(resp: HttpResponse) -> RepositoryNode:
        entry = (resp.json or {}).get("entry") if isinstance(resp.json, dict) else None
        if not entry or "id" not in entry:
            raise AlfrescoError(f"Unexpected Alfresco response: {resp.text[:200]}")
        return RepositoryNode(
            id=str(entry["id"]),
            name=str(entry.get("name") or ""),
            properties=dict(entry.get("properties") or {}),
        )

    def close(self) -> None:
        if hasattr(self.http, "close"):
            self.http.close()


def normalize_base_path(path: str) -> str:
    """Strip slashes and a leading Company Home segment from a configured base path."""
    parts = [p for p in str(path or "").split("/") if p]
    if parts and parts[0] == _ROOT_PREFIX:
        parts = parts[1:]
    return "/".join(parts)


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

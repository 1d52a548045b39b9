from __future__ import annotations
from typing import Any, Dict, Optional, Protocol, Sequence, Union

from marketo_archive.core.models import RepositoryNode


class TargetSystem(Protocol):
    """Capability the engine needs from the document repository."""

    def ensure_container_path(self, segments: Sequence[str]) -> str:
        """Return the id of the container at `segments` under the archive root, creating it if missing."""
        ...

    def find_child_by_name(self, container_id: str, name: str) -> Optional[RepositoryNode]: ...

    def create_child(
        self,
        container_id: str,
        name: str,
        content: Union[str, bytes],
        properties: Dict[str, Any],
    ) -> RepositoryNode: ...

    def set_properties(self, node_id: str, properties: Dict[str, Any]) -> None: ...

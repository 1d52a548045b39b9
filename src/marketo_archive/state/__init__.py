from marketo_archive.state.base import SyncStateStore
from marketo_archive.state.marker_store import RepositoryMarkerStateStore

__all__ = [
    "RepositoryMarkerStateStore",
    "SyncStateStore",
]

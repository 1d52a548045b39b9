from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from marketo_archive.core.models import (
    AlreadyExists,
    ArchivePlacement,
    CandidateItem,
    Failed,
    Outcome,
    Uploaded,
)
from marketo_archive.sources.base import SourceSystem
from marketo_archive.targets.base import TargetSystem
from marketo_archive.transform.metadata import item_properties, metadata_document, metadata_properties
from marketo_archive.transform.placement import compute_placement
from marketo_archive.utils.logging import get_logger
from marketo_archive.utils.time import utc_now

MISSING_BODY = "missing_body"


class ItemMaterializer:
    """
    Archives one candidate item into the repository.

    Every failure is converted into a `Failed` outcome at this boundary; a
    partially written item (HTML stored, metadata not) is reported the same way
    as a total failure and logged with its placement for manual cleanup.
    """

    def __init__(
        self,
        source: SourceSystem,
        target: TargetSystem,
        property_prefix: str = "mkto",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self.target = target
        self.property_prefix = property_prefix
        self.clock = clock
        self.log = get_logger("marketo_archive.materializer")

    def materialize(self, item: CandidateItem) -> Outcome:
        self.log.debug("Processing email: id=%s name=%s", item.id, item.display_name)
        placement: Optional[ArchivePlacement] = None
        stage = "fetch_payload"

        try:
            payload = self.source.fetch_payload(item.id)
            if payload is None or not payload.has_body:
                self.log.warning("Email has no HTML content: id=%s", item.id)
                return Failed(item_id=item.id, reason=MISSING_BODY)

            placement = compute_placement(item)

            stage = "ensure_container"
            container_id = self.target.ensure_container_path(placement.container_path)

            stage = "dedupe_check"
            existing = self.target.find_child_by_name(container_id, placement.html_name)
            if existing is not None:
                self.log.debug("Email already archived, skipping: id=%s node=%s", item.id, existing.id)
                return AlreadyExists(node=existing)

            stage = "upload_html"
            props = item_properties(item, payload, placement, self.clock(), prefix=self.property_prefix)
            html_node = self.target.create_child(container_id, placement.html_name, payload.html_body, props)
            self.log.info(
                "Email uploaded: id=%s node=%s path=%s",
                item.id,
                html_node.id,
                placement.display_path,
            )

            stage = "upload_metadata"
            self.target.create_child(
                container_id,
                placement.metadata_name,
                metadata_document(item, payload),
                metadata_properties(item, prefix=self.property_prefix),
            )

            return Uploaded(node=html_node)

        except Exception as e:
            self.log.error(
                "Failed to process email: id=%s stage=%s path=%s error=%s: %s",
                item.id,
                stage,
                placement.display_path if placement else "-",
                type(e).__name__,
                e,
            )
            return Failed(item_id=item.id, reason=f"{stage}:{type(e).__name__}")

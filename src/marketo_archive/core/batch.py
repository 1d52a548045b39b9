from __future__ import annotations

from typing import List, Optional, Set

from marketo_archive.core.materializer import ItemMaterializer
from marketo_archive.core.models import AlreadyExists, BatchOutcome, CandidateItem, Failed, Outcome, Uploaded
from marketo_archive.http.policies import RateLimiter
from marketo_archive.utils.logging import get_logger


class BatchRunner:
    """
    Feeds candidates through the materializer one at a time.

    A fixed pause follows every item to stay inside the upstream rate limits.
    `batch_size` only controls how often progress is logged.
    """

    def __init__(
        self,
        materializer: ItemMaterializer,
        limiter: Optional[RateLimiter] = None,
        batch_size: int = 50,
    ):
        self.materializer = materializer
        self.limiter = limiter or RateLimiter(100)
        self.batch_size = max(1, int(batch_size))
        self.log = get_logger("marketo_archive.batch")

    def run(self, candidates: List[CandidateItem]) -> BatchOutcome:
        outcome = BatchOutcome()
        seen: Set[int] = set()
        total = len(candidates)

        for start in range(0, total, self.batch_size):
            batch = candidates[start:start + self.batch_size]
            self.log.info(
                "Processing batch %s: start=%s end=%s total=%s",
                start // self.batch_size + 1,
                start,
                start + len(batch),
                total,
            )

            for item in batch:
                if item.id in seen:
                    outcome.skipped += 1
                    self.log.debug("Duplicate candidate in listing, skipped: id=%s", item.id)
                    continue
                seen.add(item.id)

                self._record(outcome, item, self.materializer.materialize(item))
                self.limiter.sleep()

            self.log.info(
                "Batch completed: uploaded=%s already_archived=%s failed=%s skipped=%s",
                outcome.uploaded,
                outcome.already_archived,
                outcome.failed,
                outcome.skipped,
            )

        return outcome

    def _record(self, outcome: BatchOutcome, item: CandidateItem, result: Outcome) -> None:
        if isinstance(result, Uploaded):
            outcome.uploaded += 1
        elif isinstance(result, AlreadyExists):
            outcome.already_archived += 1
        elif isinstance(result, Failed):
            outcome.failed += 1
            outcome.failed_ids.append(item.id)
            outcome.bump_failure(result.reason)
        else:
            raise TypeError(f"Unexpected materialization outcome: {result!r}")

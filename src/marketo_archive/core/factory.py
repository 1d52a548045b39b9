from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from marketo_archive.config_models import ArchiveConfig
from marketo_archive.core.batch import BatchRunner
from marketo_archive.core.coordinator import SyncCoordinator
from marketo_archive.core.materializer import ItemMaterializer
from marketo_archive.core.models import SyncJob
from marketo_archive.core.resolver import ChangeSetResolver
from marketo_archive.http.client import RequestsHttpClient
from marketo_archive.http.policies import RateLimiter, RetryPolicy
from marketo_archive.http.retry import RetryExecutor
from marketo_archive.sources.marketo import MarketoClient
from marketo_archive.state.marker_store import RepositoryMarkerStateStore
from marketo_archive.targets.alfresco import AlfrescoClient
from marketo_archive.utils.time import utc_now


@dataclass(frozen=True)
class BuiltComponents:
    coordinator: SyncCoordinator
    source: MarketoClient
    target: AlfrescoClient
    state_store: RepositoryMarkerStateStore
    resolver: ChangeSetResolver
    materializer: ItemMaterializer
    runner: BatchRunner
    job: SyncJob


def config_to_job(config: ArchiveConfig) -> SyncJob:
    """Convert validated config into the engine's run settings."""
    return SyncJob(
        lookback_days=config.sync.lookback_days,
        item_delay_ms=config.sync.item_delay_ms,
        batch_size=config.sync.batch_size,
        property_prefix=config.sync.property_prefix,
        marker_name=config.sync.marker_name,
    )


class ComponentFactory:
    """
    Factory responsible for wiring dependencies.
    Keeps main.py free of construction details; the config value is passed
    in explicitly and nothing reads global state.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.clock = clock
        self.sleep = sleep

    def build(self, config: ArchiveConfig) -> BuiltComponents:
        """
        Build all components needed for one sync run.

        Args:
            config: Validated configuration.

        Returns:
            A container with all built components.
        """
        job = config_to_job(config)
        retry = self._retry(config)

        source = self._source(config, retry)
        target = self._target(config, retry)
        state_store = RepositoryMarkerStateStore(target, marker_name=job.marker_name, property_prefix=job.property_prefix)
        resolver = ChangeSetResolver(source, clock=self.clock)
        materializer = ItemMaterializer(source, target, property_prefix=job.property_prefix, clock=self.clock)
        runner = BatchRunner(
            materializer,
            limiter=RateLimiter(job.item_delay_ms, sleep=self.sleep),
            batch_size=job.batch_size,
        )

        coordinator = SyncCoordinator(
            state_store=state_store,
            resolver=resolver,
            runner=runner,
            job=job,
            clock=self.clock,
            closeables=[source, target],
            target=target,
        )

        return BuiltComponents(
            coordinator=coordinator,
            source=source,
            target=target,
            state_store=state_store,
            resolver=resolver,
            materializer=materializer,
            runner=runner,
            job=job,
        )

    # ---------- Builders (private) ----------

    def _retry(self, config: ArchiveConfig) -> RetryExecutor:
        policy = RetryPolicy(
            max_attempts=config.retry.max_attempts,
            initial_delay_ms=config.retry.initial_delay_ms,
            max_delay_ms=config.retry.max_delay_ms,
            multiplier=config.retry.multiplier,
        )
        return RetryExecutor(policy, sleep=self.sleep)

    def _source(self, config: ArchiveConfig, retry: RetryExecutor) -> MarketoClient:
        cfg = config.marketo
        return MarketoClient(
            endpoint=cfg.endpoint,
            client_id=cfg.client_id,
            client_secret=cfg.client_secret,
            http=RequestsHttpClient(timeout_s=cfg.timeout_s),
            retry=retry,
            page_size=cfg.page_size,
        )

    def _target(self, config: ArchiveConfig, retry: RetryExecutor) -> AlfrescoClient:
        cfg = config.alfresco
        return AlfrescoClient(
            url=cfg.url,
            username=cfg.username,
            password=cfg.password,
            base_path=cfg.base_path,
            http=RequestsHttpClient(timeout_s=cfg.timeout_s),
            retry=retry,
        )

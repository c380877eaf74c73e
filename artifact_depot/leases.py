"""
Refresh leases guarding one in-flight refresh per version.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from .interfaces import LeaseStore
from .models import RefreshLease
from .time_utils import utcnow


logger = logging.getLogger(__name__)


class RefreshLeaseManager:
    """Acquire, release and reap refresh leases.

    A lease past its TTL counts as absent, so a new acquire succeeds even
    if the previous holder never released it.
    """

    def __init__(
        self,
        store: LeaseStore,
        ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def acquire(
        self, group_id: str, artifact_id: str, version_id: str, event_id: Optional[str] = None
    ) -> bool:
        now = self.clock()
        lease = RefreshLease(group_id, artifact_id, version_id, created=now, ttl=self.ttl, event_id=event_id)
        acquired = self.store.try_acquire(lease, now)
        if acquired:
            logger.debug("Lease acquired for %s until %s", lease.project_version.gav, lease.expires_at)
        else:
            holder = self.store.find(group_id, artifact_id, version_id)
            logger.info(
                "Lease already held for %s by event %s until %s",
                lease.project_version.gav,
                holder.event_id if holder else None,
                holder.expires_at if holder else None,
            )
        return acquired

    def release(self, group_id: str, artifact_id: str, version_id: str) -> None:
        self.store.release(group_id, artifact_id, version_id)
        logger.debug("Lease released for %s-%s-%s", group_id, artifact_id, version_id)

    @contextmanager
    def lease(
        self, group_id: str, artifact_id: str, version_id: str, event_id: Optional[str] = None
    ) -> Iterator[bool]:
        """Yield whether the lease was acquired; release it on exit if so."""
        acquired = self.acquire(group_id, artifact_id, version_id, event_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(group_id, artifact_id, version_id)

    def reap_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired leases and return how many were removed."""
        now = now or self.clock()
        removed = 0
        for lease in self.store.all_leases():
            if lease.is_expired(now) and self.store.delete_if_expired(lease.project_version, now):
                logger.info("Removed expired lease for %s (created %s)", lease.project_version.gav, lease.created)
                removed += 1
        logger.info("Reaped %s expired leases", removed)
        return removed

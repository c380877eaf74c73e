"""
Refresh request queue and the worker pool that consumes it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Deque, Dict, List, Optional, Set, Tuple

from .interfaces import WorkQueue
from .models import ProjectVersion, RefreshRequest, RefreshResponse
from .refresh_handler import ProjectVersionRefreshHandler


logger = logging.getLogger(__name__)


class InMemoryWorkQueue(WorkQueue):
    """FIFO queue of refresh requests.

    Requests carrying a parent event id are queued at most once per
    version within that lineage until ``reset_lineage`` is called, which
    stops dependency cycles from cascading forever.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Deque[RefreshRequest] = deque()
        self._lineage: Dict[Tuple[str, ProjectVersion], str] = {}

    def push(self, request: RefreshRequest) -> str:
        with self._lock:
            if request.parent_event_id is not None:
                key = (request.parent_event_id, request.project_version)
                if key in self._lineage:
                    logger.debug(
                        "Already queued %s for parent event %s", request.gav, request.parent_event_id
                    )
                    return self._lineage[key]
                self._lineage[key] = request.event_id
            self._items.append(request)
        logger.debug("Queued %s as %s", request.gav, request.event_id)
        return request.event_id

    def requeue(self, request: RefreshRequest) -> str:
        with self._lock:
            self._items.append(request)
        return request.event_id

    def pop(self) -> Optional[RefreshRequest]:
        with self._lock:
            return self._items.popleft() if self._items else None

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def pending(self) -> List[RefreshRequest]:
        with self._lock:
            return list(self._items)

    def reset_lineage(self) -> None:
        with self._lock:
            self._lineage.clear()


class NotificationsQueueManager:
    """Validate, dispatch and retry queued refresh requests."""

    def __init__(
        self,
        handler: ProjectVersionRefreshHandler,
        queue: InMemoryWorkQueue,
        workers: int = 4,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.handler = handler
        self.queue = queue
        self.workers = workers
        self.max_attempts = max_attempts
        self.history: List[RefreshRequest] = []
        self._history_lock = threading.Lock()

    def notify(
        self,
        project_id: Optional[str],
        group_id: str,
        artifact_id: str,
        version_id: str,
        full_update: bool = False,
        transitive: bool = False,
        parent_event_id: Optional[str] = None,
    ) -> str:
        """Queue a refresh for one version and return its event id.

        Raises:
            ValueError: the request fails validation
        """
        request = RefreshRequest(
            group_id,
            artifact_id,
            version_id,
            project_id=project_id,
            full_update=full_update,
            transitive=transitive,
            parent_event_id=parent_event_id,
        )
        errors = self.handler.validate_event(request)
        if errors:
            raise ValueError(f"invalid notification {request.gav}: {'; '.join(errors)}")
        return self.queue.push(request)

    def handle(self, request: RefreshRequest) -> RefreshRequest:
        """Process one request, requeueing it with a full update on failure."""
        if self.max_attempts is not None and request.attempt == 0:
            request.max_attempts = self.max_attempts
        request.increase_attempts()
        try:
            errors = self.handler.validate_event(request)
        except Exception as e:
            errors = [f"Error validating {request.gav}: {e}"]
        if errors:
            for error in errors:
                logger.error(error)
            response = RefreshResponse(errors=errors)
        else:
            response = self.handler.handle_event(request)
        request.combine_response(response)

        if response.has_errors() and not errors and not request.retries_exceeded():
            logger.warning(
                "Refresh of %s failed on attempt %s, retrying with full update",
                request.gav, request.attempt,
            )
            request.full_update = True
            self.queue.requeue(request)
            return request

        request.complete()
        with self._history_lock:
            self.history.append(request)
        if response.has_errors():
            logger.error("Refresh of %s completed with %s errors", request.gav, len(response.errors))
        else:
            logger.info("Refresh of %s completed", request.gav)
        return request

    def handle_next(self) -> Optional[RefreshRequest]:
        request = self.queue.pop()
        if request is None:
            return None
        return self.handle(request)

    def run_until_empty(self) -> List[RefreshRequest]:
        """Consume the queue with a bounded worker pool until nothing is left.

        Returns:
            Requests completed during this run, in completion order
        """
        completed: List[RefreshRequest] = []
        in_flight: Set[Future] = set()
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            while True:
                while len(in_flight) < self.workers:
                    request = self.queue.pop()
                    if request is None:
                        break
                    in_flight.add(executor.submit(self.handle, request))
                if not in_flight:
                    break
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    request = future.result()
                    if request.completed is not None:
                        completed.append(request)
        self.queue.reset_lineage()
        logger.info("Queue drained, %s requests completed", len(completed))
        return completed

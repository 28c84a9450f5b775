"""
Background observation of triggered builds.

Each observation is a task on a worker pool: it polls the builds of a VisaRequest until all of
them are finished or cancelled, then comments the ticket once through the notify callback and
records the Visa. Cancellation is cooperative and checked at every poll.
"""

import concurrent.futures
import logging
import threading
from typing import Callable, List, Optional

from models import Visa, VisaRequest

logger = logging.getLogger(__name__)

NOT_STARTED_STATUS = "JIRA wasn't commented - observation of builds could not be started."
FAILED_STATUS = "JIRA wasn't commented - observation of builds failed."

NotifyFn = Callable[[str, str, str, str], Visa]


class BuildObserver:
    def __init__(self, registry, history, observations, notify: NotifyFn, poll_interval: float = 60.0, max_workers: int = 4):
        """
        :param registry: ServerRegistry giving the CI client of a server id.
        :param history: VisaHistoryStore the requests are persisted to.
        :param observations: ObservationRegistry holding the observing phase per contribution.
        :param notify: callable(server_id, build_type_id, branch, ticket) -> Visa.
        """
        self.registry = registry
        self.history = history
        self.observations = observations
        self.notify = notify
        self.poll_interval = poll_interval
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='visa-observer')
        self._stop = threading.Event()
        self._futures: List[concurrent.futures.Future] = []
        self._lock = threading.Lock()

    def observe(self, request: VisaRequest) -> Optional[concurrent.futures.Future]:
        """Submit an observation. The request must already be registered as observing.

        A request that cannot be submitted is rolled back in the registry and finished with a
        failure Visa; None is returned then.
        """
        try:
            future = self._executor.submit(self._run, request)
        except RuntimeError:
            logger.exception("Can't start observation of builds %s [branch=%s]", request.build_ids, request.branch)
            self.observations.rollback(request.key)
            request.set_result(Visa(NOT_STARTED_STATUS))
            self.history.put(request)
            return None

        with self._lock:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(future)
        logger.info("Observing builds %s of branch %s for ticket %s", request.build_ids, request.branch, request.ticket)
        return future

    def pending(self) -> int:
        with self._lock:
            return sum(1 for f in self._futures if not f.done())

    def _finish(self, request: VisaRequest, visa: Visa) -> Visa:
        try:
            request.set_result(visa)
            self.history.put(request)
        finally:
            self.observations.end(request.key, visa)
        logger.info("Observation of branch %s finished: %s", request.branch, visa.status)
        return visa

    def _run(self, request: VisaRequest) -> Optional[Visa]:
        try:
            return self._observe(request)
        except Exception:
            logger.exception("Observation of builds %s of branch %s failed", request.build_ids, request.branch)
            # no-op when the observation already ended
            self.observations.end(request.key, Visa(FAILED_STATUS))
            return None

    def _observe(self, request: VisaRequest) -> Optional[Visa]:
        key = request.key
        teamcity = self.registry.lookup(request.server_id).teamcity

        while True:
            if self.observations.is_cancelled(key):
                logger.info("Observation of branch %s was cancelled", request.branch)
                request.cancel()
                self.history.put(request)
                return None

            try:
                refs = [teamcity.find_build_ref(build_id) for build_id in request.build_ids]
            except Exception:
                logger.exception("Failed to check builds %s of branch %s", request.build_ids, request.branch)
            else:
                missing = [build_id for build_id, ref in zip(request.build_ids, refs) if ref is None]
                if missing:
                    logger.warning("Builds %s of branch %s were not found", missing, request.branch)
                    return self._finish(request, Visa(f"JIRA wasn't commented - builds {missing} were not found."))
                if all(ref.is_finished() for ref in refs):
                    break

            if self._stop.wait(self.poll_interval):
                logger.warning("Observer stopped while builds of branch %s were running", request.branch)
                return None

        visa = self.notify(request.server_id, request.build_type_id, request.branch, request.ticket)
        return self._finish(request, visa)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until all submitted observations are done."""
        with self._lock:
            futures = list(self._futures)
        concurrent.futures.wait(futures, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the pool. Without wait, running observations stop at their next poll."""
        if not wait:
            self._stop.set()
        self._executor.shutdown(wait=wait)

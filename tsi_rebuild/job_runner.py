from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from threading import BoundedSemaphore, Lock

from tsi_rebuild.discovery import JobDescriptor
from tsi_rebuild.executor import JobResult

logger = logging.getLogger(__name__)


class JobRunner:
    """Runs jobs on worker threads with at most `concurrency` executing at once.

    The dispatching thread takes a slot before each submit and blocks while all
    slots are busy; every job gives its slot back when it finishes, whatever
    the outcome. After the first failure nothing new is started and `run`
    raises that failure without waiting for jobs that are still executing.
    A runner is good for a single `run` call.
    """

    def __init__(self, concurrency: int, execute: Callable[[JobDescriptor], JobResult]) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be a positive integer")
        self.concurrency = concurrency
        self._execute = execute
        self._slots = BoundedSemaphore(concurrency)
        self._executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="tsi-rebuild-job")
        self._lock = Lock()
        self._failure: BaseException | None = None

    @property
    def failure(self) -> BaseException | None:
        with self._lock:
            return self._failure

    def run(self, jobs: Iterable[JobDescriptor]) -> list[JobResult]:
        futures: list[Future[JobResult | None]] = []
        for job in jobs:
            self._slots.acquire()
            if self.failure is not None:
                self._slots.release()
                logger.info("stopping dispatch after failure, %d job(s) launched", len(futures))
                break
            futures.append(self._executor.submit(self._task, job))

        logger.info("dispatched %d job(s), waiting for completion", len(futures))
        wait(futures, return_when=FIRST_EXCEPTION)

        failure = self.failure
        if failure is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            raise failure

        self._executor.shutdown(wait=True)
        return [r for r in (f.result() for f in futures) if r is not None]

    def _task(self, job: JobDescriptor) -> JobResult | None:
        try:
            if self.failure is not None:
                return None
            return self._execute(job)
        except BaseException as exc:
            with self._lock:
                if self._failure is None:
                    self._failure = exc
            raise
        finally:
            self._slots.release()

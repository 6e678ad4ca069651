"""
Racer - Probes every endpoint of a group concurrently, first success wins
"""

import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from threading import Event, Lock
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from netguard.checkers.models import Endpoint, ProbeResult, summarize_failures
from netguard.checkers.probe import ProbeFunc, http_probe


class Racer:
    """
    Runs one probe per endpoint in parallel and returns the first success.

    Probes that are still in flight when a race is decided are abandoned:
    their results are discarded and they are joined before the next race
    starts, so no probe outlives the cycle that spawned it.
    """

    def __init__(self, probe: ProbeFunc = http_probe, name: str = "racer"):
        """
        Initialize Racer

        Args:
            probe: Callable(endpoint, timeout) -> ProbeResult
            name: Label used for worker thread names and log lines
        """
        self.probe = probe
        self.name = name
        self._leftovers: List[Tuple[ThreadPoolExecutor, List[Future]]] = []
        self._lock = Lock()

    @property
    def outstanding(self) -> int:
        """Number of probes from earlier races that are still running"""
        with self._lock:
            return sum(
                1 for _, futures in self._leftovers for f in futures if not f.done()
            )

    def race(self, endpoints: Sequence[Endpoint], timeout: float) -> ProbeResult:
        """
        Probe all endpoints and return the first success

        Args:
            endpoints: Endpoints to probe
            timeout: Per-probe time limit in seconds

        Returns:
            The winning ProbeResult, or one aggregate failure
        """
        if not endpoints:
            return ProbeResult(False, "no endpoints configured")

        # Every probe is bounded by its own deadline, so this terminates
        while not self.drain(timeout * 2):
            pass

        cancelled = Event()
        executor = ThreadPoolExecutor(
            max_workers=len(endpoints), thread_name_prefix=f"probe-{self.name}"
        )
        futures = [
            executor.submit(self._run_probe, endpoint, timeout, cancelled)
            for endpoint in endpoints
        ]

        try:
            return self._collect(futures, timeout)
        finally:
            cancelled.set()
            executor.shutdown(wait=False)
            with self._lock:
                self._leftovers.append((executor, futures))

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for probes left over from earlier races and release their threads

        Returns:
            True if nothing is left running
        """
        with self._lock:
            leftovers = self._leftovers
            self._leftovers = []

        remaining = []
        deadline = None if timeout is None else time.monotonic() + timeout
        for executor, futures in leftovers:
            budget = None if deadline is None else max(0.0, deadline - time.monotonic())
            _, not_done = wait(futures, timeout=budget)
            if not_done:
                remaining.append((executor, futures))
            else:
                executor.shutdown(wait=True)

        if remaining:
            with self._lock:
                self._leftovers = remaining + self._leftovers
            logger.warning(
                f"{self.name}: {sum(len(f) for _, f in remaining)} probe(s) still running"
            )
            return False
        return True

    def _collect(self, futures: List[Future], timeout: float) -> ProbeResult:
        failures: List[ProbeResult] = []
        pending = set(futures)
        deadline = time.monotonic() + timeout

        while pending:
            budget = deadline - time.monotonic()
            if budget <= 0:
                break
            done, pending = wait(pending, timeout=budget, return_when=FIRST_COMPLETED)
            for future in done:
                result = future.result()
                if result.success:
                    return result
                failures.append(result)

        if pending:
            logger.info(f"{self.name} all targets timeout")
            return ProbeResult(False, "all targets timeout")

        return ProbeResult(False, summarize_failures(failures))

    def _run_probe(
        self, endpoint: Endpoint, timeout: float, cancelled: Event
    ) -> ProbeResult:
        if cancelled.is_set():
            return ProbeResult(False, "cancelled", endpoint)

        logger.debug(f"try to check {endpoint}")
        try:
            result = self.probe(endpoint, timeout)
        except Exception as e:
            logger.exception(f"Probe of {endpoint} raised")
            return ProbeResult(False, f"probe error: {e}", endpoint)

        if result.endpoint is None:
            result = ProbeResult(result.success, result.message, endpoint)
        return result

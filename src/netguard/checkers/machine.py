"""
HealthMachine - Hysteresis state machine driving one target group
"""

from threading import Event, Lock
from typing import Optional

from loguru import logger

from netguard.checkers.actions import ActionRunner
from netguard.checkers.models import (
    CheckerConfig,
    HealthState,
    HealthStatus,
    ProbeResult,
)
from netguard.checkers.probe import build_probe
from netguard.checkers.racer import Racer


class HealthMachine:
    """
    Owns the status and failure counter of one target group.

    It takes `threshold` consecutive failures to go DOWN and `threshold`
    consecutive successes to come back UP; a single failure while
    recovering resets the counter to `threshold`. The down/up actions run
    once per edge.
    """

    def __init__(
        self,
        config: CheckerConfig,
        racer: Optional[Racer] = None,
        action_runner: Optional[ActionRunner] = None,
        stop_event: Optional[Event] = None,
    ):
        """
        Initialize HealthMachine

        Args:
            config: Checker configuration, never mutated
            racer: Racer to probe with (built from the config by default)
            action_runner: Runner for the up/down commands
            stop_event: Event that ends the loop when set
        """
        self.config = config
        self.racer = racer or Racer(
            probe=build_probe(config.method, config.proxy), name=config.name
        )
        self.action_runner = action_runner or ActionRunner(
            timeout=config.action_timeout
        )
        self.stop_event = stop_event or Event()

        self._state = HealthState()
        self._state_lock = Lock()
        self.cycles = 0

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> HealthState:
        """Snapshot of the current state"""
        with self._state_lock:
            return self._state.copy()

    @property
    def status(self) -> HealthStatus:
        return self.state.status

    def stop(self) -> None:
        """Ask the loop to exit; wakes it if it is sleeping"""
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run(self) -> None:
        """Poll until stopped"""
        logger.info(
            f"{self.name} checker started: {len(self.config.endpoints)} target(s), "
            f"threshold {self.config.threshold}"
        )
        while not self.stop_event.is_set():
            delay = self.poll_once()
            self.stop_event.wait(delay)

        self.racer.drain(max(self.config.timeout_up, self.config.timeout_down) * 2)
        logger.info(f"{self.name} checker stopped in state {self.status.value}")

    def poll_once(self) -> float:
        """
        Run one probe cycle and apply the transition policy

        Returns:
            Seconds to sleep before the next cycle
        """
        current = self.state
        timeout = (
            self.config.timeout_up
            if current.status == HealthStatus.UP
            else self.config.timeout_down
        )

        result = self.racer.race(self.config.endpoints, timeout)
        self.cycles += 1
        logger.info(f"{self.name} check result: {result}")

        if current.status == HealthStatus.UP:
            return self._while_up(current, result)
        return self._while_down(current, result)

    def _while_up(self, current: HealthState, result: ProbeResult) -> float:
        threshold = self.config.threshold
        backoff = self.config.backoff

        if result.success:
            if current.fail_count != 0:
                logger.info(f"{self.name} recover")
            self._commit(HealthStatus.UP, 0)
            return backoff.steady

        fail_count = current.fail_count + 1
        if fail_count >= threshold:
            logger.warning(f"{self.name} from UP to DOWN")
            self._commit(HealthStatus.DOWN, threshold)
            self._run_action(self.config.on_down, "PostDown")
            return backoff.outage

        logger.info(f"{self.name} jitter ({fail_count}/{threshold})")
        self._commit(HealthStatus.UP, fail_count)
        return backoff.jitter

    def _while_down(self, current: HealthState, result: ProbeResult) -> float:
        threshold = self.config.threshold
        backoff = self.config.backoff

        if not result.success:
            self._commit(HealthStatus.DOWN, threshold)
            return backoff.retry_down

        fail_count = current.fail_count - 1
        if fail_count <= 0:
            logger.info(f"{self.name} from DOWN to UP")
            self._commit(HealthStatus.UP, 0)
            self._run_action(self.config.on_up, "PostUp")
            return backoff.recovering

        logger.info(f"{self.name} recovering ({threshold - fail_count}/{threshold})")
        self._commit(HealthStatus.DOWN, fail_count)
        return backoff.recovering

    def _run_action(self, command: str, label: str) -> None:
        if not command.strip():
            return
        self.action_runner.run(command)
        logger.info(f"{self.name} {label} executed")

    def _commit(self, status: HealthStatus, fail_count: int) -> None:
        with self._state_lock:
            self._state = HealthState(status=status, fail_count=fail_count)

    def __repr__(self) -> str:
        state = self.state
        return (
            f"HealthMachine(name={self.name}, "
            f"status={state.status.value}, fail_count={state.fail_count})"
        )

"""
Supervisor - Runs one HealthMachine thread per configured target group
"""

from threading import Event, Lock, Thread
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from netguard.checkers.machine import HealthMachine
from netguard.checkers.models import CheckerConfig, HealthState

MachineFactory = Callable[[CheckerConfig, Event], HealthMachine]


def _default_factory(config: CheckerConfig, stop_event: Event) -> HealthMachine:
    return HealthMachine(config, stop_event=stop_event)


class Supervisor:
    """
    Starts an independent checker thread per group and keeps them running
    until stop() is called. Groups share nothing but the stop event.
    """

    def __init__(
        self,
        configs: Sequence[CheckerConfig],
        machine_factory: MachineFactory = _default_factory,
    ):
        self.configs = list(configs)
        self.machine_factory = machine_factory
        self.stop_event = Event()
        self.machines: List[HealthMachine] = []
        self._threads: List[Thread] = []
        self._lock = Lock()

        logger.info(f"Supervisor initialized with {len(self.configs)} checker(s)")

    def start(self) -> None:
        """Launch one thread per checker"""
        with self._lock:
            if self._threads:
                logger.warning("Supervisor already started")
                return

            for config in self.configs:
                machine = self.machine_factory(config, self.stop_event)
                thread = Thread(
                    target=self._run_machine,
                    args=(machine,),
                    name=f"netguard-{config.name}",
                    daemon=True,
                )
                self.machines.append(machine)
                self._threads.append(thread)
                thread.start()

        logger.info(f"Started {len(self._threads)} checker thread(s)")

    def _run_machine(self, machine: HealthMachine) -> None:
        try:
            machine.run()
        except Exception:
            logger.exception(f"{machine.name} checker crashed")

    def stop(self, timeout: Optional[float] = 10.0) -> bool:
        """
        Stop every checker and wait for their threads

        Returns:
            True if all threads exited within the timeout
        """
        logger.info("Stopping checkers")
        self.stop_event.set()

        with self._lock:
            threads = list(self._threads)

        for thread in threads:
            thread.join(timeout)

        alive = [t.name for t in threads if t.is_alive()]
        if alive:
            logger.warning(f"Checker threads still running: {', '.join(alive)}")
            return False
        return True

    def wait(self, poll_interval: float = 1.0) -> None:
        """Block until stop() is called"""
        while not self.stop_event.wait(poll_interval):
            pass

    def is_running(self) -> bool:
        with self._lock:
            return any(t.is_alive() for t in self._threads)

    def states(self) -> Dict[str, HealthState]:
        """Snapshot of every checker's state keyed by name"""
        with self._lock:
            machines = list(self.machines)
        return {machine.name: machine.state for machine in machines}

"""
ActionRunner - Runs the external commands attached to state transitions
"""

import subprocess
from typing import List, Optional

from loguru import logger


class ActionRunner:
    """
    Executes a command synchronously and logs its combined output.

    Commands are split on whitespace only; quoting and escaping are not
    supported. Failures are logged and never raised.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize ActionRunner

        Args:
            timeout: Optional limit in seconds for each command
        """
        self.timeout = timeout

    @staticmethod
    def tokenize(command: str) -> List[str]:
        """Split a command string into argv"""
        return command.split()

    def run(self, command: Optional[str]) -> bool:
        """
        Run a command and wait for it

        Args:
            command: Command line, split on whitespace

        Returns:
            True if the command ran and exited with status 0
        """
        argv = self.tokenize(command or "")
        if not argv:
            return False

        logger.info(f"Executing action: {' '.join(argv)}")

        try:
            result = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Action timed out after {e.timeout}s: {argv[0]}")
            self._log_output(e.output)
            return False
        except (OSError, ValueError) as e:
            logger.warning(f"Action could not start: {argv[0]}: {e}")
            return False

        self._log_output(result.stdout)

        if result.returncode != 0:
            logger.warning(f"Action exited with status {result.returncode}: {argv[0]}")
            return False

        return True

    def _log_output(self, output) -> None:
        if isinstance(output, bytes):
            output = output.decode(errors="replace")
        if output and output.strip():
            logger.info(f"Action output:\n{output.rstrip()}")

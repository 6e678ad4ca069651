"""
Checkers Module - Race probes, hysteresis and transition actions

One HealthMachine per target group races its endpoints every cycle and
runs the configured commands when the group goes down or comes back.
"""

from netguard.checkers.actions import ActionRunner
from netguard.checkers.machine import HealthMachine
from netguard.checkers.models import (
    Backoff,
    CheckerConfig,
    Endpoint,
    HealthState,
    HealthStatus,
    ProbeMethod,
    ProbeResult,
)
from netguard.checkers.racer import Racer
from netguard.checkers.supervisor import Supervisor

__all__ = [
    "ActionRunner",
    "Backoff",
    "CheckerConfig",
    "Endpoint",
    "HealthMachine",
    "HealthState",
    "HealthStatus",
    "ProbeMethod",
    "ProbeResult",
    "Racer",
    "Supervisor",
]

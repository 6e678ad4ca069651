"""
Checker models - endpoints, checker configuration, health state and probe results
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# ============================================================================
# Enumerations
# ============================================================================


class HealthStatus(str, Enum):
    """Reported status of a target group"""

    UP = "UP"
    DOWN = "DOWN"


class ProbeMethod(str, Enum):
    """How a single endpoint is tested"""

    HTTP = "http"
    TCP = "tcp"


# ============================================================================
# Durations
# ============================================================================

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Union[str, int, float, None]) -> Optional[float]:
    """
    Parse a duration into seconds

    Accepts plain numbers (seconds) or Go-style strings such as
    "500ms", "5s" or "1m30s".

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        raise ValueError("Invalid duration: empty string")

    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, so snake_case and camelCase both work"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


# ============================================================================
# Data Classes
# ============================================================================


@dataclass(frozen=True)
class Endpoint:
    """One equivalent address of a target group"""

    address: str
    virtual_host: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Endpoint":
        address = _pick(data, "ip", "address", default="")
        host = _pick(data, "host", "virtual_host", "virtualHost", default="")
        return Endpoint(address=str(address).strip(), virtual_host=str(host).strip())

    def __str__(self) -> str:
        if self.virtual_host:
            return f"{self.address} ({self.virtual_host})"
        return self.address


@dataclass(frozen=True)
class Backoff:
    """Sleep durations (seconds) chosen after each kind of poll cycle"""

    steady: float = 5.0
    jitter: float = 2.0
    outage: float = 30.0
    recovering: float = 2.0
    retry_down: float = 10.0

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "Backoff":
        data = data or {}
        defaults = Backoff()
        return Backoff(
            steady=parse_duration(_pick(data, "steady", default=defaults.steady)),
            jitter=parse_duration(_pick(data, "jitter", default=defaults.jitter)),
            outage=parse_duration(_pick(data, "outage", default=defaults.outage)),
            recovering=parse_duration(
                _pick(data, "recovering", default=defaults.recovering)
            ),
            retry_down=parse_duration(
                _pick(data, "retry_down", "retryDown", default=defaults.retry_down)
            ),
        )

    def validate(self) -> None:
        for name in ("steady", "jitter", "outage", "recovering", "retry_down"):
            if getattr(self, name) < 0:
                raise ValueError(f"backoff.{name} cannot be negative")


@dataclass(frozen=True)
class CheckerConfig:
    """Configuration of one monitored target group"""

    name: str
    endpoints: Tuple[Endpoint, ...]
    threshold: int = 3
    on_up: str = ""
    on_down: str = ""
    timeout_up: float = 5.0
    timeout_down: float = 2.0
    proxy: str = ""
    method: ProbeMethod = ProbeMethod.HTTP
    action_timeout: Optional[float] = None
    backoff: Backoff = field(default_factory=Backoff)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CheckerConfig":
        """
        Build a checker from a configuration mapping

        Raises:
            ValueError: If a field has the wrong shape
        """
        if not isinstance(data, dict):
            raise ValueError(f"Checker entry must be a mapping, got {type(data).__name__}")

        raw_targets = _pick(data, "targets", "endpoints", default=[])
        if not isinstance(raw_targets, list):
            raise ValueError("targets must be a list")
        endpoints = []
        for target in raw_targets:
            if not isinstance(target, dict):
                raise ValueError(f"Invalid target entry: {target!r}")
            endpoints.append(Endpoint.from_dict(target))

        # A single "timeout" sets both directions
        shared_timeout = parse_duration(_pick(data, "timeout"))
        timeout_up = parse_duration(_pick(data, "timeout_up", "timeoutUp"))
        timeout_down = parse_duration(_pick(data, "timeout_down", "timeoutDown"))
        if timeout_up is None:
            timeout_up = shared_timeout if shared_timeout is not None else 5.0
        if timeout_down is None:
            timeout_down = shared_timeout if shared_timeout is not None else 2.0

        threshold = _pick(data, "threshold", default=3)
        if isinstance(threshold, str) and threshold.strip().lstrip("-").isdigit():
            threshold = int(threshold)
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise ValueError(f"threshold must be an integer: {threshold!r}")

        method_value = str(_pick(data, "method", default=ProbeMethod.HTTP.value)).lower()
        try:
            method = ProbeMethod(method_value)
        except ValueError:
            raise ValueError(f"Unsupported probe method: {method_value}")

        return CheckerConfig(
            name=str(_pick(data, "name", default="")).strip(),
            endpoints=tuple(endpoints),
            threshold=threshold,
            on_up=str(_pick(data, "post_up", "postUp", "on_up", default="")).strip(),
            on_down=str(_pick(data, "post_down", "postDown", "on_down", default="")).strip(),
            timeout_up=timeout_up,
            timeout_down=timeout_down,
            proxy=str(_pick(data, "proxy", default="")).strip(),
            method=method,
            action_timeout=parse_duration(
                _pick(data, "action_timeout", "actionTimeout")
            ),
            backoff=Backoff.from_dict(_pick(data, "backoff", default={})),
        )

    def validate(self) -> bool:
        """Validate the checker configuration"""
        if not self.name:
            raise ValueError("Checker name is required")
        if not self.endpoints:
            raise ValueError(f"{self.name}: at least one target is required")
        for endpoint in self.endpoints:
            if not endpoint.address:
                raise ValueError(f"{self.name}: target address is required")
        if self.threshold < 1:
            raise ValueError(f"{self.name}: threshold must be at least 1")
        if self.timeout_up <= 0 or self.timeout_down <= 0:
            raise ValueError(f"{self.name}: timeouts must be positive")
        if self.action_timeout is not None and self.action_timeout <= 0:
            raise ValueError(f"{self.name}: action_timeout must be positive")
        self.backoff.validate()
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert checker to dictionary"""
        return {
            "name": self.name,
            "targets": [
                {"ip": e.address, "host": e.virtual_host} for e in self.endpoints
            ],
            "threshold": self.threshold,
            "post_up": self.on_up,
            "post_down": self.on_down,
            "timeout_up": self.timeout_up,
            "timeout_down": self.timeout_down,
            "proxy": self.proxy,
            "method": self.method.value,
        }


@dataclass
class HealthState:
    """Mutable status of one target group, owned by its HealthMachine"""

    status: HealthStatus = HealthStatus.UP
    fail_count: int = 0

    def copy(self) -> "HealthState":
        return replace(self)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one endpoint, or of one whole race"""

    success: bool
    message: str = ""
    endpoint: Optional[Endpoint] = None

    def __str__(self) -> str:
        outcome = "ok" if self.success else "fail"
        parts = [outcome]
        if self.endpoint is not None:
            parts.append(str(self.endpoint))
        if self.message:
            parts.append(self.message)
        return " | ".join(parts)


def summarize_failures(results: List[ProbeResult]) -> str:
    """Join per-endpoint failure reasons into one message"""
    reasons = []
    for result in results:
        where = result.endpoint.address if result.endpoint else "?"
        reasons.append(f"{where}: {result.message or 'failed'}")
    return "; ".join(reasons)

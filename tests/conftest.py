"""
Shared fixtures for netguard tests
"""

import socket
import sys
import threading

import pytest
from loguru import logger

from netguard.checkers.models import Backoff, CheckerConfig, Endpoint


@pytest.fixture(autouse=True)
def reset_logger():
    """Restore a plain stderr sink after tests that reconfigure logging"""
    yield
    logger.remove()
    logger.add(sys.stderr, level="DEBUG")


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test"""
    messages = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def no_proxy_env(monkeypatch):
    """Keep local probes away from any proxy configured in the environment"""
    for name in ("HTTP_PROXY", "http_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")


def make_config(**overrides) -> CheckerConfig:
    """Build a checker config with fast defaults"""
    values = {
        "name": "uplink",
        "endpoints": (Endpoint("10.0.0.1", "a.example"), Endpoint("10.0.0.2", "b.example")),
        "threshold": 3,
        "on_up": "notify up",
        "on_down": "notify down",
        "timeout_up": 5.0,
        "timeout_down": 2.0,
        "backoff": Backoff(steady=5, jitter=2, outage=30, recovering=1, retry_down=10),
    }
    values.update(overrides)
    return CheckerConfig(**values)


@pytest.fixture
def checker_factory():
    """Fixture providing the checker config builder"""
    return make_config


@pytest.fixture
def trickling_server(no_proxy_env):
    """Listening socket that sends a status line, then one header every 0.2s"""
    stop = threading.Event()
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(8)
    listener.settimeout(0.1)

    def trickle(conn):
        with conn:
            try:
                conn.sendall(b"HTTP/1.1 200 OK\r\n")
                for i in range(50):
                    if stop.wait(0.2):
                        return
                    conn.sendall(f"X-Slow-{i}: 1\r\n".encode())
            except OSError:
                return

    def serve():
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            threading.Thread(target=trickle, args=(conn,), daemon=True).start()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield listener
    stop.set()
    thread.join(2.0)
    listener.close()

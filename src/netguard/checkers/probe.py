"""
Probe - One bounded-time reachability test against one endpoint
"""

import socket
import threading
from typing import Callable, List, Optional

import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection
from urllib3.connectionpool import HTTPConnectionPool

from netguard.checkers.models import Endpoint, ProbeMethod, ProbeResult

DEFAULT_TCP_PORT = 80

ProbeFunc = Callable[[Endpoint, float], ProbeResult]


class Deadline:
    """
    Wall-clock limit for one HTTP exchange.

    requests only bounds each socket operation, so a peer that keeps
    sending a little data can hold a request open indefinitely. Once
    `timeout` seconds have passed, every watched socket is shut down,
    which wakes whatever read is blocked on it.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self.expired = False
        self._sockets: List[socket.socket] = []
        self._lock = threading.Lock()
        self._timer = threading.Timer(timeout, self.expire)
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        """Cancel the timer and wait for its thread to exit"""
        self._timer.cancel()
        if self._timer.is_alive():
            self._timer.join()

    def watch(self, sock: socket.socket) -> None:
        with self._lock:
            self._sockets.append(sock)
            if not self.expired:
                return
        _shutdown(sock)

    def expire(self) -> None:
        with self._lock:
            self.expired = True
            sockets = list(self._sockets)
        for sock in sockets:
            _shutdown(sock)


def _shutdown(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        # Already closed by the connection itself
        logger.debug(f"socket shutdown skipped: {e}")


class DeadlineAdapter(HTTPAdapter):
    """HTTPAdapter whose plain-HTTP connections are watched by a Deadline"""

    def __init__(self, deadline: Deadline):
        self.deadline = deadline

        class WatchedConnection(HTTPConnection):
            def connect(self):
                super().connect()
                deadline.watch(self.sock)

        class WatchedPool(HTTPConnectionPool):
            ConnectionCls = WatchedConnection

        self._pool_cls = WatchedPool
        super().__init__()

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self._watch(self.poolmanager)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        self._watch(manager)
        return manager

    def _watch(self, manager) -> None:
        # SOCKS managers bring their own pool classes
        if manager.pool_classes_by_scheme.get("http") is HTTPConnectionPool:
            manager.pool_classes_by_scheme = dict(
                manager.pool_classes_by_scheme, http=self._pool_cls
            )


def http_probe(
    endpoint: Endpoint, timeout: float, proxy: Optional[str] = None
) -> ProbeResult:
    """
    Send a HEAD request to http://{address} with the endpoint's Host header

    Only the transport-level exchange matters: any response, whatever its
    status code, counts as success. Redirects are not followed.

    Args:
        endpoint: Endpoint to probe
        timeout: Limit in seconds for the whole exchange
        proxy: Explicit proxy URL; empty means use the environment

    Returns:
        ProbeResult describing the outcome
    """
    headers = {"Connection": "close"}
    if endpoint.virtual_host:
        headers["Host"] = endpoint.virtual_host

    try:
        request = requests.Request(
            "HEAD", f"http://{endpoint.address}", headers=headers
        ).prepare()
    except (requests.exceptions.RequestException, ValueError) as e:
        return ProbeResult(False, f"create request fail: {e}", endpoint)

    # A fresh session per probe keeps every check on a new connection
    deadline = Deadline(timeout)
    session = requests.Session()
    session.mount("http://", DeadlineAdapter(deadline))
    deadline.start()
    try:
        settings = session.merge_environment_settings(
            request.url,
            {"http": proxy} if proxy else {},
            None,
            None,
            None,
        )
        response = session.send(
            request,
            timeout=(timeout, timeout),
            allow_redirects=False,
            proxies=settings["proxies"],
        )
        response.close()
    except requests.exceptions.RequestException as e:
        if deadline.expired:
            return _deadline_exceeded(endpoint, timeout)
        return ProbeResult(False, f"send request fail: {e}", endpoint)
    finally:
        deadline.stop()
        session.close()

    # Headers cut short by the deadline parse as a complete response
    if deadline.expired:
        return _deadline_exceeded(endpoint, timeout)
    return ProbeResult(True, "", endpoint)


def _deadline_exceeded(endpoint: Endpoint, timeout: float) -> ProbeResult:
    return ProbeResult(
        False, f"send request fail: no response within {timeout:g}s", endpoint
    )


def tcp_probe(endpoint: Endpoint, timeout: float) -> ProbeResult:
    """Open and close a TCP connection to the endpoint address"""
    host, _, port = endpoint.address.rpartition(":")
    if not host or not port.isdigit():
        host, port = endpoint.address, str(DEFAULT_TCP_PORT)
    host = host.strip("[]")

    try:
        connection = socket.create_connection((host, int(port)), timeout=timeout)
    except OSError as e:
        return ProbeResult(False, f"dial fail: {e}", endpoint)

    connection.close()
    return ProbeResult(True, "", endpoint)


def build_probe(method: ProbeMethod, proxy: str = "") -> ProbeFunc:
    """Return the probe callable for a checker's method"""
    if method == ProbeMethod.TCP:
        logger.debug("Using TCP probe")
        return tcp_probe

    def probe(endpoint: Endpoint, timeout: float) -> ProbeResult:
        return http_probe(endpoint, timeout, proxy=proxy or None)

    return probe

"""
Tests for the HTTP and TCP probes against local servers
"""

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import patch

import pytest

from netguard.checkers.models import Endpoint, ProbeMethod
from netguard.checkers.probe import Deadline, build_probe, http_probe, tcp_probe


class _RecordingHandler(BaseHTTPRequestHandler):
    """Answers HEAD with a configurable status and records Host headers"""

    status = 200
    hosts = []
    methods = []

    def do_HEAD(self):
        type(self).hosts.append(self.headers.get("Host"))
        type(self).methods.append("HEAD")
        self.send_response(self.status)
        self.send_header("Location", "http://elsewhere.invalid/")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def http_server(no_proxy_env):
    """Local HTTP server answering HEAD requests"""
    _RecordingHandler.hosts = []
    _RecordingHandler.methods = []
    _RecordingHandler.status = 200
    server = ThreadingHTTPServer(("127.0.0.1", 0), _RecordingHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def silent_server(no_proxy_env):
    """Listening socket that accepts connections but never answers"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    yield sock
    sock.close()


@pytest.fixture
def closed_port():
    """A local port with nothing listening"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def _address(server_socket) -> str:
    host, port = server_socket.getsockname()[:2]
    return f"{host}:{port}"


class TestHttpProbe:
    """Tests for http_probe"""

    def test_success_sends_virtual_host(self, http_server):
        endpoint = Endpoint(_address(http_server.socket), "service.example")

        result = http_probe(endpoint, timeout=2.0)

        assert result.success is True
        assert result.endpoint == endpoint
        assert _RecordingHandler.hosts == ["service.example"]
        assert _RecordingHandler.methods == ["HEAD"]

    def test_error_status_still_counts_as_reachable(self, http_server):
        """Only the transport exchange matters, not the status code"""
        _RecordingHandler.status = 503

        result = http_probe(Endpoint(_address(http_server.socket), "x"), timeout=2.0)

        assert result.success is True

    def test_redirect_is_not_followed(self, http_server):
        _RecordingHandler.status = 302

        result = http_probe(Endpoint(_address(http_server.socket), "x"), timeout=2.0)

        assert result.success is True
        assert len(_RecordingHandler.methods) == 1

    def test_connection_refused(self, closed_port, no_proxy_env):
        result = http_probe(Endpoint(f"127.0.0.1:{closed_port}", "x"), timeout=2.0)

        assert result.success is False
        assert result.message.startswith("send request fail:")

    def test_never_blocks_past_timeout(self, silent_server):
        """A host that never answers fails within the configured bound"""
        timeout = 0.5
        started = time.monotonic()

        result = http_probe(Endpoint(_address(silent_server), "x"), timeout=timeout)

        elapsed = time.monotonic() - started
        assert result.success is False
        assert result.message.startswith("send request fail:")
        assert elapsed < timeout + 1.0

    def test_trickling_headers_cannot_outlast_timeout(self, trickling_server):
        """A peer that keeps sending header lines is cut off at the deadline"""
        timeout = 0.5
        started = time.monotonic()

        result = http_probe(Endpoint(_address(trickling_server), "x"), timeout=timeout)

        elapsed = time.monotonic() - started
        assert result.success is False
        assert result.message.startswith("send request fail:")
        assert elapsed < timeout + 1.0

    def test_deadline_shuts_down_watched_socket(self):
        deadline = Deadline(0.2)
        ours, theirs = socket.socketpair()
        with ours, theirs:
            deadline.watch(ours)
            deadline.start()

            started = time.monotonic()
            assert ours.recv(1) == b""
            assert time.monotonic() - started < 2.0
            assert deadline.expired is True
            deadline.stop()

    def test_socket_watched_after_expiry_is_shut_down(self):
        deadline = Deadline(5.0)
        deadline.expire()
        ours, theirs = socket.socketpair()
        with ours, theirs:
            deadline.watch(ours)

            assert ours.recv(1) == b""

    def test_unbuildable_request(self):
        result = http_probe(Endpoint("", "x"), timeout=1.0)

        assert result.success is False
        assert result.message.startswith("create request fail:")

    def test_each_probe_uses_new_connection(self, http_server):
        endpoint = Endpoint(_address(http_server.socket), "x")

        for _ in range(3):
            assert http_probe(endpoint, timeout=2.0).success

        assert len(_RecordingHandler.hosts) == 3


class TestTcpProbe:
    """Tests for tcp_probe"""

    def test_connects_to_listener(self, silent_server):
        result = tcp_probe(Endpoint(_address(silent_server)), timeout=1.0)

        assert result.success is True

    def test_refused(self, closed_port):
        result = tcp_probe(Endpoint(f"127.0.0.1:{closed_port}"), timeout=1.0)

        assert result.success is False
        assert result.message.startswith("dial fail:")


class TestBuildProbe:
    """Tests for build_probe"""

    def test_tcp_method(self):
        assert build_probe(ProbeMethod.TCP) is tcp_probe

    def test_http_method_passes_proxy(self):
        with patch("netguard.checkers.probe.http_probe") as mock_probe:
            probe = build_probe(ProbeMethod.HTTP, proxy="http://proxy:3128")
            probe(Endpoint("1.2.3.4"), 3.0)

        mock_probe.assert_called_once_with(
            Endpoint("1.2.3.4"), 3.0, proxy="http://proxy:3128"
        )

"""
Transport against a real local socket: body-read timeouts and incremental streaming.

The server writes a scripted raw HTTP response and can stall mid-body until
the test releases it.
"""

import http.server
import threading

import httpx
import pytest
import requests

from src.gemini_transport.async_client import AsyncRequestExecutor
from src.gemini_transport.core.config import RetryPolicy, TimeoutConfig
from src.gemini_transport.core.exceptions import TimeoutError
from src.gemini_transport.core.executor import RequestExecutor, TransportRequest

WAIT = object()
STALL_LIMIT = 5.0


class ScriptedServer:
    """Local HTTP server; every POST gets the raw byte steps from ``respond``."""

    def __init__(self):
        self.steps = []
        self.release = threading.Event()
        self.finished = threading.Event()
        server = self

        class Handler(http.server.BaseHTTPRequestHandler):
            def do_POST(self):
                self.rfile.read(int(self.headers.get("Content-Length", 0)))
                try:
                    for step in server.steps:
                        if step is WAIT:
                            server.release.wait(STALL_LIMIT)
                        else:
                            self.wfile.write(step)
                            self.wfile.flush()
                except OSError:
                    # client already gave up
                    pass
                server.finished.set()

            def log_message(self, format, *args):
                pass

        self._httpd = http.server.ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.url = f"http://127.0.0.1:{self._httpd.server_address[1]}/v1/models/x:streamGenerateContent"
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    def respond(self, *steps):
        self.steps = list(steps)

    def close(self):
        self.release.set()
        self._httpd.shutdown()
        self._httpd.server_close()


def headers(content_length=None):
    lines = [b"HTTP/1.1 200 OK", b"Content-Type: application/json"]
    if content_length is None:
        lines.append(b"Connection: close")
    else:
        lines.append(b"Content-Length: %d" % content_length)
    return b"\r\n".join(lines) + b"\r\n\r\n"


@pytest.fixture
def server():
    server = ScriptedServer()
    yield server
    server.close()


@pytest.fixture
def sync_executor():
    session = requests.Session()
    yield RequestExecutor(session, RetryPolicy.no_retry(), TimeoutConfig(connect=1, read=0.3))
    session.close()


def post(url):
    return lambda: TransportRequest("POST", url, {"Content-Type": "application/json"}, b"{}")


FIRST = b'{"a":1}\n'
SECOND = b'{"b":2}\n'


# ==================== Body read timeout ====================

@pytest.mark.integration
def test_stalled_body_is_timeout(server, sync_executor):
    body = b'{"candidates": [{"content": '
    server.respond(headers(content_length=len(body) + 20), body, WAIT)

    with pytest.raises(TimeoutError) as exc_info:
        sync_executor.execute_unary(post(server.url))

    assert exc_info.value.timeout == 1.0


@pytest.mark.integration
def test_stalled_stream_is_timeout(server, sync_executor):
    server.respond(headers(content_length=len(FIRST) + len(SECOND)), FIRST, WAIT, SECOND)

    iterator = sync_executor.execute_streaming(post(server.url))
    assert next(iterator) == {"a": 1}
    with pytest.raises(TimeoutError):
        next(iterator)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_async_stalled_body_is_timeout(server):
    body = b'{"candidates": [{"content": '
    server.respond(headers(content_length=len(body) + 20), body, WAIT)

    async with httpx.AsyncClient() as client:
        executor = AsyncRequestExecutor(client, RetryPolicy.no_retry(), TimeoutConfig(connect=1, read=0.3))
        with pytest.raises(TimeoutError) as exc_info:
            await executor.execute_unary(post(server.url))

    assert exc_info.value.timeout == 1.0


# ==================== Incremental delivery ====================

@pytest.mark.integration
@pytest.mark.parametrize("content_length", [len(FIRST) + len(SECOND), None], ids=["content-length", "close-delimited"])
def test_stream_values_arrive_before_body_ends(server, content_length):
    server.respond(headers(content_length), FIRST, WAIT, SECOND)
    session = requests.Session()
    executor = RequestExecutor(session, RetryPolicy.no_retry(), TimeoutConfig(connect=1, read=STALL_LIMIT * 2))

    try:
        iterator = executor.execute_streaming(post(server.url))
        assert next(iterator) == {"a": 1}
        assert not server.finished.is_set()

        server.release.set()
        assert list(iterator) == [{"b": 2}]
    finally:
        session.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_async_stream_values_arrive_before_body_ends(server):
    server.respond(headers(len(FIRST) + len(SECOND)), FIRST, WAIT, SECOND)

    async with httpx.AsyncClient() as client:
        executor = AsyncRequestExecutor(
            client, RetryPolicy.no_retry(), TimeoutConfig(connect=1, read=STALL_LIMIT * 2)
        )
        iterator = executor.execute_streaming(post(server.url))
        assert await iterator.__anext__() == {"a": 1}
        assert not server.finished.is_set()

        server.release.set()
        assert [value async for value in iterator] == [{"b": 2}]

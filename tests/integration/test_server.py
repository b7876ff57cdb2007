"""
End-to-end tests over real sockets.
"""

import socket
import threading

import pytest

from apiserver import APIServer
from apiserver.http import ok


def get(path: str, authorization: str = "Bearer token", method: str = "GET") -> bytes:
    return (
        f"{method} {path} HTTP/1.1\r\n"
        f"Host: localhost\r\n"
        f"Authorization: {authorization}\r\n"
        f"Connection: close\r\n"
        f"\r\n"
    ).encode()


def split_response(data: bytes):
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers, body


class TestAPIOverSockets:

    def test_authorized_user_lookup(self, api_server):
        status, headers, body = split_response(api_server.request(get("/api/v1/users/42")))

        assert status == "HTTP/1.1 200 OK"
        assert headers["content-type"] == "text/plain; charset=utf-8"
        assert headers["content-length"] == "11"
        assert body == b"User ID: 42"

    def test_wrong_token_is_unauthorized(self, api_server):
        status, _, body = split_response(
            api_server.request(get("/api/v1/users/42", authorization="Bearer wrong"))
        )

        assert status == "HTTP/1.1 401 Unauthorized"
        assert body == b"Unauthorized"

    def test_unknown_path_is_not_found(self, api_server):
        status, _, body = split_response(api_server.request(get("/api/v1/nothing")))

        assert status == "HTTP/1.1 404 Not Found"
        assert body == b"404 page not found"

    def test_head_has_headers_but_no_body(self, api_server):
        status, headers, body = split_response(
            api_server.request(get("/api/v1/users/42", method="HEAD"))
        )

        assert status == "HTTP/1.1 200 OK"
        assert headers["content-length"] == "11"
        assert body == b""

    def test_malformed_request_is_bad_request(self, api_server):
        status, headers, _ = split_response(api_server.request(b"garbage\r\n\r\n"))

        assert status == "HTTP/1.1 400 Bad Request"
        assert headers["connection"] == "close"

    def test_keep_alive_serves_several_requests(self, api_server):
        request = (
            b"GET /api/v1/users/1 HTTP/1.1\r\n"
            b"Host: localhost\r\n"
            b"Authorization: Bearer token\r\n"
            b"\r\n"
        )
        with socket.create_connection(("127.0.0.1", api_server.port), timeout=5.0) as s:
            s.sendall(request + request.replace(b"/users/1", b"/users/2"))
            data = b""
            while data.count(b"User ID: ") < 2:
                chunk = s.recv(4096)
                if not chunk:
                    break
                data += chunk

        assert b"User ID: 1" in data
        assert b"User ID: 2" in data

    def test_concurrent_requests(self, api_server):
        results = {}

        def fetch(i):
            results[i] = split_response(api_server.request(get(f"/api/v1/users/{i}")))[2]

        threads = [threading.Thread(target=fetch, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert results == {i: f"User ID: {i}".encode() for i in range(8)}


class TestServerFaults:

    def test_handler_returning_none_is_internal_error(self, serve):
        background = serve(lambda request: None)

        status, _, _ = split_response(background.request(get("/")))

        assert status == "HTTP/1.1 500 Internal Server Error"

    def test_handler_exception_is_internal_error(self, serve):
        def broken(request):
            raise RuntimeError("boom")

        background = serve(broken)
        first, _, _ = split_response(background.request(get("/")))
        second, _, _ = split_response(background.request(get("/")))

        assert first == second == "HTTP/1.1 500 Internal Server Error"

    def test_bind_failure_raises_os_error(self, config):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupied:
            occupied.bind(("127.0.0.1", 0))
            occupied.listen(1)
            port = occupied.getsockname()[1]

            server = APIServer(f"127.0.0.1:{port}", config=config)

            with pytest.raises(OSError):
                server.run()

    def test_shutdown_stops_run(self, serve):
        background = serve(lambda request: ok("x"))

        background.stop()

        assert background.server.wait_for_shutdown(timeout=5.0)
        assert not background.server.is_running

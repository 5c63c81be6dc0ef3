"""
Integration tests: a real WebServer over TCP.
"""

import socket
import threading

import pytest

from webserver import ServerConfig, WebServer


class TestWebServer:
    """End-to-end requests against a running server."""

    def test_get_index(self, test_server, make_request, parse_response):
        response = parse_response(test_server.send(make_request("GET", "/index.html")))

        assert response.status == 200
        assert response.headers == {"Content-Length": "5", "Content-Type": "text/html"}
        assert response.body == b"hello"

    def test_get_chunked_large_file(self, test_server, make_request, parse_response, doc_root):
        raw = test_server.send(make_request("GET", "/big.bin", headers={"chunked": "yes"}))
        response = parse_response(raw)

        assert response.headers["Transfer-Encoding"] == "chunked"
        assert response.decoded_body == (doc_root / "big.bin").read_bytes()

    def test_traversal(self, test_server, make_request):
        raw = test_server.send(make_request("GET", "/../../etc/passwd"))
        assert raw == b"HTTP/1.1 400 Bad Request\r\n\r\n"

    def test_put_not_implemented(self, test_server, make_request):
        raw = test_server.send(make_request("PUT", "/index.html", body=b"x"))
        assert raw == b"HTTP/1.1 501 Not Implemented\r\n\r\n"

    def test_one_request_per_connection(self, test_server, make_request, parse_response):
        """A second pipelined request on the same connection is not answered."""
        raw = test_server.send(make_request("GET", "/index.html") * 2)

        assert raw.count(b"HTTP/1.1 ") == 1
        assert parse_response(raw).body == b"hello"

    def test_client_closes_without_sending(self, test_server, make_request):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5.0) as s:
            s.shutdown(socket.SHUT_WR)
            assert s.recv(100) == b""

        # Server still healthy afterwards
        assert test_server.send(make_request("GET", "/")).startswith(b"HTTP/1.1 200 OK")

    def test_params_shared_across_connections(self, test_server, make_request, parse_response):
        test_server.send(make_request("GET", "/index.html?name=alice"))
        test_server.send(make_request("POST", "/index.html", body=b"name=bob"))
        raw = test_server.send(make_request("POST", "/params_info.html", body=b"name=carol"))

        html = parse_response(raw).body.decode()
        assert html.index("alice") < html.index("bob") < html.index("carol")
        assert test_server.server.store.count("name") == 3

    def test_concurrent_posts(self, test_server, make_request):
        """Parallel submissions all land in the store."""
        errors = []

        def post(n):
            try:
                raw = test_server.send(
                    make_request("POST", "/params_info.html", body=f"n={n}".encode())
                )
                assert raw.startswith(b"HTTP/1.1 200 OK")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=post, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert errors == []
        assert test_server.server.store.count("n") == 20

    def test_stalled_client_times_out(self, test_server):
        """With a read timeout, a client that never finishes gets a 500."""
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=10.0) as s:
            s.sendall(b"GET / HTTP/1.1\r\n")
            assert s.recv(100) == b"HTTP/1.1 500 Internal Server Error\r\n\r\n"


class TestLifecycle:

    def test_shutdown_stops_accepting(self, doc_root):
        server = WebServer(ServerConfig(host="127.0.0.1", port=0, root=str(doc_root), max_threads=2))
        thread = threading.Thread(target=server.run, kwargs={"setup_logging": False}, daemon=True)
        thread.start()
        assert server.wait_until_ready(5.0)
        port = server.address[1]

        server.shutdown()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1.0)

    def test_invalid_config_fails_fast(self):
        with pytest.raises(ValueError):
            WebServer(ServerConfig(max_threads=0))

    def test_missing_root_warns(self, tmp_path, caplog):
        WebServer(ServerConfig(root=str(tmp_path / "absent")))
        assert "does not exist" in caplog.text

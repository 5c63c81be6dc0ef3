"""
Unit tests for request dispatch.
"""

import io
import logging

import pytest

from webserver.handler import RequestHandler, RequestState
from webserver.http.paths import PathResolver
from webserver.http.status_codes import HTTPStatus


class TestGet:
    """GET and HEAD."""

    def test_get_index(self, run_request, make_request):
        """GET /index.html with 'hello' on disk."""
        status, response = run_request(make_request("GET", "/index.html"))

        assert status == HTTPStatus.OK
        assert response.raw == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Length: 5\r\n"
            b"Content-Type: text/html\r\n"
            b"\r\n"
            b"hello"
        )

    def test_get_root_serves_default_page(self, run_request, make_request):
        status, response = run_request(make_request("GET", "/"))

        assert status == HTTPStatus.OK
        assert response.body == b"hello"

    def test_get_image_type(self, run_request, make_request):
        _, response = run_request(make_request("GET", "/logo.png"))
        assert response.headers["Content-Type"] == "image"

    def test_get_unknown_type(self, run_request, make_request):
        _, response = run_request(make_request("GET", "/big.bin"))

        assert response.headers["Content-Type"] == "application/octet-stream"
        assert response.headers["Content-Length"] == "10240"

    def test_get_missing(self, run_request, make_request):
        status, response = run_request(make_request("GET", "/nope.html"))

        assert status == HTTPStatus.NOT_FOUND
        assert response.raw == b"HTTP/1.1 404 Not Found\r\n\r\n"

    def test_get_traversal(self, run_request, make_request, store):
        """/../../etc/passwd is a 400 with no body."""
        status, response = run_request(make_request("GET", "/../../etc/passwd?x=1"))

        assert status == HTTPStatus.BAD_REQUEST
        assert response.raw == b"HTTP/1.1 400 Bad Request\r\n\r\n"
        assert len(store) == 0

    @pytest.mark.parametrize("target", ["/index%00.html", "/%00", "/docs/%00/index.html"])
    def test_get_nul_byte_in_path(self, run_request, make_request, store, target):
        status, response = run_request(make_request("GET", target + "?x=1"))

        assert status == HTTPStatus.BAD_REQUEST
        assert response.raw == b"HTTP/1.1 400 Bad Request\r\n\r\n"
        assert len(store) == 0


    def test_get_chunked(self, run_request, make_request, doc_root):
        status, response = run_request(
            make_request("GET", "/big.bin", headers={"chunked": "yes"})
        )

        assert status == HTTPStatus.OK
        assert "Content-Length" not in response.headers
        assert response.headers["Transfer-Encoding"] == "chunked"
        assert response.decoded_body == (doc_root / "big.bin").read_bytes()

    @pytest.mark.parametrize("chunked", [None, "yes"])
    @pytest.mark.parametrize("target", ["/index.html", "/big.bin", "/docs/"])
    def test_head_matches_get(self, run_request, make_request, target, chunked):
        """HEAD gets GET's exact headers and no body."""
        _, get = run_request(make_request("GET", target, headers={"chunked": chunked}))
        _, head = run_request(make_request("HEAD", target, headers={"chunked": chunked}))

        assert head.status_line == get.status_line
        assert head.headers == get.headers
        assert head.body == b""

    def test_get_query_stored(self, run_request, make_request, store):
        run_request(make_request("GET", "/index.html?name=alice&name=bob&age=30"))

        assert store.snapshot() == {"name": ["alice", "bob"], "age": ["30"]}

    def test_get_query_does_not_change_file(self, run_request, make_request):
        _, response = run_request(make_request("GET", "/index.html?page=/etc/passwd"))
        assert response.body == b"hello"

    def test_get_missing_file_stores_nothing(self, run_request, make_request, store):
        run_request(make_request("GET", "/nope.html?a=1"))
        assert len(store) == 0

    def test_head_query_not_stored(self, run_request, make_request, store):
        run_request(make_request("HEAD", "/index.html?a=1"))
        assert len(store) == 0


class TestPost:
    """POST, including /params_info.html."""

    def test_post_params_twice(self, run_request, make_request, store, doc_root):
        """Two submissions of name=alice&name=bob give four rows, in order."""
        for _ in range(2):
            status, response = run_request(
                make_request("POST", "/params_info.html", body=b"name=alice&name=bob")
            )
            assert status == HTTPStatus.OK

        assert store.snapshot() == {"name": ["alice", "bob", "alice", "bob"]}

        html = response.body.decode()
        assert response.headers["Content-Type"] == "text/html"
        assert html.count("<td>name</td>") == 4
        rows = [line.strip() for line in html.splitlines() if line.strip().startswith("<td>") and "name" not in line]
        assert rows == ["<td>alice</td>", "<td>bob</td>", "<td>alice</td>", "<td>bob</td>"]

        assert (doc_root / "params_info.html").read_text(encoding="utf-8") == html

    def test_post_params_merges_url_and_body(self, run_request, make_request, store):
        """Body wins per name; URL-only names are kept."""
        run_request(make_request("POST", "/params_info.html?a=url&b=url", body=b"b=body&c=body"))

        assert store.snapshot() == {"a": ["url"], "b": ["body"], "c": ["body"]}

    def test_post_params_page_includes_earlier_gets(self, run_request, make_request):
        run_request(make_request("GET", "/index.html?from=get"))
        _, response = run_request(make_request("POST", "/params_info.html", body=b"from=post"))

        html = response.body.decode()
        assert html.index("<td>get</td>") < html.index("<td>post</td>")

    def test_post_params_page_served_afterwards(self, run_request, make_request):
        """The persisted page is an ordinary file for later GETs."""
        _, posted = run_request(make_request("POST", "/params_info.html", body=b"k=v"))
        _, fetched = run_request(make_request("GET", "/params_info.html"))

        assert fetched.body == posted.body

    def test_post_params_chunked(self, run_request, make_request):
        _, response = run_request(
            make_request("POST", "/params_info.html", headers={"chunked": "yes"}, body=b"k=v")
        )

        assert response.headers["Transfer-Encoding"] == "chunked"
        assert b"<td>v</td>" in response.decoded_body

    def test_post_file_stores_body_only(self, run_request, make_request, store):
        """POST to an ordinary file stores body parameters, not URL ones."""
        status, response = run_request(
            make_request("POST", "/index.html?url=1", body=b"body=2")
        )

        assert status == HTTPStatus.OK
        assert response.body == b"hello"
        assert store.snapshot() == {"body": ["2"]}

    def test_post_missing_file_stores_nothing(self, run_request, make_request, store):
        status, _ = run_request(make_request("POST", "/nope.html", body=b"a=1"))

        assert status == HTTPStatus.NOT_FOUND
        assert len(store) == 0

    def test_post_without_body(self, run_request, make_request, store):
        status, response = run_request(make_request("POST", "/params_info.html"))

        assert status == HTTPStatus.BAD_REQUEST
        assert response.raw == b"HTTP/1.1 400 Bad Request\r\n\r\n"
        assert len(store) == 0

    def test_post_invalid_content_length(self, run_request, make_request):
        status, _ = run_request(
            make_request("POST", "/index.html", headers={"Content-Length": "lots"})
        )
        assert status == HTTPStatus.BAD_REQUEST

    @pytest.mark.parametrize("value", ["²", "٣٠"])
    def test_post_non_ascii_digit_content_length(self, run_request, make_request, value):
        status, response = run_request(
            make_request("POST", "/params_info.html", headers={"Content-Length": value})
        )

        assert status == HTTPStatus.BAD_REQUEST
        assert response.raw == b"HTTP/1.1 400 Bad Request\r\n\r\n"


    def test_post_empty_body_allowed(self, run_request, make_request):
        status, _ = run_request(make_request("POST", "/index.html", body=b""))
        assert status == HTTPStatus.OK

    def test_post_traversal(self, run_request, make_request, store):
        status, _ = run_request(make_request("POST", "/../secret", body=b"a=1"))

        assert status == HTTPStatus.BAD_REQUEST
        assert len(store) == 0


class TestTrace:

    def test_trace_echo(self, run_request, make_request, store):
        status, response = run_request(
            make_request("TRACE", "/anything?x=1", headers={"X-Test": "42"})
        )

        assert status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "application/octet-stream"
        assert response.body == (
            b"TRACE /anything?x=1 HTTP/1.1\r\n"
            b"Host: localhost:8080\r\n"
            b"X-Test: 42\r\n"
            b"\r\n"
        )
        assert response.headers["Content-Length"] == str(len(response.body))
        assert len(store) == 0

    def test_trace_chunked(self, run_request, make_request):
        _, response = run_request(make_request("TRACE", "/", headers={"chunked": "yes"}))

        assert response.headers["Transfer-Encoding"] == "chunked"
        assert response.decoded_body.startswith(b"TRACE / HTTP/1.1\r\n")
        assert b"chunked: yes\r\n" in response.decoded_body


class TestErrors:

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "OPTIONS", "PATCH", "get"])
    def test_not_implemented(self, run_request, make_request, method):
        status, response = run_request(make_request(method, "/index.html"))

        assert status == HTTPStatus.NOT_IMPLEMENTED
        assert response.raw == b"HTTP/1.1 501 Not Implemented\r\n\r\n"

    def test_malformed_request_line(self, run_request):
        status, response = run_request(b"GARBAGE\r\nHost: x\r\n\r\n")

        assert status == HTTPStatus.BAD_REQUEST
        assert response.raw == b"HTTP/1.1 400 Bad Request\r\n\r\n"

    def test_missing_host(self, run_request, make_request):
        status, _ = run_request(make_request("GET", "/", headers={"Host": None}))
        assert status == HTTPStatus.BAD_REQUEST

    def test_empty_request(self, run_request):
        """Nothing sent, nothing answered."""
        assert run_request(b"") == (None, None)

    def test_truncated_body_dropped(self, run_request):
        status, response = run_request(
            b"POST /params_info.html HTTP/1.1\r\nHost: x\r\nContent-Length: 100\r\n\r\nabc"
        )

        assert status is None
        assert response is None

    def test_read_error_gives_500(self, handler, parse_response):
        class BrokenStream(io.BytesIO):
            def readline(self, size=-1):
                raise ConnectionResetError("reset")

        out = io.BytesIO()
        status = handler.handle(BrokenStream(), out)

        assert status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert out.getvalue() == b"HTTP/1.1 500 Internal Server Error\r\n\r\n"

    def test_unreadable_file_gives_500(self, run_request, make_request, doc_root, monkeypatch):
        def fail(self):
            raise PermissionError("denied")
        monkeypatch.setattr(type(doc_root), "read_bytes", fail)

        status, response = run_request(make_request("GET", "/index.html"))

        assert status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.raw == b"HTTP/1.1 500 Internal Server Error\r\n\r\n"

    def test_write_failure_after_headers_drops(self, handler, make_request):
        """Once headers are out, a failure only ends the connection."""
        class HeadOnlyStream(io.BytesIO):
            def write(self, data):
                if self.tell() > 0:
                    raise BrokenPipeError("gone")
                return super().write(data)

        out = HeadOnlyStream()
        status = handler.handle(io.BytesIO(make_request("GET", "/index.html")), out)

        assert status == HTTPStatus.OK
        assert out.getvalue().startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"500" not in out.getvalue()

    def test_partial_head_write_drops(self, handler, make_request):
        """A status line cut off mid-write is not followed by a 500."""
        class TruncatingStream(io.BytesIO):
            def write(self, data):
                super().write(data[:8])
                raise BrokenPipeError("gone")

        out = TruncatingStream()
        handler.handle(io.BytesIO(make_request("GET", "/index.html")), out)

        assert out.getvalue() == b"HTTP/1.1"



class TestLogging:

    def test_access_log_line(self, run_request, make_request, caplog):
        with caplog.at_level(logging.INFO, logger="webserver.access"):
            run_request(make_request("GET", "/index.html"))

        records = [r for r in caplog.records if r.name == "webserver.access"]
        assert len(records) == 1
        assert '"GET /index.html HTTP/1.1" 200 5 fixed' in records[0].getMessage()

    def test_state_transitions_logged(self, run_request, make_request, caplog):
        with caplog.at_level(logging.DEBUG, logger="webserver.handler"):
            run_request(make_request("TRACE", "/"))

        messages = " ".join(r.getMessage() for r in caplog.records)
        for state in (RequestState.DISPATCH, RequestState.ECHO, RequestState.CLOSED):
            assert state.value in messages


def test_handler_shares_store_across_instances(doc_root, store, make_request):
    """Two handlers on one store see each other's submissions."""
    first = RequestHandler(PathResolver(doc_root), store)
    second = RequestHandler(PathResolver(doc_root), store)

    first.handle(io.BytesIO(make_request("GET", "/index.html?a=1")), io.BytesIO())
    second.handle(io.BytesIO(make_request("GET", "/index.html?a=2")), io.BytesIO())

    assert store.snapshot() == {"a": ["1", "2"]}

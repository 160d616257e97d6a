"""Tests for the requests-based executor."""

import io
from unittest.mock import MagicMock, patch

import pytest
import requests

from coman.core import MODE_MULTIPART, MODE_STREAM, MODE_TEXT, PreparedRequest
from coman.errors import (
    HttpConnectionError,
    HttpError,
    HttpTimeout,
    RedirectError,
    RequestBuildError,
    ResponseError,
    UnknownContentType,
)
from coman.executor import (
    execute_prepared,
    execute_request,
    execute_streaming,
    sniff_file_part,
)
from coman.models import Method

PNG = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"


def _response(status_code=200, content=b"", headers=None, url="http://x.test/", chunks=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.reason = "OK"
    resp.url = url
    resp.headers = headers or {"Content-Type": "application/json"}
    resp.content = content
    resp.raw.version = 11
    resp.iter_content.return_value = iter(chunks or [])
    return resp


# ── Text requests ────────────────────────────────────────────────────────


class TestExecuteRequest:
    @patch("coman.executor.requests.request")
    def test_success(self, mock_req):
        mock_req.return_value = _response(content=b'{"ok": true}')
        result = execute_request("get", "http://x.test/", headers=[("Accept", "json")])

        assert result.error is None
        assert result.status_code == 200
        assert result.body == '{"ok": true}'
        assert result.version == "HTTP/1.1"
        assert result.elapsed_ms >= 0
        _, kwargs = mock_req.call_args
        assert kwargs["method"] == "GET"
        assert kwargs["headers"] == {"Accept": "json"}
        assert kwargs["data"] is None

    @patch("coman.executor.requests.request")
    def test_redirects_not_followed_by_default(self, mock_req):
        mock_req.return_value = _response(status_code=302)
        result = execute_request("GET", "http://x.test/old")
        assert result.status_code == 302
        _, kwargs = mock_req.call_args
        assert kwargs["allow_redirects"] is False
        assert kwargs["timeout"] == 120

    @patch("coman.executor.requests.request")
    def test_text_body_sent_as_utf8(self, mock_req):
        mock_req.return_value = _response()
        execute_request("POST", "http://x.test/", body="héllo")
        _, kwargs = mock_req.call_args
        assert kwargs["data"] == "héllo".encode()

    @patch("coman.executor.requests.request")
    def test_invalid_utf8_response_replaced(self, mock_req):
        mock_req.return_value = _response(content=b"ok\xff")
        result = execute_request("GET", "http://x.test/")
        assert result.body == "ok�"

    @patch("coman.executor.requests.request")
    def test_multipart_drops_content_type(self, mock_req):
        mock_req.return_value = _response()
        part = ("file.png", PNG, "image/png")
        execute_request(
            "POST",
            "http://x.test/upload",
            headers=[("Content-Type", "application/json"), ("X-Id", "1")],
            file_part=part,
        )
        _, kwargs = mock_req.call_args
        assert kwargs["files"] == {"file": part}
        assert kwargs["headers"] == {"X-Id": "1"}
        assert "data" not in kwargs


# ── Error mapping ────────────────────────────────────────────────────────


class TestErrorMapping:
    @pytest.mark.parametrize(
        "raised, expected",
        [
            (requests.exceptions.ConnectTimeout("slow"), HttpTimeout),
            (requests.exceptions.ReadTimeout("slow"), HttpTimeout),
            (requests.exceptions.ConnectionError("refused"), HttpConnectionError),
            (requests.exceptions.TooManyRedirects("loop"), RedirectError),
            (requests.exceptions.MissingSchema("no scheme"), RequestBuildError),
            (requests.exceptions.InvalidURL("bad"), RequestBuildError),
            (requests.exceptions.ChunkedEncodingError("cut"), ResponseError),
            (requests.exceptions.RequestException("other"), HttpError),
        ],
    )
    def test_exceptions_become_typed_errors(self, raised, expected):
        with patch("coman.executor.requests.request", side_effect=raised):
            result = execute_request("GET", "http://x.test/a")
        assert type(result.error) is expected
        assert result.error.method == "GET"
        assert result.error.url == "http://x.test/a"
        assert "GET http://x.test/a" in str(result.error)

    @patch("coman.executor.requests.request", side_effect=ValueError("Invalid header value"))
    def test_value_error_is_build_error(self, _mock):
        result = execute_request("GET", "http://x.test/")
        assert isinstance(result.error, RequestBuildError)


# ── Streaming ────────────────────────────────────────────────────────────


class TestStreaming:
    @patch("coman.executor.requests.request")
    def test_chunks_written_to_sink(self, mock_req):
        resp = _response(chunks=[b"one ", b"two ", b"three"])
        mock_req.return_value = resp
        sink = io.BytesIO()

        result = execute_streaming("GET", "http://x.test/s", sink=sink)

        assert result.error is None
        assert sink.getvalue() == b"one two three"
        assert result.body == ""
        resp.close.assert_called_once()
        _, kwargs = mock_req.call_args
        assert kwargs["stream"] is True
        assert kwargs["timeout"] is None

    @patch("coman.executor.requests.request")
    def test_interrupted_stream(self, mock_req):
        resp = _response()
        resp.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("cut")
        mock_req.return_value = resp
        result = execute_streaming("GET", "http://x.test/s", sink=io.BytesIO())
        assert isinstance(result.error, ResponseError)
        resp.close.assert_called_once()

    @patch("coman.executor.requests.request")
    def test_sink_failure(self, mock_req):
        mock_req.return_value = _response(chunks=[b"x"])
        sink = MagicMock()
        sink.write.side_effect = BrokenPipeError("closed")
        result = execute_streaming("GET", "http://x.test/s", sink=sink)
        assert isinstance(result.error, ResponseError)


# ── Multipart sniffing ───────────────────────────────────────────────────


class TestSniffFilePart:
    def test_png(self):
        assert sniff_file_part(PNG) == ("file.png", PNG, "image/png")

    @patch("coman.executor.filetype.guess", return_value=None)
    def test_unknown(self, _mock):
        with pytest.raises(UnknownContentType):
            sniff_file_part(b"\xff\xfe\x00\x01")


# ── Dispatch ─────────────────────────────────────────────────────────────


class TestExecutePrepared:
    @patch("coman.executor.execute_request")
    def test_text_mode(self, mock_exec):
        execute_prepared(
            PreparedRequest(Method.PUT, "http://x.test/", [("A", "1")], MODE_TEXT, "body"),
            timeout=5,
        )
        args, kwargs = mock_exec.call_args
        assert args == ("PUT", "http://x.test/")
        assert kwargs["body"] == "body"
        assert kwargs["timeout"] == 5

    @patch("coman.executor.execute_request")
    def test_multipart_mode(self, mock_exec):
        execute_prepared(PreparedRequest(Method.POST, "http://x.test/", [], MODE_MULTIPART, PNG))
        _, kwargs = mock_exec.call_args
        assert kwargs["file_part"] == ("file.png", PNG, "image/png")

    @patch("coman.executor.filetype.guess", return_value=None)
    @patch("coman.executor.execute_request")
    def test_multipart_unknown_type_not_sent(self, mock_exec, _guess):
        result = execute_prepared(
            PreparedRequest(Method.POST, "http://x.test/up", [], MODE_MULTIPART, b"\xff\xfe\x00\x01"),
        )
        mock_exec.assert_not_called()
        assert isinstance(result.error, UnknownContentType)
        assert "POST http://x.test/up" in str(result.error)

    @patch("coman.executor.execute_streaming")
    def test_stream_mode(self, mock_stream):
        sink = io.BytesIO()
        execute_prepared(
            PreparedRequest(Method.POST, "http://x.test/", [], MODE_STREAM, b"data"),
            sink=sink,
        )
        _, kwargs = mock_stream.call_args
        assert kwargs["sink"] is sink
        assert kwargs["body"] == b"data"

    @patch("coman.executor.execute_request")
    def test_get_never_sends_body(self, mock_exec):
        execute_prepared(PreparedRequest(Method.GET, "http://x.test/", [], MODE_TEXT, "stored"))
        _, kwargs = mock_exec.call_args
        assert kwargs["body"] is None

    @patch("coman.executor.filetype.guess")
    @patch("coman.executor.execute_request")
    def test_get_with_binary_input_is_not_uploaded(self, mock_exec, mock_guess):
        execute_prepared(PreparedRequest(Method.GET, "http://x.test/", [], MODE_MULTIPART, PNG))
        mock_guess.assert_not_called()
        _, kwargs = mock_exec.call_args
        assert kwargs["body"] is None
        assert "file_part" not in kwargs

    @patch("coman.executor.execute_streaming")
    def test_get_stream_sends_no_body(self, mock_stream):
        execute_prepared(PreparedRequest(Method.GET, "http://x.test/", [], MODE_STREAM, b"data"))
        _, kwargs = mock_stream.call_args
        assert kwargs["body"] is None

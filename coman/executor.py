"""coman executor - HTTP request execution."""

import logging
import time
from typing import Any, BinaryIO

import filetype
import requests

from coman.core import DEFAULT_TIMEOUT, MODE_MULTIPART, MODE_STREAM, PreparedRequest
from coman.errors import (
    HttpConnectionError,
    HttpError,
    HttpTimeout,
    RedirectError,
    RequestBuildError,
    ResponseError,
    UnknownContentType,
)
from coman.models import Method

log = logging.getLogger(__name__)

_HTTP_VERSIONS = {9: "HTTP/0.9", 10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2"}


class RequestResult:
    """Result of an HTTP request."""

    def __init__(self):
        self.status_code: int = 0
        self.reason: str = ""
        self.version: str = "HTTP/1.1"
        self.url: str = ""
        self.headers: dict[str, str] = {}
        self.body: str = ""
        self.elapsed_ms: float = 0
        self.error: HttpError | None = None


def sniff_file_part(data: bytes) -> tuple[str, bytes, str]:
    """Build a (filename, content, mime) multipart file tuple.

    The type comes from the content's magic number, never from metadata.
    """
    kind = filetype.guess(data)
    if kind is None:
        raise UnknownContentType("Unknown file type")
    return (f"file.{kind.extension}", data, kind.mime)


def _translate_error(e: requests.exceptions.RequestException, method: str, url: str) -> HttpError:
    exc = requests.exceptions
    if isinstance(e, exc.Timeout):
        return HttpTimeout("Request timed out", method, url)
    if isinstance(e, exc.TooManyRedirects):
        return RedirectError(f"Redirect error: {e}", method, url)
    if isinstance(e, exc.ConnectionError):
        return HttpConnectionError(f"Connection error: {e}", method, url)
    if isinstance(e, exc.MissingSchema | exc.InvalidSchema | exc.InvalidURL | exc.InvalidHeader):
        return RequestBuildError(f"Request error: {e}", method, url)
    if isinstance(e, exc.ChunkedEncodingError | exc.ContentDecodingError):
        return ResponseError(f"Response error: {e}", method, url)
    return HttpError(f"Request failed: {e}", method, url)


def _fill_result(result: RequestResult, resp) -> None:
    result.status_code = resp.status_code
    result.reason = resp.reason or ""
    result.url = resp.url
    result.headers = dict(resp.headers)
    result.version = _HTTP_VERSIONS.get(getattr(resp.raw, "version", None), "HTTP/1.1")


def execute_request(
    method: str,
    url: str,
    headers: list[tuple[str, str]] | None = None,
    body: str | bytes | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    follow_redirects: bool = False,
    file_part: tuple[str, bytes, str] | None = None,
) -> RequestResult:
    """Execute an HTTP request and return structured result.

    - Redirects are reported, not followed, unless follow_redirects is set
    - Response body is decoded as UTF-8, replacing invalid bytes
    - Captures timing
    - Never raises for transport failures - returns RequestResult with
      error set

    When file_part is provided, sends a multipart/form-data request with
    the part under the field name 'file' instead of a raw body.
    """
    method = str(method).upper()
    result = RequestResult()
    result.url = url

    req_headers = dict(headers or [])
    kwargs: dict[str, Any] = {
        "method": method,
        "url": url,
        "timeout": timeout,
        "allow_redirects": follow_redirects,
    }
    if file_part:
        # requests sets the multipart boundary itself
        req_headers = {k: v for k, v in req_headers.items() if k.lower() != "content-type"}
        kwargs["files"] = {"file": file_part}
    elif isinstance(body, str):
        kwargs["data"] = body.encode("utf-8") if body else None
    else:
        kwargs["data"] = body or None
    kwargs["headers"] = req_headers

    log.debug("Sending %s %s", method, url)
    try:
        start = time.monotonic()
        resp = requests.request(**kwargs)
        body_bytes = resp.content
        result.elapsed_ms = (time.monotonic() - start) * 1000
    except requests.exceptions.RequestException as e:
        result.error = _translate_error(e, method, url)
        return result
    except ValueError as e:
        result.error = RequestBuildError(f"Request error: {e}", method, url)
        return result

    _fill_result(result, resp)
    result.body = body_bytes.decode("utf-8", errors="replace")
    log.debug("%s %s -> %s in %dms", method, url, result.status_code, result.elapsed_ms)
    return result


def execute_streaming(
    method: str,
    url: str,
    headers: list[tuple[str, str]] | None = None,
    body: bytes | None = None,
    sink: BinaryIO | None = None,
    follow_redirects: bool = False,
) -> RequestResult:
    """Send a request and copy the response body to sink chunk by chunk.

    The body is never held in memory; result.body stays empty. No timeout
    is applied so long-running streams can finish.
    """
    method = str(method).upper()
    result = RequestResult()
    result.url = url

    log.debug("Streaming %s %s", method, url)
    start = time.monotonic()
    try:
        resp = requests.request(
            method=method,
            url=url,
            headers=dict(headers or []),
            data=body or None,
            timeout=None,
            allow_redirects=follow_redirects,
            stream=True,
        )
    except requests.exceptions.RequestException as e:
        result.error = _translate_error(e, method, url)
        return result
    except ValueError as e:
        result.error = RequestBuildError(f"Request error: {e}", method, url)
        return result

    _fill_result(result, resp)
    try:
        for chunk in resp.iter_content(chunk_size=None):
            if sink is not None and chunk:
                sink.write(chunk)
                sink.flush()
    except requests.exceptions.RequestException as e:
        result.error = _translate_error(e, method, url)
    except OSError as e:
        result.error = ResponseError(f"Response error: {e}", method, url)
    finally:
        resp.close()
    result.elapsed_ms = (time.monotonic() - start) * 1000
    return result


def execute_prepared(
    prepared: PreparedRequest,
    sink: BinaryIO | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    follow_redirects: bool = False,
) -> RequestResult:
    """Send a prepared request using its transfer mode.

    GET requests never carry a body, whatever the mode.
    """
    method = str(prepared.method)
    body = None if prepared.method is Method.GET else prepared.body
    if prepared.mode == MODE_STREAM:
        return execute_streaming(
            method,
            prepared.url,
            headers=prepared.headers,
            body=body,
            sink=sink,
            follow_redirects=follow_redirects,
        )
    if prepared.mode == MODE_MULTIPART and body is not None:
        try:
            part = sniff_file_part(prepared.body)
        except UnknownContentType as e:
            e.method, e.url = method, prepared.url
            result = RequestResult()
            result.url = prepared.url
            result.error = e
            return result
        return execute_request(
            method,
            prepared.url,
            headers=prepared.headers,
            timeout=timeout,
            follow_redirects=follow_redirects,
            file_part=part,
        )
    return execute_request(
        method,
        prepared.url,
        headers=prepared.headers,
        body=body,
        timeout=timeout,
        follow_redirects=follow_redirects,
    )

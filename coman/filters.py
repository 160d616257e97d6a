"""coman filters - response body selection and rendering."""

from __future__ import annotations

import json
import re
from typing import Any

from coman.errors import RenderError

# ---------------------------------------------------------------------------
# Selector grammar:
#   3          → line 3
#   2-5        → lines 2..5
#   1,4,7-9    → any mix of the above
#   anything else is a JSON key path: data.id, items[0].name, items[].id
# ---------------------------------------------------------------------------

_LINES_RE = re.compile(r"^\s*\d+(\s*-\s*\d+)?(\s*,\s*\d+(\s*-\s*\d+)?)*\s*$")
_SEGMENT_RE = re.compile(r"^([^\[]*)((?:\[[^\]]*\])*)$")

STATUS_SUCCESS = "success"
STATUS_REDIRECT = "redirect"
STATUS_CLIENT_ERROR = "client_error"
STATUS_SERVER_ERROR = "server_error"
STATUS_OTHER = "other"


def status_category(status_code: int) -> str:
    """Bucket a status code: 2xx, 3xx, 4xx, 5xx, anything else."""
    if 200 <= status_code < 300:
        return STATUS_SUCCESS
    if 300 <= status_code < 400:
        return STATUS_REDIRECT
    if 400 <= status_code < 500:
        return STATUS_CLIENT_ERROR
    if 500 <= status_code < 600:
        return STATUS_SERVER_ERROR
    return STATUS_OTHER


def is_line_selector(selector: str) -> bool:
    return bool(_LINES_RE.match(selector))


def parse_line_selector(selector: str, limit: int | None = None) -> list[int]:
    """Expand '1,3-5' into [1, 3, 4, 5], keeping the order given.

    With limit, ranges are clipped to 1..limit before they are expanded.
    """
    numbers: list[int] = []
    for part in selector.split(","):
        part = part.strip()
        if "-" in part:
            first, last = (int(p) for p in part.split("-", 1))
            if limit is not None:
                first = max(1, min(first, limit + 1))
                last = max(1, min(last, limit + 1))
            step = 1 if last >= first else -1
            numbers.extend(range(first, last + step, step))
        else:
            numbers.append(int(part))
    return numbers


def select_lines(body: str, selector: str) -> list[tuple[int, str]]:
    """Return (line_number, text) pairs; numbers past the end are skipped."""
    lines = body.splitlines()
    selected = []
    for n in parse_line_selector(selector, limit=len(lines)):
        if 1 <= n <= len(lines):
            selected.append((n, lines[n - 1]))
    return selected


# ---------------------------------------------------------------------------
# JSON key paths
# ---------------------------------------------------------------------------


def _parse_path(path: str) -> list[Any]:
    """Split 'a.b[0].c[]' into ['a', 'b', 0, 'c', None]."""
    segments: list[Any] = []
    for part in path.strip().split("."):
        part = part.strip()
        if not part:
            continue
        m = _SEGMENT_RE.match(part)
        if not m:
            segments.append(part)
            continue
        if m.group(1):
            segments.append(int(m.group(1)) if m.group(1).isdigit() else m.group(1))
        for bracket in re.findall(r"\[([^\]]*)\]", m.group(2)):
            bracket = bracket.strip()
            if not bracket:
                segments.append(None)
            elif re.match(r"^-?\d+$", bracket):
                segments.append(int(bracket))
            else:
                segments.append(bracket)
    return segments


def _lookup_key(data: dict, key: str) -> tuple[bool, Any]:
    """Dict lookup, exact match first, then case-insensitive."""
    if key in data:
        return True, data[key]
    lower = key.lower()
    for k, v in data.items():
        if k.lower() == lower:
            return True, v
    return False, None


def _walk(data: Any, segments: list[Any]) -> tuple[bool, Any]:
    current = data
    for i, seg in enumerate(segments):
        if seg is None:
            if not isinstance(current, list):
                return False, None
            values = []
            for item in current:
                found, value = _walk(item, segments[i + 1 :])
                if found:
                    values.append(value)
            return True, values
        if isinstance(seg, int) and isinstance(current, list):
            try:
                current = current[seg]
            except IndexError:
                return False, None
        elif isinstance(current, dict):
            found, current = _lookup_key(current, str(seg))
            if not found:
                return False, None
        else:
            return False, None
    return True, current


def extract_value(data: Any, path: str) -> Any:
    """Extract the value at path, raising RenderError if it is absent."""
    segments = _parse_path(path)
    if not segments:
        return data
    found, value = _walk(data, segments)
    if not found:
        raise RenderError(f"Key '{path}' not found in response")
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def format_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def format_headers(headers) -> str:
    """Render headers as indented 'key: value' lines."""
    items = headers.items() if isinstance(headers, dict) else headers
    return "\n".join(f"  {key}: {value}" for key, value in items)


def render_body(body: str, selector: str | None = None) -> tuple[str, bool]:
    """Render a response body for display.

    Returns (text, is_json). With a line selector the chosen lines are
    numbered; with a key selector the body must be JSON and the sub-value
    is pretty-printed; without a selector JSON is pretty-printed and
    anything else is returned as is.
    """
    if selector and selector.strip():
        selector = selector.strip()
        if is_line_selector(selector):
            selected = select_lines(body, selector)
            if not selected:
                raise RenderError(f"No lines selected by '{selector}'")
            width = len(str(max(n for n, _ in selected)))
            return "\n".join(f"{n:>{width}}: {line}" for n, line in selected), False

        try:
            data = json.loads(body)
        except (json.JSONDecodeError, ValueError):
            raise RenderError("Response body is not JSON") from None
        value = extract_value(data, selector)
        if isinstance(value, str):
            return value, False
        return format_json(value), True

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return body, False
    return format_json(data), True

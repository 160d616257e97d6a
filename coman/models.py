"""coman models - collections, endpoints and header merging."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any

from coman.errors import InvalidMethod, StorageError

Headers = list[tuple[str, str]]


class Method(enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"

    @classmethod
    def parse(cls, value: str) -> Method:
        """Parse a method token case-insensitively."""
        if isinstance(value, Method):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise InvalidMethod(value) from None

    @property
    def stored(self) -> str:
        """Form written to the collections file, e.g. ``Get``."""
        return self.value.capitalize()

    def __str__(self) -> str:
        return self.value


def merge_headers(existing: Headers, updates: Headers) -> Headers:
    """Merge header pairs, later values winning.

    An empty value removes the key if present and is ignored otherwise.
    The result never contains duplicate keys.
    """
    merged = dict(existing)
    for key, value in updates:
        if value == "":
            merged.pop(key, None)
        else:
            merged[key] = value
    return list(merged.items())


def _pairs(raw: Any, where: str) -> Headers:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise StorageError(f"Invalid headers in {where}: expected a list of pairs")
    pairs: Headers = []
    for item in raw:
        if not isinstance(item, list | tuple) or len(item) != 2:
            raise StorageError(f"Invalid header pair in {where}: {item!r}")
        pairs.append((str(item[0]), str(item[1])))
    return pairs


@dataclass
class Endpoint:
    name: str
    endpoint: str
    method: Method = Method.GET
    headers: Headers = field(default_factory=list)
    body: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "method": self.method.stored,
            "headers": [list(pair) for pair in self.headers],
            "body": self.body,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Endpoint:
        try:
            return cls(
                name=data["name"],
                endpoint=data["endpoint"],
                method=Method.parse(data["method"]),
                headers=_pairs(data.get("headers"), f"endpoint '{data['name']}'"),
                body=data.get("body"),
            )
        except (KeyError, TypeError, InvalidMethod) as e:
            raise StorageError(f"Invalid endpoint record: {e}") from e


@dataclass
class Collection:
    name: str
    url: str
    headers: Headers = field(default_factory=list)
    requests: list[Endpoint] = field(default_factory=list)

    def get_endpoint(self, name: str) -> Endpoint | None:
        for ep in self.requests:
            if ep.name == name:
                return ep
        return None

    def upsert_endpoint(self, endpoint: Endpoint) -> None:
        """Replace the endpoint with the same name, or append it."""
        for i, ep in enumerate(self.requests):
            if ep.name == endpoint.name:
                self.requests[i] = endpoint
                return
        self.requests.append(endpoint)

    def clone(self, name: str | None = None) -> Collection:
        new = copy.deepcopy(self)
        if name is not None:
            new.name = name
        return new

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "headers": [list(pair) for pair in self.headers],
            "requests": [ep.to_dict() for ep in self.requests] or None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Collection:
        if not isinstance(data, dict):
            raise StorageError(f"Invalid collection record: {data!r}")
        try:
            name = data["name"]
            return cls(
                name=name,
                url=data["url"],
                headers=_pairs(data.get("headers"), f"collection '{name}'"),
                requests=[Endpoint.from_dict(r) for r in data.get("requests") or []],
            )
        except (KeyError, TypeError) as e:
            raise StorageError(f"Invalid collection record: {e}") from e


@dataclass
class ResolvedRequest:
    """A stored endpoint with collection URL and headers applied."""

    url: str
    method: Method
    headers: Headers = field(default_factory=list)
    body: str | None = None

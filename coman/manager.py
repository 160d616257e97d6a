"""coman manager - collection and endpoint operations over a store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from coman.errors import CollectionNotFound, DuplicateCollection, EndpointNotFound
from coman.models import (
    Collection,
    Endpoint,
    Headers,
    Method,
    ResolvedRequest,
    merge_headers,
)

log = logging.getLogger(__name__)


def _find(collections: list[Collection], name: str) -> Collection | None:
    for col in collections:
        if col.name == name:
            return col
    return None


def _require(collections: list[Collection], name: str) -> Collection:
    col = _find(collections, name)
    if col is None:
        raise CollectionNotFound(name)
    return col


def _require_endpoint(col: Collection, name: str) -> Endpoint:
    ep = col.get_endpoint(name)
    if ep is None:
        raise EndpointNotFound(name, col.name)
    return ep


class CollectionManager:
    """CRUD and copy operations on collections and their endpoints.

    Every mutation reloads the whole store, changes it in memory and saves
    it back. The cycle runs under a lock so several threads sharing one
    manager never lose each other's updates. Lookups are by exact name and
    the first match wins.
    """

    def __init__(self, store):
        self.store = store
        self._lock = threading.RLock()

    @contextmanager
    def _mutate(self) -> Iterator[list[Collection]]:
        with self._lock:
            collections = self.store.load()
            yield collections
            self.store.save(collections)

    # ── Reads ────────────────────────────────────────────────────────────

    def get_collections(self) -> list[Collection]:
        with self._lock:
            return self.store.load()

    def get_collection(self, name: str) -> Collection:
        return _require(self.get_collections(), name)

    def get_endpoint(self, col_name: str, ep_name: str) -> Endpoint:
        return _require_endpoint(self.get_collection(col_name), ep_name)

    def get_endpoint_url(self, col_name: str, ep_name: str) -> str:
        col = self.get_collection(col_name)
        ep = _require_endpoint(col, ep_name)
        return col.url + ep.endpoint

    def get_endpoint_headers(self, col_name: str, ep_name: str) -> Headers:
        """Collection headers merged with endpoint headers; endpoint wins."""
        col = self.get_collection(col_name)
        ep = _require_endpoint(col, ep_name)
        return merge_headers(merge_headers([], col.headers), ep.headers)

    def resolve_endpoint(self, col_name: str, ep_name: str) -> ResolvedRequest:
        col = self.get_collection(col_name)
        ep = _require_endpoint(col, ep_name)
        return ResolvedRequest(
            url=col.url + ep.endpoint,
            method=ep.method,
            headers=merge_headers(merge_headers([], col.headers), ep.headers),
            body=ep.body,
        )

    # ── Collections ──────────────────────────────────────────────────────

    def add_collection(self, name: str, url: str, headers: Headers | None = None) -> None:
        headers = headers or []
        with self._mutate() as collections:
            col = _find(collections, name)
            if col is not None:
                col.url = url
                col.headers = merge_headers(col.headers, headers)
                log.debug("Updated collection %s", name)
            else:
                collections.append(Collection(name=name, url=url, headers=list(headers)))
                log.debug("Added collection %s", name)

    def delete_collection(self, name: str) -> None:
        with self._mutate() as collections:
            col = _require(collections, name)
            collections.remove(col)
        log.debug("Deleted collection %s", name)

    def update_collection(
        self,
        name: str,
        url: str | None = None,
        headers: Headers | None = None,
    ) -> None:
        with self._mutate() as collections:
            col = _require(collections, name)
            if url is not None:
                col.url = url
            if headers is not None:
                col.headers = merge_headers(col.headers, headers)

    def copy_collection(self, name: str, new_name: str) -> None:
        with self._mutate() as collections:
            col = _require(collections, name)
            if _find(collections, new_name) is not None:
                raise DuplicateCollection(new_name)
            collections.append(col.clone(new_name))
        log.debug("Copied collection %s to %s", name, new_name)

    # ── Endpoints ────────────────────────────────────────────────────────

    def add_endpoint(
        self,
        col_name: str,
        ep_name: str,
        path: str,
        method: Method | str = Method.GET,
        headers: Headers | None = None,
        body: str | None = None,
    ) -> None:
        endpoint = Endpoint(
            name=ep_name,
            endpoint=path,
            method=Method.parse(method),
            headers=list(headers or []),
            body=body,
        )
        with self._mutate() as collections:
            _require(collections, col_name).upsert_endpoint(endpoint)
        log.debug("Stored endpoint %s in %s", ep_name, col_name)

    def delete_endpoint(self, col_name: str, ep_name: str) -> None:
        with self._mutate() as collections:
            col = _require(collections, col_name)
            col.requests.remove(_require_endpoint(col, ep_name))

    def update_endpoint(
        self,
        col_name: str,
        ep_name: str,
        path: str | None = None,
        headers: Headers | None = None,
        body: str | None = None,
    ) -> None:
        """Change an endpoint in place.

        Arguments left as None are not touched. An empty body clears the
        stored body.
        """
        with self._mutate() as collections:
            ep = _require_endpoint(_require(collections, col_name), ep_name)
            if path is not None:
                ep.endpoint = path
            if headers is not None:
                ep.headers = merge_headers(ep.headers, headers)
            if body is not None:
                ep.body = body or None

    def copy_endpoint(
        self,
        col_name: str,
        ep_name: str,
        new_name: str,
        to_collection: str | None = None,
    ) -> None:
        """Copy an endpoint.

        With to_collection the copy keeps its name and lands in that
        collection; otherwise it is stored next to the original as new_name.
        """
        with self._mutate() as collections:
            ep = _require_endpoint(_require(collections, col_name), ep_name)
            clone = Endpoint(
                name=ep.name if to_collection else new_name,
                endpoint=ep.endpoint,
                method=ep.method,
                headers=list(ep.headers),
                body=ep.body,
            )
            target = _require(collections, to_collection or col_name)
            target.upsert_endpoint(clone)

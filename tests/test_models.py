"""Tests for header merging and the model records."""

import pytest

from coman.errors import InvalidMethod, StorageError
from coman.models import Collection, Endpoint, Method, merge_headers

# ── merge_headers ────────────────────────────────────────────────────────


class TestMergeHeaders:
    def test_insert_new_key(self):
        merged = merge_headers([("Accept", "text/plain")], [("X-Id", "1")])
        assert set(merged) == {("Accept", "text/plain"), ("X-Id", "1")}

    def test_overwrite_existing_key(self):
        merged = merge_headers([("Accept", "text/plain")], [("Accept", "application/json")])
        assert merged == [("Accept", "application/json")]

    def test_empty_value_deletes_key(self):
        merged = merge_headers([("Accept", "text/plain"), ("X-Id", "1")], [("Accept", "")])
        assert merged == [("X-Id", "1")]

    def test_empty_value_for_missing_key_is_noop(self):
        existing = [("Accept", "text/plain")]
        assert merge_headers(existing, [("X-Missing", "")]) == existing

    def test_updates_applied_in_order(self):
        merged = merge_headers([], [("A", "1"), ("A", "2"), ("B", "x"), ("B", "")])
        assert merged == [("A", "2")]

    def test_duplicate_existing_keys_collapse(self):
        merged = merge_headers([("A", "1"), ("A", "2")], [])
        assert merged == [("A", "2")]

    @pytest.mark.parametrize(
        "existing, updates",
        [
            ([("A", "1")], [("A", "2"), ("B", "3")]),
            ([("A", "1"), ("B", "2")], [("A", ""), ("C", "")]),
            ([], [("X", "1"), ("X", "")]),
        ],
    )
    def test_idempotent(self, existing, updates):
        once = merge_headers(existing, updates)
        assert set(merge_headers(once, updates)) == set(once)

    def test_does_not_mutate_input(self):
        existing = [("A", "1")]
        merge_headers(existing, [("A", "")])
        assert existing == [("A", "1")]


# ── Method ───────────────────────────────────────────────────────────────


class TestMethod:
    @pytest.mark.parametrize("token", ["get", "GET", "Get", " gEt "])
    def test_parse_case_insensitive(self, token):
        assert Method.parse(token) is Method.GET

    def test_display_is_upper_case(self):
        assert str(Method.PATCH) == "PATCH"

    def test_stored_form(self):
        assert Method.DELETE.stored == "Delete"

    def test_unknown_method_rejected(self):
        with pytest.raises(InvalidMethod) as exc:
            Method.parse("FETCH")
        assert "FETCH" in str(exc.value)


# ── Records ──────────────────────────────────────────────────────────────


class TestRecords:
    def test_collection_without_endpoints_writes_null(self):
        data = Collection(name="api", url="http://x.test").to_dict()
        assert data == {"name": "api", "url": "http://x.test", "headers": [], "requests": None}

    def test_endpoint_layout(self):
        ep = Endpoint(
            name="ping",
            endpoint="/ping",
            method=Method.POST,
            headers=[("Accept", "json")],
            body="{}",
        )
        assert ep.to_dict() == {
            "name": "ping",
            "endpoint": "/ping",
            "method": "Post",
            "headers": [["Accept", "json"]],
            "body": "{}",
        }

    def test_from_dict_accepts_any_method_case(self):
        ep = Endpoint.from_dict(
            {"name": "a", "endpoint": "/a", "method": "patch", "headers": [], "body": None},
        )
        assert ep.method is Method.PATCH

    def test_from_dict_null_requests(self):
        col = Collection.from_dict({"name": "a", "url": "u", "headers": [], "requests": None})
        assert col.requests == []

    def test_from_dict_bad_method(self):
        with pytest.raises(StorageError):
            Endpoint.from_dict({"name": "a", "endpoint": "/a", "method": "FETCH"})

    def test_from_dict_bad_header_pair(self):
        with pytest.raises(StorageError):
            Collection.from_dict({"name": "a", "url": "u", "headers": [["only-key"]]})

    def test_clone_is_deep(self):
        col = Collection(
            name="a",
            url="u",
            requests=[Endpoint(name="e", endpoint="/e", headers=[("K", "V")])],
        )
        copy = col.clone("b")
        copy.requests[0].headers.append(("X", "Y"))
        assert copy.name == "b"
        assert col.requests[0].headers == [("K", "V")]

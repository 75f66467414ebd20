"""
Unit tests for predicate evaluation and SQL compilation.

Tests cover:
- In-Python matching (equality, operators, $or/$and, nested paths)
- Sorting and projection helpers
- SQLite WHERE compilation
"""

import pytest

from entstore.adapters.query import match_document, project_document, sort_documents
from entstore.adapters.sqlite import compile_query
from entstore.errors import InvalidFilterError
from entstore.filter_query import parse_sort

DOC = {"id": "1", "name": "ada", "age": 36, "address": {"state": "NSW"}, "tags": ["a"]}


class TestMatchDocument:
    """Tests for match_document."""

    @pytest.mark.parametrize("query", [
        {},
        {"name": "ada"},
        {"address.state": "NSW"},
        {"age": {"$gte": 36, "$lt": 40}},
        {"age": {"$in": [1, 36]}},
        {"name": {"$nin": ["bob"]}},
        {"name": {"$ne": "bob"}},
        {"missing": None},
        {"$or": [{"name": "bob"}, {"age": 36}]},
        {"$and": [{"name": "ada"}, {"age": {"$gt": 1}}]},
        {"tags": ["a"]},
    ])
    def test_matches(self, query):
        """Queries that should match the document."""
        assert match_document(DOC, query)

    @pytest.mark.parametrize("query", [
        {"name": "bob"},
        {"address.state": "VIC"},
        {"age": {"$gt": 36}},
        {"missing": {"$gt": 0}},
        {"name": {"$gt": 3}},
        {"$or": [{"name": "bob"}, {"age": 1}]},
    ])
    def test_does_not_match(self, query):
        """Queries that should not match the document."""
        assert not match_document(DOC, query)

    def test_unknown_operator(self):
        """Unknown operators raise InvalidFilterError."""
        with pytest.raises(InvalidFilterError):
            match_document(DOC, {"age": {"$regex": "x"}})

    def test_membership_requires_list(self):
        """$in needs a list operand."""
        with pytest.raises(InvalidFilterError):
            match_document(DOC, {"age": {"$in": 36}})


class TestSortAndProject:
    """Tests for sort_documents and project_document."""

    def test_multi_key_sort(self):
        """Later keys break ties of earlier keys."""
        docs = [
            {"id": "1", "state": "b", "age": 1},
            {"id": "2", "state": "a", "age": 2},
            {"id": "3", "state": "b", "age": 3},
            {"id": "4", "age": 0},
        ]

        result = sort_documents(docs, parse_sort("state,-age"))

        assert [d["id"] for d in result] == ["4", "2", "3", "1"]

    def test_projection_keeps_id(self):
        """Projection keeps id and selected nested paths only."""
        assert project_document(DOC, ["address.state", "nope"]) == {
            "id": "1",
            "address": {"state": "NSW"},
        }

    def test_projection_without_fields_copies(self):
        """No fields returns a full copy."""
        projected = project_document(DOC, [])
        projected["address"]["state"] = "x"

        assert DOC["address"]["state"] == "NSW"


class TestCompileQuery:
    """Tests for SQLite WHERE compilation."""

    def test_empty(self):
        """No predicates matches everything."""
        assert compile_query({}) == ("1", [])

    def test_equality_and_id(self):
        """Fields use json_extract; id uses the key column."""
        sql, params = compile_query({"id": "d1", "address.state": "NSW"})

        assert sql == 'id = ? AND json_extract(doc_json, ?) = ?'
        assert params == ["d1", '$."address"."state"', "NSW"]

    def test_null_equality(self):
        """None compiles to IS NULL."""
        sql, params = compile_query({"name": None})

        assert sql == "json_extract(doc_json, ?) IS NULL"
        assert params == ['$."name"']

    def test_comparison(self):
        """Comparison operators are ANDed."""
        sql, params = compile_query({"age": {"$gte": 1, "$lt": 5}})

        assert sql == "json_extract(doc_json, ?) >= ? AND json_extract(doc_json, ?) < ?"
        assert params == ['$."age"', 1, '$."age"', 5]

    def test_in(self):
        """$in compiles to IN with one placeholder per value."""
        sql, params = compile_query({"id": {"$in": ["a", "b"]}})

        assert sql == "(id IN (?, ?))"
        assert params == ["a", "b"]

    def test_empty_in_and_nin(self):
        """Empty $in matches nothing; empty $nin matches everything."""
        assert compile_query({"id": {"$in": []}}) == ("0", [])
        assert compile_query({"id": {"$nin": []}}) == ("1", [])

    def test_or(self):
        """$or groups sub-filters."""
        sql, params = compile_query({"$or": [{"id": "a"}, {"id": "b"}]})

        assert sql == "((id = ?) OR (id = ?))"
        assert params == ["a", "b"]

    def test_unknown_operator(self):
        """Unknown operators raise InvalidFilterError."""
        with pytest.raises(InvalidFilterError):
            compile_query({"age": {"$regex": "x"}})

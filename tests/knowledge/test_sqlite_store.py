"""
Unit tests for instruction_context.knowledge.vector_store
"""

import pytest

from instruction_context.knowledge.vector_store import SQLiteVectorStore


@pytest.fixture
def store():
    s = SQLiteVectorStore(":memory:")
    yield s
    s.close()


def _points():
    return [
        ("a", [1.0, 0.0, 0.0], {"language": "en", "topic": "hours"}),
        ("b", [0.9, 0.1, 0.0], {"language": "is", "topic": "hours"}),
        ("c", [0.0, 1.0, 0.0], {"language": "en", "topic": "dining"}),
    ]


class TestUpsertAndCount:

    def test_empty_store(self, store):
        assert store.count() == 0
        assert store.search([1.0, 0.0, 0.0]) == []

    def test_upsert_counts(self, store):
        store.upsert(_points())
        assert store.count() == 3

    def test_upsert_replaces_same_id(self, store):
        store.upsert(_points())
        store.upsert([("a", [0.0, 0.0, 1.0], {"language": "en"})])
        assert store.count() == 3
        results = store.search([0.0, 0.0, 1.0])
        assert results[0]["point_id"] == "a"

    def test_upsert_empty_is_noop(self, store):
        store.upsert([])
        assert store.count() == 0

    def test_clear(self, store):
        store.upsert(_points())
        store.clear()
        assert store.count() == 0


class TestSearch:

    def test_best_first(self, store):
        store.upsert(_points())
        results = store.search([1.0, 0.0, 0.0], top_k=3)
        assert [r["point_id"] for r in results] == ["a", "b"]
        assert results[0]["score"] == pytest.approx(1.0)
        assert results[0]["payload"]["topic"] == "hours"

    def test_orthogonal_vectors_excluded(self, store):
        store.upsert(_points())
        ids = [r["point_id"] for r in store.search([1.0, 0.0, 0.0], top_k=5)]
        assert "c" not in ids

    def test_filters(self, store):
        store.upsert(_points())
        results = store.search([1.0, 0.0, 0.0], filters={"language": "is"})
        assert [r["point_id"] for r in results] == ["b"]

    def test_top_k(self, store):
        store.upsert(_points())
        assert len(store.search([1.0, 0.5, 0.0], top_k=1)) == 1
        assert store.search([1.0, 0.5, 0.0], top_k=0) == []

    def test_min_score(self, store):
        store.upsert(_points())
        results = store.search([1.0, 0.0, 0.0], min_score=0.999)
        assert [r["point_id"] for r in results] == ["a"]

    def test_mismatched_dimension_skipped(self, store):
        store.upsert(_points())
        store.upsert([("short", [1.0, 0.0], {"language": "en"})])
        ids = [r["point_id"] for r in store.search([1.0, 0.0, 0.0])]
        assert "short" not in ids

    def test_zero_query_vector(self, store):
        store.upsert(_points())
        assert store.search([0.0, 0.0, 0.0]) == []


class TestOnDisk:

    def test_persists_between_instances(self, tmp_path):
        path = str(tmp_path / "sub" / "vectors.db")
        first = SQLiteVectorStore(path)
        first.upsert(_points())
        first.close()

        second = SQLiteVectorStore(path)
        try:
            assert second.count() == 3
        finally:
            second.close()

"""Tests for VectorStore and cosine similarity."""

import json
import math

import pytest
from llm.base_client import BaseLLMClient, LLMResponse
from llm.errors import TransportError
from retrieval.vector_store import (
    StoreFormatError,
    StoreNotFoundError,
    VectorStore,
    cosine_similarity,
    record_id,
)


class FakeEmbeddingClient(BaseLLMClient):
    """Embeds texts from a lookup table."""

    def __init__(self, vectors, fail_on=None):
        self.vectors = vectors
        self.fail_on = fail_on
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if text == self.fail_on:
            raise TransportError("embedding engine down")
        return self.vectors[text]

    def chat(self, messages, tools=None, temperature=0.7, max_tokens=None, top_p=None, parallel_tool_calls=None):
        return LLMResponse(content="")

    def stream(self, messages, temperature=0.7, max_tokens=None, top_p=None):
        return iter([])

    def get_provider_name(self):
        return "fake"

    def get_model_name(self):
        return "fake-chat"

    def get_embedding_model_name(self):
        return "fake-embed"


def _unit(angle_degrees):
    radians = math.radians(angle_degrees)
    return [math.cos(radians), math.sin(radians)]


class TestCosineSimilarity:
    """Test the similarity measure."""

    def test_self_similarity_is_one(self):
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_symmetric(self):
        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 4.0]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_bounds(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
        assert -1.0 <= cosine_similarity([3.0, 4.0], [4.0, 3.0]) <= 1.0

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestVectorStore:
    """Test ingestion, search and persistence."""

    def setup_method(self):
        """Set up test fixtures."""
        # Similarities to the query: cos(0)=1, cos(30)=0.87, cos(60)=0.5, cos(75)=0.26, cos(90)=0
        self.vectors = {
            "query": _unit(0),
            "alpha": _unit(60),
            "bravo": _unit(30),
            "charlie": _unit(90),
            "delta": _unit(0),
            "echo": _unit(75),
        }
        self.client = FakeEmbeddingClient(self.vectors)
        self.store = VectorStore(self.client)

    def test_ingest_creates_records(self):
        added = self.store.ingest(["alpha", "bravo"])

        assert added == 2
        assert len(self.store) == 2
        assert self.store.dimension == 2
        assert self.store.model == "fake-embed"
        record = self.store.records()[0]
        assert record.id == record_id("alpha")
        assert record.text == "alpha"

    def test_ingest_skips_duplicates_and_blanks(self):
        self.store.ingest(["alpha"])
        added = self.store.ingest(["alpha", "", "   ", "bravo"])

        assert added == 1
        assert len(self.store) == 2
        assert self.client.calls == ["alpha", "bravo"]

    def test_ingest_fails_fast(self):
        client = FakeEmbeddingClient(self.vectors, fail_on="bravo")
        store = VectorStore(client)

        with pytest.raises(TransportError):
            store.ingest(["alpha", "bravo", "charlie"])

        assert [r.text for r in store.records()] == ["alpha"]
        assert "charlie" not in client.calls

    def test_ingest_rejects_dimension_change(self):
        self.vectors["odd"] = [1.0, 0.0, 0.0]
        self.store.ingest(["alpha"])

        with pytest.raises(StoreFormatError):
            self.store.ingest(["odd"])

    def test_top_n_returns_only_qualifying_records(self):
        self.store.ingest(["alpha", "bravo", "charlie", "delta", "echo"])

        results = self.store.search_top_n("query", min_similarity=0.6, n=3)

        assert [record.text for record, _ in results] == ["delta", "bravo"]
        scores = [score for _, score in results]
        assert scores == sorted(scores, reverse=True)
        assert all(score >= 0.6 for score in scores)

    def test_top_n_limits_results(self):
        self.store.ingest(["alpha", "bravo", "charlie", "delta", "echo"])

        results = self.store.search_top_n("query", min_similarity=0.0, n=3)

        assert [record.text for record, _ in results] == ["delta", "bravo", "alpha"]

    def test_top_n_is_idempotent(self):
        self.store.ingest(["alpha", "bravo", "charlie", "delta", "echo"])

        first = self.store.search_top_n("query", 0.2, 4)
        second = self.store.search_top_n("query", 0.2, 4)

        assert first == second

    def test_ties_keep_insertion_order(self):
        self.vectors["delta-twin"] = _unit(0)
        self.store.ingest(["delta", "delta-twin"])

        results = self.store.search_top_n("query", 0.5, 2)

        assert [record.text for record, _ in results] == ["delta", "delta-twin"]

    def test_search_similarities_returns_all_matches(self):
        self.store.ingest(["alpha", "bravo", "charlie", "delta", "echo"])

        results = self.store.search_similarities("query", 0.45)

        assert [record.text for record, _ in results] == ["delta", "bravo", "alpha"]

    def test_empty_store_does_not_embed(self):
        assert self.store.search_top_n("query", 0.5, 3) == []
        assert self.client.calls == []

    @pytest.mark.parametrize("n", [0, -1, 1.5, True])
    def test_invalid_n(self, n):
        with pytest.raises(ValueError):
            self.store.search_top_n("query", 0.5, n)

    @pytest.mark.parametrize("limit", [-0.1, 1.1])
    def test_invalid_min_similarity(self, limit):
        with pytest.raises(ValueError):
            self.store.search_top_n("query", limit, 3)

    def test_metrics_recorded(self):
        self.store.ingest(["alpha", "bravo"])
        self.store.search_top_n("query", 0.5, 1)

        metrics = self.store.metrics
        assert metrics.total_embeddings == 3
        assert metrics.search_operations == 1
        assert metrics.avg_dimensions == 2
        assert metrics.total_characters == len("alpha") + len("bravo") + len("query")

    def test_persist_load_round_trip(self, tmp_path):
        self.vectors["precise"] = [0.1234567890123456789, 1e-17]
        self.store.ingest(["alpha", "bravo", "charlie", "precise"])
        path = tmp_path / "nested" / "store.json"

        self.store.persist(path)
        before = self.store.search_top_n("query", 0.0, 4)

        restored = VectorStore(FakeEmbeddingClient(self.vectors))
        restored.load(path)

        assert restored.records() == self.store.records()
        assert restored.dimension == 2
        assert restored.search_top_n("query", 0.0, 4) == before

    def test_persisted_document_is_versioned(self, tmp_path):
        self.store.ingest(["alpha"])
        path = tmp_path / "store.json"
        self.store.persist(path)

        document = json.loads(path.read_text())
        assert document["version"] == 1
        assert document["model"] == "fake-embed"
        assert document["dimension"] == 2
        assert document["records"][0]["text"] == "alpha"
        assert list(tmp_path.iterdir()) == [path]

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(StoreNotFoundError):
            self.store.load(tmp_path / "missing.json")
        assert self.store.store_file_exists(tmp_path / "missing.json") is False

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StoreFormatError):
            self.store.load(path)

    def test_load_wrong_version(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"version": 99, "records": []}))
        with pytest.raises(StoreFormatError):
            self.store.load(path)

    def test_load_dimension_mismatch(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({
            "version": 1,
            "model": "fake-embed",
            "dimension": 3,
            "records": [{"id": "a", "text": "alpha", "vector": [1.0, 0.0]}]
        }))
        with pytest.raises(StoreFormatError):
            self.store.load(path)

    def test_load_rejects_other_embedding_model(self, tmp_path):
        self.store.ingest(["alpha"])
        path = tmp_path / "store.json"
        self.store.persist(path)

        other = VectorStore(FakeEmbeddingClient(self.vectors), model="other-embed")

        with pytest.raises(StoreFormatError, match="other-embed"):
            other.load(path)
        assert len(other) == 0
        assert other.model == "other-embed"

    def test_failed_persist_keeps_previous_snapshot(self, tmp_path, monkeypatch):
        self.store.ingest(["alpha"])
        path = tmp_path / "store.json"
        self.store.persist(path)
        original = path.read_text()

        self.store.ingest(["bravo"])

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("retrieval.vector_store.os.replace", broken_replace)
        with pytest.raises(OSError):
            self.store.persist(path)

        assert path.read_text() == original
        assert list(tmp_path.iterdir()) == [path]

    def test_reset(self):
        self.store.ingest(["alpha"])
        self.store.reset()
        assert len(self.store) == 0
        assert self.store.dimension is None

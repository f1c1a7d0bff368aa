"""Tests for RetrievalMetrics."""

import pytest
from retrieval.metrics import RetrievalMetrics


class TestRetrievalMetrics:
    """Test counters and averages."""

    def setup_method(self):
        """Set up test fixtures."""
        self.metrics = RetrievalMetrics()

    def test_empty_averages_are_zero(self):
        assert self.metrics.avg_dimensions == 0
        assert self.metrics.avg_embedding_time == 0.0
        assert self.metrics.avg_search_time == 0.0
        assert self.metrics.throughput == 0.0

    def test_records_and_averages(self):
        self.metrics.record_embedding("abcd", 1024, 0.5)
        self.metrics.record_embedding("ef", 1024, 1.5)
        self.metrics.record_search(1.0)

        assert self.metrics.total_embeddings == 2
        assert self.metrics.avg_dimensions == 1024
        assert self.metrics.avg_chars_per_document == 3
        assert self.metrics.avg_embedding_time == pytest.approx(1.0)
        assert self.metrics.total_operations == 3
        assert self.metrics.throughput == pytest.approx(1.0)
        assert self.metrics.estimate_cost(0.5) == pytest.approx(0.003)

    def test_reset(self):
        self.metrics.record_embedding("abcd", 8, 0.1)
        self.metrics.record_search(0.1)
        self.metrics.reset()
        assert self.metrics == RetrievalMetrics()

"""Usage and timing metrics for embedding and search operations."""

from pydantic import BaseModel


class RetrievalMetrics(BaseModel):
    """Counters accumulated by a vector store. Durations are in seconds."""

    total_embeddings: int = 0
    total_dimensions: int = 0
    total_characters: int = 0
    total_process_time: float = 0.0
    search_operations: int = 0
    total_search_time: float = 0.0

    def record_embedding(self, content: str, dimensions: int, duration: float) -> None:
        self.total_embeddings += 1
        self.total_dimensions += dimensions
        self.total_characters += len(content)
        self.total_process_time += duration

    def record_search(self, duration: float) -> None:
        self.search_operations += 1
        self.total_search_time += duration

    @property
    def avg_dimensions(self) -> int:
        if self.total_embeddings == 0:
            return 0
        return self.total_dimensions // self.total_embeddings

    @property
    def avg_embedding_time(self) -> float:
        if self.total_embeddings == 0:
            return 0.0
        return self.total_process_time / self.total_embeddings

    @property
    def avg_chars_per_document(self) -> int:
        if self.total_embeddings == 0:
            return 0
        return self.total_characters // self.total_embeddings

    @property
    def avg_search_time(self) -> float:
        if self.search_operations == 0:
            return 0.0
        return self.total_search_time / self.search_operations

    @property
    def total_operations(self) -> int:
        return self.total_embeddings + self.search_operations

    @property
    def total_time(self) -> float:
        return self.total_process_time + self.total_search_time

    @property
    def throughput(self) -> float:
        """Operations per second."""
        if self.total_time == 0:
            return 0.0
        return self.total_operations / self.total_time

    def estimate_cost(self, cost_per_thousand_chars: float) -> float:
        return self.total_characters / 1000.0 * cost_per_thousand_chars

    def reset(self) -> None:
        self.total_embeddings = 0
        self.total_dimensions = 0
        self.total_characters = 0
        self.total_process_time = 0.0
        self.search_operations = 0
        self.total_search_time = 0.0

"""LLM client factory."""

from enum import Enum
from typing import Optional

from .base_client import BaseLLMClient
from .openai_client import OpenAIClient


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    LOCAL = "local"  # OpenAI-compatible engine (llama.cpp, Docker Model Runner, Ollama)


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    embedding_model: Optional[str] = None
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: LLM provider (openai or local)
        api_key: API key for the provider
        model: Optional model override
        base_url: Engine URL, required for local engines
        embedding_model: Model used for embeddings

    Returns:
        Configured LLM client

    Raises:
        ValueError: If provider is not supported or a local engine has no URL
    """
    if provider == LLMProvider.OPENAI:
        return OpenAIClient(
            api_key=api_key,
            model=model,
            base_url=base_url,
            embedding_model=embedding_model
        )
    elif provider == LLMProvider.LOCAL:
        if not base_url:
            raise ValueError("A local engine needs an engine URL")
        return OpenAIClient(
            api_key=api_key or "none",
            model=model,
            base_url=base_url,
            embedding_model=embedding_model
        )
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")

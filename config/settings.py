"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel

API_KEY_PLACEHOLDER = "none"

# field -> environment variable read when the field is not given
ENV_FALLBACKS = {
    "engine_url": "ENGINE_URL",
    "api_key": "OPENAI_API_KEY",
    "llm_provider": "LLM_PROVIDER",
    "chat_model": "CHAT_MODEL",
    "compressor_model": "COMPRESSOR_MODEL",
    "embedding_model": "EMBEDDING_MODEL",
    "tools_model": "TOOLS_MODEL",
    "context_size_threshold": "CONTEXT_COMPRESSING_THRESHOLD",
    "rag_store_path": "RAG_STORE_PATH",
    "rag_documents_path": "RAG_DOCUMENTS_PATH",
    "mcp_server_url": "MCP_HOST",
    "orchestrator_model": "ORCHESTRATOR_MODEL",
    "coder_model": "CODER_AGENT_MODEL",
    "thinker_model": "THINKER_MODEL",
}


class Settings(BaseModel):
    """Application configuration settings."""

    # Completion engine
    engine_url: str = "http://localhost:12434/engines/llama.cpp/v1"
    api_key: Optional[str] = None
    llm_provider: str = "local"  # "local" or "openai"

    # Models
    chat_model: str = "ai/qwen2.5:latest"
    compressor_model: str = "ai/qwen2.5:0.5B-F16"
    embedding_model: str = "ai/mxbai-embed-large"
    tools_model: str = "hf.co/menlo/jan-nano-gguf:q4_k_m"
    orchestrator_model: str = "hf.co/menlo/lucy-gguf:q4_k_m"
    coder_model: Optional[str] = None
    thinker_model: Optional[str] = None

    # Generation
    chat_temperature: float = 0.7
    compressor_temperature: float = 0.0
    tools_temperature: float = 0.0
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    system_instructions: str = "You are a helpful AI assistant."

    # Conversation
    context_size_threshold: int = 6000
    keep_conversation_history: bool = True

    # Topic routing (coder, thinker, generic); unset agent models use chat_model
    enable_routing: bool = False

    # Tool calls
    max_tool_rounds: int = 10
    parallel_tool_calls: bool = False
    mcp_server_url: Optional[str] = None

    # RAG
    similarity_limit: float = 0.6
    max_similarities: int = 3
    rag_store_path: str = "./store"
    rag_documents_path: str = "./data"
    chunk_size: int = 1024
    chunk_overlap: int = 128

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Fill unset fields from the environment
        for field, env_var in ENV_FALLBACKS.items():
            if data.get(field) is None and os.environ.get(env_var):
                data[field] = os.environ[env_var]

        super().__init__(**data)

    def get_api_key(self) -> str:
        """API key, or a placeholder for local engines that ignore it."""
        return self.api_key or API_KEY_PLACEHOLDER

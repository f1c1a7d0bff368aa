"""Conversation session: one facade over completion, compression, RAG and tools."""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from config.settings import Settings
from llm.base_client import BaseLLMClient, LLMResponse, Message, Role
from llm.factory import LLMProvider, create_llm_client
from llm.streaming import ChunkCallback, StreamingCompletionEngine
from memory.context_manager import CompressionError, CompressionTrigger, ContextCompressor
from memory.conversation import ConversationStore
from memory.models import CompressionOutcome
from react.loop import FINISH_USER_QUIT, ToolCallLoop, ToolLoopResult
from react.mcp_executor import MCPToolExecutor
from react.tools import Tool, ToolExecutor
from retrieval.documents import load_or_build_store, store_file_path
from retrieval.vector_store import VectorStore
from .router import (
    CODER_INSTRUCTIONS,
    GENERIC_INSTRUCTIONS,
    THINKER_INSTRUCTIONS,
    ChatAgentProfile,
    TopicRouter,
)

logger = logging.getLogger(__name__)

RAG_CONTEXT_HEADER = "Relevant information to help you answer the question:\n"
TOOL_CONTEXT_HEADER = "Results of the tool calls:\n"
CONTEXT_SEPARATOR = "\n---\n"


class ConversationSession:
    """
    Multi-turn conversation with streaming, compression, retrieval and tools.

    Retrieved context and tool results are sent as transient system messages:
    they reach the model for one turn and are never stored.
    """

    def __init__(
        self,
        settings: Settings,
        chat_client: BaseLLMClient,
        store: Optional[ConversationStore] = None,
        compressor: Optional[CompressionTrigger] = None,
        vector_store: Optional[VectorStore] = None,
        tool_loop: Optional[ToolCallLoop] = None,
        router: Optional[TopicRouter] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize session.

        Args:
            settings: Application settings
            chat_client: Completion provider for answers
            store: Conversation history (default: new store seeded with the system instructions)
            compressor: Optional compression trigger
            vector_store: Optional RAG store
            tool_loop: Optional tool-call loop run before answering
            router: Optional topic router choosing the chat agent of each question
            logger: Logger to use (default: module logger)
        """
        self.settings = settings
        self.chat_client = chat_client
        self.store = store if store is not None else ConversationStore(settings.system_instructions)
        self.compressor = compressor
        self.vector_store = vector_store
        self.tool_loop = tool_loop
        self.router = router
        self.current_agent: Optional[str] = None
        self.logger = logger or logging.getLogger(__name__)
        self.engine = self._make_engine(chat_client)

    def _make_engine(self, client: BaseLLMClient) -> StreamingCompletionEngine:
        return StreamingCompletionEngine(
            client,
            temperature=self.settings.chat_temperature,
            top_p=self.settings.top_p,
            max_tokens=self.settings.max_tokens,
            logger=self.logger
        )

    @property
    def keep_history(self) -> bool:
        return self.settings.keep_conversation_history

    # Conversation management

    def add_message(self, role: str, content: str) -> None:
        self.store.append(role, content)

    def reset(self) -> None:
        self.store.reset()
        self.logger.info("Conversation reset")

    def messages(self) -> List[Message]:
        return self.store.all()

    def context_size(self) -> int:
        return self.store.approximate_size()

    # Completion

    def _build_request(self, question: str, context: List[str]) -> List[Message]:
        history = self.store.all() if self.keep_history else self.store.all()[:1]
        transient = [Message(role=Role.SYSTEM.value, content=text) for text in context if text]
        return history + transient + [Message(role=Role.USER.value, content=question)]

    def _record_turn(self, question: str, answer: str) -> None:
        if not self.keep_history:
            return
        self.store.append(Role.USER.value, question)
        if answer:
            self.store.append(Role.ASSISTANT.value, answer)

    def generate(self, question: str, context: Optional[List[str]] = None) -> LLMResponse:
        """Answer without streaming."""
        request = self._build_request(question, context or [])
        response = self.chat_client.chat(
            messages=request,
            temperature=self.settings.chat_temperature,
            max_tokens=self.settings.max_tokens,
            top_p=self.settings.top_p
        )
        self._record_turn(question, response.content)
        return response

    def stream(
        self,
        question: str,
        on_chunk: ChunkCallback,
        context: Optional[List[str]] = None
    ) -> Tuple[str, str]:
        """
        Answer with streaming.

        Returns:
            (answer, finish reason)

        Raises:
            StreamCancelledError: stop() was called; nothing is recorded
        """
        request = self._build_request(question, context or [])
        text, finish_reason = self.engine.generate(request, on_chunk)
        self._record_turn(question, text)
        return text, finish_reason

    def stream_with_reasoning(
        self,
        question: str,
        on_reasoning: ChunkCallback,
        on_chunk: ChunkCallback,
        context: Optional[List[str]] = None
    ) -> Tuple[str, str, str]:
        """Answer with streaming, sending the reasoning trace to on_reasoning."""
        request = self._build_request(question, context or [])
        text, reasoning, finish_reason = self.engine.generate_with_reasoning(
            request, on_reasoning, on_chunk
        )
        self._record_turn(question, text)
        return text, reasoning, finish_reason

    def stop(self) -> None:
        """Interrupt the answer being streamed, from any thread."""
        self.engine.stop()

    # Retrieval and tools

    def retrieve_context(self, question: str) -> str:
        """Most similar chunks for the question, joined with separators."""
        if self.vector_store is None or len(self.vector_store) == 0:
            return ""

        matches = self.vector_store.search_top_n(
            question,
            self.settings.similarity_limit,
            self.settings.max_similarities
        )
        self.logger.info(f"Retrieved {len(matches)} relevant chunks")
        return CONTEXT_SEPARATOR.join(record.text for record, _ in matches)

    def run_tools(self, question: str) -> ToolLoopResult:
        if self.tool_loop is None:
            raise RuntimeError("No tool loop configured for this session")
        return self.tool_loop.run([Message(role=Role.USER.value, content=question)])

    # Compression

    def compress_if_needed(self) -> Optional[CompressionOutcome]:
        if self.compressor is None:
            return None
        return self.compressor.maybe_compress(self.store)

    def compress(self) -> CompressionOutcome:
        if self.compressor is None:
            raise RuntimeError("No compressor configured for this session")
        return self.compressor.compress(self.store)

    # Routing

    def use_agent(self, profile: ChatAgentProfile) -> None:
        """Make profile the current chat agent; its client answers from now on."""
        self.current_agent = profile.name
        if profile.client is not None and profile.client is not self.chat_client:
            self.chat_client = profile.client
            self.engine = self._make_engine(profile.client)

    def ask(self, question: str, on_chunk: Optional[ChunkCallback] = None) -> Tuple[str, str]:
        """
        Run a complete turn.

        Compression checkpoint, agent routing, tool calls, retrieval, answer
        (streamed when on_chunk is given), then another compression checkpoint.

        Returns:
            (answer, finish reason)

        Raises:
            CompressionError: A checkpoint failed and the history is intact.
                When the checkpoint after the answer fails, the turn is
                already recorded and partial_result holds (answer, finish reason).
        """
        self.compress_if_needed()

        context = []
        if self.router is not None:
            profile = self.router.route(question)
            self.use_agent(profile)
            if profile.system_instructions:
                context.append(profile.system_instructions)

        if self.tool_loop is not None:
            tool_result = self.run_tools(question)
            if tool_result.finish_reason == FINISH_USER_QUIT:
                self.logger.info("Tool calls cancelled by user")
            elif tool_result.results:
                context.append(TOOL_CONTEXT_HEADER + "\n".join(tool_result.results))

        rag_context = self.retrieve_context(question)
        if rag_context:
            context.append(RAG_CONTEXT_HEADER + rag_context)

        if on_chunk is None:
            response = self.generate(question, context)
            answer = (response.content, response.finish_reason or "")
        else:
            answer = self.stream(question, on_chunk, context)

        try:
            self.compress_if_needed()
        except CompressionError as e:
            self.logger.error(f"Context compression failed after the answer, full history kept: {e}")
            e.partial_result = answer
            raise
        return answer


def build_session(
    settings: Settings,
    tool_executor: Optional[ToolExecutor] = None,
    tools: Optional[List[Tool]] = None,
    store_name: str = "rag-store",
    logger: Optional[logging.Logger] = None
) -> ConversationSession:
    """
    Wire a session from settings.

    Topic routing is enabled by settings.enable_routing.
    RAG is enabled when a snapshot or a documents directory exists. Tools
    are enabled when an executor is given or an MCP server is configured;
    an MCP server provides its own catalog.
    """
    provider = LLMProvider(settings.llm_provider)
    base_url = settings.engine_url if provider == LLMProvider.LOCAL else None

    def client_for(model: str) -> BaseLLMClient:
        return create_llm_client(
            provider=provider,
            api_key=settings.get_api_key(),
            model=model,
            base_url=base_url,
            embedding_model=settings.embedding_model
        )

    chat_client = client_for(settings.chat_model)
    session_logger = logger or logging.getLogger(__name__)
    session_logger.info(f"Chat client: {chat_client.get_provider_name()} ({chat_client.get_model_name()})")

    router = None
    if settings.enable_routing:
        def agent(name: str, model: Optional[str], instructions: str) -> ChatAgentProfile:
            client = client_for(model) if model else chat_client
            return ChatAgentProfile(name, client, instructions)

        router = TopicRouter(
            client_for(settings.orchestrator_model),
            {
                "coder": agent("coder", settings.coder_model, CODER_INSTRUCTIONS),
                "thinker": agent("thinker", settings.thinker_model, THINKER_INSTRUCTIONS),
                "generic": agent("generic", None, GENERIC_INSTRUCTIONS),
            }
        )
        session_logger.info(f"Topic routing enabled with {settings.orchestrator_model}")

    compressor = CompressionTrigger(
        ContextCompressor(
            client_for(settings.compressor_model),
            temperature=settings.compressor_temperature
        ),
        threshold=settings.context_size_threshold,
        logger=logger
    )

    vector_store = None
    store_file = store_file_path(settings.rag_store_path, store_name)
    if VectorStore.store_file_exists(store_file) or Path(settings.rag_documents_path).is_dir():
        vector_store = load_or_build_store(
            VectorStore(chat_client, model=settings.embedding_model),
            store_file,
            settings.rag_documents_path,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap
        )

    tool_loop = None
    if tool_executor is None and settings.mcp_server_url:
        tool_executor = MCPToolExecutor(settings.mcp_server_url)
    if tool_executor is not None:
        if tools is None:
            tools = tool_executor.tools() if isinstance(tool_executor, MCPToolExecutor) else []
        tool_loop = ToolCallLoop(
            client_for(settings.tools_model),
            tools,
            tool_executor,
            max_rounds=settings.max_tool_rounds,
            parallel=settings.parallel_tool_calls,
            temperature=settings.tools_temperature,
            logger=logger
        )
        session_logger.info(f"Tool loop ready with {len(tools)} tools")

    return ConversationSession(
        settings,
        chat_client,
        compressor=compressor,
        vector_store=vector_store,
        tool_loop=tool_loop,
        router=router,
        logger=logger
    )



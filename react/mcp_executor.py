"""MCP tool executor over streamable HTTP, built on the mcp client SDK."""

import asyncio
import concurrent.futures
import json
import logging
import threading
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any, Dict, List, Optional

from mcp import ClientSession, types
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError

from llm.errors import TransportError
from .tools import Tool, ToolExecutionError, ToolExecutor

logger = logging.getLogger(__name__)


class MCPToolExecutor(ToolExecutor):
    """
    Executes tools hosted by an MCP server.

    The SDK is asynchronous; this executor owns a private event loop running
    on a daemon thread and blocks the caller until each request completes.
    The connection is opened lazily on first use and shared by all calls,
    so calls are serialized.
    """

    reentrant = False

    def __init__(
        self,
        url: str,
        timeout: int = 30,
        client_name: str = "chat-orchestrator",
        client_version: str = "0.1.0"
    ):
        """
        Initialize MCP executor.

        Args:
            url: MCP endpoint (e.g., http://localhost:9011/mcp)
            timeout: Request timeout in seconds
            client_name: Name announced during initialization
            client_version: Version announced during initialization
        """
        self.url = url
        self.timeout = timeout
        self.client_name = client_name
        self.client_version = client_version
        self.session_id: Optional[str] = None
        self.server_info: Dict[str, Any] = {}

        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._session: Optional[ClientSession] = None
        self._owner: Optional[concurrent.futures.Future] = None
        self._shutdown: Optional[asyncio.Event] = None

    def _start_loop(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="mcp-client",
            daemon=True
        )
        self._thread.start()

    async def _hold_session(self, ready: concurrent.futures.Future) -> None:
        """Open the transport and session, then keep them open until close()."""
        # anyio scopes must be exited by the task that entered them
        self._shutdown = asyncio.Event()
        try:
            async with AsyncExitStack() as stack:
                read, write, get_session_id = await stack.enter_async_context(
                    streamablehttp_client(self.url, timeout=timedelta(seconds=self.timeout))
                )
                session = await stack.enter_async_context(ClientSession(
                    read,
                    write,
                    client_info=types.Implementation(
                        name=self.client_name,
                        version=self.client_version
                    )
                ))
                result = await session.initialize()
                self._session = session
                self.session_id = get_session_id()
                ready.set_result(result)
                await self._shutdown.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning(f"MCP connection to {self.url} closed with an error: {e}")
        finally:
            self._session = None

    def initialize(self) -> Dict[str, Any]:
        """Open the MCP session. Called automatically by other operations."""
        with self._lock:
            if self._session is not None:
                return self.server_info

            if self._loop is None:
                self._start_loop()

            ready: concurrent.futures.Future = concurrent.futures.Future()
            self._owner = asyncio.run_coroutine_threadsafe(self._hold_session(ready), self._loop)
            try:
                result = ready.result(timeout=self.timeout)
            except concurrent.futures.TimeoutError as e:
                self._owner.cancel()
                raise TransportError(
                    f"MCP server at {self.url} did not answer within {self.timeout}s"
                ) from e
            except Exception as e:
                logger.error(f"MCP initialize failed: {e}")
                raise TransportError(f"MCP server unreachable at {self.url}: {e}") from e

            self.server_info = {
                "name": result.serverInfo.name,
                "version": result.serverInfo.version
            }

        logger.info(
            f"Connected to MCP server {self.server_info.get('name', 'unknown')} at {self.url}"
        )
        return self.server_info

    def _call(self, method: str, coro_factory):
        """Run an SDK coroutine on the private loop and wait for its result."""
        self.initialize()
        session = self._session
        if session is None:
            raise TransportError(f"MCP session to {self.url} is closed")

        logger.debug(f"MCP request: {method}")
        future = asyncio.run_coroutine_threadsafe(coro_factory(session), self._loop)
        try:
            return future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise TransportError(f"MCP {method} timed out after {self.timeout}s") from e
        except McpError as e:
            raise TransportError(f"MCP error on {method}: {e}") from e
        except Exception as e:
            logger.error(f"MCP request {method} failed: {e}")
            raise TransportError(f"MCP {method} failed: {e}") from e

    def list_tools(self) -> List[Dict[str, Any]]:
        """Raw MCP tool entries ({name, description, inputSchema})."""
        result = self._call("tools/list", lambda session: session.list_tools())
        tools = [
            {
                "name": tool.name,
                "description": tool.description or "",
                "inputSchema": tool.inputSchema or {}
            }
            for tool in result.tools
        ]
        logger.info(f"MCP server offers {len(tools)} tools")
        return tools

    def tools(self, filter: Optional[List[str]] = None) -> List[Tool]:
        """The server's catalog as Tool definitions, optionally limited to some names."""
        catalog = [Tool.from_definition(entry) for entry in self.list_tools()]
        if filter is not None:
            wanted = set(filter)
            catalog = [tool for tool in catalog if tool.name in wanted]
        return catalog

    def execute(self, name: str, arguments_json: str) -> str:
        try:
            arguments = json.loads(arguments_json) if arguments_json and arguments_json.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolExecutionError(f"Invalid arguments for '{name}': {e}") from e

        result = self._call(
            "tools/call",
            lambda session: session.call_tool(name, arguments=arguments)
        )
        text = "".join(
            item.text for item in result.content
            if getattr(item, "type", None) == "text"
        )
        if result.isError:
            raise ToolExecutionError(text or f"Tool '{name}' reported an error")
        return text

    def close(self) -> None:
        """Close the MCP session and stop the private loop."""
        with self._lock:
            if self._loop is None:
                return

            if self._owner is not None and self._shutdown is not None:
                self._loop.call_soon_threadsafe(self._shutdown.set)
                try:
                    self._owner.result(timeout=self.timeout)
                except concurrent.futures.TimeoutError:
                    logger.warning(f"MCP session to {self.url} did not close in time")
                    self._owner.cancel()
                except concurrent.futures.CancelledError:
                    logger.debug(f"MCP session task for {self.url} was already cancelled")

            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()
            self._loop = None
            self._thread = None
            self._owner = None
            self._shutdown = None
            self._session = None

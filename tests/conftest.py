"""Shared fixtures: an in-memory MCP session and a controllable clock."""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from mcp import types

from outlook_mcp_client.cache import ResultCache
from outlook_mcp_client.client import OutlookClient
from outlook_mcp_client.models import ClientConfig


def text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


def json_result(data: Any) -> types.CallToolResult:
    return text_result(json.dumps(data))


class FakeSession:
    """Stands in for ``mcp.ClientSession``; records every tool call."""

    def __init__(self, authenticated: bool = True):
        self.authenticated = authenticated
        self.calls: List[tuple] = []
        self.handlers: Dict[str, Callable[[dict], types.CallToolResult]] = {}

    def on(self, name: str, handler: Callable[[dict], types.CallToolResult]):
        self.handlers[name] = handler

    def calls_to(self, name: str) -> List[dict]:
        return [args for tool, args in self.calls if tool == name]

    async def call_tool(self, name: str, arguments: Optional[dict] = None) -> types.CallToolResult:
        self.calls.append((name, arguments))
        await asyncio.sleep(0)
        if name in self.handlers:
            return self.handlers[name](arguments or {})
        if name == "verify-login":
            return json_result({"success": self.authenticated})
        count = len(self.calls_to(name))
        return json_result({"tool": name, "args": arguments, "call": count})

    async def list_tools(self) -> types.ListToolsResult:
        return types.ListToolsResult(tools=[
            types.Tool(name="list-mail-messages", description="List messages", inputSchema={"type": "object"}),
            types.Tool(name="send-mail", description="Send mail", inputSchema={"type": "object"}),
        ])


class FakeSessionFactory:
    """Session factory that counts opens and closes.

    Args:
        session: Session yielded on every open.
        failures: Number of opens that raise ``error`` before one succeeds.
        error: Exception raised by failing opens.
    """

    def __init__(self, session: Optional[FakeSession] = None, failures: int = 0,
                 error: Optional[Exception] = None):
        self.session = session or FakeSession()
        self.failures = failures
        self.error = error or ConnectionError("server exited during handshake")
        self.opened = 0
        self.closed = 0

    def __call__(self, server):
        return self._open()

    @asynccontextmanager
    async def _open(self):
        self.opened += 1
        await asyncio.sleep(0.01)
        if self.failures:
            self.failures -= 1
            raise self.error
        try:
            yield self.session
        finally:
            self.closed += 1


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig.model_validate({
        "mcpServer": {"command": "fake-server"},
        "account": "me@example.com",
        "cache": {"persist": False},
    })


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def factory(session) -> FakeSessionFactory:
    return FakeSessionFactory(session)


@pytest.fixture
def cache(clock) -> ResultCache:
    return ResultCache(clock=clock)


@pytest_asyncio.fixture
async def client(config, cache, factory):
    client = OutlookClient(config, cache=cache, session_factory=factory)
    yield client
    await client.disconnect()

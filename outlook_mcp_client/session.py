"""Session guard: one lazily-started connection to the MCP server.

The MCP SDK's stdio transport and ``ClientSession`` are anyio context
managers and must be entered and exited in the same task. The guard runs them
inside a dedicated session task that stays parked until ``disconnect()``,
so ``connect()`` and ``disconnect()`` may be awaited from any task.
"""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Optional, TextIO

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.stdio import stdio_client

from .errors import AuthenticationRequiredError
from .helpers import first_text, is_authenticated_status
from .models import MCPServerConfig

CLIENT_NAME = "outlook-cli"
CLIENT_VERSION = "1.0.0"
AUTH_CHECK_TOOL = "verify-login"

logger = logging.getLogger("outlook_mcp_client.session")

SessionFactory = Callable[[MCPServerConfig], AsyncContextManager[Any]]


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTING = "disconnecting"
    AUTH_REQUIRED = "auth_required"


# =============================================================================
# Stdio transport
# =============================================================================

def server_parameters(server: MCPServerConfig) -> StdioServerParameters:
    """Launch parameters: current environment overlaid with the config env."""
    env = dict(os.environ)
    env.update(server.env)
    return StdioServerParameters(
        command=server.command,
        args=list(server.args),
        env=env,
        cwd=server.cwd,
    )


def stdio_session_factory(errlog: Optional[TextIO] = None) -> SessionFactory:
    """Factory that spawns the server and yields an initialized ``ClientSession``.

    Args:
        errlog: Where the server's stderr goes. Defaults to ``sys.stderr``,
            so login prompts printed by the server reach the user.
    """

    @asynccontextmanager
    async def open_session(server: MCPServerConfig):
        params = server_parameters(server)
        logger.debug("Starting MCP server: %s %s", params.command, " ".join(params.args))
        async with stdio_client(params, errlog=errlog or sys.stderr) as (read, write):
            async with ClientSession(
                read,
                write,
                client_info=types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION),
            ) as session:
                await session.initialize()
                yield session

    return open_session


# =============================================================================
# Session guard
# =============================================================================

class MCPSession:
    """Owns the single MCP session and its connection lifecycle.

    ``connect()`` is single-flight: concurrent callers share one connection
    attempt and its outcome. A failed connection is not remembered, so the
    next call starts over. A failed auth preflight is: the guard stays in
    ``AUTH_REQUIRED`` and refuses non-exempt connects until an auth-exempt
    connect (login, verify-login) or ``reset_auth()``.
    """

    def __init__(
        self,
        server: MCPServerConfig,
        session_factory: Optional[SessionFactory] = None,
        account: Optional[str] = None,
    ):
        self.server = server
        self.account = account
        self._session_factory = session_factory or stdio_session_factory()
        self._session: Optional[Any] = None
        self._pending: Optional[asyncio.Future] = None
        self._runner: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None
        self._auth_failed = False
        self._disconnecting = False

    @property
    def state(self) -> SessionState:
        if self._auth_failed:
            return SessionState.AUTH_REQUIRED
        if self._disconnecting:
            return SessionState.DISCONNECTING
        if self._pending is None:
            return SessionState.UNINITIALIZED
        if self._pending.done() and not self._pending.cancelled() and self._pending.exception() is None:
            return SessionState.READY
        return SessionState.CONNECTING

    def mark_auth_required(self):
        """Enter ``AUTH_REQUIRED`` after a tool call failed authentication."""
        self._auth_failed = True

    def reset_auth(self):
        self._auth_failed = False

    async def connect(self, skip_auth_check: bool = False) -> Any:
        """Return the live session, connecting on first use.

        Args:
            skip_auth_check: Skip the ``verify-login`` preflight. Used by
                the login, verify-login and list-tools commands.

        Raises:
            AuthenticationRequiredError: The server is not authenticated.
        """
        if skip_auth_check:
            self._auth_failed = False
        elif self._auth_failed:
            raise AuthenticationRequiredError(
                "Outlook OAuth token is expired or missing.", account=self.account
            )

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._establish(skip_auth_check))
        pending = self._pending
        try:
            return await asyncio.shield(pending)
        except BaseException:
            if self._pending is pending and pending.done():
                self._pending = None
            raise

    async def _establish(self, skip_auth_check: bool) -> Any:
        loop = asyncio.get_running_loop()
        ready = loop.create_future()
        self._closing = asyncio.Event()
        self._runner = asyncio.create_task(self._run(ready))

        session = await ready
        logger.debug("MCP session established")

        if not skip_auth_check:
            try:
                await self._check_auth(session)
            except AuthenticationRequiredError:
                self._auth_failed = True
                await self._shutdown()
                raise
            except Exception:
                await self._shutdown()
                raise
        return session

    async def _run(self, ready: asyncio.Future):
        """Hold the transport and session open until ``_closing`` is set."""
        try:
            async with self._session_factory(self.server) as session:
                self._session = session
                ready.set_result(session)
                await self._closing.wait()
        except Exception as exc:
            if ready.done():
                logger.warning("MCP session ended unexpectedly: %s", exc)
            else:
                ready.set_exception(exc)
        finally:
            self._session = None
            if not ready.done():
                ready.cancel()

    async def _check_auth(self, session: Any):
        """Call ``verify-login`` on the raw session and fail fast if unauthenticated."""
        result = await session.call_tool(AUTH_CHECK_TOOL, arguments={})
        text = first_text(result.content) or ""
        if result.isError or not is_authenticated_status(text):
            logger.debug("Auth preflight failed: %s", text)
            raise AuthenticationRequiredError(
                "Outlook OAuth token is expired or missing.", account=self.account
            )

    async def _shutdown(self):
        """Stop the session task and wait for the server process to exit."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        self._disconnecting = True
        try:
            if self._closing is not None:
                self._closing.set()
            await runner
        except Exception as e:
            logger.warning("Error while closing MCP session: %s", e)
        finally:
            self._disconnecting = False
            self._closing = None

    async def disconnect(self):
        """Close the session. A later ``connect()`` starts a new one."""
        self._pending = None
        await self._shutdown()
        logger.debug("MCP session closed")

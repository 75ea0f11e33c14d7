"""
Outlook MCP Client - tool-call facade and domain operations.

Every operation is delegated to a tool on the MCP server. Reads go through
the result cache; writes call the server directly and then invalidate the
cached reads they may have changed.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from .cache import TTL, ResultCache, create_cache_key
from .errors import AuthenticationRequiredError
from .helpers import compact, unwrap_tool_result
from .models import ClientConfig
from .session import MCPSession, SessionFactory

logger = logging.getLogger("outlook_mcp_client")


def _item_key_pattern(name: str, item_id: str) -> str:
    """Pattern matching every cached detail entry of one item, whatever its other args."""
    return rf"^{re.escape(name)}:.*\"id\":{re.escape(json.dumps(item_id))}"


class OutlookClient:
    """Outlook/MS365 operations backed by an MCP server.

    Args:
        config: Loaded client config.
        cache: Result cache. Defaults to an in-memory cache.
        session_factory: Overrides how the MCP session is opened.
    """

    def __init__(
        self,
        config: ClientConfig,
        cache: Optional[ResultCache] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else ResultCache(namespace=config.cache.namespace)
        self.session = MCPSession(
            config.mcp_server, session_factory=session_factory, account=config.account
        )
        self.cache_disabled = not self.cache.enabled
        # Set before auth commands (login, verify-login, list-tools) to skip the preflight.
        self.skip_auth_check = False

    # =========================================================================
    # CACHE CONTROL
    # =========================================================================

    def disable_cache(self):
        """Disable caching for all subsequent requests."""
        self.cache_disabled = True
        self.cache.disable()

    def enable_cache(self):
        self.cache_disabled = False
        self.cache.enable()

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def clear_cache(self) -> int:
        """Clear all cached data. Returns the number of entries removed."""
        return self.cache.clear()

    def invalidate_cache_key(self, key: str) -> bool:
        return self.cache.invalidate(key)

    def _invalidate(self, *patterns: str):
        """Drop cached reads after a write. Never fails the write."""
        for pattern in patterns:
            try:
                self.cache.invalidate_pattern(pattern)
            except Exception as e:
                logger.warning("Cache invalidation for %s failed: %s", pattern, e)

    async def _cached(self, name: str, params: Dict[str, Any], ttl: float, tool: str, args: Dict[str, Any]) -> Any:
        return await self.cache.get_or_fetch(
            create_cache_key(name, params),
            lambda: self.call_tool(tool, args),
            ttl=ttl,
            bypass_cache=self.cache_disabled,
        )

    # =========================================================================
    # CONNECTION MANAGEMENT
    # =========================================================================

    async def connect(self):
        await self.session.connect(skip_auth_check=self.skip_auth_check)

    async def disconnect(self):
        await self.session.disconnect()

    # =========================================================================
    # MCP TOOLS
    # =========================================================================

    async def list_tools(self) -> List[Dict[str, Any]]:
        """List the tools exposed by the MCP server."""
        session = await self.session.connect(skip_auth_check=self.skip_auth_check)
        result = await session.list_tools()
        return [{"name": t.name, "description": t.description} for t in result.tools]

    async def call_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """Call an MCP tool and unwrap its response.

        Returns:
            Parsed JSON, raw text, or the content list.

        Raises:
            AuthenticationRequiredError: The server reported an auth failure.
            ToolCallError: The server reported any other failure.
        """
        session = await self.session.connect(skip_auth_check=self.skip_auth_check)
        logger.debug("Calling tool %s with %s", name, args)
        result = await session.call_tool(name, arguments=args or {})
        try:
            return unwrap_tool_result(
                result,
                tool=name,
                markers=self.config.auth_error_markers,
                account=self.config.account,
            )
        except AuthenticationRequiredError:
            self.session.mark_auth_required()
            raise

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def login(self) -> Any:
        """Start the OAuth login flow on the server."""
        return await self.call_tool("login", {})

    async def verify_login(self) -> Any:
        """Current login state and user info."""
        return await self.call_tool("verify-login", {})

    # =========================================================================
    # MAIL OPERATIONS
    # =========================================================================

    async def list_mail_messages(
        self,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        filter: Optional[str] = None,
        order_by: Optional[str] = None,
    ) -> Any:
        """List inbox messages. Cached for 5 minutes."""
        args = compact(top=top, skip=skip, filter=filter, orderBy=order_by)
        return await self._cached("mail_messages", args, TTL.FIVE_MINUTES, "list-mail-messages", args)

    async def list_mail_folders(self) -> Any:
        """List mail folders. Cached for 1 hour."""
        return await self._cached("mail_folders", {}, TTL.HOUR, "list-mail-folders", {})

    async def list_mail_folder_messages(
        self, folder_id: str, top: Optional[int] = None, skip: Optional[int] = None
    ) -> Any:
        """List messages in a folder. Cached for 5 minutes."""
        params = compact(folderId=folder_id, top=top, skip=skip)
        args = compact(mailFolderId=folder_id, top=top, skip=skip)
        return await self._cached("folder_messages", params, TTL.FIVE_MINUTES, "list-mail-folder-messages", args)

    async def get_mail_message(self, message_id: str) -> Any:
        """Full content of one message. Cached for 15 minutes."""
        return await self._cached(
            "mail_message", {"id": message_id}, TTL.FIFTEEN_MINUTES,
            "get-mail-message", {"messageId": message_id},
        )

    async def send_mail(
        self,
        to: str,
        subject: str,
        body: str,
        cc: Optional[str] = None,
        body_type: Optional[str] = None,
    ) -> Any:
        """Send an email. Invalidates cached message lists."""
        args = compact(to=to, subject=subject, body=body, cc=cc, bodyType=body_type)
        result = await self.call_tool("send-mail", args)
        self._invalidate(r"^mail_messages")
        return result

    async def create_draft_email(self, to: str, subject: str, body: str, cc: Optional[str] = None) -> Any:
        """Create a draft. Invalidates cached folder listings (the Drafts folder changed)."""
        args = compact(to=to, subject=subject, body=body, cc=cc)
        result = await self.call_tool("create-draft-email", args)
        self._invalidate(r"^folder_messages")
        return result

    async def move_mail_message(self, message_id: str, destination_folder_id: str) -> Any:
        """Move a message to another folder."""
        result = await self.call_tool(
            "move-mail-message",
            {"messageId": message_id, "destinationFolderId": destination_folder_id},
        )
        self._invalidate(
            r"^mail_messages",
            r"^folder_messages",
            _item_key_pattern("mail_message", message_id),
        )
        return result

    async def delete_mail_message(self, message_id: str) -> Any:
        """Delete a message (moves it to Deleted Items)."""
        result = await self.call_tool("delete-mail-message", {"messageId": message_id})
        self._invalidate(
            r"^mail_messages",
            r"^folder_messages",
            _item_key_pattern("mail_message", message_id),
        )
        return result

    # =========================================================================
    # CALENDAR OPERATIONS
    # =========================================================================

    async def list_calendars(self) -> Any:
        """List calendars. Cached for 1 hour."""
        return await self._cached("calendars", {}, TTL.HOUR, "list-calendars", {})

    async def list_calendar_events(self, calendar_id: Optional[str] = None, top: Optional[int] = None) -> Any:
        """List calendar events. Cached for 15 minutes."""
        args = compact(calendarId=calendar_id, top=top)
        return await self._cached("calendar_events", args, TTL.FIFTEEN_MINUTES, "list-calendar-events", args)

    async def get_calendar_event(self, event_id: str, calendar_id: Optional[str] = None) -> Any:
        """One calendar event. Cached for 15 minutes."""
        return await self._cached(
            "calendar_event", compact(id=event_id, calendarId=calendar_id), TTL.FIFTEEN_MINUTES,
            "get-calendar-event", compact(eventId=event_id, calendarId=calendar_id),
        )

    async def get_calendar_view(self, start: str, end: str, calendar_id: Optional[str] = None) -> Any:
        """Events in a date range, recurrences expanded. Cached for 15 minutes."""
        return await self._cached(
            "calendar_view", compact(start=start, end=end, calendarId=calendar_id), TTL.FIFTEEN_MINUTES,
            "get-calendar-view", compact(startDateTime=start, endDateTime=end, calendarId=calendar_id),
        )

    async def create_calendar_event(
        self,
        subject: str,
        start: str,
        end: str,
        body: Optional[str] = None,
        location: Optional[str] = None,
        attendees: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> Any:
        """Create an event. Invalidates cached event lists and views."""
        args = compact(
            subject=subject, start=start, end=end, body=body,
            location=location, attendees=attendees, calendarId=calendar_id,
        )
        result = await self.call_tool("create-calendar-event", args)
        self._invalidate(r"^calendar_events", r"^calendar_view")
        return result

    async def update_calendar_event(
        self,
        event_id: str,
        subject: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        body: Optional[str] = None,
        location: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> Any:
        """Update an event."""
        args = compact(
            eventId=event_id, subject=subject, start=start, end=end,
            body=body, location=location, calendarId=calendar_id,
        )
        result = await self.call_tool("update-calendar-event", args)
        self._invalidate(
            r"^calendar_events",
            r"^calendar_view",
            _item_key_pattern("calendar_event", event_id),
        )
        return result

    async def delete_calendar_event(self, event_id: str, calendar_id: Optional[str] = None) -> Any:
        """Delete an event."""
        result = await self.call_tool(
            "delete-calendar-event", compact(eventId=event_id, calendarId=calendar_id)
        )
        self._invalidate(
            r"^calendar_events",
            r"^calendar_view",
            _item_key_pattern("calendar_event", event_id),
        )
        return result

    # =========================================================================
    # CONTACTS, TASKS, SEARCH
    # =========================================================================

    async def list_contacts(self, top: Optional[int] = None, skip: Optional[int] = None) -> Any:
        """List contacts. Cached for 15 minutes."""
        args = compact(top=top, skip=skip)
        return await self._cached("contacts", args, TTL.FIFTEEN_MINUTES, "list-outlook-contacts", args)

    async def list_tasks(self, list_id: Optional[str] = None, top: Optional[int] = None) -> Any:
        """List tasks. Cached for 5 minutes."""
        args = compact(listId=list_id, top=top)
        return await self._cached("tasks", args, TTL.FIVE_MINUTES, "list-tasks", args)

    async def search(self, query: str, entity_types: Optional[str] = None) -> Any:
        """Search across messages, events and contacts. Cached for 5 minutes."""
        args = compact(query=query, entityTypes=entity_types)
        return await self._cached("search", args, TTL.FIVE_MINUTES, "search", args)

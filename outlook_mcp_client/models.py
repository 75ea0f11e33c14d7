"""Pydantic models for the config file and for every CLI command's input."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .helpers import AUTH_ERROR_MARKERS


# =============================================================================
# Config file
# =============================================================================

class MCPServerConfig(BaseModel):
    """How to launch the MCP server process."""
    model_config = ConfigDict(extra="forbid")

    command: str = Field(..., description="Executable that starts the MCP server", min_length=1)
    args: List[str] = Field(default_factory=list, description="Arguments passed to the command")
    env: Dict[str, str] = Field(
        default_factory=dict,
        description="Environment overrides, layered over the current environment"
    )
    cwd: Optional[str] = Field(default=None, description="Working directory for the server process")


class CacheConfig(BaseModel):
    """Result cache settings."""
    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Cache read results")
    persist: bool = Field(default=True, description="Keep cached results on disk between invocations")
    namespace: str = Field(default="outlook-email-manager", description="Cache file name", min_length=1)
    directory: Optional[str] = Field(
        default=None,
        description="Directory for the cache file. Defaults to ~/.cache/outlook-cli"
    )


class ClientConfig(BaseModel):
    """Top-level config file schema. Accepts camelCase or snake_case keys."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    mcp_server: MCPServerConfig = Field(..., alias="mcpServer")
    account: Optional[str] = Field(
        default=None,
        description="Account label shown in re-authentication instructions"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)
    auth_error_markers: List[str] = Field(
        default_factory=lambda: list(AUTH_ERROR_MARKERS),
        alias="authErrorMarkers",
        description="Case-insensitive substrings that mark a tool error as an auth failure"
    )

    @field_validator("auth_error_markers", mode="before")
    @classmethod
    def default_markers(cls, v):
        if v is None:
            return list(AUTH_ERROR_MARKERS)
        return v


# =============================================================================
# Command inputs
# =============================================================================

class CommandInput(BaseModel):
    """Base for command inputs."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class EmptyInput(CommandInput):
    """Input for commands that take no arguments."""


class ListMessagesInput(CommandInput):
    """Input for listing inbox messages."""

    top: Optional[int] = Field(default=None, description="Max results", ge=1, le=1000)
    skip: Optional[int] = Field(default=None, description="Skip results", ge=0)
    filter: Optional[str] = Field(default=None, description="OData filter, e.g. 'isRead eq false'")
    order_by: Optional[str] = Field(default=None, description="Sort order, e.g. 'receivedDateTime desc'")


class ListFolderMessagesInput(CommandInput):
    """Input for listing messages in one mail folder."""

    folder_id: str = Field(..., description="Folder ID", min_length=1)
    top: Optional[int] = Field(default=None, description="Max results", ge=1, le=1000)
    skip: Optional[int] = Field(default=None, description="Skip results", ge=0)


class MessageIdInput(CommandInput):
    """Input for commands addressing a single message."""

    id: str = Field(..., description="Message ID", min_length=1)


class SendMailInput(CommandInput):
    """Input for sending an email."""

    to: str = Field(..., description="Recipient email", min_length=1)
    subject: str = Field(..., description="Email subject", min_length=1)
    body: str = Field(..., description="Email body", min_length=1)
    cc: Optional[str] = Field(default=None, description="CC recipient")
    body_type: Optional[str] = Field(default=None, description="Body type (text/html)")

    @field_validator("body_type")
    @classmethod
    def validate_body_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.lower() not in ("text", "html"):
            raise ValueError("body_type must be 'text' or 'html'")
        return v.lower() if v is not None else v


class CreateDraftInput(CommandInput):
    """Input for creating a draft email."""

    to: str = Field(..., description="Recipient email", min_length=1)
    subject: str = Field(..., description="Email subject", min_length=1)
    body: str = Field(..., description="Email body", min_length=1)
    cc: Optional[str] = Field(default=None, description="CC recipient")


class MoveMessageInput(CommandInput):
    """Input for moving a message to another folder."""

    id: str = Field(..., description="Message ID", min_length=1)
    folder_id: str = Field(..., description="Destination folder ID", min_length=1)


class ListEventsInput(CommandInput):
    """Input for listing calendar events."""

    calendar_id: Optional[str] = Field(default=None, description="Calendar ID")
    top: Optional[int] = Field(default=None, description="Max results", ge=1, le=1000)


class EventIdInput(CommandInput):
    """Input for commands addressing a single event."""

    id: str = Field(..., description="Event ID", min_length=1)
    calendar_id: Optional[str] = Field(default=None, description="Calendar ID")


class CalendarViewInput(CommandInput):
    """Input for a calendar view over a date range."""

    start: str = Field(..., description="Start date (ISO 8601)", min_length=1)
    end: str = Field(..., description="End date (ISO 8601)", min_length=1)
    calendar_id: Optional[str] = Field(default=None, description="Calendar ID")


class CreateEventInput(CommandInput):
    """Input for creating a calendar event."""

    subject: str = Field(..., description="Event subject", min_length=1)
    start: str = Field(..., description="Start date (ISO 8601)", min_length=1)
    end: str = Field(..., description="End date (ISO 8601)", min_length=1)
    body: Optional[str] = Field(default=None, description="Event body")
    location: Optional[str] = Field(default=None, description="Event location")
    attendees: Optional[str] = Field(default=None, description="Attendees (comma-separated)")
    calendar_id: Optional[str] = Field(default=None, description="Calendar ID")


class UpdateEventInput(CommandInput):
    """Input for updating a calendar event."""

    id: str = Field(..., description="Event ID", min_length=1)
    subject: Optional[str] = Field(default=None, description="Event subject")
    start: Optional[str] = Field(default=None, description="Start date (ISO 8601)")
    end: Optional[str] = Field(default=None, description="End date (ISO 8601)")
    body: Optional[str] = Field(default=None, description="Event body")
    location: Optional[str] = Field(default=None, description="Event location")
    calendar_id: Optional[str] = Field(default=None, description="Calendar ID")


class ListContactsInput(CommandInput):
    """Input for listing contacts."""

    top: Optional[int] = Field(default=None, description="Max results", ge=1, le=1000)
    skip: Optional[int] = Field(default=None, description="Skip results", ge=0)


class ListTasksInput(CommandInput):
    """Input for listing tasks."""

    list_id: Optional[str] = Field(default=None, description="Task list ID")
    top: Optional[int] = Field(default=None, description="Max results", ge=1, le=1000)


class SearchInput(CommandInput):
    """Input for a cross-entity search."""

    query: str = Field(..., description="Search query", min_length=1)
    entity_types: Optional[str] = Field(
        default=None,
        description="Entity types to search, comma-separated (message, event, contact)"
    )


class CacheKeyInput(CommandInput):
    """Input for invalidating one cache entry."""

    key: str = Field(..., description="Cache key to invalidate", min_length=1)

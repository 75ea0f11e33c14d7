"""
Outlook CLI - command definitions and entry point.

Each command pairs a pydantic input model with an async handler. Flags are
generated from the model's fields and validated by the model before the
handler runs. Results are printed to stdout as JSON; errors go to stderr
with a non-zero exit status.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from .client import OutlookClient
from .config import build_cache, load_config
from .errors import AuthenticationRequiredError, OutlookClientError
from .models import (
    CacheKeyInput, CalendarViewInput, CreateDraftInput, CreateEventInput,
    EmptyInput, EventIdInput, ListContactsInput, ListEventsInput,
    ListFolderMessagesInput, ListMessagesInput, ListTasksInput,
    MessageIdInput, MoveMessageInput, SearchInput, SendMailInput,
    UpdateEventInput,
)

PROGRAM_NAME = "outlook-cli"
LOG_LEVEL_ENV_VAR = "OUTLOOK_CLI_LOG_LEVEL"

logger = logging.getLogger("outlook_mcp_client.cli")

Handler = Callable[[OutlookClient, Any], Awaitable[Any]]


@dataclass
class Command:
    name: str
    model: Type[BaseModel]
    handler: Handler
    description: str
    skip_auth_check: bool = False
    uses_server: bool = True


COMMANDS: Dict[str, Command] = {}


def command(
    name: str,
    model: Type[BaseModel] = EmptyInput,
    description: str = "",
    skip_auth_check: bool = False,
    uses_server: bool = True,
):
    """Register an async handler as a CLI command."""
    def decorator(fn: Handler) -> Handler:
        COMMANDS[name] = Command(name, model, fn, description, skip_auth_check, uses_server)
        return fn
    return decorator


# =============================================================================
# TOOLS & AUTHENTICATION
# =============================================================================

@command("list-tools", description="List all available MCP tools", skip_auth_check=True)
async def list_tools(client: OutlookClient, params: EmptyInput):
    return await client.list_tools()


@command("login", description="Authenticate with Microsoft", skip_auth_check=True)
async def login(client: OutlookClient, params: EmptyInput):
    return await client.login()


@command("verify-login", description="Check authentication status", skip_auth_check=True)
async def verify_login(client: OutlookClient, params: EmptyInput):
    return await client.verify_login()


# =============================================================================
# MAIL
# =============================================================================

@command("list-messages", ListMessagesInput, "List inbox messages")
async def list_messages(client: OutlookClient, params: ListMessagesInput):
    return await client.list_mail_messages(
        top=params.top, skip=params.skip, filter=params.filter, order_by=params.order_by
    )


@command("list-folders", description="List mail folders")
async def list_folders(client: OutlookClient, params: EmptyInput):
    return await client.list_mail_folders()


@command("list-folder-messages", ListFolderMessagesInput, "List messages in a folder")
async def list_folder_messages(client: OutlookClient, params: ListFolderMessagesInput):
    return await client.list_mail_folder_messages(params.folder_id, top=params.top, skip=params.skip)


@command("get-message", MessageIdInput, "Get a specific message")
async def get_message(client: OutlookClient, params: MessageIdInput):
    return await client.get_mail_message(params.id)


@command("send-mail", SendMailInput, "Send an email")
async def send_mail(client: OutlookClient, params: SendMailInput):
    return await client.send_mail(
        params.to, params.subject, params.body, cc=params.cc, body_type=params.body_type
    )


@command("create-draft", CreateDraftInput, "Create a draft email")
async def create_draft(client: OutlookClient, params: CreateDraftInput):
    return await client.create_draft_email(params.to, params.subject, params.body, cc=params.cc)


@command("move-message", MoveMessageInput, "Move message to folder")
async def move_message(client: OutlookClient, params: MoveMessageInput):
    return await client.move_mail_message(params.id, params.folder_id)


@command("delete-message", MessageIdInput, "Delete a message")
async def delete_message(client: OutlookClient, params: MessageIdInput):
    return await client.delete_mail_message(params.id)


# =============================================================================
# CALENDAR
# =============================================================================

@command("list-calendars", description="List calendars")
async def list_calendars(client: OutlookClient, params: EmptyInput):
    return await client.list_calendars()


@command("list-events", ListEventsInput, "List calendar events")
async def list_events(client: OutlookClient, params: ListEventsInput):
    return await client.list_calendar_events(calendar_id=params.calendar_id, top=params.top)


@command("get-event", EventIdInput, "Get a specific event")
async def get_event(client: OutlookClient, params: EventIdInput):
    return await client.get_calendar_event(params.id, calendar_id=params.calendar_id)


@command("get-calendar-view", CalendarViewInput, "Get events in date range")
async def get_calendar_view(client: OutlookClient, params: CalendarViewInput):
    return await client.get_calendar_view(params.start, params.end, calendar_id=params.calendar_id)


@command("create-event", CreateEventInput, "Create a calendar event")
async def create_event(client: OutlookClient, params: CreateEventInput):
    return await client.create_calendar_event(
        params.subject, params.start, params.end,
        body=params.body, location=params.location,
        attendees=params.attendees, calendar_id=params.calendar_id,
    )


@command("update-event", UpdateEventInput, "Update a calendar event")
async def update_event(client: OutlookClient, params: UpdateEventInput):
    return await client.update_calendar_event(
        params.id, subject=params.subject, start=params.start, end=params.end,
        body=params.body, location=params.location, calendar_id=params.calendar_id,
    )


@command("delete-event", EventIdInput, "Delete a calendar event")
async def delete_event(client: OutlookClient, params: EventIdInput):
    return await client.delete_calendar_event(params.id, calendar_id=params.calendar_id)


# =============================================================================
# CONTACTS, TASKS, SEARCH
# =============================================================================

@command("list-contacts", ListContactsInput, "List contacts")
async def list_contacts(client: OutlookClient, params: ListContactsInput):
    return await client.list_contacts(top=params.top, skip=params.skip)


@command("list-tasks", ListTasksInput, "List tasks")
async def list_tasks(client: OutlookClient, params: ListTasksInput):
    return await client.list_tasks(list_id=params.list_id, top=params.top)


@command("search", SearchInput, "Search across MS365")
async def search(client: OutlookClient, params: SearchInput):
    return await client.search(params.query, entity_types=params.entity_types)


# =============================================================================
# CACHE
# =============================================================================

@command("cache-stats", description="Show cache statistics", uses_server=False)
async def cache_stats(client: OutlookClient, params: EmptyInput):
    return client.get_cache_stats()


@command("cache-clear", description="Clear all cached data", uses_server=False)
async def cache_clear(client: OutlookClient, params: EmptyInput):
    return {"cleared": client.clear_cache()}


@command("cache-invalidate", CacheKeyInput, "Invalidate one cache entry", uses_server=False)
async def cache_invalidate(client: OutlookClient, params: CacheKeyInput):
    return {"key": params.key, "invalidated": client.invalidate_cache_key(params.key)}


# =============================================================================
# Argument parsing
# =============================================================================

def _flag(field_name: str) -> str:
    return "--" + field_name.replace("_", "-")


def build_parser() -> argparse.ArgumentParser:
    """Parser with one subcommand per registered command.

    All flags are read as strings; the command's model does type coercion
    and bounds checking.
    """
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description="Outlook/MS365 operations via MCP",
    )
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the result cache")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    for cmd in COMMANDS.values():
        sub = subparsers.add_parser(cmd.name, help=cmd.description, description=cmd.description)
        for field_name, field in cmd.model.model_fields.items():
            sub.add_argument(
                _flag(field_name),
                dest=field_name,
                required=field.is_required(),
                default=argparse.SUPPRESS,
                help=field.description,
            )
    return parser


def validate_args(cmd: Command, namespace: argparse.Namespace):
    """Validate the parsed flags against the command's input model."""
    values = {
        name: getattr(namespace, name)
        for name in cmd.model.model_fields
        if hasattr(namespace, name)
    }
    return cmd.model.model_validate(values)


def setup_logging(level: str = "WARNING"):
    """Log to stderr; stdout carries the JSON result."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


# =============================================================================
# Entry Point
# =============================================================================

async def run_command(cmd: Command, params: Any, client: OutlookClient) -> Any:
    """Run one command and always release the MCP session."""
    if cmd.skip_auth_check:
        client.skip_auth_check = True
    try:
        return await cmd.handler(client, params)
    finally:
        if cmd.uses_server:
            await client.disconnect()


def one_line(text: str) -> str:
    """Collapse line breaks so an error message fits on one stderr line."""
    return " ".join(str(text).split())


def format_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(map(str, e['loc'])) or 'input'}: {e['msg']}" for e in exc.errors()
    )


def print_result(result: Any):
    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))


def main(args: Optional[List[str]] = None, client_factory: Optional[Callable[..., OutlookClient]] = None) -> int:
    """CLI entry point.

    Args:
        args: Command line arguments (uses sys.argv if None).
        client_factory: Builds the client from the loaded config and cache.

    Returns:
        int: Exit code (0 for success, 1 for error).
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    level = "DEBUG" if parsed.verbose else (parsed.log_level or os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING"))
    setup_logging(level)

    cmd = COMMANDS[parsed.command]
    try:
        params = validate_args(cmd, parsed)
    except ValidationError as e:
        print(f"Error: invalid arguments for {cmd.name}: {format_validation_error(e)}", file=sys.stderr)
        return 1

    try:
        config = load_config(parsed.config)
        cache = build_cache(config)
        factory = client_factory or OutlookClient
        client = factory(config, cache=cache)
        if parsed.no_cache:
            client.disable_cache()
        result = asyncio.run(run_command(cmd, params, client))
    except AuthenticationRequiredError as e:
        print(one_line(str(e)), file=sys.stderr)
        return 1
    except OutlookClientError as e:
        print(f"Error: {one_line(str(e))}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.debug("Command %s failed", cmd.name, exc_info=True)
        print(f"Error: {type(e).__name__}: {one_line(str(e))}", file=sys.stderr)
        return 1

    print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())

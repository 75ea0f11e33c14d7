"""Response unwrapping, auth-error classification and small utilities."""

import json
from typing import Any, Iterable, List, Optional

from .errors import AuthenticationRequiredError, ToolCallError

# Substrings (lowercase) that mark a tool error as an authentication failure.
# The server mixes transport errors and Graph API errors into one text channel,
# so this is a substring match, not a status-code check.
AUTH_ERROR_MARKERS = (
    "no valid token",
    "token expired",
    "unauthorized",
    "401",
    "invalid_grant",
    "interaction_required",
    "login required",
    "unauthenticated",
    "invalidauthenticationtoken",
    "lifetimevalidationfailed",
    "compacttoken",
    "authorization_identitynotfound",
    "silent token acquisition failed",
)


def is_auth_error(text: str, markers: Optional[Iterable[str]] = None) -> bool:
    """Return True if ``text`` contains any auth marker, case-insensitively."""
    if markers is None:
        markers = AUTH_ERROR_MARKERS
    lower = text.lower()
    return any(marker.lower() in lower for marker in markers)


def compact(**kwargs) -> dict:
    """Build an argument dict, dropping unset options (None or empty strings)."""
    return {k: v for k, v in kwargs.items() if v is not None and v != ""}


def first_text(content: Optional[List[Any]]) -> Optional[str]:
    """Return the text of the first ``text`` content item, if any."""
    for item in content or []:
        if getattr(item, "type", None) == "text":
            return getattr(item, "text", None)
    return None


def content_to_json(content: Optional[List[Any]]) -> list:
    """Convert MCP content items to plain JSON-serializable dicts."""
    result = []
    for item in content or []:
        if hasattr(item, "model_dump"):
            result.append(item.model_dump(mode="json", exclude_none=True))
        else:
            result.append(item)
    return result


def parse_text(text: str) -> Any:
    """Parse tool output as JSON, falling back to the raw string."""
    try:
        return json.loads(text)
    except ValueError:
        return text


def unwrap_tool_result(
    result: Any,
    tool: str,
    markers: Optional[Iterable[str]] = None,
    account: Optional[str] = None,
) -> Any:
    """Interpret a ``CallToolResult`` envelope.

    Args:
        result: The ``CallToolResult`` returned by the session.
        tool: Tool name, attached to raised errors.
        markers: Auth-error vocabulary. Defaults to :data:`AUTH_ERROR_MARKERS`.
        account: Account label for re-authentication instructions.

    Returns:
        The parsed JSON value, the raw text, or the content list when there
        is no text.

    Raises:
        AuthenticationRequiredError: The error text matches the auth vocabulary.
        ToolCallError: Any other error reported by the server.
    """
    content = result.content or []
    text = first_text(content)

    if result.isError:
        error_text = text or "Tool call failed"
        if is_auth_error(error_text, markers):
            raise AuthenticationRequiredError(error_text, account=account)
        raise ToolCallError(error_text, tool=tool)

    if text:
        return parse_text(text)
    return content_to_json(content)


def is_authenticated_status(text: str) -> bool:
    """Interpret the output of the ``verify-login`` tool."""
    parsed = parse_text(text)
    if isinstance(parsed, dict):
        return (
            parsed.get("success") is True
            or parsed.get("authenticated") is True
            or parsed.get("status") == "authenticated"
        )
    lower = text.lower()
    if "not authenticated" in lower or "unauthenticated" in lower:
        return False
    return "authenticated" in lower or "login successful" in lower

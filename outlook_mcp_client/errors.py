"""Exception types raised by the Outlook MCP client."""

from typing import Optional

AUTH_REQUIRED_MARKER = "AUTHENTICATION_REQUIRED:"


class OutlookClientError(Exception):
    """Base class for client errors."""


class ConfigError(OutlookClientError):
    """The config file is missing or invalid."""


class ToolCallError(OutlookClientError):
    """The MCP server reported a tool failure unrelated to authentication."""

    def __init__(self, message: str, tool: Optional[str] = None):
        super().__init__(message)
        self.tool = tool


class AuthenticationRequiredError(OutlookClientError):
    """The OAuth token is missing or expired. Retrying cannot succeed.

    The message always starts with ``AUTHENTICATION_REQUIRED:`` so calling
    automation can match on it.
    """

    def __init__(self, detail: str, account: Optional[str] = None):
        self.detail = detail
        self.account = account
        who = f"Outlook account ({account})" if account else "Outlook account"
        super().__init__(
            f"{AUTH_REQUIRED_MARKER} {detail} "
            f"Do NOT retry this operation. "
            f"Ask the user to re-authenticate their {who} "
            f"by running the login command in a terminal with browser access."
        )

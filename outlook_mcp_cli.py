"""
Outlook MCP CLI - Entry Point
=============================
Thin wrapper that runs the command-line client from the outlook_mcp_client package.
See outlook_mcp_client/cli.py for the full implementation.

Usage:
    python outlook_mcp_cli.py list-messages --top 10
    python outlook_mcp_cli.py --no-cache get-calendar-view --start 2025-01-01 --end 2025-01-31
    python outlook_mcp_cli.py login
"""

import sys

from outlook_mcp_client.cli import main

if __name__ == "__main__":
    sys.exit(main())

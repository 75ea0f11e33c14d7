"""Config file discovery and loading.

The config file is JSON and describes how to launch the MCP server::

    {
      "mcpServer": {
        "command": "npx",
        "args": ["-y", "@softeria/ms-365-mcp-server"],
        "env": {}
      }
    }

Lookup order: explicit path, ``$OUTLOOK_CLI_CONFIG``, ``config.json`` in the
project root, ``~/.config/outlook-cli/config.json``.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from .cache import DEFAULT_CACHE_DIR, ResultCache
from .errors import ConfigError
from .models import ClientConfig

CONFIG_ENV_VAR = "OUTLOOK_CLI_CONFIG"
PROJECT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"
USER_CONFIG_PATH = Path.home() / ".config" / "outlook-cli" / "config.json"

logger = logging.getLogger("outlook_mcp_client.config")


def candidate_paths(path: Optional[Union[str, Path]] = None) -> List[Path]:
    """Paths to try, in order."""
    if path:
        return [Path(path).expanduser()]
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return [Path(env_path).expanduser()]
    return [PROJECT_CONFIG_PATH, USER_CONFIG_PATH]


def load_config(path: Optional[Union[str, Path]] = None) -> ClientConfig:
    """Load and validate the config file.

    Raises:
        ConfigError: No config file was found, or it is not valid.
    """
    candidates = candidate_paths(path)
    for candidate in candidates:
        if candidate.is_file():
            break
    else:
        searched = ", ".join(str(p) for p in candidates)
        raise ConfigError(f"Config file not found. Searched: {searched}")

    logger.debug("Loading config from %s", candidate)
    try:
        data = json.loads(candidate.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read config file {candidate}: {e}") from e

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {candidate}: {e}") from e


def build_cache(config: ClientConfig) -> ResultCache:
    """Create the result cache described by ``config.cache``."""
    settings = config.cache
    path = None
    if settings.persist:
        directory = Path(settings.directory).expanduser() if settings.directory else DEFAULT_CACHE_DIR
        path = directory / f"{settings.namespace}.json"
    cache = ResultCache(namespace=settings.namespace, path=path)
    if not settings.enabled:
        cache.disable()
    return cache

"""Environment variable resolution for the Claude CLI bridge."""

import os
import shutil
from typing import Optional, Union

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError, ProcessNotFoundError
from .permissions import PermissionMode


ENV_CLI_PATH = "CLAUDE_BRIDGE_CLI_PATH"
ENV_PERMISSION_MODE = "CLAUDE_BRIDGE_PERMISSION_MODE"
ENV_MAX_TURNS = "CLAUDE_BRIDGE_MAX_TURNS"
ENV_QUEUE_SIZE = "CLAUDE_BRIDGE_QUEUE_SIZE"

DEFAULT_CLI_NAME = "claude"
DEFAULT_QUEUE_SIZE = 100


def _executable(path: str) -> Optional[str]:
    """Return the usable executable for a path or bare command name."""
    if os.sep in path or (os.altsep and os.altsep in path):
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
        return None
    return shutil.which(path)


def resolve_cli_path(config_path: Optional[str] = None) -> str:
    """Resolve the path to the claude CLI executable.

    Resolution order:
    1. Explicit config_path parameter
    2. CLAUDE_BRIDGE_CLI_PATH environment variable
    3. "claude" (relies on PATH lookup)

    Args:
        config_path: Explicit path from AgentOptions.cli_path.

    Returns:
        Path to the claude CLI executable.

    Raises:
        ProcessNotFoundError: If the CLI cannot be found.
    """
    # 1. Explicit config
    if config_path:
        resolved = _executable(config_path)
        if resolved:
            return resolved
        raise ProcessNotFoundError(cli_path=config_path)

    # 2. Environment variable
    env_path = os.environ.get(ENV_CLI_PATH)
    if env_path:
        resolved = _executable(env_path)
        if resolved:
            return resolved
        raise ProcessNotFoundError(
            f"Claude Code CLI not found at {ENV_CLI_PATH}: {env_path}", cli_path=env_path
        )

    # 3. PATH lookup
    cli_path = shutil.which(DEFAULT_CLI_NAME)
    if cli_path:
        return cli_path

    raise ProcessNotFoundError()


def resolve_permission_mode(
    config_mode: Optional[Union[PermissionMode, str]] = None,
) -> Optional[PermissionMode]:
    """Resolve the CLI permission mode.

    Resolution order:
    1. Explicit config_mode parameter
    2. CLAUDE_BRIDGE_PERMISSION_MODE environment variable
    3. Default: None (use CLI default)

    Both the wire spelling ("acceptEdits") and snake_case ("accept_edits")
    are accepted.

    Raises:
        ConfigurationError: If the mode is not a known permission mode.
    """
    # 1. Explicit config
    if config_mode:
        return PermissionMode.parse(config_mode)

    # 2. Environment variable
    env_mode = os.environ.get(ENV_PERMISSION_MODE)
    if env_mode:
        return PermissionMode.parse(env_mode)

    # 3. Default
    return None


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def resolve_max_turns(config_max_turns: Optional[int] = None) -> Optional[int]:
    """Resolve the maximum number of agentic turns.

    Resolution order:
    1. Explicit config_max_turns parameter
    2. CLAUDE_BRIDGE_MAX_TURNS environment variable
    3. Default: None (unlimited)

    Raises:
        ConfigurationError: If the environment value is not an integer.
    """
    # 1. Explicit config
    if config_max_turns is not None:
        return config_max_turns

    # 2. Environment variable, 3. unlimited
    return _env_int(ENV_MAX_TURNS)


def resolve_queue_size(config_size: Optional[int] = None) -> int:
    """Resolve the bound of the inbound message queue.

    Resolution order:
    1. Explicit config_size parameter
    2. CLAUDE_BRIDGE_QUEUE_SIZE environment variable
    3. Default: 100

    Raises:
        ConfigurationError: If the value is not a positive integer.
    """
    size = config_size if config_size is not None else _env_int(ENV_QUEUE_SIZE)
    if size is None:
        return DEFAULT_QUEUE_SIZE
    if size <= 0:
        raise ConfigurationError(f"Queue size must be positive, got {size}")
    return size


def load_env_file(path: Optional[str] = None) -> bool:
    """Load a .env file into os.environ without overriding set variables.

    Args:
        path: Path to the .env file; None searches from the current directory.

    Returns:
        True if a file was found and loaded.
    """
    if path is None:
        path = find_dotenv(usecwd=True)
        if not path:
            return False
    return load_dotenv(path, override=False)

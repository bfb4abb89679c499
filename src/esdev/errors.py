"""Error handling framework for the esdev server."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ExitCode(IntEnum):
    """esdev process exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1  # Invalid options (user fixable)
    FATAL_ERROR = 3  # Unexpected crash


class DevServerError(Exception):
    """Base exception for esdev errors."""

    exit_code: ExitCode = ExitCode.FATAL_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "exit_code": self.exit_code,
            **self.context,
        }


class ConfigurationError(DevServerError):
    """Invalid or contradictory server options.

    Raised before the server binds to a port.
    """

    exit_code = ExitCode.CONFIG_ERROR


class WatchSetupError(DevServerError):
    """A path could not be added to the file watcher."""

    def __init__(self, message: str, path: str, **context: Any) -> None:
        super().__init__(message, path=path, **context)
        self.path = path


class TransformError(DevServerError):
    """The code transformer rejected a source file."""

    def __init__(self, message: str, file_path: str, **context: Any) -> None:
        super().__init__(message, file_path=file_path, **context)
        self.file_path = file_path

    def __str__(self) -> str:
        return f"{self.file_path}: {self.message}"


class ChannelError(DevServerError):
    """A reload channel client went away during a send."""

    def __init__(self, message: str, client_id: str, **context: Any) -> None:
        super().__init__(message, client_id=client_id, **context)
        self.client_id = client_id


__all__ = [
    "ExitCode",
    "DevServerError",
    "ConfigurationError",
    "WatchSetupError",
    "TransformError",
    "ChannelError",
]

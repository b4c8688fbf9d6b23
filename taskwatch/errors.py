from __future__ import annotations

from typing import Optional


class TaskwatchError(Exception):
    """Base class for all taskwatch errors."""


class ConfigurationError(TaskwatchError):
    """A required option is missing or structurally invalid."""


class QueueError(TaskwatchError):
    """The queue transport failed (poll, delete, visibility change, send)."""


class FileSystemError(TaskwatchError):
    """Permission normalization on a volume path failed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Failed to set permissions on {path}: {reason}")


class WorkerError(TaskwatchError):
    """
    A worker terminated abnormally.

    retryable=False means the message should be acknowledged anyway
    (the task asked not to be retried, exit code 3).
    """

    def __init__(
        self,
        message: str,
        *,
        message_id: Optional[str] = None,
        exit_code: Optional[int] = None,
        signal: Optional[int] = None,
        retryable: bool = True,
        timed_out: bool = False,
    ):
        self.message_id = message_id
        self.exit_code = exit_code
        self.signal = signal
        self.retryable = retryable
        self.timed_out = timed_out
        super().__init__(message)

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from taskwatch.errors import ConfigurationError

# SQS hard limits for ReceiveMessage
MAX_BATCH_SIZE = 10
MAX_WAIT_SECONDS = 20


@dataclass(frozen=True)
class WatcherConfig:
    region: str = "us-east-1"
    poll_wait_seconds: int = MAX_WAIT_SECONDS  # long-poll timeout
    max_messages: int = MAX_BATCH_SIZE         # upper bound on workers per batch


@dataclass(frozen=True)
class WorkerOptions:
    """Shared by every worker a Watcher spawns."""

    command: str
    volumes: tuple[str, ...] = ()
    image: Optional[str] = None  # run inside `docker run` when set
    environment: Mapping[str, str] = field(default_factory=dict)
    max_job_duration: Optional[float] = None  # seconds, enforced by the worker

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkerOptions":
        """
        Build options from a plain mapping (CLI, JSON config, tests).

        Validation is structural only: the command is never parsed.

        Raises:
            ConfigurationError: command missing or not a string, volumes not a
                sequence of strings
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("worker_options must be a mapping")

        command = data.get("command")
        if not isinstance(command, str) or not command.strip():
            raise ConfigurationError("Missing options: worker_options.command")

        volumes = data.get("volumes") or ()
        if isinstance(volumes, str) or not isinstance(volumes, Sequence):
            raise ConfigurationError("worker_options.volumes must be a sequence of paths")
        if not all(isinstance(v, str) for v in volumes):
            raise ConfigurationError("worker_options.volumes must be a sequence of paths")

        environment = data.get("environment") or {}
        if not isinstance(environment, Mapping):
            raise ConfigurationError("worker_options.environment must be a mapping")

        image = data.get("image")
        if image is not None and (not isinstance(image, str) or not image.strip()):
            raise ConfigurationError("worker_options.image must be a non-empty string")

        max_job_duration = data.get("max_job_duration")
        if max_job_duration is not None:
            try:
                max_job_duration = float(max_job_duration)
            except (TypeError, ValueError):
                raise ConfigurationError("worker_options.max_job_duration must be a number of seconds") from None
            if max_job_duration <= 0:
                raise ConfigurationError("worker_options.max_job_duration must be positive")

        return cls(
            command=command,
            volumes=tuple(volumes),
            image=image,
            environment={str(k): str(v) for k, v in environment.items()},
            max_job_duration=max_job_duration,
        )

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, List, Optional, Union

from taskwatch.config import WatcherConfig, WorkerOptions
from taskwatch.core.models import Message
from taskwatch.core.worker import Worker
from taskwatch.errors import ConfigurationError, QueueError, WorkerError
from taskwatch.io.fs import OPEN_PERMISSIONS, set_permissions
from taskwatch.io.messages import Messages

logger = logging.getLogger("taskwatch.core.watcher")

WorkerFactory = Callable[[Message, Any], Worker]


class Watcher:
    """
    Polls one queue and runs a worker per received message.

    Flow of `listen()`:
    1. Wait for the next batch of messages (long poll)
    2. Skip empty batches
    3. Open up permissions on every configured volume, once per batch
    4. Start one worker per message, all at once
    5. Wait for every worker to settle, then acknowledge each message
    6. Re-raise the first worker failure, or loop

    `stop()` is cooperative: it is only looked at before each poll, so the
    batch in flight always runs to completion.
    """

    def __init__(
        self,
        queue_url: Optional[str] = None,
        worker_options: Union[WorkerOptions, Mapping[str, Any], None] = None,
        *,
        config: Optional[WatcherConfig] = None,
        messages: Optional[Messages] = None,
        worker_factory: Optional[WorkerFactory] = None,
    ):
        """
        Args:
            queue_url: SQS queue URL to poll
            worker_options: WorkerOptions, or a mapping accepted by WorkerOptions.from_dict
            config: Poll settings and AWS region
            messages: Queue client; built from queue_url when omitted
            worker_factory: Callable starting a worker; Worker.create by default

        Raises:
            ConfigurationError: worker_options or queue_url missing
        """
        if worker_options is None:
            raise ConfigurationError("Missing options: worker_options")
        if not queue_url:
            raise ConfigurationError("Missing options: queue_url")

        self.queue_url = queue_url
        # Exposed and handed to workers as supplied; validated copy drives the loop
        self.worker_options = worker_options
        self._options = (
            worker_options if isinstance(worker_options, WorkerOptions) else WorkerOptions.from_dict(worker_options)
        )
        self.config = config or WatcherConfig()
        self.messages = messages if messages is not None else Messages(queue_url, region=self.config.region)
        self.worker_factory = worker_factory or Worker.create

        self._stop = threading.Event()
        self._batches: int = 0

    @classmethod
    def create(cls, **options: Any) -> "Watcher":
        """Same as calling the constructor."""
        return cls(**options)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask listen() to return before its next poll. Safe from any thread."""
        if not self._stop.is_set():
            logger.info("Stop requested, current batch (if any) will finish first")
        self._stop.set()

    async def listen(self) -> None:
        """
        Run the poll / fan-out / fan-in loop until stop() is called.

        Raises:
            QueueError: polling or acknowledging failed
            FileSystemError: a volume could not be chmod-ed; no worker was started
            WorkerError: a worker of the last batch failed (after all siblings settled)
        """
        logger.info(
            "Watching queue",
            extra={"queue_url": self.queue_url, "volumes": list(self._options.volumes)},
        )

        while not self._stop.is_set():
            batch = await self.messages.wait_for(self.config.max_messages, self.config.poll_wait_seconds)
            if not batch:
                # a client answering without suspending must not starve the loop
                await asyncio.sleep(0)
                continue

            self._batches += 1
            logger.info(f"Received batch #{self._batches} with {len(batch)} message(s)")

            for volume in self._options.volumes:
                set_permissions(volume, OPEN_PERMISSIONS)

            workers = [self.worker_factory(message, self.worker_options) for message in batch]
            results = await asyncio.gather(*(w.wait_for() for w in workers), return_exceptions=True)

            await self._settle(batch, results)

        logger.info("Watcher stopped", extra={"batches": self._batches})

    async def _settle(self, batch: List[Message], results: List[Any]) -> None:
        """
        Acknowledge every message, then surface the first failure.

        A failed acknowledgement does not stop the others. Worker failures take
        precedence; an acknowledgement error is raised on its own only when every
        worker succeeded, and is chained onto the worker failure otherwise.
        """
        failures: List[BaseException] = []
        settle_errors: List[QueueError] = []

        for message, result in zip(batch, results):
            error = result if isinstance(result, BaseException) else None
            if error is not None:
                logger.error(f"Worker for message {message.id} failed: {error}", exc_info=error)
                failures.append(error)
            try:
                await self.messages.settle(message, error)
            except QueueError as e:
                logger.error(f"Failed to acknowledge message {message.id}: {e}")
                settle_errors.append(e)

        first_settle_error = settle_errors[0] if settle_errors else None

        if failures:
            if len(failures) > 1:
                logger.error(f"{len(failures)}/{len(batch)} workers failed in batch #{self._batches}")
            first = failures[0]
            if not isinstance(first, WorkerError):
                raise WorkerError(f"Worker failed: {first}") from first
            if first_settle_error is not None:
                raise first from first_settle_error
            raise first

        if first_settle_error is not None:
            raise first_settle_error

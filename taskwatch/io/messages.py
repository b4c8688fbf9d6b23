from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from taskwatch.config import MAX_BATCH_SIZE, MAX_WAIT_SECONDS
from taskwatch.core.models import Message
from taskwatch.errors import WorkerError
from taskwatch.io.sqs import SQSClient

logger = logging.getLogger("taskwatch.io.messages")

# SQS upper bound for a visibility timeout (12 hours)
MAX_VISIBILITY_SECONDS = 43200


class Messages:
    """
    Queue client bound to one queue URL.

    Wraps the blocking SQSClient so the watcher loop can await polls, and owns
    the acknowledgement side of a message's life: delete on success, hand back
    to the queue with backoff on a retryable failure.
    """

    def __init__(self, queue_url: str, sqs: Optional[SQSClient] = None, region: str = "us-east-1"):
        self.queue_url = queue_url
        self.sqs = sqs if sqs is not None else SQSClient(region)

    async def wait_for(
        self,
        max_messages: int = MAX_BATCH_SIZE,
        wait_seconds: int = MAX_WAIT_SECONDS,
    ) -> List[Message]:
        """
        Suspend until at least one message is available or the wait elapses.

        Returns an empty list on timeout. Transport failures raise QueueError.
        """
        max_messages = max(1, min(int(max_messages), MAX_BATCH_SIZE))
        wait_seconds = max(0, min(int(wait_seconds), MAX_WAIT_SECONDS))

        loop = asyncio.get_running_loop()
        batch = await loop.run_in_executor(
            None, self.sqs.receive, self.queue_url, max_messages, wait_seconds
        )
        if batch:
            logger.debug(f"Received {len(batch)} message(s)", extra={"queue_url": self.queue_url})
        return batch

    async def complete(self, message: Message) -> None:
        """Delete the message; it will not be delivered again."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.sqs.delete, self.queue_url, message.delivery_handle)
        logger.info(f"Completed message {message.id}")

    async def retry(self, message: Message) -> None:
        """Return the message to the queue after an exponential backoff."""
        timeout = retry_delay(message.receive_count)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, self.sqs.change_visibility, self.queue_url, message.delivery_handle, timeout
        )
        logger.info(
            f"Returned message {message.id} to queue, visible again in {timeout}s",
            extra={"receive_count": message.receive_count},
        )

    async def settle(self, message: Message, error: Optional[BaseException] = None) -> None:
        """
        Acknowledge a message once its worker has finished.

        Success and non-retryable worker failures delete the message; anything
        else is retried.
        """
        if error is None or (isinstance(error, WorkerError) and not error.retryable):
            await self.complete(message)
        else:
            await self.retry(message)


def retry_delay(receive_count: int) -> int:
    """Visibility timeout for the n-th failed receive: 2**n seconds, capped."""
    return min(2 ** max(receive_count, 0), MAX_VISIBILITY_SECONDS)

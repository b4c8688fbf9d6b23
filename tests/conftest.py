"""
Shared fixtures for the taskwatch test suite.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from taskwatch.core.models import Message
from taskwatch.io.messages import Messages

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/tasks"


@pytest.fixture
def make_message():
    """Factory for Message values with sensible defaults."""

    def _make(msg_id="msg-1", body="hello", receive_count=1, subject=""):
        return Message(
            id=msg_id,
            body=body,
            delivery_handle=f"handle-{msg_id}",
            subject=subject,
            attributes={"ApproximateReceiveCount": str(receive_count)},
            queue_url=QUEUE_URL,
        )

    return _make


@pytest.fixture
def messages():
    """Stand-in Messages client: wait_for/settle are AsyncMocks."""
    client = MagicMock(spec=Messages)
    client.queue_url = QUEUE_URL
    client.wait_for = AsyncMock(return_value=[])
    client.settle = AsyncMock(return_value=None)
    return client


@pytest.fixture
def sqs_boto():
    """Stand-in for the boto3 SQS client."""
    return MagicMock()

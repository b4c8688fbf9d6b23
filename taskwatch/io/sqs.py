from __future__ import annotations
import json
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from taskwatch.core.models import MESSAGE_ATTRIBUTES, Message
from taskwatch.errors import QueueError


class SQSClient:
    """AWS SQS client for the task queue."""

    def __init__(self, region: str, client: Optional[Any] = None):
        """
        Initialize SQS client.

        Args:
            region: AWS region (e.g., "us-east-1")
            client: Pre-built boto3 SQS client (tests inject a stand-in here)
        """
        self.region = region
        self.client = client if client is not None else boto3.client('sqs', region_name=region)

    def receive(
        self,
        queue_url: str,
        max_messages: int,
        wait_seconds: int,
    ) -> List[Message]:
        """
        Long-poll and return up to max_messages messages.

        Args:
            queue_url: SQS queue URL
            max_messages: Batch size (1-10)
            wait_seconds: Long polling wait time (0-20 seconds)

        Returns:
            List of Message, empty if the wait elapsed with nothing available
        """
        try:
            response = self.client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
                AttributeNames=list(MESSAGE_ATTRIBUTES),
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to receive messages from SQS: {e}") from e

        return [Message.from_sqs(raw, queue_url) for raw in response.get('Messages', [])]

    def delete(self, queue_url: str, receipt_handle: str) -> None:
        """
        Delete a message from the queue.

        Args:
            queue_url: SQS queue URL
            receipt_handle: Receipt handle from received message
        """
        try:
            self.client.delete_message(
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to delete SQS message: {e}") from e

    def change_visibility(
        self,
        queue_url: str,
        receipt_handle: str,
        timeout_seconds: int,
    ) -> None:
        """
        Change the visibility timeout of a message.

        Used to hand a failed message back to the queue after a delay.

        Args:
            queue_url: SQS queue URL
            receipt_handle: Receipt handle from received message
            timeout_seconds: New visibility timeout in seconds (0-43200)
        """
        try:
            self.client.change_message_visibility(
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=timeout_seconds
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to change visibility: {e}") from e

    def send_raw(self, queue_url: str, body: str, subject: Optional[str] = None) -> str:
        """
        Send a raw message to the queue.

        Args:
            queue_url: SQS queue URL
            body: Message body
            subject: Optional subject, wrapped into an SNS-style envelope so
                workers see it in their Subject variable

        Returns:
            The new message ID
        """
        if subject:
            body = json.dumps({"Type": "Notification", "Subject": subject, "Message": body})

        try:
            response = self.client.send_message(QueueUrl=queue_url, MessageBody=body)
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to send SQS message: {e}") from e
        return response.get('MessageId', '')

    def stats(self, queue_url: str) -> Dict[str, int]:
        """Approximate visible / in-flight / delayed counts."""
        try:
            response = self.client.get_queue_attributes(
                QueueUrl=queue_url,
                AttributeNames=[
                    'ApproximateNumberOfMessages',
                    'ApproximateNumberOfMessagesNotVisible',
                    'ApproximateNumberOfMessagesDelayed',
                ],
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to get queue attributes: {e}") from e

        attrs = response.get('Attributes', {})
        return {
            'visible': int(attrs.get('ApproximateNumberOfMessages', 0)),
            'in_flight': int(attrs.get('ApproximateNumberOfMessagesNotVisible', 0)),
            'delayed': int(attrs.get('ApproximateNumberOfMessagesDelayed', 0)),
        }

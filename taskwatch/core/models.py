from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

# Attributes requested on every receive and exposed to workers
MESSAGE_ATTRIBUTES = (
    "SentTimestamp",
    "ApproximateFirstReceiveTimestamp",
    "ApproximateReceiveCount",
)


@dataclass(frozen=True)
class Message:
    id: str
    body: str
    delivery_handle: str  # SQS receipt handle, needed to delete/release
    subject: str = ""
    attributes: Mapping[str, str] = field(default_factory=dict)
    queue_url: str = ""

    @classmethod
    def from_sqs(cls, raw: Dict[str, Any], queue_url: str = "") -> "Message":
        """
        Build a Message from one entry of a ReceiveMessage response.

        SNS notifications delivered to SQS are unwrapped so that `body` is the
        published message and `subject` its subject.
        """
        body = raw.get("Body", "")
        subject = ""

        try:
            envelope = json.loads(body) if body else None
        except (json.JSONDecodeError, ValueError):
            envelope = None

        if (
            isinstance(envelope, dict)
            and envelope.get("Type") == "Notification"
            and "Message" in envelope
        ):
            body = envelope["Message"]
            subject = envelope.get("Subject") or ""

        attrs = raw.get("Attributes", {})
        return cls(
            id=raw["MessageId"],
            body=body,
            delivery_handle=raw["ReceiptHandle"],
            subject=subject,
            attributes={k: str(attrs[k]) for k in MESSAGE_ATTRIBUTES if k in attrs},
            queue_url=queue_url,
        )

    @property
    def receive_count(self) -> int:
        try:
            return int(self.attributes.get("ApproximateReceiveCount", "1"))
        except ValueError:
            return 1

    @property
    def env(self) -> Dict[str, str]:
        """Environment variables handed to the worker process."""
        env = {
            "MessageId": self.id,
            "Subject": self.subject,
            "Message": self.body,
        }
        for key in MESSAGE_ATTRIBUTES:
            if key in self.attributes:
                env[key] = self.attributes[key]
        return env

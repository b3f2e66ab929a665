"""Queue data models."""
import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class EnqueueResult(str, Enum):
    """Outcome of an enqueue call."""

    ACCEPTED = "accepted"
    DEDUPLICATED = "deduplicated"


@dataclass(frozen=True)
class LeaseHandle:
    """Exclusive, time-bounded claim on one delivered message."""

    ordering_key: str
    message_id: str
    receipt: str


@dataclass
class EventMessage:
    """Represents an item in the processing queue."""

    message_id: str  # sortable, assigned at enqueue
    ordering_key: str  # Slack channel id
    dedup_token: str
    body: bytes  # original inbound event body
    enqueued_at: float
    receive_count: int = 0
    receipt: Optional[str] = None
    leased_until: Optional[float] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "ordering_key": self.ordering_key,
            "dedup_token": self.dedup_token,
            "body": base64.b64encode(self.body).decode("ascii"),
            "enqueued_at": self.enqueued_at,
            "receive_count": self.receive_count,
            "receipt": self.receipt,
            "leased_until": self.leased_until,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EventMessage":
        return cls(
            message_id=record["message_id"],
            ordering_key=record["ordering_key"],
            dedup_token=record["dedup_token"],
            body=base64.b64decode(record["body"]),
            enqueued_at=record["enqueued_at"],
            receive_count=record.get("receive_count", 0),
            receipt=record.get("receipt"),
            leased_until=record.get("leased_until"),
        )

    def is_leased(self, now: float) -> bool:
        return self.leased_until is not None and now < self.leased_until

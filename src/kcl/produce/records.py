"""Record and delivery result types."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RecordUnit:
    """One record bound for a topic."""
    topic: str
    value: bytes
    key: Optional[bytes] = None

    @property
    def size(self) -> int:
        return len(self.value) + (len(self.key) if self.key is not None else 0)


@dataclass(frozen=True)
class DeliveryPosition:
    """Where the broker stored a record."""
    topic: str
    partition: int
    offset: int


@dataclass
class DispatchSummary:
    """Totals of a finished run."""
    submitted: int = 0
    delivered: int = 0
    failed: int = 0
    bytes_sent: int = 0

    def to_dict(self) -> dict:
        return {
            "submitted": self.submitted,
            "delivered": self.delivered,
            "failed": self.failed,
            "bytes_sent": self.bytes_sent,
        }

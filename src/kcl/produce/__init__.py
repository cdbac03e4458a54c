"""Record dispatch: pairing, delivery and completion tracking."""

from .barrier import CompletionBarrier
from .client import DeliveryClient, KafkaDeliveryClient
from .coordinator import DispatchCoordinator, DispatchState
from .pipeline import produce, run_produce
from .records import DeliveryPosition, DispatchSummary, RecordUnit

__all__ = [
    "CompletionBarrier",
    "DeliveryClient",
    "KafkaDeliveryClient",
    "DispatchCoordinator",
    "DispatchState",
    "DeliveryPosition",
    "DispatchSummary",
    "RecordUnit",
    "produce",
    "run_produce",
]

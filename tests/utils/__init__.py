"""
Test utilities for kcl.
"""

from .async_helpers import AsyncTestHelper, wait_for_condition, collect
from .mock_helpers import FakeDeliveryClient, FakeProducer, FakeRecordMetadata

__all__ = [
    "AsyncTestHelper",
    "wait_for_condition",
    "collect",
    "FakeDeliveryClient",
    "FakeProducer",
    "FakeRecordMetadata",
]

"""
Test fixtures for kcl.

Provides reusable input payloads and byte sources.
"""

from .streaming_fixtures import (
    StreamingFixtures,
    SlowSource,
    FailingSource,
    StdinPipe,
)

__all__ = [
    "StreamingFixtures",
    "SlowSource",
    "FailingSource",
    "StdinPipe",
]

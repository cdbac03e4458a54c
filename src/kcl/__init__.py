"""
kcl - Kafka command line producer.

This package streams delimited records from standard input or a file and
produces them to a Kafka topic:
- Escape-aware delimiter compilation
- Bounded-memory stream tokenization
- Asynchronous dispatch with a completion barrier
"""

__version__ = "0.1.0"

__all__ = [
    '__version__',
]

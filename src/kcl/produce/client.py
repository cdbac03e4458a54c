"""
Delivery client for kcl.

The coordinator only needs ``submit(unit, on_complete)``; batching,
compression, retries and the broker protocol belong to the Kafka producer.
"""

import asyncio
import functools
from typing import Callable, Optional, Protocol, Any

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from .records import RecordUnit, DeliveryPosition
from ..utils.config import ProducerConfig
from ..utils.errors import ConfigurationError, DeliveryError
from ..utils.logging import get_logger

logger = get_logger("kcl.client")

CompletionCallback = Callable[
    [RecordUnit, Optional[DeliveryPosition], Optional[BaseException]], None
]


class DeliveryClient(Protocol):
    """Asynchronous record delivery.

    ``on_complete`` must be invoked exactly once per submitted unit, with a
    position on success or an error on failure, after ``submit`` returns.
    """

    async def start(self) -> None:
        ...

    async def submit(self, unit: RecordUnit, on_complete: CompletionCallback) -> None:
        ...

    async def close(self, timeout: Optional[float] = None) -> None:
        ...


def compression_type(name: str) -> Optional[str]:
    """Map a compression choice to the producer's ``compression_type``."""
    return None if name == "none" else name


def acks_value(acks: str) -> Any:
    return "all" if acks == "all" else int(acks)


class KafkaDeliveryClient:
    """Delivers records with an ``AIOKafkaProducer``."""

    def __init__(
        self,
        config: ProducerConfig,
        producer_factory: Callable[..., Any] = AIOKafkaProducer
    ):
        """
        Initialize the client. Nothing connects until ``start``.

        Args:
            config: Producer configuration
            producer_factory: Producer constructor, replaceable in tests
        """
        self.config = config
        self._producer_factory = producer_factory
        self._producer = None

    def _producer_kwargs(self) -> dict:
        return {
            "bootstrap_servers": ",".join(self.config.brokers),
            "client_id": self.config.client_id,
            "compression_type": compression_type(self.config.compression),
            "acks": acks_value(self.config.acks),
            "linger_ms": self.config.linger_ms,
            "max_batch_size": self.config.max_batch_size,
            "request_timeout_ms": self.config.request_timeout_ms,
        }

    async def start(self) -> None:
        """Create and connect the producer."""
        if self._producer is not None:
            return

        try:
            producer = self._producer_factory(**self._producer_kwargs())
        except (KafkaError, ValueError) as e:
            raise ConfigurationError(f"unable to load client: {e}", cause=e) from e

        try:
            await producer.start()
        except KafkaError as e:
            await producer.stop()
            raise DeliveryError(e) from e

        self._producer = producer
        logger.info(
            "producer_started",
            brokers=self.config.brokers,
            compression=self.config.compression,
            acks=self.config.acks
        )

    async def submit(self, unit: RecordUnit, on_complete: CompletionCallback) -> None:
        """Queue a record; ``on_complete`` fires when the broker answers."""
        if self._producer is None:
            raise RuntimeError("delivery client is not started")

        future = await self._producer.send(unit.topic, value=unit.value, key=unit.key)
        future.add_done_callback(functools.partial(self._resolve, unit, on_complete))

    @staticmethod
    def _resolve(
        unit: RecordUnit,
        on_complete: CompletionCallback,
        future: "asyncio.Future"
    ) -> None:
        if future.cancelled():
            on_complete(unit, None, asyncio.CancelledError("delivery cancelled"))
            return

        error = future.exception()
        if error is not None:
            on_complete(unit, None, error)
            return

        metadata = future.result()
        on_complete(
            unit,
            DeliveryPosition(
                topic=metadata.topic,
                partition=metadata.partition,
                offset=metadata.offset
            ),
            None
        )

    async def close(self, timeout: Optional[float] = None) -> None:
        """
        Stop the producer, flushing what it still holds.

        Args:
            timeout: Give up after this many seconds and abandon whatever is
                still in flight (None waits for everything)
        """
        producer, self._producer = self._producer, None
        if producer is None:
            return

        try:
            if timeout is None:
                await producer.stop()
            else:
                await asyncio.wait_for(producer.stop(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("producer_stop_timeout", timeout=timeout)
        else:
            logger.info("producer_stopped")


__all__ = [
    'CompletionCallback',
    'DeliveryClient',
    'KafkaDeliveryClient',
    'compression_type',
]

"""
Produce pipeline wiring.

compile delimiter -> open source -> start client -> tokenize and dispatch ->
wait for completions -> close client.
"""

from pathlib import Path
from typing import Optional, TextIO, Union

from .client import DeliveryClient, KafkaDeliveryClient
from .coordinator import DispatchCoordinator
from .records import DispatchSummary
from ..streaming.delimiter import compile_delimiter
from ..streaming.source import open_source
from ..streaming.tokenizer import ByteSource, DelimitedTokenizer
from ..utils.config import KclConfig, ProduceConfig
from ..utils.errors import error_context
from ..utils.logging import get_logger

logger = get_logger("kcl.pipeline")


async def produce(
    topic: str,
    source: ByteSource,
    client: DeliveryClient,
    delimiter: bytes,
    settings: ProduceConfig,
    out: Optional[TextIO] = None
) -> DispatchSummary:
    """
    Tokenize ``source`` and deliver every record to ``topic``.

    The client must already be started; closing it is left to the caller.
    """
    tokenizer = DelimitedTokenizer(
        source,
        delimiter,
        max_token_size=settings.max_read_buf,
        read_size=settings.read_size
    )
    coordinator = DispatchCoordinator(
        topic,
        client,
        keyed=settings.keyed,
        verbose=settings.verbose,
        out=out
    )

    with error_context("produce", "dispatch", topic=topic, keyed=settings.keyed):
        summary = await coordinator.run(tokenizer)

    logger.debug("tokenizer_stats", **tokenizer.get_stats())
    return summary


async def run_produce(
    topic: str,
    config: KclConfig,
    input_path: Optional[Union[str, Path]] = None,
    client: Optional[DeliveryClient] = None,
    out: Optional[TextIO] = None
) -> DispatchSummary:
    """
    Run one produce command end to end.

    Configuration problems surface before any input is read. On a fatal
    error the client gets ``producer.shutdown_timeout`` seconds to close;
    deliveries still in flight after that are abandoned.

    Args:
        topic: Destination topic
        config: Loaded configuration
        input_path: File to read, or None / "-" for stdin
        client: Delivery client (a Kafka client from ``config`` by default)
        out: Stream for verbose success lines
    """
    with error_context("produce", "compile_delimiter"):
        delimiter = compile_delimiter(config.produce.active_delimiter)

    if client is None:
        client = KafkaDeliveryClient(config.producer)

    async with open_source(input_path) as source:
        await client.start()
        clean = False
        try:
            summary = await produce(topic, source, client, delimiter, config.produce, out)
            clean = True
        finally:
            await client.close(None if clean else config.producer.shutdown_timeout)

    return summary


__all__ = ['produce', 'run_produce']

"""
Tests for the Kafka delivery client.
"""

import asyncio

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaTimeoutError

from kcl.produce.client import KafkaDeliveryClient, acks_value, compression_type
from kcl.produce.records import DeliveryPosition, RecordUnit
from kcl.utils.config import ProducerConfig
from kcl.utils.errors import ConfigurationError, DeliveryError
from tests.utils.mock_helpers import FakeProducer, FakeRecordMetadata


class ProducerFactory:
    """Producer factory remembering the producer it built."""

    def __init__(self, start_error=None, stop_delay=0, build_error=None):
        self.start_error = start_error
        self.stop_delay = stop_delay
        self.build_error = build_error
        self.producer = None

    def __call__(self, **kwargs):
        if self.build_error is not None:
            raise self.build_error
        self.producer = FakeProducer(**kwargs)
        self.producer.start_error = self.start_error
        self.producer.stop_delay = self.stop_delay
        return self.producer


class Completions:
    """Collects completion callback invocations."""

    def __init__(self):
        self.calls = []

    def __call__(self, unit, position, error):
        self.calls.append((unit, position, error))


class TestProducerSettings:
    """Test configuration is mapped onto the producer."""

    def test_compression_names(self):
        """Test compression choices map to producer codecs."""
        assert compression_type("none") is None
        assert compression_type("snappy") == "snappy"
        assert compression_type("zstd") == "zstd"

    def test_acks(self):
        """Test acks keeps 'all' and converts numbers."""
        assert acks_value("all") == "all"
        assert acks_value("1") == 1
        assert acks_value("0") == 0

    @pytest.mark.asyncio
    async def test_producer_kwargs(self, producer_config):
        """Test the producer is built from the configuration."""
        factory = ProducerFactory()
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)

        await client.start()

        kwargs = factory.producer.kwargs
        assert kwargs["bootstrap_servers"] == "broker-1:9092,broker-2:9092"
        assert kwargs["client_id"] == "kcl-test"
        assert kwargs["compression_type"] == "snappy"
        assert kwargs["acks"] == "all"
        assert factory.producer.started

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, producer_config):
        """Test a second start keeps the first producer."""
        factory = ProducerFactory()
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)

        await client.start()
        first = factory.producer
        await client.start()

        assert factory.producer is first


class TestStartFailures:
    """Test client construction and connection errors."""

    @pytest.mark.asyncio
    async def test_invalid_settings(self, producer_config):
        """Test a producer that cannot be built is a configuration error."""
        factory = ProducerFactory(build_error=ValueError("bad compression"))
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)

        with pytest.raises(ConfigurationError) as exc_info:
            await client.start()

        assert exc_info.value.message == "unable to load client: bad compression"

    @pytest.mark.asyncio
    async def test_connection_failure(self, producer_config):
        """Test an unreachable cluster is a delivery error and the producer is stopped."""
        factory = ProducerFactory(start_error=KafkaConnectionError("no brokers"))
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)

        with pytest.raises(DeliveryError) as exc_info:
            await client.start()

        assert "unable to produce record" in exc_info.value.message
        assert factory.producer.stopped

    @pytest.mark.asyncio
    async def test_submit_before_start(self, producer_config):
        """Test submitting without a producer is a programming error."""
        client = KafkaDeliveryClient(producer_config, producer_factory=ProducerFactory())

        with pytest.raises(RuntimeError):
            await client.submit(RecordUnit("t", b"v"), Completions())


class TestSubmit:
    """Test submissions and completion callbacks."""

    @pytest.mark.asyncio
    async def test_success(self, producer_config):
        """Test a delivered record reports its position."""
        factory = ProducerFactory()
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)
        completions = Completions()
        unit = RecordUnit("t", b"value", key=b"key")

        await client.start()
        await client.submit(unit, completions)

        assert factory.producer.sent == [{"topic": "t", "value": b"value", "key": b"key"}]
        assert completions.calls == []

        factory.producer.futures[0].set_result(FakeRecordMetadata("t", 3, 42))
        await asyncio.sleep(0)

        assert completions.calls == [(unit, DeliveryPosition("t", 3, 42), None)]

    @pytest.mark.asyncio
    async def test_failure(self, producer_config):
        """Test a failed delivery reports the error."""
        factory = ProducerFactory()
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)
        completions = Completions()
        error = KafkaTimeoutError()

        await client.start()
        await client.submit(RecordUnit("t", b"v"), completions)
        factory.producer.futures[0].set_exception(error)
        await asyncio.sleep(0)

        (_, position, reported), = completions.calls
        assert position is None
        assert reported is error

    @pytest.mark.asyncio
    async def test_cancelled(self, producer_config):
        """Test a cancelled delivery still completes, as a failure."""
        factory = ProducerFactory()
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)
        completions = Completions()

        await client.start()
        await client.submit(RecordUnit("t", b"v"), completions)
        factory.producer.futures[0].cancel()
        await asyncio.sleep(0)

        (_, position, reported), = completions.calls
        assert position is None
        assert isinstance(reported, asyncio.CancelledError)

    @pytest.mark.asyncio
    async def test_one_completion_per_submission(self, producer_config):
        """Test completions resolved in any order each fire once."""
        factory = ProducerFactory()
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)
        completions = Completions()

        await client.start()
        for value in (b"a", b"b", b"c"):
            await client.submit(RecordUnit("t", value), completions)

        for index in (2, 0, 1):
            factory.producer.futures[index].set_result(FakeRecordMetadata("t", 0, index))
        await asyncio.sleep(0)

        assert [call[1].offset for call in completions.calls] == [2, 0, 1]


class TestClose:
    """Test shutting the producer down."""

    @pytest.mark.asyncio
    async def test_close_waits(self, producer_config):
        """Test an unbounded close stops the producer."""
        factory = ProducerFactory(stop_delay=0.01)
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)

        await client.start()
        await client.close()

        assert factory.producer.stopped

    @pytest.mark.asyncio
    async def test_close_timeout_abandons(self, producer_config):
        """Test a bounded close gives up on a slow producer."""
        factory = ProducerFactory(stop_delay=5)
        client = KafkaDeliveryClient(producer_config, producer_factory=factory)

        await client.start()
        await asyncio.wait_for(client.close(timeout=0.01), timeout=1)

        assert not factory.producer.stopped

    @pytest.mark.asyncio
    async def test_close_twice(self, producer_config):
        """Test closing an already closed client is a no-op."""
        client = KafkaDeliveryClient(producer_config, producer_factory=ProducerFactory())

        await client.close()
        await client.start()
        await client.close()
        await client.close()

"""
Dispatch coordinator for kcl.

Pairs tokens into records, hands each record to the delivery client without
waiting for it, and tracks completions:
- Key/value pairing or value-only records
- Completion barrier incremented before every submission
- Fail-fast on the first failed delivery
- Per-record success lines in completion order when verbose
"""

import asyncio
import sys
import threading
from enum import Enum
from typing import AsyncIterable, Optional, TextIO

from .barrier import CompletionBarrier
from .client import DeliveryClient
from .records import RecordUnit, DeliveryPosition, DispatchSummary
from ..utils.errors import DeliveryError, KclError, ReportError, TruncatedPairError
from ..utils.logging import get_logger

logger = get_logger("kcl.coordinator")


class DispatchState(Enum):
    """Coordinator state."""
    AWAITING_KEY = "awaiting_key"
    AWAITING_VALUE = "awaiting_value"
    DISPATCHED = "dispatched"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"


class DispatchCoordinator:
    """Turns a token stream into submitted records."""

    def __init__(
        self,
        topic: str,
        client: DeliveryClient,
        keyed: bool = False,
        verbose: bool = False,
        out: Optional[TextIO] = None,
        barrier: Optional[CompletionBarrier] = None
    ):
        """
        Initialize coordinator.

        Args:
            topic: Destination topic for every record
            client: Delivery client records are submitted to
            keyed: Pair consecutive tokens as key and value
            verbose: Report each successful delivery on ``out``
            out: Stream for success lines (defaults to stdout)
            barrier: Completion barrier (a fresh one by default)
        """
        self.topic = topic
        self.client = client
        self.keyed = keyed
        self.verbose = verbose
        self.out = out
        self.barrier = barrier or CompletionBarrier()

        self.state = self._initial_state
        self.summary = DispatchSummary()

        self._lock = threading.Lock()
        self._first_failure: Optional[KclError] = None
        self._failed: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def _initial_state(self) -> DispatchState:
        return DispatchState.AWAITING_KEY if self.keyed else DispatchState.AWAITING_VALUE

    @property
    def first_failure(self) -> Optional[KclError]:
        with self._lock:
            return self._first_failure

    async def run(self, tokens: AsyncIterable[bytes]) -> DispatchSummary:
        """
        Dispatch every record in ``tokens`` and wait for all completions.

        Returns:
            Run totals once every submitted record is acknowledged

        Raises:
            TruncatedPairError: Keyed input ended after a key
            DeliveryError: A submission or delivery failed
            ReportError: A verbose delivery report could not be written
        """
        self._loop = asyncio.get_running_loop()
        self._failed = self._loop.create_future()
        self.state = self._initial_state

        driver = asyncio.ensure_future(self._drive(tokens))
        try:
            await asyncio.wait({driver, self._failed}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            driver.cancel()
            raise

        if self._failed.done():
            driver.cancel()
            try:
                await driver
            except asyncio.CancelledError:
                pass
            except Exception as e:
                # The delivery failure is reported; this one is secondary
                logger.debug("driver_error_after_failure", error=str(e))
            self.state = DispatchState.FAILED
            raise self._failed.result()

        try:
            driver.result()
        except BaseException:
            self.state = DispatchState.FAILED
            raise

        self.state = DispatchState.COMPLETED
        logger.info("dispatch_completed", **self.summary.to_dict())
        return self.summary

    async def _drive(self, tokens: AsyncIterable[bytes]) -> None:
        key: Optional[bytes] = None

        async for token in tokens:
            if self.state is DispatchState.AWAITING_KEY:
                key = token
                self.state = DispatchState.AWAITING_VALUE
                continue

            unit = RecordUnit(topic=self.topic, key=key, value=token)
            key = None
            await self._dispatch(unit)
            self.state = self._initial_state

        if self.keyed and self.state is DispatchState.AWAITING_VALUE:
            raise TruncatedPairError(key or b"")

        self.state = DispatchState.DRAINING
        logger.debug("draining", pending=self.barrier.pending)
        await self.barrier.wait()

    async def _dispatch(self, unit: RecordUnit) -> None:
        self.state = DispatchState.DISPATCHED
        self.barrier.add()
        try:
            await self.client.submit(unit, self._on_complete)
        except Exception as e:
            self.barrier.done()
            logger.warning("submit_failed", topic=unit.topic, error=str(e))
            raise DeliveryError(e, topic=unit.topic) from e

        with self._lock:
            self.summary.submitted += 1
            self.summary.bytes_sent += unit.size

    def _on_complete(
        self,
        unit: RecordUnit,
        position: Optional[DeliveryPosition],
        error: Optional[BaseException]
    ) -> None:
        """Completion callback; may run on any thread."""
        try:
            if error is None:
                with self._lock:
                    self.summary.delivered += 1
                self._report_success(unit, position)
            else:
                with self._lock:
                    self.summary.failed += 1
                logger.warning("delivery_failed", topic=unit.topic, error=str(error))
                self._latch(DeliveryError(error, topic=unit.topic))
        finally:
            self.barrier.done()

    def _report_success(self, unit: RecordUnit, position: Optional[DeliveryPosition]) -> None:
        if position is None:
            position = DeliveryPosition(unit.topic, -1, -1)
        logger.debug(
            "record_delivered",
            topic=position.topic,
            partition=position.partition,
            offset=position.offset
        )
        if not self.verbose:
            return

        out = self.out or sys.stdout
        try:
            out.write(
                f"Successful send to topic {position.topic} "
                f"partition {position.partition} offset {position.offset}\n"
            )
            out.flush()
        except OSError as e:
            logger.warning("report_write_failed", error=str(e))
            self._latch(ReportError(f"unable to write delivery report: {e}", cause=e))

    def _latch(self, failure: KclError) -> None:
        """Keep the first failure and wake ``run``; later ones are dropped."""
        with self._lock:
            if self._first_failure is not None:
                logger.warning("failure_after_first", error=failure.message)
                return
            self._first_failure = failure

        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._fail(failure)
        else:
            loop.call_soon_threadsafe(self._fail, failure)

    def _fail(self, failure: KclError) -> None:
        if self._failed is not None and not self._failed.done():
            self._failed.set_result(failure)


__all__ = ['DispatchCoordinator', 'DispatchState']

"""
Async testing helpers.
"""

import asyncio
from typing import AsyncIterable, Callable, List, TypeVar

T = TypeVar('T')


class AsyncTestHelper:
    """Helper class for async testing."""

    @staticmethod
    async def wait_for_condition(
        condition: Callable[[], bool],
        timeout: float = 5.0,
        interval: float = 0.01
    ) -> bool:
        """Wait for a condition to become true."""
        loop = asyncio.get_running_loop()
        start = loop.time()

        while loop.time() - start < timeout:
            if condition():
                return True
            await asyncio.sleep(interval)

        return condition()

    @staticmethod
    async def collect(items: AsyncIterable[T]) -> List[T]:
        """Drain an async iterable into a list."""
        return [item async for item in items]


wait_for_condition = AsyncTestHelper.wait_for_condition
collect = AsyncTestHelper.collect

"""
Bulkheads for one adapter instance.

``Bulkhead`` is a counting semaphore that makes callers wait up to the
policy's max wait for a slot. ``ThreadPoolBulkhead`` offloads work onto a
bounded worker pool with a bounded backlog and rejects immediately once
both are full.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TypeVar

import structlog

from ..exceptions import BulkheadFullError
from ..models.events import BulkheadEvent, BulkheadEventType
from ..models.policies import BulkheadPolicy, PolicyKey, ThreadPoolBulkheadPolicy
from ..models.status import BulkheadMetrics, ThreadPoolBulkheadMetrics

logger = structlog.get_logger()

T = TypeVar("T")

BulkheadListener = Callable[[BulkheadEvent], None]


class _EventPublisher:
    """Fan-out of bulkhead events to listeners."""

    def __init__(self, name: str, thread_pool: bool) -> None:
        self.name = name
        self.thread_pool = thread_pool
        self._listeners: list[BulkheadListener] = []

    def add_listener(self, listener: BulkheadListener) -> None:
        self._listeners.append(listener)

    def publish(self, event_type: BulkheadEventType) -> None:
        event = BulkheadEvent(name=self.name, event_type=event_type, thread_pool=self.thread_pool)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "bulkhead_listener_failed",
                    bulkhead=self.name,
                    event_type=event_type.value,
                )


class Bulkhead:
    """Semaphore bulkhead bound to one (adapter_type, adapter_id) pair."""

    def __init__(self, key: PolicyKey, policy: BulkheadPolicy) -> None:
        """
        Initialize semaphore bulkhead.

        Args:
            key: Adapter the bulkhead is bound to
            policy: Resolved bulkhead tuning
        """
        self.key = key
        self.policy = policy
        self._condition = threading.Condition()
        self._in_flight = 0
        self._async_waiters: deque[tuple[asyncio.AbstractEventLoop, asyncio.Future[None]]] = (
            deque()
        )
        self._events = _EventPublisher(key.name, thread_pool=False)

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def available_concurrent_calls(self) -> int:
        with self._condition:
            return self.policy.max_concurrent_calls - self._in_flight

    def add_listener(self, listener: BulkheadListener) -> None:
        """Register a callback receiving every bulkhead event."""
        self._events.add_listener(listener)

    def call(self, operation: Callable[[], T]) -> T:
        """
        Execute an operation in a slot, waiting up to the max wait for one.

        Args:
            operation: Zero-argument callable

        Returns:
            Operation result

        Raises:
            BulkheadFullError: If no slot frees up in time
        """
        self._admit(self._acquire(self.policy.max_wait_seconds))
        try:
            return operation()
        finally:
            self._release()

    async def call_async(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Await an operation in a slot.

        Waiting for a slot suspends only the awaiting coroutine. A waiter that
        is cancelled or times out never holds a slot afterwards.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            Operation result

        Raises:
            BulkheadFullError: If no slot frees up in time
        """
        self._admit(await self._acquire_async(self.policy.max_wait_seconds))
        try:
            return await operation()
        finally:
            self._release()

    def get_metrics(self) -> BulkheadMetrics:
        return BulkheadMetrics(
            adapter_type=self.key.adapter_type,
            adapter_id=self.key.adapter_id,
            available_concurrent_calls=self.available_concurrent_calls,
            max_allowed_concurrent_calls=self.policy.max_concurrent_calls,
        )

    def _try_take_slot(self) -> bool:
        # Caller holds self._condition
        if self._in_flight < self.policy.max_concurrent_calls:
            self._in_flight += 1
            return True
        return False

    def _acquire(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        with self._condition:
            while not self._try_take_slot():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(remaining)
        return True

    async def _acquire_async(self, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        with self._condition:
            if self._try_take_slot():
                return True
            if timeout <= 0:
                return False
            waiter: asyncio.Future[None] = loop.create_future()
            self._async_waiters.append((loop, waiter))

        try:
            await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            # A slot handed over while the timeout fired is kept
            return waiter.done() and not waiter.cancelled()
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self._free_slot()
            raise
        finally:
            with self._condition:
                if (loop, waiter) in self._async_waiters:
                    self._async_waiters.remove((loop, waiter))
        return True

    def _grant(self, waiter: asyncio.Future[None]) -> None:
        # Runs on the waiter's loop; a waiter gone in the meantime passes the slot on
        if waiter.done():
            self._free_slot()
        else:
            waiter.set_result(None)

    def _free_slot(self) -> None:
        with self._condition:
            while self._async_waiters:
                loop, waiter = self._async_waiters.popleft()
                if waiter.done():
                    continue
                try:
                    loop.call_soon_threadsafe(self._grant, waiter)
                except RuntimeError:
                    # Waiter's loop is closed
                    continue
                return
            self._in_flight -= 1
            self._condition.notify()

    def _admit(self, acquired: bool) -> None:
        if not acquired:
            logger.warning(
                "bulkhead_call_rejected",
                bulkhead=self.name,
                max_concurrent_calls=self.policy.max_concurrent_calls,
                max_wait_seconds=self.policy.max_wait_seconds,
            )
            self._events.publish(BulkheadEventType.REJECTED)
            raise BulkheadFullError(
                name=self.name,
                max_concurrent_calls=self.policy.max_concurrent_calls,
                max_wait_seconds=self.policy.max_wait_seconds,
                adapter_type=self.key.adapter_type,
                adapter_id=self.key.adapter_id,
            )

        self._events.publish(BulkheadEventType.PERMITTED)

    def _release(self) -> None:
        self._free_slot()
        self._events.publish(BulkheadEventType.FINISHED)


class ThreadPoolBulkhead:
    """
    Thread-pool bulkhead bound to one (adapter_type, adapter_id) pair.

    At most ``max_thread_pool_size`` tasks run at once and at most
    ``queue_capacity`` more wait for a worker. Submissions beyond that are
    rejected without blocking the caller.
    """

    def __init__(self, key: PolicyKey, policy: ThreadPoolBulkheadPolicy) -> None:
        """
        Initialize thread-pool bulkhead.

        Args:
            key: Adapter the bulkhead is bound to
            policy: Resolved thread-pool tuning
        """
        self.key = key
        self.policy = policy
        self._executor = ThreadPoolExecutor(
            max_workers=policy.max_thread_pool_size,
            thread_name_prefix=f"bulkhead-{key.name}",
        )
        self._capacity = policy.max_thread_pool_size + policy.queue_capacity
        self._lock = threading.Lock()
        self._active = 0
        self._queued = 0
        self._events = _EventPublisher(key.name, thread_pool=True)

    @property
    def name(self) -> str:
        return self.key.name

    def add_listener(self, listener: BulkheadListener) -> None:
        """Register a callback receiving every bulkhead event."""
        self._events.add_listener(listener)

    def submit(self, operation: Callable[[], T]) -> Future[T]:
        """
        Schedule an operation on the pool.

        Args:
            operation: Zero-argument callable

        Returns:
            Future resolving to the operation result

        Raises:
            BulkheadFullError: If every worker is busy and the backlog is full
        """
        with self._lock:
            admitted = self._active + self._queued < self._capacity
            if admitted:
                self._queued += 1

        if not admitted:
            logger.warning(
                "thread_pool_bulkhead_call_rejected",
                bulkhead=self.name,
                max_thread_pool_size=self.policy.max_thread_pool_size,
                queue_capacity=self.policy.queue_capacity,
            )
            self._events.publish(BulkheadEventType.REJECTED)
            raise BulkheadFullError(
                name=self.name,
                max_concurrent_calls=self._capacity,
                adapter_type=self.key.adapter_type,
                adapter_id=self.key.adapter_id,
            )

        try:
            future = self._executor.submit(self._run, operation)
        except RuntimeError:
            # Pool already shut down
            with self._lock:
                self._queued -= 1
            raise

        future.add_done_callback(self._on_done)
        self._events.publish(BulkheadEventType.PERMITTED)
        return future

    def _on_done(self, future: Future[T]) -> None:
        # A cancelled future never reached _run, so it still holds a queue place
        if future.cancelled():
            with self._lock:
                self._queued -= 1
            self._events.publish(BulkheadEventType.FINISHED)

    def _run(self, operation: Callable[[], T]) -> T:
        with self._lock:
            self._queued -= 1
            self._active += 1
        try:
            return operation()
        finally:
            with self._lock:
                self._active -= 1
            self._events.publish(BulkheadEventType.FINISHED)

    def get_metrics(self) -> ThreadPoolBulkheadMetrics:
        with self._lock:
            active = self._active
            queued = self._queued

        return ThreadPoolBulkheadMetrics(
            adapter_type=self.key.adapter_type,
            adapter_id=self.key.adapter_id,
            core_thread_pool_size=self.policy.core_thread_pool_size,
            max_thread_pool_size=self.policy.max_thread_pool_size,
            active_thread_count=active,
            queue_depth=queued,
            queue_capacity=self.policy.queue_capacity,
            remaining_queue_capacity=max(0, self.policy.queue_capacity - queued),
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release the pool's threads."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

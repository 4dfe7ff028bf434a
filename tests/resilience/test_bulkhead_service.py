"""Tests for semaphore and thread-pool bulkheads."""

import asyncio
import threading
import time
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor

import pytest

from integrix.resilience.exceptions import BulkheadFullError
from integrix.resilience.models.policies import AdapterCategory, BulkheadPolicy, PolicyKey
from integrix.resilience.services.bulkhead import Bulkhead
from integrix.resilience.services.bulkhead_service import BulkheadService
from integrix.resilience.services.metrics_collector import ResilienceMetrics

WAIT = 5.0


class Gate:
    """Blocks operations until opened, counting how many have entered."""

    def __init__(self) -> None:
        self.opened = threading.Event()
        self._entered = threading.Semaphore(0)

    def operation(self) -> str:
        self._entered.release()
        assert self.opened.wait(WAIT)
        return "done"

    def wait_entered(self, count: int) -> None:
        for _ in range(count):
            assert self._entered.acquire(timeout=WAIT)


@pytest.fixture
def gate() -> Generator[Gate, None, None]:
    gate = Gate()
    yield gate
    gate.opened.set()


@pytest.fixture
def callers() -> Generator[ThreadPoolExecutor, None, None]:
    executor = ThreadPoolExecutor(max_workers=4)
    yield executor
    executor.shutdown(wait=True)


class TestSemaphoreBulkhead:
    """Concurrency limits on the calling thread."""

    def test_rejects_when_slots_taken(
        self,
        bulkhead_service: BulkheadService,
        gate: Gate,
        callers: ThreadPoolExecutor,
        metrics: ResilienceMetrics,
    ) -> None:
        """Test a third call is rejected while two hold the default bucket's slots."""
        running = [
            callers.submit(
                bulkhead_service.execute_with_bulkhead, "unknown", "x", gate.operation
            )
            for _ in range(2)
        ]
        gate.wait_entered(2)

        invoked = False

        def third() -> str:
            nonlocal invoked
            invoked = True
            return "third"

        with pytest.raises(BulkheadFullError) as exc_info:
            bulkhead_service.execute_with_bulkhead("unknown", "x", third)

        assert invoked is False
        assert exc_info.value.rejected is True
        assert exc_info.value.max_concurrent_calls == 2
        assert not bulkhead_service.has_available_capacity("unknown", "x")
        assert bulkhead_service.get_utilization_percentage("unknown", "x") == 100.0

        gate.opened.set()
        assert [f.result(timeout=WAIT) for f in running] == ["done", "done"]
        assert bulkhead_service.has_available_capacity("unknown", "x")
        assert bulkhead_service.get_metrics("unknown", "x").available_concurrent_calls == 2

        labels = {"adapter_type": "unknown", "adapter_id": "x"}
        registry = metrics.registry
        assert (
            registry.get_sample_value("integrix_bulkhead_calls_total", {**labels, "result": "rejected"})
            == 1.0
        )
        assert (
            registry.get_sample_value("integrix_bulkhead_calls_total", {**labels, "result": "finished"})
            == 2.0
        )

    def test_utilization_with_one_call_in_flight(
        self,
        bulkhead_service: BulkheadService,
        gate: Gate,
        callers: ThreadPoolExecutor,
    ) -> None:
        running = callers.submit(
            bulkhead_service.execute_with_bulkhead, "unknown", "x", gate.operation
        )
        gate.wait_entered(1)

        assert bulkhead_service.get_utilization_percentage("unknown", "x") == 50.0
        assert bulkhead_service.has_available_capacity("unknown", "x")

        gate.opened.set()
        running.result(timeout=WAIT)
        assert bulkhead_service.get_utilization_percentage("unknown", "x") == 0.0

    def test_fallback_when_full(
        self,
        bulkhead_service: BulkheadService,
        gate: Gate,
        callers: ThreadPoolExecutor,
    ) -> None:
        """Test the fallback serves calls the bulkhead rejects."""
        for _ in range(2):
            callers.submit(bulkhead_service.execute_with_bulkhead, "unknown", "x", gate.operation)
        gate.wait_entered(2)

        result = bulkhead_service.execute_with_fallback(
            "unknown", "x", lambda: "live", lambda: "queued for later"
        )

        assert result == "queued for later"

    def test_fallback_not_used_for_operation_errors(
        self,
        bulkhead_service: BulkheadService,
    ) -> None:
        def failing() -> str:
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError):
            bulkhead_service.execute_with_fallback("unknown", "x", failing, lambda: "fallback")

        assert bulkhead_service.get_metrics("unknown", "x").available_concurrent_calls == 2

    def test_slot_released_after_error(self, bulkhead_service: BulkheadService) -> None:
        def failing() -> str:
            raise RuntimeError("boom")

        for _ in range(5):
            with pytest.raises(RuntimeError):
                bulkhead_service.execute_with_bulkhead("unknown", "x", failing)

        assert bulkhead_service.has_available_capacity("unknown", "x")

    def test_policy_tuning_per_adapter_type(self, bulkhead_service: BulkheadService) -> None:
        """Test each adapter type gets its own bucket's slot count."""
        assert bulkhead_service.get_metrics("http", "svc-A").max_allowed_concurrent_calls == 50
        assert bulkhead_service.get_metrics("sap", "erp-1").max_allowed_concurrent_calls == 3
        assert set(bulkhead_service.get_all_metrics()) == {"http-svc-A", "sap-erp-1"}

    @pytest.mark.asyncio
    async def test_execute_coroutine(self, bulkhead_service: BulkheadService) -> None:
        async def operation() -> str:
            assert bulkhead_service.get_utilization_percentage("unknown", "x") == 50.0
            return "awaited"

        assert await bulkhead_service.execute_coroutine("unknown", "x", operation) == "awaited"
        assert bulkhead_service.get_utilization_percentage("unknown", "x") == 0.0


class TestThreadPoolBulkhead:
    """Offloaded execution with a bounded backlog."""

    def test_execute_async_returns_future(self, bulkhead_service: BulkheadService) -> None:
        future = bulkhead_service.execute_async("unknown", "x", lambda: 21 * 2)

        assert future.result(timeout=WAIT) == 42

    def test_rejects_when_pool_and_queue_full(
        self,
        bulkhead_service: BulkheadService,
        gate: Gate,
        metrics: ResilienceMetrics,
    ) -> None:
        """Test two workers plus one queued task fill the default pool."""
        futures = [bulkhead_service.execute_async("unknown", "x", gate.operation) for _ in range(3)]
        gate.wait_entered(2)

        snapshot = bulkhead_service.get_thread_pool_metrics("unknown", "x")
        assert snapshot.active_thread_count + snapshot.queue_depth == 3
        assert snapshot.max_thread_pool_size == 2
        assert snapshot.queue_capacity == 1

        with pytest.raises(BulkheadFullError) as exc_info:
            bulkhead_service.execute_async("unknown", "x", lambda: "overflow")
        assert exc_info.value.max_concurrent_calls == 3

        gate.opened.set()
        assert [f.result(timeout=WAIT) for f in futures] == ["done", "done", "done"]

        final = bulkhead_service.get_thread_pool_metrics("unknown", "x")
        assert final.active_thread_count == 0
        assert final.queue_depth == 0
        assert final.remaining_queue_capacity == 1
        assert (
            metrics.registry.get_sample_value(
                "integrix_thread_pool_bulkhead_calls_total",
                {"adapter_type": "unknown", "adapter_id": "x", "result": "rejected"},
            )
            == 1.0
        )

    def test_operation_error_surfaces_through_future(
        self,
        bulkhead_service: BulkheadService,
    ) -> None:
        def failing() -> str:
            raise TimeoutError("slow")

        future = bulkhead_service.execute_async("unknown", "x", failing)

        with pytest.raises(TimeoutError):
            future.result(timeout=WAIT)

    def test_shutdown_drops_pools(self, policies) -> None:
        service = BulkheadService(policies)
        assert service.execute_async("unknown", "x", lambda: "ok").result(timeout=WAIT) == "ok"
        assert set(service.get_all_thread_pool_metrics()) == {"unknown-x"}

        service.shutdown(wait=True)

        assert service.get_all_thread_pool_metrics() == {}

    def test_thread_pool_policy_per_type(self, bulkhead_service: BulkheadService) -> None:
        policy = bulkhead_service.get_thread_pool_policy("ftp")

        assert policy.core_thread_pool_size == 2
        assert policy.max_thread_pool_size == 5
        assert policy.queue_capacity == 20


def make_bulkhead(max_concurrent_calls: int = 1, max_wait_seconds: float = 5.0) -> Bulkhead:
    policy = BulkheadPolicy(
        category=AdapterCategory.DEFAULT,
        max_concurrent_calls=max_concurrent_calls,
        max_wait_seconds=max_wait_seconds,
    )
    return Bulkhead(PolicyKey(adapter_type="sap-like", adapter_id="erp-1"), policy)


class TestWaitingForSlot:
    """Callers beyond the limit wait up to the max wait."""

    def test_waiter_rejected_after_max_wait(
        self,
        gate: Gate,
        callers: ThreadPoolExecutor,
    ) -> None:
        bulkhead = make_bulkhead(max_wait_seconds=0.1)
        holder = callers.submit(bulkhead.call, gate.operation)
        gate.wait_entered(1)

        started = time.monotonic()
        with pytest.raises(BulkheadFullError):
            bulkhead.call(lambda: "late")

        assert time.monotonic() - started >= 0.09
        gate.opened.set()
        assert holder.result(timeout=WAIT) == "done"
        assert bulkhead.available_concurrent_calls == 1

    def test_waiter_takes_slot_freed_during_wait(
        self,
        gate: Gate,
        callers: ThreadPoolExecutor,
    ) -> None:
        bulkhead = make_bulkhead()
        holder = callers.submit(bulkhead.call, gate.operation)
        gate.wait_entered(1)

        waiter = callers.submit(bulkhead.call, lambda: "waited")
        time.sleep(0.05)
        assert not waiter.done()

        gate.opened.set()

        assert holder.result(timeout=WAIT) == "done"
        assert waiter.result(timeout=WAIT) == "waited"
        assert bulkhead.available_concurrent_calls == 1

    @pytest.mark.asyncio
    async def test_coroutine_rejected_after_max_wait(self) -> None:
        bulkhead = make_bulkhead(max_wait_seconds=0.05)
        release = asyncio.Event()
        entered = asyncio.Event()

        async def hold() -> str:
            entered.set()
            await release.wait()
            return "held"

        async def late() -> str:
            return "late"

        holder = asyncio.create_task(bulkhead.call_async(hold))
        await entered.wait()

        with pytest.raises(BulkheadFullError):
            await bulkhead.call_async(late)

        release.set()
        assert await holder == "held"
        assert bulkhead.available_concurrent_calls == 1

    @pytest.mark.asyncio
    async def test_coroutine_takes_slot_freed_during_wait(self) -> None:
        bulkhead = make_bulkhead()
        release = asyncio.Event()
        entered = asyncio.Event()

        async def hold() -> str:
            entered.set()
            await release.wait()
            return "held"

        async def waited() -> str:
            return "waited"

        holder = asyncio.create_task(bulkhead.call_async(hold))
        await entered.wait()
        waiter = asyncio.create_task(bulkhead.call_async(waited))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        release.set()

        assert await holder == "held"
        assert await asyncio.wait_for(waiter, WAIT) == "waited"
        assert bulkhead.available_concurrent_calls == 1

    @pytest.mark.asyncio
    async def test_slot_freed_by_thread_wakes_coroutine(
        self,
        gate: Gate,
        callers: ThreadPoolExecutor,
    ) -> None:
        """Test a blocking caller finishing on another thread hands its slot to a coroutine."""
        bulkhead = make_bulkhead()
        holder = callers.submit(bulkhead.call, gate.operation)
        gate.wait_entered(1)

        async def waited() -> str:
            return "waited"

        waiter = asyncio.create_task(bulkhead.call_async(waited))
        await asyncio.sleep(0.01)
        gate.opened.set()

        assert await asyncio.wait_for(waiter, WAIT) == "waited"
        assert holder.result(timeout=WAIT) == "done"
        assert bulkhead.available_concurrent_calls == 1


class TestCancelledWaiters:
    """Cancelled callers never keep capacity."""

    @pytest.mark.asyncio
    async def test_cancelled_coroutine_does_not_keep_slot(self) -> None:
        bulkhead = make_bulkhead(max_concurrent_calls=3, max_wait_seconds=60.0)
        release = asyncio.Event()
        entered = asyncio.Semaphore(0)

        async def hold() -> str:
            entered.release()
            await release.wait()
            return "held"

        async def quick() -> str:
            return "quick"

        holders = [asyncio.create_task(bulkhead.call_async(hold)) for _ in range(3)]
        for _ in range(3):
            await entered.acquire()

        waiter = asyncio.create_task(bulkhead.call_async(quick))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        assert await asyncio.gather(*holders) == ["held", "held", "held"]
        assert bulkhead.available_concurrent_calls == 3

        # Every reported slot is really free
        results = await asyncio.gather(*(bulkhead.call_async(hold) for _ in range(3)))
        assert results == ["held", "held", "held"]
        assert bulkhead.available_concurrent_calls == 3

    @pytest.mark.asyncio
    async def test_cancel_after_slot_handed_over(self) -> None:
        bulkhead = make_bulkhead()
        release = asyncio.Event()
        entered = asyncio.Event()

        async def hold() -> str:
            entered.set()
            await release.wait()
            return "held"

        async def quick() -> str:
            return "quick"

        holder = asyncio.create_task(bulkhead.call_async(hold))
        await entered.wait()
        waiter = asyncio.create_task(bulkhead.call_async(quick))
        await asyncio.sleep(0.01)

        release.set()
        assert await holder == "held"
        waiter.cancel()
        try:
            await waiter
        except asyncio.CancelledError:
            pass

        assert bulkhead.available_concurrent_calls == 1
        assert await bulkhead.call_async(quick) == "quick"

    def test_cancelled_queued_task_frees_queue_place(
        self,
        bulkhead_service: BulkheadService,
        gate: Gate,
    ) -> None:
        """Test the default pool admits again after its queued task is cancelled."""
        futures = [bulkhead_service.execute_async("unknown", "x", gate.operation) for _ in range(3)]
        gate.wait_entered(2)

        assert futures[2].cancel()

        snapshot = bulkhead_service.get_thread_pool_metrics("unknown", "x")
        assert snapshot.queue_depth == 0
        assert snapshot.remaining_queue_capacity == 1

        replacement = bulkhead_service.execute_async("unknown", "x", lambda: "replacement")

        gate.opened.set()
        assert [f.result(timeout=WAIT) for f in futures[:2]] == ["done", "done"]
        assert replacement.result(timeout=WAIT) == "replacement"
        final = bulkhead_service.get_thread_pool_metrics("unknown", "x")
        assert final.active_thread_count == 0
        assert final.queue_depth == 0

"""
Bulkhead tuning per adapter category.

Stateless fast protocols get many slots and short waits, connection-pool
bound resources few slots and longer waits, and the most constrained
critical system the fewest slots with the longest wait.
"""

from __future__ import annotations

from ..config.settings import Settings
from ..models.policies import AdapterCategory, BulkheadPolicy, ThreadPoolBulkheadPolicy
from .base import CategoryPolicyTable


def build_bulkhead_policies(settings: Settings) -> dict[AdapterCategory, BulkheadPolicy]:
    """Build the semaphore bulkhead tuning table."""
    return {
        AdapterCategory.HTTP: BulkheadPolicy(
            category=AdapterCategory.HTTP,
            max_concurrent_calls=50,
            max_wait_seconds=2.0,
        ),
        AdapterCategory.MESSAGING: BulkheadPolicy(
            category=AdapterCategory.MESSAGING,
            max_concurrent_calls=30,
            max_wait_seconds=5.0,
        ),
        AdapterCategory.DATABASE: BulkheadPolicy(
            category=AdapterCategory.DATABASE,
            max_concurrent_calls=10,
            max_wait_seconds=10.0,
        ),
        AdapterCategory.FILE: BulkheadPolicy(
            category=AdapterCategory.FILE,
            max_concurrent_calls=5,
            max_wait_seconds=30.0,
        ),
        AdapterCategory.CRITICAL_SYSTEM: BulkheadPolicy(
            category=AdapterCategory.CRITICAL_SYSTEM,
            max_concurrent_calls=3,
            max_wait_seconds=60.0,
        ),
        AdapterCategory.DEFAULT: BulkheadPolicy(
            category=AdapterCategory.DEFAULT,
            max_concurrent_calls=settings.default_bulkhead_max_concurrent_calls,
            max_wait_seconds=settings.default_bulkhead_max_wait_seconds,
        ),
    }


def build_thread_pool_bulkhead_policies(
    settings: Settings,
) -> dict[AdapterCategory, ThreadPoolBulkheadPolicy]:
    """Build the thread-pool bulkhead tuning table."""
    return {
        AdapterCategory.HTTP: ThreadPoolBulkheadPolicy(
            category=AdapterCategory.HTTP,
            core_thread_pool_size=10,
            max_thread_pool_size=20,
            queue_capacity=100,
            keep_alive_seconds=20.0,
        ),
        AdapterCategory.MESSAGING: ThreadPoolBulkheadPolicy(
            category=AdapterCategory.MESSAGING,
            core_thread_pool_size=10,
            max_thread_pool_size=25,
            queue_capacity=200,
            keep_alive_seconds=20.0,
        ),
        AdapterCategory.DATABASE: ThreadPoolBulkheadPolicy(
            category=AdapterCategory.DATABASE,
            core_thread_pool_size=5,
            max_thread_pool_size=10,
            queue_capacity=50,
            keep_alive_seconds=30.0,
        ),
        AdapterCategory.FILE: ThreadPoolBulkheadPolicy(
            category=AdapterCategory.FILE,
            core_thread_pool_size=2,
            max_thread_pool_size=5,
            queue_capacity=20,
            keep_alive_seconds=60.0,
        ),
        AdapterCategory.CRITICAL_SYSTEM: ThreadPoolBulkheadPolicy(
            category=AdapterCategory.CRITICAL_SYSTEM,
            core_thread_pool_size=1,
            max_thread_pool_size=3,
            queue_capacity=10,
            keep_alive_seconds=120.0,
        ),
        AdapterCategory.DEFAULT: ThreadPoolBulkheadPolicy(
            category=AdapterCategory.DEFAULT,
            core_thread_pool_size=settings.bulkhead_core_thread_pool_size,
            max_thread_pool_size=settings.bulkhead_max_thread_pool_size,
            queue_capacity=settings.bulkhead_queue_capacity,
            keep_alive_seconds=settings.bulkhead_keep_alive_seconds,
        ),
    }


class BulkheadPolicyRegistry(CategoryPolicyTable[BulkheadPolicy]):
    """Semaphore bulkhead policies keyed by adapter category."""

    @classmethod
    def from_settings(cls, settings: Settings) -> BulkheadPolicyRegistry:
        return cls(build_bulkhead_policies(settings))


class ThreadPoolBulkheadPolicyRegistry(CategoryPolicyTable[ThreadPoolBulkheadPolicy]):
    """Thread-pool bulkhead policies keyed by adapter category."""

    @classmethod
    def from_settings(cls, settings: Settings) -> ThreadPoolBulkheadPolicyRegistry:
        return cls(build_thread_pool_bulkhead_policies(settings))

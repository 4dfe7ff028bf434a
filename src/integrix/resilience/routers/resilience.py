"""Administrative API endpoints for live resilience units."""

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..models.policies import BulkheadPolicy, ThreadPoolBulkheadPolicy
from ..models.status import (
    BulkheadMetrics,
    CircuitBreakerHealthStatus,
    RetryConfigInfo,
    RetryMetrics,
    ThreadPoolBulkheadMetrics,
)
from ..policies.adapter_types import classify_adapter_type
from ..services.resilience_facade import ResilienceFacade

router = APIRouter(prefix="/api/v1/resilience", tags=["resilience"])
logger = structlog.get_logger()

# Global facade instance (initialized on startup)
_facade: ResilienceFacade | None = None


async def get_facade() -> ResilienceFacade:
    """Get resilience facade instance."""
    if _facade is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Resilience facade not initialized",
        )
    return _facade


def _not_found(unit: str, adapter_type: str, adapter_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No live {unit} for {adapter_type}-{adapter_id}",
    )


class CircuitBreakerPolicyInfo(BaseModel):
    """Circuit breaker tuning with exception types rendered by name."""

    failure_rate_threshold: float
    slow_call_rate_threshold: float
    slow_call_duration_seconds: float
    wait_duration_in_open_state_seconds: float
    sliding_window_type: str
    sliding_window_size: int
    minimum_number_of_calls: int
    permitted_calls_in_half_open_state: int
    automatic_transition_from_open_to_half_open: bool
    record_exceptions: list[str]
    ignore_exceptions: list[str]


class PolicyResponse(BaseModel):
    """Resolved tuning for an adapter type."""

    adapter_type: str = Field(description="Requested adapter type tag")
    category: str = Field(description="Tuning bucket the type resolves to")
    retry: RetryConfigInfo
    circuit_breaker: CircuitBreakerPolicyInfo
    bulkhead: BulkheadPolicy
    thread_pool_bulkhead: ThreadPoolBulkheadPolicy


class BulkheadStatusResponse(BaseModel):
    """Semaphore and thread-pool bulkhead view of one adapter."""

    metrics: BulkheadMetrics | None = None
    utilization_percentage: float | None = None
    has_available_capacity: bool | None = None
    thread_pool: ThreadPoolBulkheadMetrics | None = None


@router.get("/circuit-breakers", response_model=dict[str, CircuitBreakerHealthStatus])
async def list_circuit_breakers() -> dict[str, CircuitBreakerHealthStatus]:
    """Health status of every live circuit breaker."""
    facade = await get_facade()
    return facade.circuit_breakers.get_all_statuses()


@router.get(
    "/circuit-breakers/{adapter_type}/{adapter_id}",
    response_model=CircuitBreakerHealthStatus,
)
async def get_circuit_breaker(adapter_type: str, adapter_id: str) -> CircuitBreakerHealthStatus:
    """Health status of one adapter's circuit breaker."""
    facade = await get_facade()
    if not facade.circuit_breakers.has_circuit_breaker(adapter_type, adapter_id):
        raise _not_found("circuit breaker", adapter_type, adapter_id)
    return facade.circuit_breakers.get_health_status(adapter_type, adapter_id)


@router.post(
    "/circuit-breakers/{adapter_type}/{adapter_id}/reset",
    response_model=CircuitBreakerHealthStatus,
    status_code=status.HTTP_200_OK,
)
async def reset_circuit_breaker(
    adapter_type: str,
    adapter_id: str,
) -> CircuitBreakerHealthStatus:
    """
    Reset a circuit breaker to CLOSED.

    This is the only way a breaker whose policy disables automatic recovery
    leaves OPEN.
    """
    facade = await get_facade()
    logger.warning(
        "admin_circuit_breaker_reset_requested",
        adapter_type=adapter_type,
        adapter_id=adapter_id,
    )
    facade.circuit_breakers.reset_circuit_breaker(adapter_type, adapter_id)
    return facade.circuit_breakers.get_health_status(adapter_type, adapter_id)


@router.post(
    "/circuit-breakers/{adapter_type}/{adapter_id}/force-open",
    response_model=CircuitBreakerHealthStatus,
    status_code=status.HTTP_200_OK,
)
async def force_open_circuit_breaker(
    adapter_type: str,
    adapter_id: str,
) -> CircuitBreakerHealthStatus:
    """
    Force a circuit breaker open.

    Every call-site sharing the adapter is rejected until the breaker is reset.
    """
    facade = await get_facade()
    logger.warning(
        "admin_circuit_breaker_force_open_requested",
        adapter_type=adapter_type,
        adapter_id=adapter_id,
    )
    facade.circuit_breakers.force_open(adapter_type, adapter_id)
    return facade.circuit_breakers.get_health_status(adapter_type, adapter_id)


@router.post(
    "/circuit-breakers/{adapter_type}/{adapter_id}/disable",
    response_model=CircuitBreakerHealthStatus,
    status_code=status.HTTP_200_OK,
)
async def disable_circuit_breaker(
    adapter_type: str,
    adapter_id: str,
) -> CircuitBreakerHealthStatus:
    """Let every call through without recording outcomes until reset."""
    facade = await get_facade()
    logger.warning(
        "admin_circuit_breaker_disable_requested",
        adapter_type=adapter_type,
        adapter_id=adapter_id,
    )
    facade.circuit_breakers.disable(adapter_type, adapter_id)
    return facade.circuit_breakers.get_health_status(adapter_type, adapter_id)


@router.get("/retries", response_model=dict[str, RetryMetrics])
async def list_retries() -> dict[str, RetryMetrics]:
    """Outcome counters of every live retry unit."""
    facade = await get_facade()
    return facade.retry.get_all_metrics()


@router.get("/retries/{adapter_type}/{adapter_id}", response_model=RetryMetrics)
async def get_retry_metrics(adapter_type: str, adapter_id: str) -> RetryMetrics:
    facade = await get_facade()
    if not facade.retry.has_retry(adapter_type, adapter_id):
        raise _not_found("retry", adapter_type, adapter_id)
    return facade.retry.get_metrics(adapter_type, adapter_id)


@router.get("/bulkheads", response_model=dict[str, BulkheadMetrics])
async def list_bulkheads() -> dict[str, BulkheadMetrics]:
    """Slot usage of every live semaphore bulkhead."""
    facade = await get_facade()
    return facade.bulkheads.get_all_metrics()


@router.get("/bulkheads/{adapter_type}/{adapter_id}", response_model=BulkheadStatusResponse)
async def get_bulkhead(adapter_type: str, adapter_id: str) -> BulkheadStatusResponse:
    """
    Slot usage, utilization and thread-pool state of one adapter.

    Either part is null when the adapter has not used that bulkhead kind yet.
    """
    facade = await get_facade()
    bulkheads = facade.bulkheads
    has_semaphore = bulkheads.has_bulkhead(adapter_type, adapter_id)
    has_pool = bulkheads.has_thread_pool_bulkhead(adapter_type, adapter_id)
    if not has_semaphore and not has_pool:
        raise _not_found("bulkhead", adapter_type, adapter_id)

    response = BulkheadStatusResponse()
    if has_semaphore:
        response.metrics = bulkheads.get_metrics(adapter_type, adapter_id)
        response.utilization_percentage = bulkheads.get_utilization_percentage(
            adapter_type, adapter_id
        )
        response.has_available_capacity = bulkheads.has_available_capacity(
            adapter_type, adapter_id
        )
    if has_pool:
        response.thread_pool = bulkheads.get_thread_pool_metrics(adapter_type, adapter_id)
    return response


@router.get("/policies/{adapter_type}", response_model=PolicyResponse)
async def get_policies(adapter_type: str) -> PolicyResponse:
    """
    Resolved tuning for an adapter type.

    Unknown adapter types resolve to the default bucket.
    """
    facade = await get_facade()
    breaker_policy = facade.circuit_breakers.get_policy(adapter_type)

    return PolicyResponse(
        adapter_type=adapter_type,
        category=classify_adapter_type(adapter_type).value,
        retry=facade.retry.get_retry_config(adapter_type),
        circuit_breaker=CircuitBreakerPolicyInfo(
            failure_rate_threshold=breaker_policy.failure_rate_threshold,
            slow_call_rate_threshold=breaker_policy.slow_call_rate_threshold,
            slow_call_duration_seconds=breaker_policy.slow_call_duration_seconds,
            wait_duration_in_open_state_seconds=breaker_policy.wait_duration_in_open_state_seconds,
            sliding_window_type=breaker_policy.sliding_window_type.value,
            sliding_window_size=breaker_policy.sliding_window_size,
            minimum_number_of_calls=breaker_policy.minimum_number_of_calls,
            permitted_calls_in_half_open_state=breaker_policy.permitted_calls_in_half_open_state,
            automatic_transition_from_open_to_half_open=(
                breaker_policy.automatic_transition_from_open_to_half_open
            ),
            record_exceptions=[exc.__name__ for exc in breaker_policy.record_exceptions],
            ignore_exceptions=[exc.__name__ for exc in breaker_policy.ignore_exceptions],
        ),
        bulkhead=facade.bulkheads.get_policy(adapter_type),
        thread_pool_bulkhead=facade.bulkheads.get_thread_pool_policy(adapter_type),
    )


async def initialize_services(facade: ResilienceFacade | None) -> None:
    """Initialize global facade instance."""
    global _facade
    _facade = facade

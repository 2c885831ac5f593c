"""Circuit breakers for backing generative models (one breaker per model)"""

from contextlib import asynccontextmanager
from typing import Dict

from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

from config.settings import settings
from core.exceptions import CircuitBreakerOpenException, ReferenceValidationException
from core.logging import logger


class ModelBreakerListener(CircuitBreakerListener):
    """Logs breaker transitions and failures for a backing model"""

    def state_change(self, cb, old_state, new_state):
        old_name = old_state.name if old_state is not None else "none"
        if new_state.name == "open":
            logger.error(
                f"[CIRCUIT BREAKER OPEN] {cb.name}: opened after {cb.fail_max} consecutive failures, "
                f"retrying in {cb.reset_timeout}s"
            )
        elif new_state.name == "half-open":
            logger.warning(f"[CIRCUIT BREAKER HALF-OPEN] {cb.name}: testing recovery")
        elif old_name != "none":
            logger.info(f"[CIRCUIT BREAKER CLOSED] {cb.name}: recovered")

    def failure(self, cb, exc):
        logger.warning(
            f"[CIRCUIT BREAKER FAILURE] {cb.name}: "
            f"failure ({cb.fail_counter}/{cb.fail_max}): {exc}"
        )


_breakers: Dict[str, CircuitBreaker] = {}


def get_breaker(model_id: str) -> CircuitBreaker:
    """
    Get or create the circuit breaker guarding a backing model

    Validation errors are excluded: a malformed request says nothing
    about the model's health.
    """
    breaker = _breakers.get(model_id)
    if breaker is None:
        breaker = CircuitBreaker(
            fail_max=settings.CIRCUIT_BREAKER_FAIL_MAX,
            reset_timeout=settings.CIRCUIT_BREAKER_RESET_TIMEOUT,
            exclude=[ReferenceValidationException],
            listeners=[ModelBreakerListener()],
            name=model_id
        )
        _breakers[model_id] = breaker
    return breaker


@asynccontextmanager
async def guarded(model_id: str):
    """
    Run an awaited provider call under the model's breaker

    Example:
        async with guarded("sdxl"):
            output = await client.run(...)

    Raises:
        CircuitBreakerOpenException: breaker is open, or this failure tripped it
    """
    breaker = get_breaker(model_id)
    try:
        with breaker.calling():
            yield
    except CircuitBreakerError:
        logger.error(f"[CIRCUIT OPEN] {model_id}: circuit is open, call rejected")
        raise CircuitBreakerOpenException(model_id)


def get_circuit_breaker_status() -> dict:
    """
    Get current status of all circuit breakers

    Returns:
        Dictionary keyed by model id with breaker statistics
    """
    return {
        model_id: {
            "state": str(breaker.current_state),
            "fail_counter": breaker.fail_counter,
            "fail_max": breaker.fail_max,
            "reset_timeout": breaker.reset_timeout,
            "is_open": breaker.current_state == "open",
            "is_closed": breaker.current_state == "closed",
            "is_half_open": breaker.current_state == "half-open"
        }
        for model_id, breaker in _breakers.items()
    }


def reset_circuit_breakers():
    """Reset all circuit breakers (admin function)"""
    for breaker in _breakers.values():
        breaker.close()
    logger.info("[ADMIN] All circuit breakers have been reset")

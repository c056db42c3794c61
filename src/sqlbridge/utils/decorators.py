import asyncio
import functools
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Type, TypeVar

from opentelemetry.trace import Span, SpanKind, Status, StatusCode

from sqlbridge.logging import get_logger
from sqlbridge.telemetry import get_tracer

logger = get_logger(__name__)

F = TypeVar('F', bound=Callable[..., Any])
T = TypeVar('T')

AttributeGetter = Callable[..., Optional[Dict[str, Any]]]


def _span_attributes(
    static: Optional[Dict[str, Any]],
    getter: Optional[AttributeGetter],
    args: tuple,
    kwargs: dict,
) -> Dict[str, Any]:
    merged = dict(static or {})
    if getter is not None:
        try:
            merged.update(getter(*args, **kwargs) or {})
        except Exception as exc:
            # attributes are best effort, the call itself still runs
            logger.warning("Span attribute getter failed: %s", exc)
    return {key: value for key, value in merged.items() if value is not None}


@contextmanager
def _span(module: str, name: str, kind: SpanKind, attributes: Dict[str, Any]) -> Iterator[Span]:
    with get_tracer(module).start_as_current_span(name, kind=kind, attributes=attributes) as span:
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


def traced(
    span_name: Optional[str] = None,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Dict[str, Any]] = None,
    attribute_getter: Optional[AttributeGetter] = None,
) -> Callable[[F], F]:
    """Run the decorated function inside an OpenTelemetry span.

    Works for plain and coroutine functions. Exceptions are recorded on the
    span and re-raised unchanged.

    Args:
        span_name: Span name, defaults to ``module.qualname``.
        kind: Span kind.
        attributes: Static attributes, e.g. ``{"db.system": "mysql"}``.
        attribute_getter: Called with the call arguments; returns attributes
            known only at call time such as the table name.
    """

    def decorator(func: F) -> F:
        name = span_name or f"{func.__module__}.{func.__qualname__}"

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                span_attributes = _span_attributes(attributes, attribute_getter, args, kwargs)
                with _span(func.__module__, name, kind, span_attributes):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            span_attributes = _span_attributes(attributes, attribute_getter, args, kwargs)
            with _span(func.__module__, name, kind, span_attributes):
                return func(*args, **kwargs)

        return sync_wrapper  # type: ignore[return-value]

    return decorator


def retry_with_backoff(
    max_retries: int = 1,
    initial_delay: float = 0.5,
    max_delay: float = 60.0,
    exponential_base: float = 1.0,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
    retry_condition: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a coroutine function a bounded number of times.

    The wait before retry ``n`` (0-based) is
    ``min(initial_delay * exponential_base ** n, max_delay)``. With the default
    base of 1.0 every wait is ``initial_delay``, which is what connection
    acquisition uses: one retry after half a second.

    Args:
        max_retries: Retries after the first attempt.
        initial_delay: Seconds to wait before the first retry.
        max_delay: Upper bound on any single wait.
        exponential_base: Growth factor of the wait.
        retry_on: Exception types eligible for retry. None means any.
        retry_condition: Extra predicate on the exception, e.g. checking a
            server error number.

    Raises:
        The first non-retryable exception, or the last one once retries run out.

    Example:
        >>> @retry_with_backoff(retry_condition=lambda exc: getattr(exc, "is_retryable", False))
        ... async def acquire():
        ...     return await engine.connect()
    """

    def is_retryable(exc: Exception) -> bool:
        if retry_on is not None and not isinstance(exc, retry_on):
            return False
        return retry_condition is None or bool(retry_condition(exc))

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"retry_with_backoff requires a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not is_retryable(exc):
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "%s failed after %d attempts", func.__name__, attempt + 1,
                            extra={"attempt": attempt + 1},
                        )
                        raise

                    delay = min(initial_delay * exponential_base ** attempt, max_delay)
                    attempt += 1
                    logger.warning(
                        "%s failed (%s), retrying in %.2fs", func.__name__, exc, delay,
                        extra={"attempt": attempt, "retry_delay": delay},
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator

"""
Operation context for cross-cutting logging and error enrichment.

Every public provisioning and routing operation is wrapped in an operation
context that logs ENTER/EXIT/ERROR lines carrying an operation id, the
correlation id and the duration, and enriches BaseError instances with the
same identifiers before they propagate.
"""

import inspect
import time
import uuid
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union, cast

from ..exceptions import BaseError, clear_correlation_id, get_correlation_id, set_correlation_id
from ..utils.logger import ContextAwareLogger, get_logger

# Call arguments copied into the log context when the wrapped function takes them
_TRACKED_ARGUMENTS = ("tenant_id", "schema_name", "subdomain")


class OperationContext:
    """Identity, timing and extra context for one running operation."""

    def __init__(self, operation_name: str, correlation_id: Optional[str] = None, **context):
        self.operation_name = operation_name
        self.operation_id = str(uuid.uuid4())
        # Nested operations share the correlation id of the outermost one
        self.correlation_id = correlation_id or get_correlation_id() or str(uuid.uuid4())
        set_correlation_id(self.correlation_id)

        self.context = dict(context, operation_id=self.operation_id, correlation_id=self.correlation_id)
        self.metrics: Dict[str, Union[int, float]] = {}
        self.start_time = time.time()

    @property
    def duration_ms(self) -> float:
        return (time.time() - self.start_time) * 1000

    def add_context(self, **kwargs) -> None:
        self.context.update(kwargs)

    def add_metric(self, name: str, value: Union[int, float]) -> None:
        self.metrics[name] = value


class OperationHandler:
    """Writes the ENTER/EXIT/ERROR lines around an operation and tags BaseErrors with it."""

    def __init__(self, logger: Optional[ContextAwareLogger] = None):
        self.logger = logger if logger is not None else get_logger()

    @staticmethod
    def _extra(op_ctx: OperationContext, **fields) -> Dict[str, Any]:
        return {**op_ctx.context, **fields}

    @contextmanager
    def operation(self, name: str, **context) -> Iterator[OperationContext]:
        prior_correlation_id = get_correlation_id()
        op_ctx = OperationContext(name, **context)
        self.logger.info(f"ENTER: {name}", extra=self._extra(op_ctx))

        try:
            yield op_ctx
        except BaseError as e:
            e.add_context(
                operation_name=name,
                operation_id=op_ctx.operation_id,
                operation_duration_ms=op_ctx.duration_ms,
            )
            # The error logged its own details when it was raised
            self.logger.error(
                f"ERROR: {name} -> {e.error_code.value}: {e.message}",
                extra=self._extra(
                    op_ctx,
                    duration_ms=op_ctx.duration_ms,
                    error_id=e.error_id,
                    error_code=e.error_code.value,
                    status="error",
                ),
            )
            raise
        except Exception as e:
            self.logger.exception(
                f"ERROR: {name} -> {type(e).__name__}: {e}",
                extra=self._extra(
                    op_ctx,
                    duration_ms=op_ctx.duration_ms,
                    error_type=type(e).__name__,
                    status="error",
                ),
            )
            raise
        finally:
            # The outermost operation owns the correlation id; drop it on exit
            if prior_correlation_id is None:
                clear_correlation_id()
            else:
                set_correlation_id(prior_correlation_id)

        self.logger.info(
            f"EXIT: {name}",
            extra=self._extra(
                op_ctx, duration_ms=op_ctx.duration_ms, status="success", **op_ctx.metrics
            ),
        )


F = TypeVar("F", bound=Callable[..., Any])


def _loggable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return type(value).__name__


def _tracked_arguments(func: Callable, args: tuple, kwargs: dict) -> Dict[str, Any]:
    try:
        bound = inspect.signature(func).bind_partial(*args, **kwargs)
    except TypeError:
        return {}
    return {
        key: _loggable(bound.arguments[key])
        for key in _TRACKED_ARGUMENTS
        if bound.arguments.get(key) is not None
    }


def operation(name: Union[Optional[str], Callable] = None):
    """
    Run the decorated function inside an OperationHandler.operation block.

    Usable as ``@operation``, ``@operation()`` or ``@operation(name="...")``.
    The default name is ``<module>.<qualname>``; tenant_id, schema_name and
    subdomain arguments are copied into the log context.
    """

    def decorator(func: F) -> F:
        op_name = name or f"{func.__module__.rsplit('.', 1)[-1]}.{func.__qualname__}"

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            context = {"source_module": func.__module__, **_tracked_arguments(func, args, kwargs)}
            with OperationHandler().operation(op_name, **context):
                return func(*args, **kwargs)

        return cast(F, wrapper)

    if callable(name):
        func, name = name, None
        return decorator(func)
    return decorator

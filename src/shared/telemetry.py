import logging
import sys
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from functools import wraps
from typing import Any, ParamSpec, TypeVar, cast

from opentelemetry import trace
from prometheus_client import REGISTRY, Counter, Histogram

# --- Context for Correlation IDs ---
correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="system")

# --- Prometheus Metric Definitions ---
DURATION_METRIC = "practice_method_duration_seconds"
OUTCOME_METRIC = "practice_grading_outcomes"

METHOD_DURATION: Histogram
GRADING_OUTCOMES: Counter

try:
    METHOD_DURATION = Histogram(
        DURATION_METRIC, "Time spent in engine method", ["component", "method"]
    )
except ValueError:
    # Module re-imported (e.g. test reloads): reuse the registered collector.
    METHOD_DURATION = cast(Histogram, REGISTRY._names_to_collectors[DURATION_METRIC])

try:
    GRADING_OUTCOMES = Counter(
        OUTCOME_METRIC, "Graded submissions by outcome", ["exercise_type", "outcome"]
    )
except ValueError:
    GRADING_OUTCOMES = cast(Counter, REGISTRY._names_to_collectors[OUTCOME_METRIC])

tracer = trace.get_tracer("practice-engine")

# --- Type Definitions for Decorator ---
P = ParamSpec("P")
R = TypeVar("R")


def measure_time(metric_name: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for timing methods + logging + tracing.
    Uses ParamSpec to preserve the signature of the decorated function.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            # Used on instance methods: args[0] is 'self'.
            self_obj: Any = args[0] if args else None

            component = self_obj.__class__.__name__ if self_obj else "Unknown"
            method = func.__name__
            telemetry = getattr(self_obj, "telemetry", None)

            with tracer.start_as_current_span(f"{component}.{method}") as span:
                span.set_attribute("trace.correlation_id", Telemetry.get_trace_id())
                start = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    duration = time.perf_counter() - start
                    METHOD_DURATION.labels(component=component, method=method).observe(
                        duration
                    )
                    span.record_exception(e)
                    if telemetry:
                        telemetry.log_error(
                            f"Failed: {metric_name}",
                            e,
                            duration_ms=round(duration * 1000, 2),
                        )
                    raise

                duration = time.perf_counter() - start
                METHOD_DURATION.labels(component=component, method=method).observe(
                    duration
                )
                if telemetry:
                    telemetry.log_debug(
                        metric_name, duration_ms=round(duration * 1000, 2)
                    )
                return result

        return wrapper

    return decorator


class Telemetry:
    """
    Facade for Logs, Metrics, and Tracing.
    """

    def __init__(self, component_name: str) -> None:
        self.component = component_name
        self.logger = logging.getLogger(f"practice.{component_name}")

        # Ensure we output to console if not configured
        if not self.logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
            )
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    @staticmethod
    def start_trace() -> str:
        c_id = str(uuid.uuid4())[:8]
        correlation_id_ctx.set(c_id)
        return c_id

    @staticmethod
    def get_trace_id() -> str:
        return correlation_id_ctx.get()

    def _format(self, event: str, kwargs: dict[str, Any]) -> str:
        return f"[{self.get_trace_id()}] {event} | {kwargs}"

    def log_debug(self, event: str, **kwargs: Any) -> None:
        self.logger.debug(self._format(event, kwargs))

    def log_info(self, event: str, **kwargs: Any) -> None:
        self.logger.info(self._format(event, kwargs))

    def log_warning(self, event: str, **kwargs: Any) -> None:
        self.logger.warning(self._format(event, kwargs))

    def log_error(self, event: str, error: Exception, **kwargs: Any) -> None:
        trace_id = self.get_trace_id()
        msg = f"[{trace_id}] {event} | Error: {error} | {kwargs}"
        self.logger.error(msg, exc_info=error)

    def record_outcome(self, exercise_type: str, outcome: str) -> None:
        GRADING_OUTCOMES.labels(exercise_type=exercise_type, outcome=outcome).inc()

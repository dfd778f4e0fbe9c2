"""OpenTelemetry metrics utilities.

Thin helpers over the OpenTelemetry Metrics API. The library never installs
a meter provider; until the host application does, every instrument is the
API's no-op implementation.
"""

from typing import Any, Mapping, Optional

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Histogram

INSTRUMENTATION_NAME = "smart-context"

_counters: dict[str, Counter] = {}
_histograms: dict[str, Histogram] = {}


def get_meter(instrumentation_name: str = INSTRUMENTATION_NAME) -> metrics.Meter:
    """Get a meter for the given instrumentation name.

    Args:
        instrumentation_name: Name of the instrumented module

    Returns:
        Meter from the globally configured provider
    """
    return metrics.get_meter(instrumentation_name)


def create_counter(name: str, description: str, unit: str = "") -> Counter:
    """Create (or reuse) a counter metric.

    Args:
        name: Metric name
        description: Metric description
        unit: Metric unit (e.g., "requests", "tokens")
    """
    counter = _counters.get(name)
    if counter is None:
        counter = get_meter().create_counter(name=name, description=description, unit=unit)
        _counters[name] = counter
    return counter


def create_histogram(name: str, description: str, unit: str = "") -> Histogram:
    """Create (or reuse) a histogram metric.

    Args:
        name: Metric name
        description: Metric description
        unit: Metric unit (e.g., "ms", "tokens")
    """
    histogram = _histograms.get(name)
    if histogram is None:
        histogram = get_meter().create_histogram(name=name, description=description, unit=unit)
        _histograms[name] = histogram
    return histogram


def increment_counter(
    name: str,
    description: str,
    amount: int = 1,
    attributes: Optional[Mapping[str, Any]] = None,
    unit: str = "",
) -> None:
    """Increment a counter metric.

    Args:
        name: Metric name
        description: Metric description
        amount: Amount to increment by
        attributes: Metric attributes
        unit: Metric unit
    """
    create_counter(name, description, unit).add(amount, attributes or {})


def record_histogram_value(
    name: str,
    description: str,
    value: float,
    attributes: Optional[Mapping[str, Any]] = None,
    unit: str = "",
) -> None:
    """Record a value to a histogram metric.

    Args:
        name: Metric name
        description: Metric description
        value: Value to record
        attributes: Metric attributes
        unit: Metric unit
    """
    create_histogram(name, description, unit).record(value, attributes or {})

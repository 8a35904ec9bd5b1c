"""In-process verification metrics and per-stage spans.

The metrics backend is an external collaborator; anything exposing
``increment``, ``record`` and ``span`` can be handed to the orchestrator.
:class:`VerificationMetrics` is the default sink: it keeps counters and
duration samples in memory (handy for tests and the health endpoint) and logs
every span with its duration and outcome.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

logger = logging.getLogger(__name__)

ATTEMPTS_TOTAL = "document_verifications_total"
APPROVED_TOTAL = "document_verifications_approved_total"
DURATION_MS = "document_verification_duration_ms"


class MetricsSink(Protocol):
    def increment(self, name: str, value: int = 1, **tags: Any) -> None: ...

    def record(self, name: str, value: float, **tags: Any) -> None: ...

    def span(self, name: str, **attributes: Any): ...


def _tag_key(tags: dict[str, Any]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((k, str(v)) for k, v in tags.items()))


class Span:
    """Mutable attribute bag for a running span."""

    def __init__(self, name: str, attributes: dict[str, Any]):
        self.name = name
        self.attributes = dict(attributes)
        self.status = "OK"
        self.error: str | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_attributes(self, **attributes: Any) -> None:
        self.attributes.update(attributes)


class VerificationMetrics:
    """Thread-safe counters + histograms, with logged spans."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, dict[tuple, int]] = defaultdict(lambda: defaultdict(int))
        self._histograms: dict[str, dict[tuple, list[float]]] = defaultdict(
            lambda: defaultdict(list)
        )

    def increment(self, name: str, value: int = 1, **tags: Any) -> None:
        with self._lock:
            self._counters[name][_tag_key(tags)] += value

    def record(self, name: str, value: float, **tags: Any) -> None:
        with self._lock:
            self._histograms[name][_tag_key(tags)].append(value)

    def counter_value(self, name: str, **tags: Any) -> int:
        """Sum of a counter across every tag set matching *tags*."""
        wanted = set(_tag_key(tags))
        with self._lock:
            return sum(
                count for key, count in self._counters.get(name, {}).items()
                if wanted.issubset(key)
            )

    def samples(self, name: str, **tags: Any) -> list[float]:
        wanted = set(_tag_key(tags))
        with self._lock:
            result: list[float] = []
            for key, values in self._histograms.get(name, {}).items():
                if wanted.issubset(key):
                    result.extend(values)
            return result

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {
                    name: {",".join(f"{k}={v}" for k, v in key): count
                           for key, count in series.items()}
                    for name, series in self._counters.items()
                },
                "histograms": {
                    name: {",".join(f"{k}={v}" for k, v in key): len(values)
                           for key, values in series.items()}
                    for name, series in self._histograms.items()
                },
            }

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Span]:
        span = Span(name, attributes)
        start = time.monotonic()
        try:
            yield span
        except Exception as exc:
            span.status = "ERROR"
            span.error = str(exc)
            raise
        finally:
            duration_ms = round((time.monotonic() - start) * 1000)
            logger.debug(
                "span %s status=%s duration=%dms attrs=%s%s",
                name,
                span.status,
                duration_ms,
                span.attributes,
                f" error={span.error}" if span.error else "",
            )

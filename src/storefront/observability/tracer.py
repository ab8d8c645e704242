"""
Tracing seam for storefront components.

Repositories, stores, locks, the gateway client and the services take a
``Tracer`` and open spans through it. With tracing off they get a
``NullTracer``; with it on, spans go to the process's OpenTelemetry
provider (non-recording when only the API package is installed).
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Any, Protocol

from opentelemetry import trace
from opentelemetry.trace import Span, SpanKind


class Tracer(Protocol):
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
    ) -> AbstractContextManager[Span | None]:
        """Open a span; the context manager yields it, or None when not tracing."""
        ...


class NullTracer:
    """Opens no spans."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
    ) -> Iterator[None]:
        yield None


class OpenTelemetryTracer:
    """Spans from ``trace.get_tracer(tracer_name)``, made current while open."""

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, kind=kind, attributes=attributes or {})


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetryTracer named ``name`` when tracing is enabled, else NullTracer."""
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "NullTracer",
    "OpenTelemetryTracer",
    "Tracer",
    "create_tracer",
]

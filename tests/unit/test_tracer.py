"""Tests for the tracer factory and span context managers."""

import pytest
from opentelemetry.trace import SpanKind

from storefront.observability import NullTracer, OpenTelemetryTracer, create_tracer


class TestCreateTracer:
    """Tests for the tracer factory."""

    def test_disabled_returns_null_tracer(self) -> None:
        """Test disabled tracing yields a NullTracer."""
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)

    def test_enabled_returns_opentelemetry_tracer(self) -> None:
        """Test enabled tracing wraps OpenTelemetry."""
        assert isinstance(create_tracer(__name__), OpenTelemetryTracer)


class TestSpans:
    """Tests for span context managers."""

    def test_null_tracer_yields_none(self) -> None:
        """Test the no-op tracer yields no span."""
        with NullTracer().span("op", {"k": "v"}, kind=SpanKind.CLIENT) as span:
            assert span is None

    def test_opentelemetry_span_runs_body(self) -> None:
        """Test a real span wraps the block without a configured provider."""
        tracer = OpenTelemetryTracer(__name__)
        ran = False

        with tracer.span("gateway.verify", {"k": 1}, kind=SpanKind.CLIENT) as span:
            ran = True

        assert ran is True
        assert span is not None

    def test_null_tracer_propagates_errors(self) -> None:
        """Test an exception inside a span leaves the context manager."""
        tracer = NullTracer()

        with pytest.raises(ValueError, match="boom"):
            with tracer.span("op"):
                raise ValueError("boom")

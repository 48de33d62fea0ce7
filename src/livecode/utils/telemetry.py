"""Tracing for code runs, on top of the OpenTelemetry API.

Every :func:`~livecode.runtime.runner.run_code` call opens one
``livecode.run`` span, tagged with the language and run id, and closes it
with the terminal event type and the number of output bytes admitted.

Without a configured SDK the API hands out no-op spans, so tracing costs
nothing until :func:`configure_telemetry` (or :func:`configure_from_env`)
installs a provider.  Both need the ``otel`` extra::

    pip install livecode[otel]
"""

from __future__ import annotations

import logging
import os
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

logger = logging.getLogger(__name__)

ATTR_LANGUAGE = "livecode.language"
ATTR_RUN_ID = "livecode.run.id"
ATTR_TERMINAL = "livecode.run.terminal"
ATTR_OUTPUT_BYTES = "livecode.run.output_bytes"

RUN_SPAN_NAME = "livecode.run"
OTLP_ENDPOINT_ENV_VAR = "OTEL_EXPORTER_OTLP_ENDPOINT"

_INSTRUMENTATION_NAME = "livecode"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Tracer for *name*; a no-op until an SDK provider is installed."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def start_run_span(tracer: trace.Tracer, language: str, run_id: str) -> trace.Span:
    """Open the span covering one run, from ``init`` to its terminal event."""
    return tracer.start_span(RUN_SPAN_NAME, attributes={ATTR_LANGUAGE: language, ATTR_RUN_ID: run_id})


def finish_run_span(span: trace.Span, terminal: str, output_bytes: int) -> None:
    """Record how the run ended and close *span*.

    ``error`` and ``timeout`` mark the span failed; ``done`` and a stop
    leave it unset.  A run that never got a sandbox ends as ``unavailable``.
    """
    span.set_attribute(ATTR_TERMINAL, terminal)
    span.set_attribute(ATTR_OUTPUT_BYTES, output_bytes)
    if terminal in {"error", "timeout", "unavailable"}:
        span.set_status(Status(StatusCode.ERROR, terminal))
    span.end()


def configure_telemetry(
    *,
    service_name: str = "livecode",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``livecode[otel]``).

    Parameters
    ----------
    service_name:
        Value of the ``service.name`` resource attribute.
    export_to_console:
        Print finished spans as JSON on stdout.
    otlp_endpoint:
        Also ship spans over OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If ``opentelemetry-sdk`` is missing.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = "opentelemetry-sdk is required for tracing. Install it with: pip install livecode[otel]"
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if export_to_console:
        _add_console_exporter(provider, SimpleSpanProcessor)
    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)
    trace.set_tracer_provider(provider)
    logger.debug("Tracing enabled (console=%s, otlp=%s)", export_to_console, otlp_endpoint)


def configure_from_env(service_name: str = "livecode") -> None:
    """Export to ``$OTEL_EXPORTER_OTLP_ENDPOINT`` when set, else to the console."""
    endpoint = os.environ.get(OTLP_ENDPOINT_ENV_VAR) or None
    configure_telemetry(
        service_name=service_name,
        export_to_console=endpoint is None,
        otlp_endpoint=endpoint,
    )


def _add_console_exporter(provider: Any, processor_cls: Any) -> None:
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # pyright: ignore[reportMissingImports]

    provider.add_span_processor(processor_cls(ConsoleSpanExporter()))


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = "opentelemetry-exporter-otlp is required for OTLP export. Install it with: pip install livecode[otel]"
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))

"""Telemetry: logging setup and OpenTelemetry tracing helpers."""

from tenant_roles.shared.telemetry.logging import get_logger, setup_logging
from tenant_roles.shared.telemetry.tracing import add_span_attributes, traced

__all__ = [
    "add_span_attributes",
    "get_logger",
    "setup_logging",
    "traced",
]

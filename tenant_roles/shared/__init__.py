"""Shared utilities: request context, telemetry, i18n and small helpers."""

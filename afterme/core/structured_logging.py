"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    request_id: str | None = None,
    owner_id: str | None = None,
    legacy_request_id: str | None = None,
    job_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for ``extra=``."""
    context: dict[str, Any] = {}
    if request_id:
        context["request_id"] = request_id
    if owner_id:
        context["owner_id"] = owner_id
    if legacy_request_id:
        context["legacy_request_id"] = legacy_request_id
    if job_id:
        context["job_id"] = job_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context

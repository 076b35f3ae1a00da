"""Middleware package for the scanner."""

from scanner.app.middleware.admission import (
    get_admission_decider,
    outcome_for,
    report_outcome,
    require_admission,
)
from scanner.app.middleware.request_id import RequestIdMiddleware, get_request_id
from scanner.app.middleware.request_size import RequestSizeLimitMiddleware

__all__ = [
    "get_admission_decider",
    "outcome_for",
    "report_outcome",
    "require_admission",
    "RequestIdMiddleware",
    "RequestSizeLimitMiddleware",
    "get_request_id",
]

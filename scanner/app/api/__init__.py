"""API endpoints package for the scanner."""

from scanner.app.api.scan import router as scan_router

__all__ = [
    "scan_router",
]

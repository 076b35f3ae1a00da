"""Services package for the scanner."""

from scanner.app.services.product_analyzer import (
    PORK_MARKERS,
    ProductAnalyzer,
    ScanResult,
    build_analysis_prompt,
    extract_json_object,
    find_pork_markers,
)

__all__ = [
    "PORK_MARKERS",
    "ProductAnalyzer",
    "ScanResult",
    "build_analysis_prompt",
    "extract_json_object",
    "find_pork_markers",
]

"""Vendor API clients used by a product scan."""

from scanner.app.providers.base import BaseProvider
from scanner.app.providers.gemini import GeminiProvider
from scanner.app.providers.ocr_space import OCRSpaceProvider, ensure_data_url

__all__ = [
    "BaseProvider",
    "GeminiProvider",
    "OCRSpaceProvider",
    "ensure_data_url",
]

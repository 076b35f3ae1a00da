from typing import Any, Dict, Optional

import httpx

from scanner.app.core.logging import get_logger
from scanner.app.exceptions import OCRError
from scanner.app.providers.base import BaseProvider

logger = get_logger(__name__)

DEFAULT_IMAGE_PREFIX = "data:image/jpeg;base64,"


def ensure_data_url(image: str) -> str:
    """Prefix bare base64 content so OCR.space can detect the image type."""
    if image.startswith("data:"):
        return image
    return f"{DEFAULT_IMAGE_PREFIX}{image}"


class OCRSpaceProvider(BaseProvider):
    """OCR.space text extraction for product label photos."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        language: str = "jpn",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        super().__init__(base_url, api_key, http_client, timeout)
        self.language = language

    def _build_form(self, image: str) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "base64Image": ensure_data_url(image),
            "language": self.language,
            "isOverlayRequired": "false",
            "detectOrientation": "true",
            "scale": "true",
            "filetype": "auto",
        }

    async def extract_text(self, image: str) -> str:
        """Run OCR on a base64 encoded image.

        Args:
            image: Base64 image, with or without a data URL prefix

        Returns:
            Text of the first parsed result

        Raises:
            OCRError: On transport errors, vendor processing errors, or when
                the vendor returns no result
        """
        try:
            async with self._client_context() as client:
                resp = await client.post(
                    self.base_url,
                    data=self._build_form(image),
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                payload: Dict[str, Any] = resp.json()
        except httpx.HTTPError as e:
            logger.error(f"OCR request failed: {e}")
            raise OCRError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise OCRError("Invalid response from OCR service") from e

        if payload.get("IsErroredOnProcessing"):
            detail = payload.get("ErrorMessage") or payload.get("ErrorDetails") or "OCR processing failed"
            if isinstance(detail, list):
                detail = "; ".join(str(item) for item in detail)
            raise OCRError(str(detail))

        results = payload.get("ParsedResults") or []
        if not results:
            raise OCRError("No text found in image")

        return results[0].get("ParsedText") or ""

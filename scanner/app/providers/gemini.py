from typing import Any, Dict, Optional

import httpx

from scanner.app.core.logging import get_logger
from scanner.app.exceptions import AnalysisError
from scanner.app.providers.base import BaseProvider

logger = get_logger(__name__)


class GeminiProvider(BaseProvider):
    """Google Gemini ``generateContent`` client."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0
    ):
        super().__init__(base_url, api_key, http_client, timeout)
        self.model = model

    def _get_endpoint_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """Send a single-turn prompt and return the first candidate's text.

        Raises:
            AnalysisError: If the request fails or the response has no text
        """
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            async with self._client_context() as client:
                resp = await client.post(
                    self._get_endpoint_url(),
                    params={"key": self.api_key},
                    json=payload,
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                data: Dict[str, Any] = resp.json()
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            raise AnalysisError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise AnalysisError("Invalid response from Gemini") from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise AnalysisError("Gemini returned no candidates") from e

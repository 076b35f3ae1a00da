"""Product scan endpoints.

Both scan routes run behind admission control. After the expensive path
returns, the outcome is reported back so a successful scan (or an OCR
upstream failure) puts the client into its cooldown.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from scanner.app.admission import Decision, Outcome, resolve_client_identity
from scanner.app.core.logging import get_log_context, get_logger
from scanner.app.exceptions import InvalidImageError
from scanner.app.middleware.admission import (
    get_admission_decider,
    outcome_for,
    report_outcome,
    require_admission,
)
from scanner.app.middleware.request_id import get_request_id
from scanner.app.services.product_analyzer import ProductAnalyzer

logger = get_logger(__name__)

router = APIRouter()

IMAGE_PREFIX = "data:image/"


class ScanRequest(BaseModel):
    """Request body for the scan endpoints."""
    # Untyped so a missing or non-string image gets the service's own 400
    image: Optional[Any] = None


def get_product_analyzer(request: Request) -> ProductAnalyzer:
    """Get the analyzer created during application startup."""
    analyzer = getattr(request.app.state, "product_analyzer", None)
    if analyzer is None:
        raise RuntimeError(
            "Product analyzer not initialized. Ensure lifespan context is active."
        )
    return analyzer


def _require_image(body: ScanRequest) -> str:
    if not body.image:
        raise InvalidImageError("Image not found in request")
    if not isinstance(body.image, str):
        raise InvalidImageError("Image must be a base64 data URL string")
    return body.image


@router.post("/analyze-product")
async def analyze_product(
    body: ScanRequest,
    request: Request,
    response: Response,
    decision: Decision = Depends(require_admission),
    analyzer: ProductAnalyzer = Depends(get_product_analyzer),
) -> Dict[str, Any]:
    """OCR a product label and ask Gemini for its halal analysis."""
    try:
        image = _require_image(body)
        if not image.startswith(IMAGE_PREFIX):
            raise InvalidImageError(
                "Invalid image format. Make sure the image is a valid base64 data URL."
            )
        result = await analyzer.analyze(image)
    except Exception as exc:
        await report_outcome(request, outcome_for(exc))
        raise

    await report_outcome(request, Outcome.SUCCESS)
    response.headers.update(decision.headers())

    logger.info(
        "Product analyzed",
        extra=get_log_context(
            request_id=get_request_id(request),
            client_id=decision.identity,
            text_length=len(result.ocr_text),
        ),
    )
    return {"success": True, "data": result.to_dict()}


@router.post("/test-ocr")
async def test_ocr(
    body: ScanRequest,
    request: Request,
    response: Response,
    decision: Decision = Depends(require_admission),
    analyzer: ProductAnalyzer = Depends(get_product_analyzer),
) -> Dict[str, Any]:
    """Run OCR only, for checking label photos."""
    try:
        text = await analyzer.extract_text(_require_image(body))
    except Exception as exc:
        await report_outcome(request, outcome_for(exc))
        raise

    await report_outcome(request, Outcome.SUCCESS)
    response.headers.update(decision.headers())
    return {
        "success": True,
        "data": {"ocr_text": text, "text_length": len(text)},
    }


@router.get("/admission/status")
async def admission_status(request: Request) -> Dict[str, Any]:
    """Admission state of the calling client."""
    decider = get_admission_decider(request)
    status = await decider.status(resolve_client_identity(request))
    return status.to_dict()

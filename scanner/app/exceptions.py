"""Custom exceptions for the scanner application."""

from typing import Optional

from scanner.app.admission.models import Decision


class ScannerException(Exception):
    """Base class for scanner exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code and error_code for consistent HTTP
    response handling.
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str = "Scanner error"):
        self.message = message
        super().__init__(message)

    def headers(self) -> Optional[dict[str, str]]:
        return None

    def to_response(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }


class AdmissionDeniedError(ScannerException):
    """Raised when admission control refuses a request.

    Maps to HTTP 403 for clients outside the allow-list and to
    HTTP 429 Too Many Requests otherwise.
    """

    def __init__(self, decision: Decision):
        self.decision = decision
        self.status_code = decision.status_code
        self.error_code = decision.reason.value if decision.reason else "denied"
        super().__init__(decision.message)

    @property
    def retry_after(self) -> Optional[int]:
        return self.decision.retry_after

    def headers(self) -> dict[str, str]:
        return self.decision.headers()

    def to_response(self) -> dict:
        response = super().to_response()
        if self.retry_after is not None:
            response["retry_after"] = self.retry_after
        return response


class InvalidImageError(ScannerException):
    """Raised when the uploaded image is missing or not a base64 data URL.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error_code = "invalid_image"


class OCRError(ScannerException):
    """Raised when the OCR upstream fails or returns an unusable result.

    Failures of this kind arm the client's cooldown.
    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502
    error_code = "ocr_error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"OCR Error: {detail}")


class NoTextFoundError(ScannerException):
    """Raised when OCR succeeds but the image holds no readable text.

    Maps to HTTP 422 Unprocessable Entity.
    """
    status_code = 422
    error_code = "no_text_found"

    def __init__(self, message: str = "No text could be extracted from the image"):
        super().__init__(message)


class AnalysisError(ScannerException):
    """Raised when the generative AI call fails or its answer has no JSON.

    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502
    error_code = "analysis_error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Gemini API Error: {detail}")

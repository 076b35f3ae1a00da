import json
import re
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

if TYPE_CHECKING:
    from scanner.app.admission.models import AdmissionConfig


def _split_list(raw: Any) -> list[str]:
    """Parse a list-valued setting from JSON or a comma/space separated string."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate plain values so a misconfigured deployment
    # does not crash at startup.
    if raw.startswith(("[", '"', "'")):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    # Deduplicate while preserving order.
    seen: set[str] = set()
    result: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part or part in seen:
            continue
        seen.add(part)
        result.append(part)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False
    port: int = 3000

    # Admission control (per-client window, block escalation, cooldown)
    admission_max_requests: int = 3
    admission_window_seconds: float = 30.0
    admission_block_seconds: float = 120.0
    admission_cooldown_seconds: float = 30.0
    admission_sweep_interval_seconds: float = 300.0
    # Empty list disables the allow-list check
    admission_allow_list: Annotated[list[str], NoDecode] = []

    # OCR.space settings
    ocr_api_key: str = ""
    ocr_base_url: str = "https://api.ocr.space/parse/image"
    ocr_language: str = "jpn"
    ocr_timeout: float = 30.0

    # Gemini settings
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.5-flash-preview-05-20"
    gemini_timeout: float = 60.0
    jpy_to_idr_rate: float = 105.0

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0  # Time to establish connection
    httpx_read_timeout: float = 60.0  # Time to read response data
    httpx_write_timeout: float = 10.0  # Time to send request data
    httpx_pool_timeout: float = 5.0  # Time to acquire connection from pool
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Uploaded images arrive base64 encoded in a JSON body
    max_body_size_bytes: int = 50 * 1024 * 1024

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("admission_allow_list", "cors_origins", mode="before")
    @classmethod
    def decode_list(cls, v: Any) -> list[str]:
        return _split_list(v)

    @field_validator("admission_max_requests", "max_body_size_bytes")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate count limits are positive."""
        if v < 1:
            raise ValueError("Limit values must be at least 1")
        return v

    @field_validator(
        "admission_window_seconds",
        "admission_block_seconds",
        "admission_cooldown_seconds",
        "admission_sweep_interval_seconds",
    )
    @classmethod
    def validate_duration_positive(cls, v: float) -> float:
        """Validate admission durations are positive."""
        if v <= 0:
            raise ValueError("Admission durations must be positive")
        return v

    @field_validator("ocr_timeout", "gemini_timeout", "httpx_connect_timeout", "httpx_read_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    def admission_config(self) -> "AdmissionConfig":
        """Build the admission-control configuration from these settings."""
        from scanner.app.admission.models import AdmissionConfig

        return AdmissionConfig(
            max_requests=self.admission_max_requests,
            window_seconds=self.admission_window_seconds,
            block_seconds=self.admission_block_seconds,
            cooldown_seconds=self.admission_cooldown_seconds,
            allow_list=frozenset(self.admission_allow_list),
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()

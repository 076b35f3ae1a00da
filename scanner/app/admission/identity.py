"""Client identity resolution from proxy and transport metadata."""

from typing import Optional

from starlette.requests import HTTPConnection

UNKNOWN_IDENTITY = "unknown"

FORWARDED_FOR_HEADER = "X-Forwarded-For"
REAL_IP_HEADER = "X-Real-IP"


def client_identity_from(
    forwarded_for: Optional[str] = None,
    real_ip: Optional[str] = None,
    remote_addr: Optional[str] = None,
) -> str:
    """Pick the identity for a request.

    Sources are tried in order: the proxy chain (first hop, which is the
    original client), the real-IP header, then the transport address. The
    first non-empty value wins. Requests with none of them share the
    ``"unknown"`` bucket.
    """
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    for candidate in (real_ip, remote_addr):
        if candidate and candidate.strip():
            return candidate.strip()
    return UNKNOWN_IDENTITY


def resolve_client_identity(request: HTTPConnection) -> str:
    """Get the admission identity of an incoming request."""
    return client_identity_from(
        forwarded_for=request.headers.get(FORWARDED_FOR_HEADER),
        real_ip=request.headers.get(REAL_IP_HEADER),
        remote_addr=request.client.host if request.client else None,
    )

"""FastAPI dependencies that put admission control in front of a route."""

from fastapi import Request

from scanner.app.admission import AdmissionDecider, Decision, Outcome
from scanner.app.exceptions import AdmissionDeniedError, OCRError


def get_admission_decider(request: Request) -> AdmissionDecider:
    """Get the decider owned by the running application."""
    return request.app.state.admission


async def require_admission(request: Request) -> Decision:
    """Admit the request or raise AdmissionDeniedError.

    The allowed decision is stored on request.state so the route can
    report the outcome and surface rate-limit headers.
    """
    decider = get_admission_decider(request)
    decision = await decider.admit(request)
    if not decision.allowed:
        raise AdmissionDeniedError(decision)
    request.state.admission = decision
    return decision


def outcome_for(exc: BaseException) -> Outcome:
    """Classify an exception raised by the expensive path."""
    if isinstance(exc, OCRError):
        return Outcome.UPSTREAM_FAILURE
    return Outcome.FAILURE


async def report_outcome(request: Request, outcome: Outcome) -> None:
    """Tell the decider how the admitted request ended."""
    decision = getattr(request.state, "admission", None)
    if decision is None:
        return
    await get_admission_decider(request).report(decision.identity, outcome)

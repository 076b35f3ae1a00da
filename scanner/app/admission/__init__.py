"""Per-client admission control for the expensive scan endpoints.

A request is admitted only if the client is on the allow-list (when one is
configured), is not serving a cooldown, and is within its request window.
Going over the window limit escalates into a longer block.
"""

from scanner.app.admission.cooldown import CooldownGate
from scanner.app.admission.decider import AdmissionDecider
from scanner.app.admission.identity import (
    UNKNOWN_IDENTITY,
    client_identity_from,
    resolve_client_identity,
)
from scanner.app.admission.models import (
    AdmissionConfig,
    ClientRecord,
    ClientStatus,
    CooldownRecord,
    Decision,
    DenialReason,
    Outcome,
)
from scanner.app.admission.reaper import Reaper, SweepResult
from scanner.app.admission.window import WindowCounter

__all__ = [
    # Models
    "AdmissionConfig",
    "ClientRecord",
    "ClientStatus",
    "CooldownRecord",
    "Decision",
    "DenialReason",
    "Outcome",
    # Identity
    "UNKNOWN_IDENTITY",
    "client_identity_from",
    "resolve_client_identity",
    # Stores
    "WindowCounter",
    "CooldownGate",
    # Orchestration
    "AdmissionDecider",
    "Reaper",
    "SweepResult",
]

from __future__ import annotations

from dataclasses import dataclass

from impactpool.ledger.allocation import Issuance, identity_issuance
from impactpool.ledger.audit import AuditTrail
from impactpool.ledger.constants import DEFAULT_CYCLE_DURATION_MS
from impactpool.runtime.collaborators import Registry, TrustedSourceConfig


@dataclass(frozen=True)
class ApplyContext:
    """Everything an applier may consult besides the state itself.

    Collaborator lookups are read-only; the trail collects audit events for
    the mutation in progress.
    """

    now_ms: int
    trail: AuditTrail
    registry: Registry
    trusted: TrustedSourceConfig
    admin_id: str
    issuance: Issuance = identity_issuance
    cycle_duration_ms: int = DEFAULT_CYCLE_DURATION_MS
    auto_open_next: bool = False

"""Service level objectives for coursehub.

SLI  = a measured property (share of non-5xx responses, p95 latency,
       share of certificate issuance attempts that succeeded first time).
SLO  = the target for that indicator over a rolling window.
The error budget is ``current - target``: positive means headroom,
negative means the objective is breached.

Evaluation functions are pure so /health can feed them numbers read from
the Prometheus registry and tests can feed them literals.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SLODefinition:
    name: str
    description: str
    target: float
    window: str


@dataclass(frozen=True, slots=True)
class SLOStatus:
    slo: SLODefinition
    current: float
    budget_remaining: float
    healthy: bool


AVAILABILITY_SLO = SLODefinition(
    name="availability",
    description="Percentage of non-5xx responses",
    target=99.5,
    window="30d",
)

LATENCY_SLO = SLODefinition(
    name="latency_p95",
    description="95th percentile response time under 500ms",
    target=95.0,
    window="30d",
)

CERTIFICATE_ISSUANCE_SLO = SLODefinition(
    name="certificate_issuance",
    description="Automatic certificate issuance succeeds without deferral",
    target=99.0,
    window="7d",
)

ALL_SLOS = [AVAILABILITY_SLO, LATENCY_SLO, CERTIFICATE_ISSUANCE_SLO]


def _status(slo: SLODefinition, current: float) -> SLOStatus:
    return SLOStatus(
        slo=slo,
        current=round(current, 3),
        budget_remaining=round(current - slo.target, 3),
        healthy=current >= slo.target,
    )


def evaluate_availability(total_requests: int, error_requests: int) -> SLOStatus:
    """availability = (total - 5xx) / total x 100; no traffic counts as 100."""
    if total_requests == 0:
        current = 100.0
    else:
        current = ((total_requests - error_requests) / total_requests) * 100
    return _status(AVAILABILITY_SLO, current)


def evaluate_latency(p95_ms: float) -> SLOStatus:
    """Approximate the share of requests under 500ms from a p95 estimate.

    A p95 at or under the threshold means at least 95% are fast enough; the
    result scales toward 100 as p95 approaches zero and toward 0 as it
    grows past the threshold.
    """
    threshold_ms = 500.0
    if p95_ms <= threshold_ms:
        current = min(100.0, 95.0 + (threshold_ms - p95_ms) / threshold_ms * 5.0)
    else:
        current = max(0.0, 95.0 - (p95_ms - threshold_ms) / threshold_ms * 95.0)
    return _status(LATENCY_SLO, current)


def evaluate_certificate_issuance(issued: int, failed: int) -> SLOStatus:
    """Share of automatic issuance attempts that did not need reconciliation."""
    attempts = issued + failed
    if attempts == 0:
        current = 100.0
    else:
        current = (issued / attempts) * 100
    return _status(CERTIFICATE_ISSUANCE_SLO, current)

"""Belief revision: recompute each claim's confidence from attacks and support."""

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import replace

from src.models import SEVERE, Attack, Blackboard, Claim, CrossReferenceType, Severity

DEFAULT_CONFIDENCE = 0.7
SEED_ROUNDS = 3           # claims created up to this round keep a floor
SEED_FLOOR = 0.3
MAX_SEVERE_PENALTY = 0.3


def confidence_floor(claim: Claim) -> float:
    return SEED_FLOOR if claim.created_at <= SEED_ROUNDS else 0.0


def recompute_confidence(claim: Claim, attacks: Iterable[Attack], support_count: int = 0) -> float:
    """Return the revised confidence for ``claim``.

    Unresolved critical/major attacks cost 0.10 for the first and 0.05 for
    each further one, capped at 0.3 below the prior value. Unresolved minor
    attacks cost 0.03 each. Each resolved attack adds 0.02 and each support
    adds 0.05. The result is clamped to [floor, 1.0]; a non-finite result
    falls back to the prior value.
    """
    attacks = list(attacks)
    base = claim.confidence if claim.confidence is not None else DEFAULT_CONFIDENCE
    floor = confidence_floor(claim)
    confidence = base

    severe = sum(1 for a in attacks if not a.resolved and a.severity in SEVERE)
    if severe > 0:
        confidence -= 0.10 + 0.05 * (severe - 1)
        confidence = max(confidence, base - MAX_SEVERE_PENALTY)

    minor = sum(1 for a in attacks if not a.resolved and a.severity == Severity.MINOR)
    confidence -= 0.03 * minor

    resolved = sum(1 for a in attacks if a.resolved)
    confidence += 0.02 * resolved

    confidence += 0.05 * support_count

    if not math.isfinite(confidence):
        confidence = base if math.isfinite(base) else DEFAULT_CONFIDENCE
    return max(floor, min(1.0, confidence))


def recalc_claim_confidences(state: Blackboard) -> Blackboard:
    """Recompute every claim's confidence and stamp ``last_updated``."""
    if not state.claims:
        return state

    by_target: dict[str, list[Attack]] = {}
    for attack in state.attacks:
        by_target.setdefault(attack.to_claim_id, []).append(attack)

    supports = Counter(
        x.claim_id for x in state.cross_references if x.type == CrossReferenceType.SUPPORT
    )

    step = state.meta.step_count
    claims = tuple(
        replace(
            c,
            confidence=recompute_confidence(c, by_target.get(c.id, ()), supports[c.id]),
            last_updated=step,
        )
        for c in state.claims
    )
    return replace(state, claims=claims)

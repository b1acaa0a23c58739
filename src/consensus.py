"""Session-level agreement and persona diversity metrics."""

from collections.abc import Sequence
from dataclasses import replace

from src.models import (
    Attack,
    Blackboard,
    Claim,
    CrossReference,
    CrossReferenceType,
    DiversityMetrics,
    JudgmentMetrics,
    Persona,
)


def support_rate(cross_references: Sequence[CrossReference]) -> float:
    if not cross_references:
        return 0.0
    support = sum(1 for x in cross_references if x.type == CrossReferenceType.SUPPORT)
    return support / len(cross_references)


def conflict_rate(attacks: Sequence[Attack]) -> float:
    """Fraction of attacks still unresolved (0 with no attacks)."""
    if not attacks:
        return 0.0
    unresolved = sum(1 for a in attacks if not a.resolved)
    return unresolved / len(attacks)


def mean_confidence(claims: Sequence[Claim]) -> float:
    if not claims:
        return 0.0
    avg = sum(c.confidence for c in claims) / len(claims)
    return min(1.0, max(0.0, avg))


def consensus_level(state: Blackboard) -> float:
    return (
        0.4 * support_rate(state.cross_references)
        + 0.3 * (1 - conflict_rate(state.attacks))
        + 0.3 * mean_confidence(state.claims)
    )


def compute_diversity_metrics(personas: Sequence[Persona]) -> DiversityMetrics:
    """Score the roster by unique expertise and value tags per persona.

    expertise_spread saturates at three distinct expertise tags per persona;
    value_alignment falls toward 0 as values diverge (two distinct values
    per persona means fully diverse).
    """
    if not personas:
        return DiversityMetrics()

    n = len(personas)
    expertise = {e for p in personas for e in p.expertise}
    values = {v for p in personas for v in p.values}

    expertise_spread = min(1.0, len(expertise) / (n * 3))
    value_alignment = max(0.0, 1 - len(values) / (n * 2))
    perspective_coverage = min(1.0, (expertise_spread + (1 - value_alignment)) / 2)
    return DiversityMetrics(
        expertise_spread=expertise_spread,
        value_alignment=value_alignment,
        perspective_coverage=perspective_coverage,
    )


def refresh_scores(state: Blackboard, judgment: JudgmentMetrics | None = None) -> Blackboard:
    """Recompute consensus and diversity and append to the convergence history.

    The panel's convergence score is recorded when a judgment is given,
    otherwise the mean claim confidence.
    """
    score = judgment.convergence_score if judgment is not None else mean_confidence(state.claims)
    history = state.meta.convergence_history + (score,)
    return replace(
        state,
        judgment=judgment,
        consensus_level=consensus_level(state),
        diversity_metrics=compute_diversity_metrics(state.personas),
        meta=replace(state.meta, convergence_history=history),
    )

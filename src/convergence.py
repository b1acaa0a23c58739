"""Multi-gate decision on whether deliberation should stop."""

from dataclasses import dataclass

from src.models import SEVERE, Blackboard, ConvergenceVerdict
from src.stance import DEFAULT_STANCE_MARKERS, StanceMarkers, classify_stances


@dataclass(frozen=True)
class ConvergenceThresholds:
    min_steps: int = 4
    min_claims: int = 5
    min_attacks: int = 3
    max_unresolved: int = 5   # unresolved critical/major attacks tolerated


def unresolved_severe_count(state: Blackboard) -> int:
    return sum(1 for a in state.attacks if not a.resolved and a.severity in SEVERE)


def check_convergence(
    state: Blackboard,
    max_steps: int = 10,
    thresholds: ConvergenceThresholds = ConvergenceThresholds(),
    markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
) -> ConvergenceVerdict:
    """Decide whether the debate is ready to be written up.

    The step cap always finalizes. Otherwise every gate must pass, in
    order: minimum steps, minimum claims, minimum attacks, both stances
    present, and few enough unresolved critical/major attacks. The first
    failing gate's reason is returned.
    """
    step = state.meta.step_count
    if step >= max_steps:
        return ConvergenceVerdict(True, f"Reached the step limit ({step}/{max_steps})")

    if step < thresholds.min_steps:
        return ConvergenceVerdict(
            False, f"Too few steps (current: {step}, minimum: {thresholds.min_steps})"
        )

    n_claims = len(state.claims)
    if n_claims < thresholds.min_claims:
        return ConvergenceVerdict(
            False, f"Too few claims (current: {n_claims}, minimum: {thresholds.min_claims})"
        )

    n_attacks = len(state.attacks)
    if n_attacks < thresholds.min_attacks:
        return ConvergenceVerdict(
            False, f"Too few attacks (current: {n_attacks}, minimum: {thresholds.min_attacks})"
        )

    stances = classify_stances(state.claims, markers)
    if stances.pro == 0 or stances.con == 0:
        return ConvergenceVerdict(
            False, f"Debate is one-sided (pro: {stances.pro}, con: {stances.con})"
        )

    severe = unresolved_severe_count(state)
    if severe > thresholds.max_unresolved:
        return ConvergenceVerdict(
            False,
            f"Too many unresolved critical/major attacks ({severe} > {thresholds.max_unresolved})",
        )

    return ConvergenceVerdict(
        True,
        f"Converged (claims: {n_claims}, attacks: {n_attacks}, steps: {step})",
    )


def needs_critique(state: Blackboard) -> bool:
    """True while the board has too few rebuttals for a meaningful debate."""
    n_attacks = len(state.attacks)
    return n_attacks < 2 or (state.meta.step_count < 5 and n_attacks < 3)

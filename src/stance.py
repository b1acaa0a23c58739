"""Lexical pro/con/neutral tagging of claims and the balance-based diversity score."""

from collections.abc import Iterable
from dataclasses import dataclass

from src.models import Claim, Stance, StanceCounts


@dataclass(frozen=True)
class StanceMarkers:
    """Substring markers checked in order: negated, pro, then con."""

    negated: tuple[str, ...]
    pro: tuple[str, ...]
    con: tuple[str, ...]


DEFAULT_STANCE_MARKERS = StanceMarkers(
    negated=(
        "should not", "shouldn't", "must not", "mustn't", "ought not",
        "need not", "is not necessary", "not beneficial",
    ),
    pro=(
        "should", "must", "ought to", "necessary", "important", "essential",
        "beneficial", "benefit", "effective", "valuable",
    ),
    con=(
        "risk", "danger", "dangerous", "concern", "harm", "problem",
        "threat", "drawback", "downside",
    ),
)


def classify_claim(text: str, markers: StanceMarkers = DEFAULT_STANCE_MARKERS) -> Stance:
    lowered = text.lower()
    if any(m in lowered for m in markers.negated):
        return Stance.CON
    if any(m in lowered for m in markers.pro):
        return Stance.PRO
    if any(m in lowered for m in markers.con):
        return Stance.CON
    return Stance.NEUTRAL


def diversity_score(pro: int, con: int) -> float:
    """0.1 unless both sides are present, then up to 1.0 when balanced."""
    if pro > 0 and con > 0:
        return 0.1 + 0.9 * min(pro, con) / max(pro, con)
    return 0.1


def classify_stances(
    claims: Iterable[Claim],
    markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
) -> StanceCounts:
    counts = {Stance.PRO: 0, Stance.CON: 0, Stance.NEUTRAL: 0}
    for claim in claims:
        counts[classify_claim(claim.text, markers)] += 1

    pro, con, neutral = counts[Stance.PRO], counts[Stance.CON], counts[Stance.NEUTRAL]
    if pro + con + neutral == 0:
        score = 0.0
    else:
        score = diversity_score(pro, con)
    return StanceCounts(pro=pro, con=con, neutral=neutral, diversity_score=score)


def describe_stance_balance(counts: StanceCounts) -> str:
    if counts.pro > 0 and counts.con == 0:
        return f"One-sided: {counts.pro} pro and no con claims. Add an opposing view."
    if counts.con > 0 and counts.pro == 0:
        return f"One-sided: {counts.con} con and no pro claims. Add a supporting view."
    if counts.pro > 0 and counts.con > 0:
        balance = round(100 * min(counts.pro, counts.con) / max(counts.pro, counts.con))
        return f"Both sides present (pro: {counts.pro}, con: {counts.con}, balance: {balance}%)."
    if counts.neutral > 0:
        return f"{counts.neutral} neutral claim(s). Add claims that take a clear position."
    return "No claims yet. Propose the opening claims."

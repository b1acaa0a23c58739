"""Heuristic auto-resolution of rebuttals: counter-attacks and keyword overrides."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from src.models import Attack, Claim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionPattern:
    """A semantic opposition between an objection and a rebuttal.

    An unresolved attack whose description contains any of
    ``attack_keywords`` is considered answered by a new claim whose text
    contains any of ``claim_keywords``. Matching is case-insensitive
    substring matching.
    """

    name: str
    attack_keywords: tuple[str, ...]
    claim_keywords: tuple[str, ...]

    def matches(self, attack_description: str, claim_text: str) -> bool:
        description = attack_description.lower()
        text = claim_text.lower()
        return (
            any(kw.lower() in description for kw in self.attack_keywords)
            and any(kw.lower() in text for kw in self.claim_keywords)
        )


# Ordered: the first matching pattern wins for a given attack.
DEFAULT_RESOLUTION_PATTERNS: tuple[ResolutionPattern, ...] = (
    ResolutionPattern(
        "access",
        ("restricted", "unavailable", "cannot access", "no access", "limited access", "inaccessible"),
        ("available", "provided", "provide", "accessible", "access to"),
    ),
    ResolutionPattern(
        "dependency",
        ("dependency", "dependence", "addiction", "addictive", "over-reliance"),
        ("mitigat", "education", "educate", "prevent", "manage", "safeguard"),
    ),
    ResolutionPattern(
        "health_safety",
        ("health", "safety risk", "harm", "injury", "danger"),
        ("managed", "reduced", "reduce", "mitigat", "protect", "safeguard", "monitor"),
    ),
    ResolutionPattern(
        "attention",
        ("distraction", "distract", "attention span", "loss of focus"),
        ("improve", "enhance", "focus", "manage", "structured"),
    ),
    ResolutionPattern(
        "learning",
        ("learning", "academic", "hinder", "undermine education"),
        ("improve", "enhance", "boost", "support learning", "outcomes rose"),
    ),
    ResolutionPattern(
        "cost",
        ("cost", "expensive", "unaffordable", "financial burden"),
        ("subsid", "affordable", "funding", "cost-effective", "savings", "offset"),
    ),
    ResolutionPattern(
        "evidence",
        ("no evidence", "lack of evidence", "unproven", "anecdotal", "unsupported"),
        ("study", "studies", "research", "data show", "survey", "meta-analysis"),
    ),
    ResolutionPattern(
        "alternatives",
        ("alternative", "other means", "could instead"),
        ("insufficient", "cannot replace", "fall short", "not a substitute", "limited"),
    ),
    ResolutionPattern(
        "necessity",
        ("unnecessary", "not necessary", "not needed", "not essential"),
        ("necessary", "essential", "indispensable", "required", "important"),
    ),
    ResolutionPattern(
        "privacy",
        ("privacy", "surveillance", "data collection"),
        ("consent", "encrypt", "anonymi", "regulat", "oversight"),
    ),
)


def resolve_attacks(
    attacks: Sequence[Attack],
    new_claims: Iterable[Claim],
    new_attacks: Iterable[Attack],
    patterns: Sequence[ResolutionPattern] = DEFAULT_RESOLUTION_PATTERNS,
) -> tuple[Attack, ...]:
    """Mark rebuttals answered by this round's claims and attacks as resolved.

    Only attacks raised before this round are candidates; ``attacks`` may
    already contain ``new_attacks`` and those are left untouched.

    Counter-attack rule: a new attack aimed at the claim that originated an
    older unresolved attack resolves the older one.

    Keyword-override rule: a new claim whose text matches the claim side of
    a pattern resolves an older unresolved attack whose description matches
    the attack side of the same pattern.

    Returns:
        A new tuple of attacks in the original order.
    """
    new_claims = list(new_claims)
    new_attacks = list(new_attacks)
    fresh_ids = {a.id for a in new_attacks}
    countered = {a.to_claim_id for a in new_attacks}

    result: list[Attack] = []
    for attack in attacks:
        if attack.resolved or attack.id in fresh_ids:
            result.append(attack)
            continue

        if attack.from_claim_id in countered:
            logger.debug("Attack %s resolved: its source claim %s was counter-attacked",
                         attack.id, attack.from_claim_id)
            result.append(replace(attack, resolved=True))
            continue

        pattern = _first_override(attack, new_claims, patterns)
        if pattern is not None:
            logger.debug("Attack %s resolved by keyword pattern '%s'", attack.id, pattern.name)
            result.append(replace(attack, resolved=True))
            continue

        result.append(attack)
    return tuple(result)


def _first_override(
    attack: Attack,
    claims: Sequence[Claim],
    patterns: Sequence[ResolutionPattern],
) -> ResolutionPattern | None:
    for claim in claims:
        for pattern in patterns:
            if pattern.matches(attack.description, claim.text):
                return pattern
    return None

"""Persona roster: defaults, parsing generated personas, and turn rotation."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any, Protocol

from src.models import Blackboard, CrossReferenceType, Persona, PersonaContribution, Role

logger = logging.getLogger(__name__)

MIN_GENERATED_PERSONAS = 3


class RotationStrategy(Protocol):
    def pick(self, roster: Sequence[Persona], last: Persona | None) -> Persona:
        """Choose a speaker when the nominee cannot be used."""
        ...


class AvoidRepeatStrategy:
    """First persona in roster order that did not speak last."""

    def pick(self, roster: Sequence[Persona], last: Persona | None) -> Persona:
        last_id = last.id if last else None
        return next((p for p in roster if p.id != last_id), roster[0])


class RoleRotationStrategy:
    """Prefer a persona with a different role than the last speaker.

    Personas without a role, or a roster where every other persona shares
    the last speaker's role, fall back to plain repeat avoidance.
    """

    def __init__(self) -> None:
        self._fallback = AvoidRepeatStrategy()

    def pick(self, roster: Sequence[Persona], last: Persona | None) -> Persona:
        if last is not None and last.role is not None:
            for persona in roster:
                if persona.id != last.id and persona.role is not None and persona.role != last.role:
                    return persona
        return self._fallback.pick(roster, last)


ROTATION_STRATEGIES: dict[str, type] = {
    "avoid-repeat": AvoidRepeatStrategy,
    "role": RoleRotationStrategy,
}


def select_persona(
    state: Blackboard,
    nominated_id: str | None = None,
    strategy: RotationStrategy | None = None,
) -> Persona:
    """Pick the persona that speaks this round.

    The nominee wins when it is on the roster and did not speak last round.
    Otherwise the strategy decides. With two or more personas the same id is
    never returned twice in a row.

    Raises:
        ValueError: If the roster is empty.
    """
    roster = state.personas
    if not roster:
        raise ValueError("Cannot select a persona from an empty roster")

    last_id = state.meta.last_selected_persona_id
    nominee = state.persona(nominated_id) if nominated_id else None
    if nominee is not None and nominee.id != last_id:
        return nominee

    chosen = (strategy or AvoidRepeatStrategy()).pick(roster, state.persona(last_id))
    if chosen.id == last_id and len(roster) > 1:
        # A custom strategy must not break the no-repeat guarantee.
        chosen = AvoidRepeatStrategy().pick(roster, chosen)
    return chosen


def _added(before: Iterable[Any], after: Iterable[Any]) -> list[Any]:
    seen = {item.id for item in before}
    return [item for item in after if item.id not in seen]


def record_turn(state: Blackboard, persona: Persona, previous: Blackboard | None = None) -> Blackboard:
    """Record who spoke this round and bump their contribution counters.

    ``previous`` is the board before the round's delta was applied; only the
    claims, attacks and support references that actually landed are counted.
    """
    current = state.contributions.get(persona.id, PersonaContribution())
    claims = attacks = supports = 0
    if previous is not None:
        claims = len(_added(previous.claims, state.claims))
        attacks = len(_added(previous.attacks, state.attacks))
        supports = sum(
            1 for ref in _added(previous.cross_references, state.cross_references)
            if ref.type is CrossReferenceType.SUPPORT
        )

    contributions = dict(state.contributions)
    contributions[persona.id] = PersonaContribution(
        turns=current.turns + 1,
        claim_count=current.claim_count + claims,
        challenge_count=current.challenge_count + attacks,
        support_count=current.support_count + supports,
    )
    return replace(
        state,
        contributions=contributions,
        meta=replace(state.meta, last_selected_persona_id=persona.id),
    )


def _topic_seed(topic: str) -> int:
    return sum(ord(ch) for ch in topic)


def build_default_personas(topic: str) -> tuple[Persona, ...]:
    """Three complementary personas with ids seeded from the topic."""
    seed = _topic_seed(topic)
    return (
        Persona(
            id=f"analyst-{seed}",
            name="Dr. Insight",
            expertise=("analysis", "evidence", "methodology"),
            values=("rigor", "accuracy"),
            thinking_style="analytical",
            communication_style="precise",
            bias_awareness=("confirmation bias",),
            role=Role.EXPERT,
        ),
        Persona(
            id=f"skeptic-{seed}",
            name="Ms. Skeptic",
            expertise=("argumentation", "logic"),
            values=("robustness", "falsifiability"),
            thinking_style="critical",
            communication_style="direct",
            bias_awareness=("overconfidence",),
            role=Role.CRITIC,
        ),
        Persona(
            id=f"bridge-{seed}",
            name="Mr. Bridge",
            expertise=("summarization", "mediation"),
            values=("balance", "clarity"),
            thinking_style="integrative",
            communication_style="structured",
            bias_awareness=("anchoring",),
            role=Role.SYNTHESIZER,
        ),
    )


def persona_from_mapping(raw: Mapping[str, Any], index: int = 0) -> Persona | None:
    """Build a Persona from a loosely shaped mapping (config or LLM output)."""
    name = str(raw.get("name") or "").strip()
    if not name:
        return None
    persona_id = str(raw.get("id") or "").strip() or f"persona-{index + 1}"

    role = None
    if raw.get("role"):
        try:
            role = Role(str(raw["role"]).strip().lower())
        except ValueError:
            logger.debug("Ignoring unknown role %r for persona %s", raw["role"], persona_id)

    return Persona(
        id=persona_id,
        name=name,
        expertise=_strings(raw.get("expertise")),
        values=_strings(raw.get("values")),
        thinking_style=str(raw.get("thinking_style") or raw.get("thinkingStyle") or ""),
        communication_style=str(raw.get("communication_style") or raw.get("communicationStyle") or ""),
        bias_awareness=_strings(raw.get("bias_awareness") or raw.get("biasAwareness")),
        role=role,
    )


def parse_personas(raw: Any, minimum: int = MIN_GENERATED_PERSONAS) -> tuple[Persona, ...]:
    """Validate generated personas; empty unless at least ``minimum`` are usable.

    Accepts a list of mappings or a mapping holding one under ``personas``.
    Duplicate ids are dropped.
    """
    if isinstance(raw, Mapping):
        raw = raw.get("personas")
    if not isinstance(raw, list):
        return ()

    personas: list[Persona] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            continue
        persona = persona_from_mapping(entry, index)
        if persona is None or persona.id in seen:
            continue
        seen.add(persona.id)
        personas.append(persona)

    if len(personas) < minimum:
        logger.info("Only %d usable personas generated (need %d)", len(personas), minimum)
        return ()
    return tuple(personas)


def _strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Iterable):
        return tuple(str(v) for v in value)
    return ()

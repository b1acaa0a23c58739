"""Blackboard lifecycle: initialization and the per-round updater.

Every function here is pure. ``apply_delta`` never mutates its input; it
returns a new ``Blackboard`` built from the previous round's fully resolved
state and one executor delta.
"""

import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from src.confidence import DEFAULT_CONFIDENCE, recalc_claim_confidences
from src.consensus import compute_diversity_metrics
from src.models import (
    Attack,
    AttackKind,
    Blackboard,
    Claim,
    CrossReference,
    CrossReferenceType,
    Delta,
    Meta,
    Persona,
    PersonaContribution,
    Plan,
    Question,
    QuestionPriority,
    Severity,
    Writepad,
    WritepadSection,
)
from src.resolution import DEFAULT_RESOLUTION_PATTERNS, ResolutionPattern, resolve_attacks

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_BUDGET = 10000
DEFAULT_STEP_TOKENS = 500
DUPLICATE_PREFIX_LEN = 20

# "(confidence: 0.70)", "[conf=0.7]", "(信念度: 0.70)" and the like
_CONFIDENCE_ANNOTATION = re.compile(
    r"\s*[(\[（]\s*(?:confidence|conf|belief|信念度)\s*[:=：]\s*[\d.]+\s*[)\]）]\s*",
    re.IGNORECASE,
)


class IdAllocator:
    """Issues ``prefix<N>`` ids that are unique within one entity kind.

    The counter only moves forward, so ids are never reused even when a
    caller-supplied id happens to look like a generated one.
    """

    def __init__(self, prefix: str, used: Iterable[str], next_seq: int = 1) -> None:
        self._prefix = prefix
        self._used = set(used)
        self._next = max(1, next_seq)

    @property
    def next_seq(self) -> int:
        return self._next

    def issue(self, preferred: str | None = None) -> str:
        """Return ``preferred`` if it is free, else the next free generated id."""
        if preferred and preferred not in self._used:
            self._used.add(preferred)
            return preferred
        while True:
            candidate = f"{self._prefix}{self._next}"
            self._next += 1
            if candidate not in self._used:
                self._used.add(candidate)
                return candidate


def clean_claim_text(text: str) -> str:
    """Strip embedded confidence annotations and normalize whitespace."""
    cleaned = _CONFIDENCE_ANNOTATION.sub(" ", text)
    return re.sub(r"\s+", " ", cleaned).strip()


def is_duplicate_attack(candidate: Attack, existing: Iterable[Attack]) -> bool:
    """True if an attack on the same edge already says nearly the same thing.

    Near-identical means equal descriptions, or the first 20 characters of
    either description appearing inside the other.
    """
    for other in existing:
        if (other.from_claim_id, other.to_claim_id) != (candidate.from_claim_id, candidate.to_claim_id):
            continue
        a, b = candidate.description, other.description
        if a == b or a[:DUPLICATE_PREFIX_LEN] in b or b[:DUPLICATE_PREFIX_LEN] in a:
            return True
    return False


def initialize_blackboard(
    topic: str,
    personas: Sequence[Persona] = (),
    token_budget: int = DEFAULT_TOKEN_BUDGET,
) -> Blackboard:
    personas = tuple(personas)
    return Blackboard(
        topic=topic,
        plan=Plan(
            current_focus=f"Build the opening claims on: {topic}",
            next_steps=(
                "Propose the main claims relevant to the topic",
                "Make the grounds for each claim explicit",
            ),
        ),
        personas=personas,
        contributions={p.id: PersonaContribution() for p in personas},
        diversity_metrics=compute_diversity_metrics(personas),
        meta=Meta(token_budget=token_budget),
    )


def apply_delta(
    state: Blackboard,
    delta: Delta,
    estimated_tokens: int = DEFAULT_STEP_TOKENS,
    *,
    patterns: Sequence[ResolutionPattern] = DEFAULT_RESOLUTION_PATTERNS,
) -> Blackboard:
    """Apply one executor delta and return the next blackboard.

    Malformed or duplicate entries are dropped without error. Attack
    resolution runs before confidences are recomputed, since resolution
    changes what the confidence of each claim depends on.
    """
    step = state.meta.step_count + 1

    claim_ids = IdAllocator("c", (c.id for c in state.claims), state.meta.next_claim_seq)
    new_claims = tuple(_build_claims(delta.new_claims, claim_ids, step))
    claims = _patch_claims(state.claims + new_claims, delta.updated_claims, step)

    known = {c.id for c in claims}
    attack_ids = IdAllocator("a", (a.id for a in state.attacks), state.meta.next_attack_seq)
    new_attacks = tuple(_build_attacks(delta.new_attacks, state.attacks, known, attack_ids))
    attacks = state.attacks + new_attacks

    if delta.resolved_attacks:
        attacks = tuple(
            replace(a, resolved=True) if a.id in delta.resolved_attacks else a for a in attacks
        )

    question_ids = IdAllocator("q", (q.id for q in state.questions), state.meta.next_question_seq)
    questions = state.questions + tuple(_build_questions(delta.new_questions, question_ids))
    if delta.resolved_questions:
        questions = tuple(
            replace(q, resolved=True) if q.id in delta.resolved_questions else q for q in questions
        )

    xref_ids = IdAllocator("x", (x.id for x in state.cross_references), state.meta.next_xref_seq)
    cross_references = state.cross_references + tuple(
        _build_cross_references(delta.cross_references, xref_ids, step)
    )

    writepad = _patch_writepad(state.writepad, delta.updated_writepad)
    final_document = state.final_document
    if delta.final_document and delta.final_document.strip():
        final_document = delta.final_document.strip()
        writepad = replace(writepad, final_draft=final_document)

    updated = replace(
        state,
        claims=claims,
        attacks=resolve_attacks(attacks, new_claims, new_attacks, patterns),
        questions=questions,
        plan=_patch_plan(state.plan, delta.updated_plan),
        writepad=writepad,
        cross_references=cross_references,
        final_document=final_document,
        meta=replace(
            state.meta,
            step_count=step,
            used_tokens=state.meta.used_tokens + estimated_tokens,
            next_claim_seq=claim_ids.next_seq,
            next_attack_seq=attack_ids.next_seq,
            next_question_seq=question_ids.next_seq,
            next_xref_seq=xref_ids.next_seq,
        ),
    )

    logger.debug(
        "Step %d applied: +%d claims, +%d attacks, +%d cross references",
        step, len(new_claims), len(new_attacks), len(cross_references) - len(state.cross_references),
    )
    return recalc_claim_confidences(updated)


# --- entry normalization -------------------------------------------------

def _field(entry: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value is not None:
            return value
    return None


def _text(entry: Mapping[str, Any], *keys: str) -> str:
    value = _field(entry, *keys)
    return str(value).strip() if value is not None else ""


def _as_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return min(1.0, max(0.0, number))


def _as_strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    return tuple(str(v) for v in value if str(v).strip())


def _producer(entry: Mapping[str, Any]) -> str | None:
    producer = _field(entry, "producer_id", "producerId")
    if producer is None:
        context = entry.get("personaContext") or entry.get("persona_context")
        if isinstance(context, Mapping):
            producer = _field(context, "personaId", "persona_id")
    return str(producer) if producer is not None else None


def _build_claims(entries: Iterable[Mapping[str, Any]], ids: IdAllocator, step: int) -> Iterable[Claim]:
    for entry in entries:
        if not isinstance(entry, Mapping):
            logger.debug("Dropping non-mapping claim entry: %r", entry)
            continue
        text = clean_claim_text(_text(entry, "text"))
        if not text:
            logger.debug("Dropping claim without text: %r", entry)
            continue
        yield Claim(
            id=ids.issue(_text(entry, "id") or None),
            text=text,
            support=_as_strings(entry.get("support")),
            confidence=_as_confidence(entry.get("confidence")),
            created_at=step,
            last_updated=step,
            producer_id=_producer(entry),
        )


def _patch_claims(
    claims: tuple[Claim, ...],
    patches: Iterable[Mapping[str, Any]],
    step: int,
) -> tuple[Claim, ...]:
    by_id = {}
    for patch in patches:
        if isinstance(patch, Mapping) and _text(patch, "id"):
            by_id[_text(patch, "id")] = patch
    if not by_id:
        return claims

    patched = []
    for claim in claims:
        patch = by_id.get(claim.id)
        if patch is None:
            patched.append(claim)
            continue
        text = clean_claim_text(_text(patch, "text")) or claim.text
        support = _as_strings(patch["support"]) if "support" in patch else claim.support
        confidence = (
            _as_confidence(patch["confidence"], claim.confidence)
            if "confidence" in patch else claim.confidence
        )
        patched.append(replace(claim, text=text, support=support,
                               confidence=confidence, last_updated=step))
    return tuple(patched)


def _build_attacks(
    entries: Iterable[Mapping[str, Any]],
    existing: Sequence[Attack],
    known_claims: set[str],
    ids: IdAllocator,
) -> Iterable[Attack]:
    accepted: list[Attack] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            logger.debug("Dropping non-mapping attack entry: %r", entry)
            continue
        source = _text(entry, "from_claim_id", "fromClaimId")
        target = _text(entry, "to_claim_id", "toClaimId")
        description = _text(entry, "description")
        if not source or not target or not description:
            logger.debug("Dropping attack with missing fields: %r", entry)
            continue
        if source == target:
            logger.debug("Dropping self-attack on %s", source)
            continue
        if source not in known_claims or target not in known_claims:
            logger.debug("Dropping attack on unknown claim(s): %s -> %s", source, target)
            continue

        candidate = Attack(
            id="",
            from_claim_id=source,
            to_claim_id=target,
            kind=_enum(AttackKind, _field(entry, "kind", "type"), AttackKind.LOGIC),
            severity=_enum(Severity, entry.get("severity"), Severity.MAJOR),
            description=description,
        )
        if is_duplicate_attack(candidate, existing) or is_duplicate_attack(candidate, accepted):
            logger.debug("Dropping duplicate attack %s -> %s: %s", source, target, description)
            continue

        accepted.append(replace(candidate, id=ids.issue(_text(entry, "id") or None)))
    return accepted


def _build_questions(entries: Iterable[Mapping[str, Any]], ids: IdAllocator) -> Iterable[Question]:
    for entry in entries:
        if not isinstance(entry, Mapping) or not _text(entry, "text"):
            continue
        yield Question(
            id=ids.issue(_text(entry, "id") or None),
            text=_text(entry, "text"),
            target_claim_id=_text(entry, "target_claim_id", "targetClaimId") or None,
            priority=_enum(QuestionPriority, entry.get("priority"), QuestionPriority.MEDIUM),
        )


def _build_cross_references(
    entries: Iterable[Mapping[str, Any]],
    ids: IdAllocator,
    step: int,
) -> Iterable[CrossReference]:
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        xref_type = _enum(CrossReferenceType, entry.get("type"), None)
        claim_id = _text(entry, "claim_id", "claimId")
        if xref_type is None or not claim_id:
            logger.debug("Dropping malformed cross reference: %r", entry)
            continue
        yield CrossReference(
            id=ids.issue(_text(entry, "id") or None),
            from_persona_id=_text(entry, "from_persona_id", "fromPersonaId"),
            to_persona_id=_text(entry, "to_persona_id", "toPersonaId"),
            type=xref_type,
            claim_id=claim_id,
            description=_text(entry, "description"),
            timestamp=step,
        )


def _patch_plan(plan: Plan, patch: Mapping[str, Any] | None) -> Plan:
    if not patch:
        return plan
    return Plan(
        current_focus=_text(patch, "current_focus", "currentFocus") or plan.current_focus,
        next_steps=(
            _as_strings(_field(patch, "next_steps", "nextSteps"))
            if _field(patch, "next_steps", "nextSteps") is not None else plan.next_steps
        ),
        avoid_topics=(
            _as_strings(_field(patch, "avoid_topics", "avoidTopics"))
            if _field(patch, "avoid_topics", "avoidTopics") is not None else plan.avoid_topics
        ),
    )


def _patch_writepad(writepad: Writepad, patch: Mapping[str, Any] | None) -> Writepad:
    if not patch:
        return writepad
    sections = writepad.sections
    raw_sections = patch.get("sections")
    if isinstance(raw_sections, list):
        sections = tuple(
            WritepadSection(
                title=_text(s, "title"),
                content=_text(s, "content"),
                claim_ids=_as_strings(_field(s, "claim_ids", "claimIds")),
            )
            for s in raw_sections
            if isinstance(s, Mapping)
        )
    draft = _text(patch, "final_draft", "finalDraft") or writepad.final_draft
    return Writepad(
        outline=_text(patch, "outline") or writepad.outline,
        sections=sections,
        final_draft=draft,
    )


def _enum(enum_cls, value, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default

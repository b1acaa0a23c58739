"""Plain-text renderings of a blackboard for prompts and reports."""

from src.models import Blackboard, Persona


def format_claims(state: Blackboard) -> str:
    lines = []
    for c in state.claims:
        author = f" by {c.producer_id}" if c.producer_id else ""
        lines.append(f"- [{c.id}] {c.text} (confidence: {c.confidence:.2f}){author}")
    return "\n".join(lines) or "(no claims yet)"


def format_attacks(state: Blackboard) -> str:
    lines = [
        f"- [{a.id}] {a.from_claim_id} -> {a.to_claim_id}: {a.description} "
        f"[{a.severity.value}/{a.kind.value}] {'resolved' if a.resolved else 'UNRESOLVED'}"
        for a in state.attacks
    ]
    return "\n".join(lines) or "(no attacks yet)"


def format_persona(p: Persona) -> str:
    role = f" ({p.role.value})" if p.role else ""
    return (
        f"- [{p.id}] {p.name}{role}\n"
        f"  expertise: {', '.join(p.expertise)}\n"
        f"  values: {', '.join(p.values)}\n"
        f"  style: {p.thinking_style}/{p.communication_style}"
    )


def format_personas(state: Blackboard) -> str:
    return "\n".join(format_persona(p) for p in state.personas) or "(none)"


def format_questions(state: Blackboard) -> str:
    lines = [f"- [{q.priority.value}] {q.text}" for q in state.questions if not q.resolved]
    return "\n".join(lines) or "(no open questions)"


def format_plan(state: Blackboard) -> str:
    plan = state.plan
    return (
        f"- Focus: {plan.current_focus}\n"
        f"- Next steps: {', '.join(plan.next_steps) or 'none'}\n"
        f"- Avoid: {', '.join(plan.avoid_topics) or 'none'}"
    )


def format_cross_references(state: Blackboard) -> str:
    lines = [
        f"- {x.from_persona_id} -> {x.to_persona_id} ({x.type.value}) on {x.claim_id}: {x.description}"
        for x in state.cross_references
    ]
    return "\n".join(lines) or "(none)"

"""Frozen dataclasses for the deliberation blackboard, with read-only lookup helpers."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class AttackKind(str, Enum):
    LOGIC = "logic"
    EVIDENCE = "evidence"
    RELEVANCE = "relevance"


class CrossReferenceType(str, Enum):
    SUPPORT = "support"
    CHALLENGE = "challenge"
    CLARIFICATION = "clarification"


class DialogueAct(str, Enum):
    PROPOSE = "propose"
    CRITIQUE = "critique"
    QUESTION = "question"
    FACT_CHECK = "fact_check"
    SYNTHESIZE = "synthesize"
    PLAN = "plan"
    FINALIZE = "finalize"


class Role(str, Enum):
    EXPERT = "expert"
    CRITIC = "critic"
    SYNTHESIZER = "synthesizer"
    ADVOCATE = "advocate"
    MODERATOR = "moderator"


class Stance(str, Enum):
    PRO = "pro"
    CON = "con"
    NEUTRAL = "neutral"


class QuestionPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERE = frozenset({Severity.CRITICAL, Severity.MAJOR})


@dataclass(frozen=True)
class Claim:
    id: str
    text: str
    support: tuple[str, ...] = ()
    confidence: float = 0.7
    created_at: int = 0        # round index
    last_updated: int = 0
    producer_id: str | None = None  # persona that authored it


@dataclass(frozen=True)
class Attack:
    id: str
    from_claim_id: str
    to_claim_id: str
    kind: AttackKind
    severity: Severity
    description: str
    resolved: bool = False


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    target_claim_id: str | None = None
    priority: QuestionPriority = QuestionPriority.MEDIUM
    resolved: bool = False


@dataclass(frozen=True)
class Plan:
    current_focus: str = ""
    next_steps: tuple[str, ...] = ()
    avoid_topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class WritepadSection:
    title: str
    content: str
    claim_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Writepad:
    outline: str = ""
    sections: tuple[WritepadSection, ...] = ()
    final_draft: str | None = None


@dataclass(frozen=True)
class Persona:
    id: str
    name: str
    expertise: tuple[str, ...] = ()
    values: tuple[str, ...] = ()
    thinking_style: str = ""
    communication_style: str = ""
    bias_awareness: tuple[str, ...] = ()
    role: Role | None = None


@dataclass(frozen=True)
class PersonaContribution:
    turns: int = 0
    claim_count: int = 0
    challenge_count: int = 0
    support_count: int = 0


@dataclass(frozen=True)
class CrossReference:
    id: str
    from_persona_id: str
    to_persona_id: str
    type: CrossReferenceType
    claim_id: str
    description: str
    timestamp: int = 0


@dataclass(frozen=True)
class DiversityMetrics:
    expertise_spread: float = 0.0
    value_alignment: float = 0.0     # lower means more diverse values
    perspective_coverage: float = 0.0


@dataclass(frozen=True)
class JudgmentMetrics:
    """Panel assessment of a round, each score in [0, 1]."""

    belief_convergence: float = 0.0
    novelty_score: float = 0.0
    attack_resolution_rate: float = 0.0
    diversity_score: float = 0.0
    convergence_score: float = 0.0


@dataclass(frozen=True)
class Meta:
    step_count: int = 0
    token_budget: int = 10000
    used_tokens: int = 0
    convergence_history: tuple[float, ...] = ()
    last_selected_persona_id: str | None = None
    next_claim_seq: int = 1
    next_attack_seq: int = 1
    next_question_seq: int = 1
    next_xref_seq: int = 1


@dataclass(frozen=True)
class Blackboard:
    topic: str
    claims: tuple[Claim, ...] = ()
    attacks: tuple[Attack, ...] = ()
    questions: tuple[Question, ...] = ()
    plan: Plan = field(default_factory=Plan)
    writepad: Writepad = field(default_factory=Writepad)
    personas: tuple[Persona, ...] = ()
    contributions: Mapping[str, PersonaContribution] = field(default_factory=dict)
    cross_references: tuple[CrossReference, ...] = ()
    consensus_level: float = 0.0
    diversity_metrics: DiversityMetrics = field(default_factory=DiversityMetrics)
    meta: Meta = field(default_factory=Meta)
    final_document: str | None = None
    judgment: JudgmentMetrics | None = None

    def claim(self, claim_id: str) -> Claim | None:
        return next((c for c in self.claims if c.id == claim_id), None)

    def persona(self, persona_id: str | None) -> Persona | None:
        return next((p for p in self.personas if p.id == persona_id), None)

    def attacks_on(self, claim_id: str) -> list[Attack]:
        return [a for a in self.attacks if a.to_claim_id == claim_id]

    def unresolved_attacks(self) -> list[Attack]:
        return [a for a in self.attacks if not a.resolved]

    @property
    def budget_exhausted(self) -> bool:
        return self.meta.used_tokens >= self.meta.token_budget


@dataclass(frozen=True)
class ExpectedUtility:
    persuasiveness_gain: float = 0.0
    novelty: float = 0.0
    uncertainty_reduction: float = 0.0
    cost: float = 0.0


@dataclass(frozen=True)
class ConvergenceAnalysis:
    belief_convergence: float = 0.0
    novelty_rate: float = 0.0
    unresolved_critical_attacks: int = 0


@dataclass(frozen=True)
class Decision:
    dialogue_act: DialogueAct
    reasoning: str = ""
    expected_utility: ExpectedUtility = field(default_factory=ExpectedUtility)
    target_claim_ids: tuple[str, ...] = ()
    should_finalize: bool = False
    convergence_analysis: ConvergenceAnalysis = field(default_factory=ConvergenceAnalysis)
    selected_persona_id: str | None = None


@dataclass(frozen=True)
class Delta:
    """One round's worth of changes, as produced by an action executor.

    Entries are raw mappings; the updater validates, normalizes and drops
    malformed ones.
    """

    new_claims: tuple[Mapping[str, Any], ...] = ()
    updated_claims: tuple[Mapping[str, Any], ...] = ()
    new_attacks: tuple[Mapping[str, Any], ...] = ()
    resolved_attacks: frozenset[str] = frozenset()
    new_questions: tuple[Mapping[str, Any], ...] = ()
    resolved_questions: frozenset[str] = frozenset()
    updated_plan: Mapping[str, Any] | None = None
    updated_writepad: Mapping[str, Any] | None = None
    final_document: str | None = None
    cross_references: tuple[Mapping[str, Any], ...] = ()


@dataclass(frozen=True)
class StanceCounts:
    pro: int = 0
    con: int = 0
    neutral: int = 0
    diversity_score: float = 0.0


@dataclass(frozen=True)
class ConvergenceVerdict:
    finalize: bool
    reason: str


@dataclass(frozen=True)
class DeliberationResult:
    blackboard: Blackboard
    status: str
    rounds_run: int
    aborted: bool = False


@dataclass(frozen=True)
class SessionResult:
    topic: str
    document: str
    blackboard: Blackboard
    status: str
    total_duration_sec: float
    used_fallback_document: bool = False
    rounds_run: int = 0
    aborted: bool = False


@dataclass
class ModelResponse:
    provider: str          # "openai", "claude", "gemini", ...
    model: str             # actual model string used
    purpose: str           # "decision", "execution", "final", "persona", "ping"
    content: str
    latency_sec: float
    token_count: int | None

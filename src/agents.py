"""LLM-backed collaborators: decision oracle, action executor, persona creator, judge panel.

The deliberation loop only depends on the ``DecisionOracle`` and
``ActionExecutor`` protocols; the classes here implement them on top of an
``AIProvider``. Every collaborator turns provider failures and unparsable
output into ``None`` so the loop can end the round cleanly.
"""

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from config.config_loader import PromptsConfig
from src.convergence import needs_critique
from src.models import (
    Blackboard,
    ConvergenceAnalysis,
    Decision,
    Delta,
    DialogueAct,
    ExpectedUtility,
    JudgmentMetrics,
    ModelResponse,
    Persona,
)
from src.parsing import extract_json
from src.personas import build_default_personas, parse_personas
from src.providers.base import AIProvider, ProviderError
from src.snapshot import (
    format_attacks,
    format_claims,
    format_cross_references,
    format_personas,
    format_plan,
    format_questions,
)
from src.stance import DEFAULT_STANCE_MARKERS, StanceMarkers, classify_stances, describe_stance_balance

logger = logging.getLogger(__name__)

ACT_INSTRUCTIONS: dict[DialogueAct, str] = {
    DialogueAct.PROPOSE: "Add one or two new claims. Prefer claims that answer unresolved attacks.",
    DialogueAct.CRITIQUE: (
        "Produce at least one entry in newAttacks. Each attack needs an existing claim id as "
        "toClaimId, a fromClaimId (an existing claim or one you add in newClaims), a severity "
        "and a description."
    ),
    DialogueAct.QUESTION: "Raise the open questions that would most reduce uncertainty in newQuestions.",
    DialogueAct.FACT_CHECK: (
        "Check the factual basis of the targeted claims. Put findings in newClaims and add "
        "crossReferences where a finding supports or challenges a claim."
    ),
    DialogueAct.SYNTHESIZE: "Merge overlapping claims via updatedClaims and update the writepad outline.",
    DialogueAct.PLAN: "Update the plan: current focus, next steps and topics to avoid.",
    DialogueAct.FINALIZE: "Write the final persuasive essay into finalDocument.",
}


class DecisionOracle(Protocol):
    async def decide(self, state: Blackboard) -> Decision | None:
        """Choose the next dialogue act, or None if no usable decision was made."""
        ...


class ActionExecutor(Protocol):
    async def execute(self, act: DialogueAct, persona: Persona, state: Blackboard) -> Delta | None:
        """Perform ``act`` as ``persona``, or None if the output was unusable."""
        ...


class JudgePanel(Protocol):
    async def judge(self, state: Blackboard) -> JudgmentMetrics | None:
        """Score the board after a round, or None if no usable judgment was made."""
        ...


class PersonaCreator(Protocol):
    async def create(self, topic: str) -> tuple[Persona, ...]:
        """Build a roster for ``topic``."""
        ...


async def call_provider(
    provider: AIProvider,
    prompt: str,
    purpose: str,
    *,
    system: str | None = None,
    temperature: float | None = None,
) -> ModelResponse:
    """Call a provider, retrying once on timeout with 1.5x the timeout.

    Raises:
        ProviderError: If the call fails (after the retry, for timeouts).
    """
    try:
        return await provider.generate(prompt, purpose, system=system, temperature=temperature)
    except ProviderError as exc:
        if "timed out" not in str(exc).lower():
            raise
        cfg = getattr(provider, "_config", None)
        original_timeout: int | None = None
        if cfg is not None and hasattr(cfg, "timeout_sec"):
            original_timeout = cfg.timeout_sec
            cfg.timeout_sec = int(original_timeout * 1.5)
        logger.warning("Provider %s timed out on %s call, retrying", provider.name(), purpose)
        try:
            return await provider.generate(prompt, purpose, system=system, temperature=temperature)
        finally:
            if cfg is not None and original_timeout is not None:
                cfg.timeout_sec = original_timeout


def _number(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _ids(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(str(v) for v in value)
    return ()


def parse_decision(data: Any) -> Decision | None:
    """Build a Decision from parsed oracle output; None if the act is unknown."""
    if not isinstance(data, Mapping):
        return None
    try:
        act = DialogueAct(str(data.get("dialogueAct") or data.get("dialogue_act") or "").strip().lower())
    except ValueError:
        logger.warning("Oracle chose an unknown dialogue act: %r", data.get("dialogueAct"))
        return None

    utility = data.get("expectedUtility") or {}
    analysis = data.get("convergenceAnalysis") or {}
    if not isinstance(utility, Mapping):
        utility = {}
    if not isinstance(analysis, Mapping):
        analysis = {}

    selected = data.get("selectedPersonaId") or data.get("selected_persona_id")
    return Decision(
        dialogue_act=act,
        reasoning=str(data.get("reasoning") or ""),
        expected_utility=ExpectedUtility(
            persuasiveness_gain=_number(utility.get("persuasivenessGain")),
            novelty=_number(utility.get("novelty")),
            uncertainty_reduction=_number(utility.get("uncertaintyReduction")),
            cost=_number(utility.get("cost")),
        ),
        target_claim_ids=_ids(data.get("targetClaimIds")),
        should_finalize=data.get("shouldFinalize") is True,
        convergence_analysis=ConvergenceAnalysis(
            belief_convergence=_number(analysis.get("beliefConvergence")),
            novelty_rate=_number(analysis.get("noveltyRate")),
            unresolved_critical_attacks=int(_number(analysis.get("unresolvedCriticalAttacks"))),
        ),
        selected_persona_id=str(selected) if selected else None,
    )


def _entries(value: Any) -> tuple[Mapping[str, Any], ...]:
    # Models sometimes return a single object where a list is expected.
    if value is None:
        return ()
    if isinstance(value, Mapping):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(v for v in value if isinstance(v, Mapping))


def parse_delta(data: Any, persona: Persona | None = None) -> Delta | None:
    """Build a Delta from parsed executor output; None if it is not an object.

    New claims without an author are attributed to ``persona``.
    """
    if not isinstance(data, Mapping):
        return None

    claims = _entries(data.get("newClaims"))
    if persona is not None:
        claims = tuple(
            c if (c.get("personaContext") or c.get("producerId") or c.get("producer_id"))
            else {**c, "producerId": persona.id}
            for c in claims
        )

    plan = data.get("updatedPlan")
    writepad = data.get("updatedWritepad")
    final = data.get("finalDocument")
    return Delta(
        new_claims=claims,
        updated_claims=_entries(data.get("updatedClaims")),
        new_attacks=_entries(data.get("newAttacks")),
        resolved_attacks=frozenset(_ids(data.get("resolvedAttacks"))),
        new_questions=_entries(data.get("newQuestions")),
        resolved_questions=frozenset(_ids(data.get("resolvedQuestions"))),
        updated_plan=plan if isinstance(plan, Mapping) and plan else None,
        updated_writepad=writepad if isinstance(writepad, Mapping) and writepad else None,
        final_document=final if isinstance(final, str) and final.strip() else None,
        cross_references=_entries(data.get("crossReferences")),
    )


class LLMDecisionOracle:
    """Chooses the next dialogue act and speaker from a blackboard snapshot."""

    temperature = 0.7

    def __init__(
        self,
        provider: AIProvider,
        prompts: PromptsConfig,
        markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._markers = markers

    def build_prompt(self, state: Blackboard) -> str:
        last_id = state.meta.last_selected_persona_id
        last_persona = (
            f"Last persona: {last_id}. Do not select the same persona twice in a row."
            if last_id else "Last persona: (none)"
        )
        critique_hint = (
            "Rebuttals are scarce. Prefer critique or fact_check next."
            if needs_critique(state)
            else "There are enough rebuttals. Choose the most useful act."
        )
        return self._prompts.decision.format(
            topic=state.topic,
            personas=format_personas(state),
            claims=format_claims(state),
            attacks=format_attacks(state),
            questions=format_questions(state),
            plan=format_plan(state),
            cross_references=format_cross_references(state),
            step=state.meta.step_count,
            consensus=f"{state.consensus_level:.2f}",
            stance_balance=describe_stance_balance(classify_stances(state.claims, self._markers)),
            last_persona=last_persona,
            critique_hint=critique_hint,
            acts=", ".join(a.value for a in DialogueAct),
        )

    async def decide(self, state: Blackboard) -> Decision | None:
        try:
            response = await call_provider(
                self._provider,
                self.build_prompt(state),
                "decision",
                system=self._prompts.decision_system,
                temperature=self.temperature,
            )
        except ProviderError as exc:
            logger.error("Decision oracle failed: %s", exc)
            return None

        decision = parse_decision(extract_json(response.content))
        if decision is None:
            logger.warning("Decision oracle returned unusable output")
        return decision


class LLMActionExecutor:
    """Realizes a dialogue act in a persona's voice as a blackboard delta."""

    temperature = 0.8

    def __init__(self, provider: AIProvider, prompts: PromptsConfig) -> None:
        self._provider = provider
        self._prompts = prompts

    def build_prompt(self, act: DialogueAct, persona: Persona, state: Blackboard) -> str:
        return self._prompts.execution.format(
            act=act.value,
            persona_id=persona.id,
            persona_name=persona.name,
            persona_expertise=", ".join(persona.expertise) or "general",
            persona_values=", ".join(persona.values) or "unspecified",
            persona_style=f"{persona.thinking_style}/{persona.communication_style}",
            topic=state.topic,
            claims=format_claims(state),
            attacks=format_attacks(state),
            act_instructions=ACT_INSTRUCTIONS[act],
        )

    async def execute(self, act: DialogueAct, persona: Persona, state: Blackboard) -> Delta | None:
        try:
            response = await call_provider(
                self._provider,
                self.build_prompt(act, persona, state),
                "execution",
                system=self._prompts.execution_system,
                temperature=self.temperature,
            )
        except ProviderError as exc:
            logger.error("Action executor failed on %s: %s", act.value, exc)
            return None

        delta = parse_delta(extract_json(response.content), persona)
        if delta is None:
            logger.warning("Action executor returned unusable output for %s", act.value)
        return delta


class LLMPersonaCreator:
    """Generates a persona roster for a topic, falling back to the defaults."""

    temperature = 0.7

    def __init__(
        self,
        provider: AIProvider,
        prompts: PromptsConfig,
        fallback: tuple[Persona, ...] = (),
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._fallback = fallback

    def _defaults(self, topic: str) -> tuple[Persona, ...]:
        return self._fallback or build_default_personas(topic)

    async def create(self, topic: str) -> tuple[Persona, ...]:
        if not self._prompts.persona:
            return self._defaults(topic)
        try:
            response = await call_provider(
                self._provider,
                self._prompts.persona.format(topic=topic),
                "persona",
                system=self._prompts.persona_system or None,
                temperature=self.temperature,
            )
        except ProviderError as exc:
            logger.warning("Persona creation failed, using defaults: %s", exc)
            return self._defaults(topic)

        personas = parse_personas(extract_json(response.content))
        if not personas:
            logger.warning("Persona creation returned unusable output, using defaults")
            return self._defaults(topic)
        return personas


def _unit(value: Any) -> float:
    return min(1.0, max(0.0, _number(value)))


def parse_judgment(data: Any) -> JudgmentMetrics | None:
    """Build panel metrics from parsed judge output; None without a convergence score."""
    if not isinstance(data, Mapping):
        return None
    score = data.get("convergenceScore", data.get("convergence_score"))
    if isinstance(score, bool) or not isinstance(score, (int, float, str)):
        return None
    try:
        float(score)
    except ValueError:
        return None
    return JudgmentMetrics(
        belief_convergence=_unit(data.get("beliefConvergence")),
        novelty_score=_unit(data.get("noveltyScore")),
        attack_resolution_rate=_unit(data.get("attackResolutionRate")),
        diversity_score=_unit(data.get("diversityScore")),
        convergence_score=_unit(score),
    )


class LLMJudgePanel:
    """Scores the state of the debate after each round."""

    temperature = 0.3

    def __init__(self, provider: AIProvider, prompts: PromptsConfig) -> None:
        self._provider = provider
        self._prompts = prompts

    def build_prompt(self, state: Blackboard) -> str:
        return self._prompts.judge.format(
            topic=state.topic,
            claims=format_claims(state),
            attacks=format_attacks(state),
            claim_count=len(state.claims),
            attack_count=len(state.attacks),
            unresolved=len(state.unresolved_attacks()),
            cross_reference_count=len(state.cross_references),
            consensus=f"{state.consensus_level:.2f}",
        )

    async def judge(self, state: Blackboard) -> JudgmentMetrics | None:
        if not self._prompts.judge:
            return None
        try:
            response = await call_provider(
                self._provider,
                self.build_prompt(state),
                "judge",
                system=self._prompts.judge_system or None,
                temperature=self.temperature,
            )
        except ProviderError as exc:
            logger.warning("Judge panel failed: %s", exc)
            return None

        metrics = parse_judgment(extract_json(response.content))
        if metrics is None:
            logger.warning("Judge panel returned unusable output")
        return metrics

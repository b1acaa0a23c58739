"""Deliberation orchestration: the select / execute / update / evaluate loop."""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import replace

from src.agents import ActionExecutor, DecisionOracle, JudgePanel, PersonaCreator
from src.blackboard import DEFAULT_STEP_TOKENS, DEFAULT_TOKEN_BUDGET, apply_delta, initialize_blackboard
from src.consensus import refresh_scores
from src.convergence import ConvergenceThresholds, check_convergence, needs_critique
from src.models import (
    Blackboard,
    Decision,
    DeliberationResult,
    Delta,
    DialogueAct,
    JudgmentMetrics,
    Persona,
    SessionResult,
)
from src.personas import RotationStrategy, build_default_personas, record_turn, select_persona
from src.resolution import DEFAULT_RESOLUTION_PATTERNS, ResolutionPattern
from src.stance import DEFAULT_STANCE_MARKERS, StanceMarkers
from src.synthesis import FinalWriter, finalize_document

logger = logging.getLogger(__name__)

RoundCallback = Callable[[Blackboard, Decision, Persona], None]


async def _decide(oracle: DecisionOracle, state: Blackboard) -> Decision | None:
    try:
        return await oracle.decide(state)
    except Exception:
        logger.exception("Decision oracle raised at step %d", state.meta.step_count + 1)
        return None


async def _execute(
    executor: ActionExecutor,
    act: DialogueAct,
    persona: Persona,
    state: Blackboard,
) -> Delta | None:
    try:
        return await executor.execute(act, persona, state)
    except Exception:
        logger.exception("Action executor raised on %s at step %d", act.value, state.meta.step_count + 1)
        return None


async def _judge(judge: JudgePanel, state: Blackboard) -> JudgmentMetrics | None:
    try:
        return await judge.judge(state)
    except Exception:
        logger.exception("Judge panel raised at step %d", state.meta.step_count)
        return None


async def run_deliberation(
    state: Blackboard,
    oracle: DecisionOracle,
    executor: ActionExecutor,
    *,
    max_steps: int = 10,
    thresholds: ConvergenceThresholds = ConvergenceThresholds(),
    strategy: RotationStrategy | None = None,
    estimated_tokens: int = DEFAULT_STEP_TOKENS,
    patterns: Sequence[ResolutionPattern] = DEFAULT_RESOLUTION_PATTERNS,
    markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
    force_critique: bool = True,
    judge: JudgePanel | None = None,
    on_round_complete: RoundCallback | None = None,
) -> DeliberationResult:
    """Run rounds until the debate converges, finalizes, or hits ``max_steps``.

    Each round awaits the oracle, then the executor, and applies the
    resulting delta in full before the next round starts. A missing
    decision or delta ends the loop early with the last complete
    blackboard; that is reported through ``aborted`` rather than raised.

    Args:
        state: Initialized blackboard with a non-empty persona roster.
        oracle: Chooses the dialogue act and nominates a persona.
        executor: Performs the act and returns a delta.
        max_steps: Hard cap on the blackboard's step count.
        thresholds: Convergence gates.
        strategy: Persona rotation strategy (default: avoid repeats).
        estimated_tokens: Tokens added to the advisory budget per round.
        patterns: Keyword patterns for automatic attack resolution.
        markers: Stance lexicon for the one-sided gate.
        force_critique: Turn non-final acts into critiques while rebuttals are scarce.
        judge: Optional panel scoring each round; its convergence score is
            recorded in the history instead of the mean claim confidence.
        on_round_complete: Called with (state, decision, persona) after each round.

    Returns:
        DeliberationResult with the final blackboard and why the loop ended.

    Raises:
        ValueError: If ``max_steps`` < 1 or the roster is empty.
    """
    if max_steps < 1:
        raise ValueError(f"max_steps must be at least 1, got {max_steps}")
    if not state.personas:
        raise ValueError("Deliberation needs at least one persona")

    rounds = 0
    budget_warned = False

    while state.meta.step_count < max_steps:
        step = state.meta.step_count + 1

        decision = await _decide(oracle, state)
        if decision is None:
            logger.warning("No usable decision at step %d, ending deliberation", step)
            return DeliberationResult(state, f"Aborted at step {step}: no decision", rounds, aborted=True)

        act = decision.dialogue_act
        forced = False
        if force_critique and act not in (DialogueAct.FINALIZE, DialogueAct.CRITIQUE) and needs_critique(state):
            act = DialogueAct.CRITIQUE
            forced = True
            decision = replace(decision, dialogue_act=act)

        persona = select_persona(state, decision.selected_persona_id, strategy)

        delta = await _execute(executor, act, persona, state)
        if delta is None:
            logger.warning("No usable delta for %s at step %d, ending deliberation", act.value, step)
            return DeliberationResult(state, f"Aborted at step {step}: no delta", rounds, aborted=True)

        if act is DialogueAct.CRITIQUE and not delta.new_attacks:
            logger.info("Critique by %s produced no attacks, retrying once", persona.id)
            retry = await _execute(executor, act, persona, state)
            if retry is not None:
                delta = retry

        before = state
        state = apply_delta(state, delta, estimated_tokens, patterns=patterns)
        state = record_turn(state, persona, before)
        judgment = await _judge(judge, state) if judge is not None else None
        state = refresh_scores(state, judgment)
        rounds += 1

        logger.info(
            "Step %d: %s by %s%s | claims=%d attacks=%d unresolved=%d consensus=%.2f",
            state.meta.step_count,
            act.value,
            persona.id,
            " (forced)" if forced else "",
            len(state.claims),
            len(state.attacks),
            len(state.unresolved_attacks()),
            state.consensus_level,
        )

        if state.budget_exhausted and not budget_warned:
            logger.warning(
                "Token budget exceeded (%d/%d); continuing, the budget is advisory",
                state.meta.used_tokens, state.meta.token_budget,
            )
            budget_warned = True

        if on_round_complete:
            on_round_complete(state, decision, persona)

        if act is DialogueAct.FINALIZE:
            return DeliberationResult(state, "Finalize act chosen", rounds)
        if decision.should_finalize:
            return DeliberationResult(state, "Oracle signalled finalization", rounds)

        verdict = check_convergence(state, max_steps, thresholds, markers)
        if verdict.finalize:
            logger.info("Finalizing: %s", verdict.reason)
            return DeliberationResult(state, verdict.reason, rounds)
        logger.debug("Continuing: %s", verdict.reason)

    return DeliberationResult(state, f"Reached the step limit ({state.meta.step_count}/{max_steps})", rounds)


async def run_session(
    topic: str,
    *,
    oracle: DecisionOracle,
    executor: ActionExecutor,
    writer: FinalWriter | None = None,
    personas: Sequence[Persona] | None = None,
    persona_creator: PersonaCreator | None = None,
    max_steps: int = 10,
    token_budget: int = DEFAULT_TOKEN_BUDGET,
    thresholds: ConvergenceThresholds = ConvergenceThresholds(),
    strategy: RotationStrategy | None = None,
    estimated_tokens: int = DEFAULT_STEP_TOKENS,
    patterns: Sequence[ResolutionPattern] = DEFAULT_RESOLUTION_PATTERNS,
    markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
    force_critique: bool = True,
    judge: JudgePanel | None = None,
    on_round_complete: RoundCallback | None = None,
) -> SessionResult:
    """Run a full session: build the roster, deliberate, and write the document.

    The roster comes from ``personas``, else ``persona_creator``, else the
    built-in defaults. The session always ends with a non-empty document.
    """
    start = time.monotonic()

    roster: tuple[Persona, ...] = tuple(personas or ())
    if not roster and persona_creator is not None:
        try:
            roster = tuple(await persona_creator.create(topic))
        except Exception:
            logger.exception("Persona creator raised, using default personas")
    if not roster:
        roster = build_default_personas(topic)
    logger.info("Roster: %s", ", ".join(p.name for p in roster))

    state = initialize_blackboard(topic, roster, token_budget)
    result = await run_deliberation(
        state,
        oracle,
        executor,
        max_steps=max_steps,
        thresholds=thresholds,
        strategy=strategy,
        estimated_tokens=estimated_tokens,
        patterns=patterns,
        markers=markers,
        force_critique=force_critique,
        judge=judge,
        on_round_complete=on_round_complete,
    )

    document, used_fallback = await finalize_document(result.blackboard, writer, markers)
    if used_fallback:
        logger.warning("Session ended without a written essay, used the fallback document")

    return SessionResult(
        topic=topic,
        document=document,
        blackboard=replace(result.blackboard, final_document=document),
        status=result.status,
        total_duration_sec=time.monotonic() - start,
        used_fallback_document=used_fallback,
        rounds_run=result.rounds_run,
        aborted=result.aborted,
    )

"""Tests for src/deliberation.py — collaborators are scripted doubles."""

import logging

import pytest

from src.blackboard import initialize_blackboard
from src.convergence import ConvergenceThresholds
from src.deliberation import run_deliberation, run_session
from src.models import Decision, Delta, DialogueAct, JudgmentMetrics
from src.personas import RoleRotationStrategy
from tests.conftest import RepeatingExecutor, RepeatingOracle, ScriptedExecutor, ScriptedOracle


def _decision(act: DialogueAct, persona_id: str | None = None, finalize: bool = False) -> Decision:
    return Decision(dialogue_act=act, selected_persona_id=persona_id, should_finalize=finalize)


async def test_stops_at_max_steps(board):
    result = await run_deliberation(board, RepeatingOracle(), RepeatingExecutor(), max_steps=3)
    assert result.rounds_run == 3
    assert result.blackboard.meta.step_count == 3
    assert "step limit" in result.status
    assert result.aborted is False


async def test_never_exceeds_max_steps_even_when_started_late(board):
    executor = RepeatingExecutor()
    result = await run_deliberation(board, RepeatingOracle(), executor, max_steps=1, force_critique=False)
    assert result.blackboard.meta.step_count == 1
    assert len(executor.calls) == 1


async def test_invalid_arguments_raise(board):
    with pytest.raises(ValueError):
        await run_deliberation(board, RepeatingOracle(), RepeatingExecutor(), max_steps=0)
    with pytest.raises(ValueError):
        await run_deliberation(initialize_blackboard("t"), RepeatingOracle(), RepeatingExecutor())


async def test_finalize_act_ends_loop(board):
    oracle = ScriptedOracle([_decision(DialogueAct.FINALIZE)])
    executor = ScriptedExecutor([Delta(final_document="Done.")])
    result = await run_deliberation(board, oracle, executor, max_steps=10)
    assert result.rounds_run == 1
    assert result.status == "Finalize act chosen"
    assert result.blackboard.final_document == "Done."


async def test_should_finalize_signal_ends_loop(board):
    oracle = ScriptedOracle([_decision(DialogueAct.CRITIQUE, finalize=True)])
    executor = ScriptedExecutor([Delta(new_claims=({"text": "Point"},))])
    result = await run_deliberation(board, oracle, executor, max_steps=10)
    assert result.rounds_run == 1
    assert "finalization" in result.status


async def test_oracle_none_aborts_with_partial_board(board):
    oracle = ScriptedOracle([_decision(DialogueAct.CRITIQUE)])
    executor = ScriptedExecutor([Delta(new_claims=({"text": "Only claim"},))])
    result = await run_deliberation(board, oracle, executor, max_steps=10)
    assert result.aborted is True
    assert result.rounds_run == 1
    assert [c.text for c in result.blackboard.claims] == ["Only claim"]
    assert "no decision" in result.status


async def test_executor_none_aborts_without_applying(board):
    oracle = RepeatingOracle(DialogueAct.PLAN)
    result = await run_deliberation(board, oracle, ScriptedExecutor([]), max_steps=10, force_critique=False)
    assert result.aborted is True
    assert result.rounds_run == 0
    assert result.blackboard == board


async def test_collaborator_exceptions_degrade_to_abort(board, caplog):
    class Exploding:
        async def decide(self, state):
            raise RuntimeError("oracle crashed")

    result = await run_deliberation(board, Exploding(), RepeatingExecutor(), max_steps=5)
    assert result.aborted is True
    assert "oracle crashed" in caplog.text


async def test_critique_without_attacks_is_retried_once(board):
    oracle = ScriptedOracle([_decision(DialogueAct.CRITIQUE)])
    executor = ScriptedExecutor([
        Delta(new_claims=({"text": "First try, no attack"},)),
        Delta(new_claims=({"text": "Second try"},)),
    ])
    result = await run_deliberation(board, oracle, executor, max_steps=10)
    assert len(executor.calls) == 2
    assert [c.text for c in result.blackboard.claims] == ["Second try"]


async def test_failed_retry_keeps_first_delta(board):
    oracle = ScriptedOracle([_decision(DialogueAct.CRITIQUE)])
    executor = ScriptedExecutor([Delta(new_claims=({"text": "First try"},))])
    result = await run_deliberation(board, oracle, executor, max_steps=10)
    assert [c.text for c in result.blackboard.claims] == ["First try"]


async def test_early_rounds_are_forced_to_critique(board, caplog):
    executor = RepeatingExecutor()
    with caplog.at_level(logging.INFO, logger="src.deliberation"):
        await run_deliberation(board, RepeatingOracle(DialogueAct.PROPOSE), executor, max_steps=2)
    assert {act for act, _ in executor.calls} == {DialogueAct.CRITIQUE}
    assert "(forced)" in caplog.text


async def test_forcing_can_be_disabled(board):
    executor = RepeatingExecutor()
    await run_deliberation(board, RepeatingOracle(DialogueAct.PROPOSE), executor, max_steps=2, force_critique=False)
    assert [act for act, _ in executor.calls] == [DialogueAct.PROPOSE, DialogueAct.PROPOSE]


async def test_finalize_is_never_forced(board):
    executor = ScriptedExecutor([Delta()])
    await run_deliberation(board, ScriptedOracle([_decision(DialogueAct.FINALIZE)]), executor, max_steps=5)
    assert executor.calls[0][0] == DialogueAct.FINALIZE


async def test_persona_never_repeats_consecutively(board):
    executor = RepeatingExecutor()
    await run_deliberation(board, RepeatingOracle(persona_id="p1"), executor, max_steps=8, force_critique=False)
    speakers = [pid for _, pid in executor.calls]
    assert all(a != b for a, b in zip(speakers, speakers[1:]))


async def test_role_rotation_strategy_is_used(board):
    executor = RepeatingExecutor()
    await run_deliberation(board, RepeatingOracle(), executor, max_steps=3, strategy=RoleRotationStrategy(),
                           force_critique=False)
    assert [pid for _, pid in executor.calls] == ["p1", "p2", "p1"]


async def test_round_updates_contributions_scores_and_callback(board):
    seen = []
    result = await run_deliberation(
        board, RepeatingOracle(persona_id="p2"), RepeatingExecutor(), max_steps=2,
        on_round_complete=lambda state, decision, persona: seen.append((state.meta.step_count, persona.id)),
    )
    final = result.blackboard
    assert seen == [(1, "p2"), (2, "p1")]
    assert final.contributions["p2"].turns == 1
    assert final.contributions["p2"].claim_count == 1
    assert final.contributions["p1"].challenge_count == 1
    assert final.meta.last_selected_persona_id == "p1"
    assert len(final.meta.convergence_history) == 2
    assert final.consensus_level > 0


async def test_each_round_sees_previous_round_state(board):
    tracking = ScriptedOracle([_decision(DialogueAct.PROPOSE)] * 3)
    executor = RepeatingExecutor()
    await run_deliberation(board, tracking, executor, max_steps=3, force_critique=False)
    assert [s.meta.step_count for s in tracking.seen] == [0, 1, 2]
    assert [len(s.claims) for s in tracking.seen] == [0, 1, 2]


async def test_converges_before_max_steps(board):
    texts = [
        "Trams should be adopted",
        "They are a risk to cyclists",
        "They are important for commuters",
        "Track works are a concern for shops",
        "The pilot ran for two years",
        "Fares should stay low",
    ]

    class BalancedExecutor:
        async def execute(self, act, persona, state):
            n = state.meta.step_count + 1
            attacks = ()
            if n > 1:
                attacks = ({"fromClaimId": f"c{n}", "toClaimId": "c1", "severity": "minor",
                            "description": f"Distinct objection number {n}"},)
            return Delta(new_claims=({"id": f"c{n}", "text": texts[n - 1]},), new_attacks=attacks)

    result = await run_deliberation(
        board, RepeatingOracle(), BalancedExecutor(), max_steps=10, force_critique=False,
        thresholds=ConvergenceThresholds(min_steps=4, min_claims=5, min_attacks=3, max_unresolved=5),
    )
    assert result.status.startswith("Converged")
    assert result.rounds_run == 5


async def test_judge_scores_feed_convergence_history(board):
    scores = iter([0.4, 0.6, 0.9])

    class Judge:
        def __init__(self):
            self.seen = []

        async def judge(self, state):
            self.seen.append(state.meta.step_count)
            return JudgmentMetrics(convergence_score=next(scores))

    judge = Judge()
    result = await run_deliberation(board, RepeatingOracle(), RepeatingExecutor(), max_steps=3, judge=judge)
    assert judge.seen == [1, 2, 3]
    assert result.blackboard.meta.convergence_history == (0.4, 0.6, 0.9)
    assert result.blackboard.judgment.convergence_score == 0.9


async def test_judge_failure_falls_back_to_mean_confidence(board, caplog):
    class Broken:
        async def judge(self, state):
            raise RuntimeError("panel offline")

    class Silent:
        async def judge(self, state):
            return None

    for judge in (Broken(), Silent()):
        result = await run_deliberation(board, RepeatingOracle(), RepeatingExecutor(), max_steps=2, judge=judge)
        assert result.rounds_run == 2
        assert len(result.blackboard.meta.convergence_history) == 2
        assert result.blackboard.meta.convergence_history[0] == pytest.approx(0.7)
        assert result.blackboard.judgment is None
    assert "Judge panel raised" in caplog.text


async def test_budget_overrun_is_warned_once(board, caplog):
    board = initialize_blackboard(board.topic, board.personas, token_budget=600)
    await run_deliberation(board, RepeatingOracle(), RepeatingExecutor(), max_steps=4, estimated_tokens=500)
    assert caplog.text.count("Token budget exceeded") == 1


# --- run_session ---------------------------------------------------------------

async def test_run_session_uses_written_document(personas):
    oracle = ScriptedOracle([_decision(DialogueAct.FINALIZE)])
    executor = ScriptedExecutor([Delta(final_document="Final essay [c1].")])
    result = await run_session("Ban cars", oracle=oracle, executor=executor, personas=personas)
    assert result.document == "Final essay."
    assert result.used_fallback_document is False
    assert result.blackboard.final_document == "Final essay."
    assert result.total_duration_sec >= 0


async def test_run_session_always_yields_a_document():
    result = await run_session("Ban cars", oracle=ScriptedOracle([]), executor=ScriptedExecutor([]))
    assert result.aborted is True
    assert result.used_fallback_document is True
    assert result.document
    assert [p.name for p in result.blackboard.personas] == ["Dr. Insight", "Ms. Skeptic", "Mr. Bridge"]


async def test_run_session_uses_persona_creator(personas):
    class Creator:
        async def create(self, topic):
            return personas

    result = await run_session(
        "Ban cars", oracle=ScriptedOracle([]), executor=ScriptedExecutor([]), persona_creator=Creator(),
    )
    assert result.blackboard.personas == personas


async def test_run_session_survives_persona_creator_crash():
    class Broken:
        async def create(self, topic):
            raise RuntimeError("no roster")

    result = await run_session(
        "Ban cars", oracle=ScriptedOracle([]), executor=ScriptedExecutor([]), persona_creator=Broken(),
    )
    assert len(result.blackboard.personas) == 3


async def test_run_session_writer_fills_missing_document(personas):
    class Writer:
        async def write(self, state):
            return "Essay from the writer."

    result = await run_session(
        "Ban cars",
        oracle=RepeatingOracle(),
        executor=RepeatingExecutor(),
        writer=Writer(),
        personas=personas,
        max_steps=2,
    )
    assert result.document == "Essay from the writer."
    assert result.rounds_run == 2


async def test_run_session_writer_crash_still_yields_fallback(personas, caplog):
    class Broken:
        async def write(self, state):
            raise ValueError("unknown placeholder")

    result = await run_session(
        "Ban cars",
        oracle=RepeatingOracle(),
        executor=RepeatingExecutor(),
        writer=Broken(),
        personas=personas,
        max_steps=2,
    )
    assert result.used_fallback_document is True
    assert result.document
    assert "Final writer failed" in caplog.text

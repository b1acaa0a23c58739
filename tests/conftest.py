"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig
from src.blackboard import initialize_blackboard
from src.models import Blackboard, Decision, Delta, DialogueAct, ModelResponse, Persona, Role
from src.providers.base import AIProvider


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        decision_system="Pick the next act.",
        decision=(
            "Topic: {topic}\nPersonas:\n{personas}\nClaims:\n{claims}\nAttacks:\n{attacks}\n"
            "Questions:\n{questions}\nPlan:\n{plan}\nRefs:\n{cross_references}\n"
            "Step {step}, consensus {consensus}, {stance_balance}\n{last_persona}\n{critique_hint}\nActs: {acts}"
        ),
        execution_system="Perform the act.",
        execution=(
            "Act: {act}\nYou are {persona_name} ({persona_id}), expertise {persona_expertise}, "
            "values {persona_values}, style {persona_style}.\nTopic: {topic}\n{claims}\n{attacks}\n{act_instructions}"
        ),
        final_system="Write the essay.",
        final="Topic: {topic}\n{claims}\n{attacks}\n{plan}\nConsensus {consensus}",
        persona_system="Design personas.",
        persona="Personas for: {topic}",
        judge_system="Score the debate.",
        judge=(
            "Topic: {topic} claims {claim_count} attacks {attack_count} open {unresolved} "
            "refs {cross_reference_count} consensus {consensus}\n{claims}\n{attacks}"
        ),
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        max_steps=6,
        token_budget=5000,
        output_dir=tmp_path / "output",
        oracle="claude",
        executor="claude",
        writer="claude",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        available_providers={"claude"},
    )


@pytest.fixture
def personas() -> tuple[Persona, ...]:
    return (
        Persona(id="p1", name="Analyst", expertise=("economics", "policy"), values=("evidence",), role=Role.EXPERT),
        Persona(id="p2", name="Skeptic", expertise=("logic",), values=("rigor",), role=Role.CRITIC),
        Persona(id="p3", name="Bridge", expertise=("mediation",), values=("balance",), role=Role.SYNTHESIZER),
    )


@pytest.fixture
def board(personas) -> Blackboard:
    return initialize_blackboard("X should be adopted", personas)


def _response(provider: str, content: str, purpose: str = "decision") -> ModelResponse:
    return ModelResponse(
        provider=provider,
        model="mock-model",
        purpose=purpose,
        content=content,
        latency_sec=0.1,
        token_count=10,
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(return_value=_response(provider_name, response_content))  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt, purpose, *, system=None, temperature=None) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return _response(self._name, self._response_content, purpose)

    def reply_with(self, *contents: str) -> None:
        """Answer successive calls with ``contents`` in order."""
        self.generate = AsyncMock(side_effect=[_response(self._name, c) for c in contents])  # type: ignore[assignment]


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


class ScriptedOracle:
    """Decision oracle double that returns queued decisions, then None."""

    def __init__(self, decisions) -> None:
        self._decisions = list(decisions)
        self.seen: list[Blackboard] = []

    async def decide(self, state: Blackboard) -> Decision | None:
        self.seen.append(state)
        return self._decisions.pop(0) if self._decisions else None


class ScriptedExecutor:
    """Action executor double that returns queued deltas, then None."""

    def __init__(self, deltas) -> None:
        self._deltas = list(deltas)
        self.calls: list[tuple[DialogueAct, str]] = []

    async def execute(self, act: DialogueAct, persona: Persona, state: Blackboard) -> Delta | None:
        self.calls.append((act, persona.id))
        return self._deltas.pop(0) if self._deltas else None


class RepeatingOracle:
    """Always chooses the same act."""

    def __init__(self, act: DialogueAct = DialogueAct.PROPOSE, persona_id: str | None = None) -> None:
        self.act = act
        self.persona_id = persona_id

    async def decide(self, state: Blackboard) -> Decision:
        return Decision(dialogue_act=self.act, selected_persona_id=self.persona_id)


class RepeatingExecutor:
    """Returns claim c{step} and an attack on the previous claim each round."""

    def __init__(self) -> None:
        self.calls: list[tuple[DialogueAct, str]] = []

    async def execute(self, act: DialogueAct, persona: Persona, state: Blackboard) -> Delta:
        self.calls.append((act, persona.id))
        n = state.meta.step_count + 1
        claims = ({"id": f"c{n}", "text": f"Point number {n} about the topic"},)
        attacks = ()
        if n > 1:
            attacks = ({"fromClaimId": f"c{n}", "toClaimId": f"c{n - 1}",
                        "severity": "minor", "description": f"Objection {n} to the previous point"},)
        return Delta(new_claims=claims, new_attacks=attacks)

"""Integration tests — real API calls, no mocks. Requires .env with an API key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

_AVAILABLE_KEYS = [
    k for k in ["OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY", "XAI_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if not _AVAILABLE_KEYS:
    pytestmark = pytest.mark.skip(reason="No API keys found")


async def test_short_session_end_to_end(tmp_path: Path):
    """Run a real two-step session with the first available provider in every role."""
    from config.config_loader import load_config
    from src.agents import LLMActionExecutor, LLMDecisionOracle
    from src.cli import _build_providers
    from src.deliberation import run_session
    from src.output import save_to_file
    from src.synthesis import LLMFinalWriter

    config = load_config()
    providers = _build_providers(config, config.available_providers)
    assert providers, "No provider could be instantiated"
    provider = providers[sorted(providers)[0]]

    result = await run_session(
        "Should a small city replace its buses with trams?",
        oracle=LLMDecisionOracle(provider, config.prompts, config.stance_markers),
        executor=LLMActionExecutor(provider, config.prompts),
        writer=LLMFinalWriter(provider, config.prompts),
        personas=config.personas,
        max_steps=2,
        thresholds=config.convergence,
        patterns=config.resolution_patterns,
        markers=config.stance_markers,
    )

    assert result.document.strip()
    assert result.blackboard.meta.step_count <= 2

    saved = save_to_file(result, tmp_path / "output")
    content = saved.read_text(encoding="utf-8")
    assert "# Deliberation:" in content
    assert "## Document" in content

"""Final document: LLM essay writer, templated fallback, and id stripping."""

import logging
import re
from typing import Protocol

from config.config_loader import PromptsConfig
from src.agents import call_provider
from src.models import Blackboard, ModelResponse, Severity, Stance
from src.providers.base import AIProvider
from src.snapshot import format_attacks, format_claims, format_plan
from src.stance import DEFAULT_STANCE_MARKERS, StanceMarkers, classify_claim

logger = logging.getLogger(__name__)

_EMPTY_BOARD_DOCUMENT = (
    "The deliberation ended before any claims were recorded, so no position "
    "can be argued. Run a longer session to produce an essay."
)

# [c3], (c3), [a1, c2]
_ID_REFERENCE = re.compile(r"\s*[\[(]\s*(?:[ca]\d+\s*,?\s*)+[\])]", re.IGNORECASE)
_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.MINOR: 2}
_EXTRA_SPACES = re.compile(r"[ \t]{2,}")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([.,;:!?])")


class FinalWriter(Protocol):
    async def write(self, state: Blackboard) -> str:
        """Write the final essay. May raise on failure."""
        ...


def strip_claim_ids(text: str) -> str:
    """Remove claim and attack id references such as ``[c3]`` from prose."""
    cleaned = _ID_REFERENCE.sub("", text)
    cleaned = _SPACE_BEFORE_PUNCT.sub(r"\1", cleaned)
    return "\n".join(_EXTRA_SPACES.sub(" ", line).rstrip() for line in cleaned.splitlines()).strip()


def _sentence(text: str) -> str:
    text = text.strip()
    if text and text[-1] not in ".!?":
        text += "."
    return text


def fallback_document(
    state: Blackboard,
    top_n: int = 5,
    markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
) -> str:
    """Build a plain essay from the strongest claims without calling a model.

    The top ``top_n`` claims by confidence are grouped by stance: supporting
    grounds first, then concerns, then remaining observations. The strongest
    unresolved objection, if any, closes the essay. Never raises.
    """
    try:
        ranked = sorted(state.claims, key=lambda c: c.confidence, reverse=True)[:max(top_n, 1)]
        if not ranked:
            return _EMPTY_BOARD_DOCUMENT

        groups: dict[Stance, list[str]] = {Stance.PRO: [], Stance.CON: [], Stance.NEUTRAL: []}
        for claim in ranked:
            groups[classify_claim(claim.text, markers)].append(_sentence(claim.text))

        paragraphs = [f"This essay considers the question: {_sentence(state.topic)}"]
        if groups[Stance.PRO]:
            paragraphs.append("The strongest grounds in favour are these. " + " ".join(groups[Stance.PRO]))
        if groups[Stance.CON]:
            paragraphs.append("Several concerns weigh against it. " + " ".join(groups[Stance.CON]))
        if groups[Stance.NEUTRAL]:
            paragraphs.append("Other considerations were raised. " + " ".join(groups[Stance.NEUTRAL]))

        open_attacks = state.unresolved_attacks()
        if open_attacks:
            strongest = min(open_attacks, key=lambda a: _SEVERITY_RANK[a.severity])
            paragraphs.append(
                "The most serious objection still standing is that "
                f"{_sentence(strongest.description[:1].lower() + strongest.description[1:])} "
                "Any final position has to answer it."
            )

        if len(groups[Stance.PRO]) >= len(groups[Stance.CON]):
            paragraphs.append("On balance, the case in favour is the stronger one, provided these concerns are managed.")
        else:
            paragraphs.append("On balance, the concerns outweigh the case in favour at this stage.")
        return strip_claim_ids("\n\n".join(paragraphs))
    except Exception:
        logger.exception("Fallback document failed, using minimal text")
        top = max(state.claims, key=lambda c: c.confidence, default=None)
        return _sentence(top.text) if top is not None and top.text.strip() else _EMPTY_BOARD_DOCUMENT


class LLMFinalWriter:
    """Writes the final persuasive essay from the blackboard via a provider."""

    temperature = 0.7

    def __init__(self, provider: AIProvider, prompts: PromptsConfig) -> None:
        self._provider = provider
        self._prompts = prompts

    def build_prompt(self, state: Blackboard) -> str:
        return self._prompts.final.format(
            topic=state.topic,
            claims=format_claims(state),
            attacks=format_attacks(state),
            plan=format_plan(state),
            consensus=f"{state.consensus_level:.2f}",
        )

    async def write(self, state: Blackboard) -> str:
        """Write the essay.

        Raises:
            ProviderError: If the provider call fails.
            RuntimeError: If the provider returns empty content.
        """
        logger.info("Writing final document via %s", self._provider.name())
        response: ModelResponse = await call_provider(
            self._provider,
            self.build_prompt(state),
            "final",
            system=self._prompts.final_system,
            temperature=self.temperature,
        )
        if not response.content or not response.content.strip():
            raise RuntimeError(f"Final writer {self._provider.name()} returned empty content")
        return response.content


async def finalize_document(
    state: Blackboard,
    writer: FinalWriter | None = None,
    markers: StanceMarkers = DEFAULT_STANCE_MARKERS,
) -> tuple[str, bool]:
    """Produce the session's document; the second element is True for the fallback.

    Uses the document already on the blackboard when there is one, then the
    writer, then the templated fallback.
    """
    if state.final_document and state.final_document.strip():
        return strip_claim_ids(state.final_document), False

    if state.writepad.final_draft and state.writepad.final_draft.strip():
        return strip_claim_ids(state.writepad.final_draft), False

    if writer is not None:
        try:
            text = strip_claim_ids(await writer.write(state))
        except Exception:
            logger.exception("Final writer failed, using fallback document")
        else:
            if text:
                return text, False
            logger.warning("Final writer produced no text, using fallback document")

    return fallback_document(state, markers=markers), True

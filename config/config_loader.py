"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.convergence import ConvergenceThresholds
from src.models import Persona
from src.personas import persona_from_mapping
from src.resolution import DEFAULT_RESOLUTION_PATTERNS, ResolutionPattern
from src.stance import DEFAULT_STANCE_MARKERS, StanceMarkers

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    base_url: str | None = None


@dataclass
class PromptsConfig:
    decision_system: str
    decision: str
    execution_system: str
    execution: str
    final_system: str
    final: str
    persona_system: str = ""
    persona: str = ""
    judge_system: str = ""
    judge: str = ""


@dataclass
class DefaultsConfig:
    max_steps: int
    token_budget: int
    output_dir: Path
    oracle: str
    executor: str
    writer: str
    estimated_tokens_per_step: int = 500
    persona_creator: str | None = None
    judge: str | None = None
    force_critique: bool = True
    rotation: str = "avoid-repeat"


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    convergence: ConvergenceThresholds = field(default_factory=ConvergenceThresholds)
    personas: tuple[Persona, ...] = ()
    resolution_patterns: tuple[ResolutionPattern, ...] = DEFAULT_RESOLUTION_PATTERNS
    stance_markers: StanceMarkers = DEFAULT_STANCE_MARKERS
    inbox: InboxConfig = field(default_factory=InboxConfig)
    available_providers: set[str] = field(default_factory=set)


def _load_patterns(raw: list | None) -> tuple[ResolutionPattern, ...]:
    if not raw:
        return DEFAULT_RESOLUTION_PATTERNS
    return tuple(
        ResolutionPattern(
            name=str(entry.get("name", f"pattern-{i + 1}")),
            attack_keywords=tuple(str(k) for k in entry["attack"]),
            claim_keywords=tuple(str(k) for k in entry["claim"]),
        )
        for i, entry in enumerate(raw)
    )


def _load_markers(raw: dict | None) -> StanceMarkers:
    if not raw:
        return DEFAULT_STANCE_MARKERS
    return StanceMarkers(
        negated=tuple(raw.get("negated", DEFAULT_STANCE_MARKERS.negated)),
        pro=tuple(raw.get("pro", DEFAULT_STANCE_MARKERS.pro)),
        con=tuple(raw.get("con", DEFAULT_STANCE_MARKERS.con)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_steps=int(defaults_raw["max_steps"]),
        token_budget=int(defaults_raw["token_budget"]),
        output_dir=Path(defaults_raw["output_dir"]),
        oracle=str(defaults_raw["oracle"]),
        executor=str(defaults_raw["executor"]),
        writer=str(defaults_raw["writer"]),
        estimated_tokens_per_step=int(defaults_raw.get("estimated_tokens_per_step", 500)),
        persona_creator=defaults_raw.get("persona_creator"),
        judge=defaults_raw.get("judge"),
        force_critique=bool(defaults_raw.get("force_critique", True)),
        rotation=str(defaults_raw.get("rotation", "avoid-repeat")),
    )

    convergence_raw = raw.get("convergence", {})
    convergence = ConvergenceThresholds(
        min_steps=int(convergence_raw.get("min_steps", 4)),
        min_claims=int(convergence_raw.get("min_claims", 5)),
        min_attacks=int(convergence_raw.get("min_attacks", 3)),
        max_unresolved=int(convergence_raw.get("max_unresolved", 5)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        decision_system=prompts_raw["decision_system"],
        decision=prompts_raw["decision"],
        execution_system=prompts_raw["execution_system"],
        execution=prompts_raw["execution"],
        final_system=prompts_raw["final_system"],
        final=prompts_raw["final"],
        persona_system=prompts_raw.get("persona_system", ""),
        persona=prompts_raw.get("persona", ""),
        judge_system=prompts_raw.get("judge_system", ""),
        judge=prompts_raw.get("judge", ""),
    )

    personas = tuple(
        p for p in (persona_from_mapping(entry, i) for i, entry in enumerate(raw.get("personas") or []))
        if p is not None
    )

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=float(model_raw.get("temperature", 0.7)),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        convergence=convergence,
        personas=personas,
        resolution_patterns=_load_patterns(raw.get("resolution_patterns")),
        stance_markers=_load_markers(raw.get("stance_markers")),
        inbox=inbox,
        available_providers=available_providers,
    )

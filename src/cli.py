"""Click CLI: config loading, provider wiring, deliberation session, and output."""

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from src.agents import LLMActionExecutor, LLMDecisionOracle, LLMJudgePanel, LLMPersonaCreator
from src.deliberation import run_session
from src.healthcheck import run_health_checks
from src.inbox import archive_file, ensure_dirs, parse_file, scan_inbox
from src.models import Blackboard, Decision, Persona
from src.output import print_claims_table, print_document, print_round_summary, save_to_file
from src.personas import ROTATION_STRATEGIES
from src.providers.anthropic import AnthropicProvider
from src.providers.base import AIProvider
from src.providers.gemini import GeminiProvider
from src.providers.openai_provider import OpenAIProvider
from src.synthesis import LLMFinalWriter

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Keyed by the "sdk" field of a model config.
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "openai-compatible": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


@dataclass
class Roles:
    """Provider names for each collaborator role."""

    oracle: str
    executor: str
    writer: str | None
    persona_creator: str | None = None
    judge: str | None = None

    def required(self) -> set[str]:
        return {self.oracle, self.executor}

    def optional(self) -> set[str]:
        return {n for n in (self.writer, self.persona_creator, self.judge) if n}


@dataclass
class RunSettings:
    max_steps: int
    token_budget: int
    rotation: str
    force_critique: bool


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_providers(config: AppConfig, names: set[str]) -> dict[str, AIProvider]:
    """Instantiate the named providers that have API keys. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(names):
        if name not in config.models:
            logger.warning("Provider '%s' is not configured, skipping", name)
            continue
        if name not in config.available_providers:
            logger.warning("Provider '%s' has no API key, skipping", name)
            continue
        model_cfg = config.models[name]
        cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if cls is None:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = cls(model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _require_roles(roles: Roles, providers: dict[str, AIProvider]) -> Roles:
    """Exit if the oracle or executor is unavailable; drop unavailable optional roles."""
    missing = sorted(n for n in roles.required() if n not in providers)
    if missing:
        console.print(
            f"[bold red]Error:[/bold red] Required provider(s) unavailable: {', '.join(missing)}. "
            "Check API keys in .env or adjust --oracle/--executor."
        )
        sys.exit(1)

    writer = roles.writer if roles.writer in providers else None
    creator = roles.persona_creator if roles.persona_creator in providers else None
    judge = roles.judge if roles.judge in providers else None
    if roles.writer and writer is None:
        console.print(f"[yellow]Writer '{roles.writer}' unavailable, the templated fallback will be used.[/yellow]")
    if roles.persona_creator and creator is None:
        console.print(f"[yellow]Persona creator '{roles.persona_creator}' unavailable, using configured personas.[/yellow]")
    if roles.judge and judge is None:
        console.print(f"[yellow]Judge '{roles.judge}' unavailable, tracking mean confidence instead.[/yellow]")
    return Roles(roles.oracle, roles.executor, writer, creator, judge)


def _check_and_filter_providers(providers: dict[str, AIProvider], roles: Roles) -> dict[str, AIProvider]:
    """Run health checks and print results.

    Returns the providers that passed. Exits if a required role failed, or
    if the user declines to continue without a failed optional role.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    json_roles = roles.required() | {n for n in (roles.persona_creator, roles.judge) if n}
    results = asyncio.run(run_health_checks(providers, json_roles))

    failed_names: list[str] = []
    for name in sorted(results):
        result = results[name]
        if result.ok:
            latency = f" ({result.latency_sec:.1f}s)" if result.latency_sec is not None else ""
            console.print(f"  [green]OK  [/green] {name}{latency}")
        else:
            short_err = result.error.splitlines()[0][:120] if result.error else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return providers

    if roles.required() & set(failed_names):
        console.print("\n[bold red]Error:[/bold red] The oracle or executor provider failed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} optional provider(s) failed:[/yellow] {', '.join(failed_names)}")
    if not click.confirm("Continue without them?", default=True):
        sys.exit(0)

    console.print()
    return {n: p for n, p in providers.items() if n not in failed_names}


async def _run_single(
    topic: str,
    config: AppConfig,
    providers: dict[str, AIProvider],
    roles: Roles,
    settings: RunSettings,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Run a single deliberation session and return the saved report path."""
    if settings.rotation not in ROTATION_STRATEGIES:
        raise click.BadParameter(f"Unknown rotation '{settings.rotation}'", param_hint="--rotation")

    oracle = LLMDecisionOracle(providers[roles.oracle], config.prompts, config.stance_markers)
    executor = LLMActionExecutor(providers[roles.executor], config.prompts)
    writer = LLMFinalWriter(providers[roles.writer], config.prompts) if roles.writer else None
    creator = (
        LLMPersonaCreator(providers[roles.persona_creator], config.prompts, fallback=config.personas)
        if roles.persona_creator else None
    )
    judge = LLMJudgePanel(providers[roles.judge], config.prompts) if roles.judge else None

    console.print(
        f"\n[bold cyan]Deliberation[/bold cyan] - up to {settings.max_steps} steps, "
        f"budget {settings.token_budget} tokens, rotation {settings.rotation}"
    )
    console.print(f"Oracle: {roles.oracle} | Executor: {roles.executor} | Writer: {roles.writer or 'fallback'}")
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    rounds: list[tuple[Blackboard, Decision, Persona]] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_round_complete(state: Blackboard, decision: Decision, persona: Persona) -> None:
            rounds.append((state, decision, persona))
            progress.print(
                f"[green]OK[/green] Step {state.meta.step_count}: "
                f"{decision.dialogue_act.value} by {persona.name}"
            )

        progress.add_task("Deliberating...", total=None)
        result = await run_session(
            topic,
            oracle=oracle,
            executor=executor,
            writer=writer,
            personas=None if creator else config.personas,
            persona_creator=creator,
            max_steps=settings.max_steps,
            token_budget=settings.token_budget,
            thresholds=config.convergence,
            strategy=ROTATION_STRATEGIES[settings.rotation](),
            estimated_tokens=config.defaults.estimated_tokens_per_step,
            patterns=config.resolution_patterns,
            markers=config.stance_markers,
            force_critique=settings.force_critique,
            judge=judge,
            on_round_complete=on_round_complete,
        )

    for state, decision, persona in rounds:
        print_round_summary(state, decision, persona)

    print_claims_table(result.blackboard)
    print_document(result)

    saved_path = save_to_file(result, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    config: AppConfig,
    providers: dict[str, AIProvider],
    roles: Roles,
    inbox_dir: Path,
    archive_dir: Path,
    cli_settings: dict,
    output_dir: Path,
) -> None:
    """Process all .md topic files in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            entry = parse_file(file_path)
            settings = RunSettings(
                max_steps=_first_set(cli_settings["max_steps"], entry.max_steps, config.defaults.max_steps),
                token_budget=_first_set(cli_settings["token_budget"], entry.token_budget, config.defaults.token_budget),
                rotation=_first_set(cli_settings["rotation"], entry.rotation, config.defaults.rotation),
                force_critique=cli_settings["force_critique"],
            )
            saved = await _run_single(
                topic=entry.topic,
                config=config,
                providers=providers,
                roles=roles,
                settings=settings,
                output_dir=output_dir,
                slug_override=file_path.stem,
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


def _first_set(*values):
    return next(v for v in values if v is not None)


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True), help="Read the topic from a .md file")
@click.option("--max-steps", default=None, type=click.IntRange(min=1), help="Hard cap on rounds (default: from config)")
@click.option("--token-budget", default=None, type=click.IntRange(min=1),
              help="Advisory token budget (default: from config)")
@click.option("--oracle", default=None, help="Provider that chooses dialogue acts (default: from config)")
@click.option("--executor", default=None, help="Provider that performs dialogue acts (default: from config)")
@click.option("--writer", default=None, help="Provider that writes the final essay (default: from config)")
@click.option("--judge", default=None, help="Provider that scores each round (default: from config)")
@click.option("--rotation", default=None, type=click.Choice(sorted(ROTATION_STRATEGIES)),
              help="Persona rotation strategy (default: from config)")
@click.option("--no-force-critique", is_flag=True, default=False,
              help="Do not force critique acts while rebuttals are scarce")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    topic: str | None,
    topic_file: str | None,
    max_steps: int | None,
    token_budget: int | None,
    oracle: str | None,
    executor: str | None,
    writer: str | None,
    judge: str | None,
    rotation: str | None,
    no_force_critique: bool,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
) -> None:
    """Deliberation board -- multi-persona debate that ends in a persuasive essay.

    \b
    Examples:
      python -m src.cli "Should schools ban smartphones?"
      python -m src.cli "Universal basic income" --max-steps 6 --rotation role
      python -m src.cli --file topic.md --oracle claude --executor openai
      python -m src.cli --inbox
      python -m src.cli --inbox --inbox-dir ./my_queue
    """
    # Model output can contain characters the Windows console codepage lacks.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    roles = Roles(
        oracle=oracle or config.defaults.oracle,
        executor=executor or config.defaults.executor,
        writer=writer or config.defaults.writer,
        persona_creator=config.defaults.persona_creator,
        judge=judge or config.defaults.judge,
    )
    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    force_critique = config.defaults.force_critique and not no_force_critique

    providers = _build_providers(config, roles.required() | roles.optional())
    roles = _require_roles(roles, providers)

    if not skip_health_check:
        providers = _check_and_filter_providers(providers, roles)
        roles = _require_roles(roles, providers)

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        asyncio.run(
            _run_inbox(
                config=config,
                providers=providers,
                roles=roles,
                inbox_dir=inbox_dir,
                archive_dir=config.inbox.archive_dir,
                cli_settings={
                    "max_steps": max_steps,          # None if not specified
                    "token_budget": token_budget,
                    "rotation": rotation,
                    "force_critique": force_critique,
                },
                output_dir=effective_output,
            )
        )
        return

    file_max_steps = file_budget = file_rotation = None
    if topic_file:
        try:
            entry = parse_file(Path(topic_file))
        except ValueError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            sys.exit(1)
        topic_text = entry.topic
        file_max_steps, file_budget, file_rotation = entry.max_steps, entry.token_budget, entry.rotation
    elif topic and topic.strip():
        topic_text = topic.strip()
    else:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument, --file, or --inbox.")
        sys.exit(1)

    settings = RunSettings(
        max_steps=_first_set(max_steps, file_max_steps, config.defaults.max_steps),
        token_budget=_first_set(token_budget, file_budget, config.defaults.token_budget),
        rotation=_first_set(rotation, file_rotation, config.defaults.rotation),
        force_critique=force_critique,
    )
    asyncio.run(
        _run_single(
            topic=topic_text,
            config=config,
            providers=providers,
            roles=roles,
            settings=settings,
            output_dir=effective_output,
        )
    )


if __name__ == "__main__":
    main()

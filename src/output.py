"""Rich console output and markdown/JSON report files for session results."""

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from src.models import Blackboard, Decision, Persona, SessionResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 40) -> str:
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round_summary(state: Blackboard, decision: Decision, persona: Persona) -> None:
    """Print a brief summary of the round that produced ``state``."""
    step = state.meta.step_count
    console.print(Rule(f"[bold cyan]Step {step}: {decision.dialogue_act.value}[/bold cyan]"))
    new_claims = [c for c in state.claims if c.created_at == step]
    body = "\n".join(f"[{c.id}] {_preview(c.text)}" for c in new_claims) or "(no new claims)"
    console.print(
        Panel(
            body,
            title=f"[bold]{persona.name}[/bold] ({persona.id})",
            subtitle=(
                f"claims {len(state.claims)} | attacks {len(state.attacks)} | "
                f"unresolved {len(state.unresolved_attacks())} | consensus {state.consensus_level:.2f}"
            ),
            border_style="dim",
        )
    )


def print_claims_table(state: Blackboard) -> None:
    table = Table(title="Claims", show_lines=False)
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Claim")
    table.add_column("Conf.", justify="right")
    table.add_column("Attacks", justify="right")
    for claim in sorted(state.claims, key=lambda c: c.confidence, reverse=True):
        open_attacks = sum(1 for a in state.attacks_on(claim.id) if not a.resolved)
        table.add_row(claim.id, _preview(claim.text, 25), f"{claim.confidence:.2f}", str(open_attacks))
    console.print(table)


def print_document(result: SessionResult) -> None:
    """Print the final document to the console using Rich markdown."""
    console.print(Rule("[bold green]Final Document[/bold green]"))
    meta = result.blackboard.meta
    console.print(
        Text(
            f"Status: {result.status} | "
            f"Steps: {meta.step_count} | "
            f"Tokens (est.): {meta.used_tokens}/{meta.token_budget} | "
            f"Consensus: {result.blackboard.consensus_level:.2f} | "
            f"Duration: {result.total_duration_sec:.1f}s"
            + (" | fallback document" if result.used_fallback_document else ""),
            style="dim",
        )
    )
    console.print(Markdown(result.document))


def blackboard_to_dict(state: Blackboard) -> dict[str, Any]:
    """Serialize a blackboard into JSON-compatible primitives."""
    return json.loads(json.dumps(asdict(state), default=str))


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def save_to_file(result: SessionResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the session report as markdown plus a JSON blackboard snapshot.

    Args:
        result: The completed SessionResult.
        output_dir: Directory to save the files in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic. Useful for inbox mode.

    Returns:
        Path to the saved markdown file. The JSON file sits next to it.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"
    board = result.blackboard
    meta = board.meta

    lines: list[str] = [
        f"# Deliberation: {result.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Status:** {result.status}",
        f"**Steps:** {meta.step_count}",
        f"**Tokens (estimated):** {meta.used_tokens}/{meta.token_budget}",
        f"**Consensus level:** {board.consensus_level:.2f}",
        f"**Duration:** {result.total_duration_sec:.1f}s",
        f"**Personas:** {', '.join(p.name for p in board.personas)}",
    ]
    if result.used_fallback_document:
        lines.append("**Document:** fallback (no written essay)")
    lines += ["", "---", "", "## Claims", "", "| Id | Claim | Confidence | Author |", "|---|---|---|---|"]
    for claim in board.claims:
        lines.append(
            f"| {claim.id} | {_md_cell(claim.text)} | {claim.confidence:.2f} | {claim.producer_id or ''} |"
        )

    lines += ["", "## Attacks", "", "| Id | From | To | Severity | Description | Status |", "|---|---|---|---|---|---|"]
    for attack in board.attacks:
        lines.append(
            f"| {attack.id} | {attack.from_claim_id} | {attack.to_claim_id} | {attack.severity.value} "
            f"| {_md_cell(attack.description)} | {'resolved' if attack.resolved else 'open'} |"
        )

    lines += ["", "## Document", "", result.document, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    json_path = filepath.with_suffix(".json")
    json_path.write_text(json.dumps(blackboard_to_dict(board), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Session saved to: %s", filepath)
    return filepath

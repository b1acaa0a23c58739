"""Inbox folder scanning, topic file parsing, and archive logic."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

logger = logging.getLogger(__name__)


@dataclass
class InboxTopic:
    """A topic file from the inbox. Unset overrides are None."""

    path: Path
    topic: str
    max_steps: int | None = None
    token_budget: int | None = None
    rotation: str | None = None


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, oldest first."""
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def _int_or_none(meta: dict, key: str, file_path: Path) -> int | None:
    if key not in meta:
        return None
    try:
        return int(meta[key])
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r in %s", key, meta[key], file_path.name)
        return None


def parse_file(file_path: Path) -> InboxTopic:
    """Parse a topic file with optional YAML frontmatter.

    The body is the debate topic. Recognized frontmatter keys are
    ``max_steps``, ``token_budget`` and ``rotation``; others are ignored.

    Raises:
        ValueError: If the file has no topic text.
    """
    post = frontmatter.load(str(file_path))
    topic = post.content.strip()
    if not topic:
        raise ValueError(f"No topic text in {file_path.name}")

    meta = dict(post.metadata)
    rotation = meta.get("rotation")
    return InboxTopic(
        path=file_path,
        topic=topic,
        max_steps=_int_or_none(meta, "max_steps", file_path),
        token_budget=_int_or_none(meta, "token_budget", file_path),
        rotation=str(rotation) if rotation else None,
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix ("FAILED_" first if failed)."""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest

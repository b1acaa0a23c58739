"""Tolerant JSON extraction from LLM text."""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
# 'value" or "value' endings that models sometimes emit
_MIXED_QUOTE_END = re.compile(r""": "([^"]*?)'(\s*[,}\]])""")
_MIXED_QUOTE_START = re.compile(r""": '([^']*?)"(\s*[,}\]])""")


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        repaired = _MIXED_QUOTE_END.sub(r': "\1"\2', candidate)
        repaired = _MIXED_QUOTE_START.sub(r': "\1"\2', repaired)
        if repaired == candidate:
            raise
        return json.loads(repaired)


def _candidates(text: str) -> list[str]:
    candidates = [text]
    candidates += [m.group(1) for m in _FENCED_BLOCK.finditer(text)]
    spans = []
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        first, last = text.find(open_ch), text.rfind(close_ch)
        if first != -1 and first < last:
            spans.append((first, text[first:last + 1]))
    # outermost value first: a list of objects starts with "["
    candidates += [span for _, span in sorted(spans)]
    return candidates


def extract_json(text: str | None) -> Any | None:
    """Return the first JSON value found in ``text``, or None.

    Tries the whole text, then fenced code blocks, then the outermost
    ``{...}`` and ``[...]`` spans. Never raises.
    """
    if not text or not text.strip():
        return None
    stripped = text.strip()
    for candidate in _candidates(stripped):
        try:
            return _loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    logger.debug("No JSON found in model output: %s", stripped[:200])
    return None

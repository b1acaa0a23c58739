"""Provider health checks: confirm each role's model answers, and answers in JSON where needed."""

import asyncio
import logging
from dataclasses import dataclass

from src.parsing import extract_json
from src.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = 'Reply with exactly this JSON and nothing else: {"status": "ok"}'
_TIMEOUT_SEC = 15.0


@dataclass(frozen=True)
class HealthResult:
    name: str
    ok: bool
    error: str = ""
    latency_sec: float | None = None


async def check_provider(name: str, provider: AIProvider, *, require_json: bool = True) -> HealthResult:
    try:
        response = await asyncio.wait_for(
            provider.generate(_PING_PROMPT, "ping", temperature=0.0),
            timeout=_TIMEOUT_SEC,
        )
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return HealthResult(name, False, str(exc) or type(exc).__name__)

    if require_json and not isinstance(extract_json(response.content), dict):
        logger.debug("Health check for %s got non-JSON reply: %s", name, response.content[:80])
        return HealthResult(name, False, "Reply was not valid JSON", response.latency_sec)
    return HealthResult(name, True, latency_sec=response.latency_sec)


async def run_health_checks(
    providers: dict[str, AIProvider],
    json_roles: set[str] | None = None,
) -> dict[str, HealthResult]:
    """Ping all providers in parallel.

    Args:
        providers: Providers keyed by config name.
        json_roles: Names whose reply must parse as a JSON object (the
            oracle, executor and persona creator). Defaults to all.

    Returns:
        Dict mapping provider name -> HealthResult.
    """
    json_roles = set(providers) if json_roles is None else json_roles
    results = await asyncio.gather(
        *(check_provider(n, p, require_json=n in json_roles) for n, p in providers.items())
    )
    return {r.name: r for r in results}

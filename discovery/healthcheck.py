"""Backend reachability: one tiny completion per backend, all in parallel."""

import asyncio
import logging
import time
from dataclasses import dataclass

from discovery.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING = [{"role": "user", "content": "Reply with the word OK only."}]
DEFAULT_TIMEOUT_SEC = 15.0


@dataclass
class HealthResult:
    backend: str
    model: str
    ok: bool
    error: str = ""
    latency_sec: float = 0.0


async def ping(backend: str, provider: AIProvider, timeout_sec: float = DEFAULT_TIMEOUT_SEC) -> HealthResult:
    start = time.monotonic()
    try:
        await asyncio.wait_for(provider.complete(_PING, temperature=0.0, max_tokens=16), timeout=timeout_sec)
    except TimeoutError:
        error = f"No reply within {timeout_sec:g}s"
    except Exception as exc:
        logger.debug("Ping to %s failed", backend, exc_info=True)
        error = str(exc) or type(exc).__name__
    else:
        error = ""
    return HealthResult(
        backend=backend,
        model=provider.model_string(),
        ok=not error,
        error=error,
        latency_sec=time.monotonic() - start,
    )


async def run_health_checks(
    providers: dict[str, AIProvider],
    timeout_sec: float = DEFAULT_TIMEOUT_SEC,
) -> dict[str, HealthResult]:
    """Ping every backend concurrently; never raises."""
    results = await asyncio.gather(*(ping(name, p, timeout_sec) for name, p in providers.items()))
    return {r.backend: r for r in results}

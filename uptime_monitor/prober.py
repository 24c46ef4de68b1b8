"""
Single-site HTTP probe with bounded retries.

The retry loop is a small state machine so the attempt bound and the backoff
schedule can be checked on their own:

    Attempting(1) --response--> Done(status)
    Attempting(n) --transport error, n < max--> sleep(backoff(n)) --> Attempting(n+1)
    Attempting(max) --transport error--> Done(UNREACHABLE_STATUS_CODE)
    Attempting(n) --other request error--> Done(UNREACHABLE_STATUS_CODE)

Only transport failures (connect errors, timeouts, protocol errors) are retried.
Any HTTP response, including 4xx/5xx, ends the probe. Request errors that no
retry can fix (redirect loops, undecodable bodies) end it as unreachable.

Each attempt runs under a hard deadline covering the whole exchange, not just
the individual connect/read phases.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx
import structlog

from uptime_monitor.models import UNREACHABLE_STATUS_CODE, Site, is_success_status


logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 5

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class Attempting:
    attempt: int


@dataclass(frozen=True)
class Done:
    status_code: int
    attempts: int


ProbeState = Attempting | Done


@dataclass(frozen=True)
class ProbeResult:
    status_code: int
    success: bool
    attempts: int
    elapsed_ms: float | None = None


@dataclass(frozen=True)
class _AttemptResult:
    status_code: int | None = None
    error: str | None = None
    retryable: bool = True


def backoff_seconds(attempt: int) -> float:
    """Wait before the attempt after `attempt`: 1s, 2s, 3s, 4s."""
    return float(attempt)


def next_state(
    state: Attempting,
    status_code: int | None,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retryable: bool = True,
) -> ProbeState:
    """
    Advance from an attempt. `status_code` is None when the attempt failed
    without a response; `retryable` is False when retrying cannot help.
    """
    if status_code is not None:
        return Done(status_code=int(status_code), attempts=state.attempt)
    if not retryable or state.attempt >= max_attempts:
        return Done(status_code=UNREACHABLE_STATUS_CODE, attempts=state.attempt)
    return Attempting(attempt=state.attempt + 1)


async def _attempt(client: httpx.AsyncClient, url: str, timeout: float) -> _AttemptResult:
    try:
        resp = await asyncio.wait_for(client.get(url, follow_redirects=True, timeout=timeout), timeout=timeout)
    except asyncio.TimeoutError:
        return _AttemptResult(error=f"attempt exceeded {timeout}s deadline")
    except httpx.TransportError as e:
        return _AttemptResult(error=f"{type(e).__name__}: {e}")
    except httpx.RequestError as e:
        return _AttemptResult(error=f"{type(e).__name__}: {e}", retryable=False)
    return _AttemptResult(status_code=resp.status_code)


async def probe(
    client: httpx.AsyncClient,
    site: Site,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Sleep = asyncio.sleep,
) -> ProbeResult:
    max_attempts = max(1, int(max_attempts))
    started = time.perf_counter()
    state: ProbeState = Attempting(attempt=1)
    res = _AttemptResult()

    while isinstance(state, Attempting):
        attempt_started = time.perf_counter()
        res = await _attempt(client, site.site, timeout_seconds)
        attempt_ms = round((time.perf_counter() - attempt_started) * 1000.0, 3)
        if res.status_code is not None:
            logger.info(
                "probe_response", site=site.site, status=res.status_code, attempt=state.attempt, elapsed_ms=attempt_ms
            )
        else:
            logger.warning(
                "probe_transport_error",
                site=site.site,
                attempt=state.attempt,
                error=res.error,
                retryable=res.retryable,
                elapsed_ms=attempt_ms,
            )

        new_state = next_state(state, res.status_code, max_attempts=max_attempts, retryable=res.retryable)
        if isinstance(new_state, Attempting):
            await sleep(backoff_seconds(state.attempt))
        state = new_state

    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
    if res.error is not None:
        logger.warning("probe_unreachable", site=site.site, attempts=state.attempts, elapsed_ms=elapsed_ms)
    return ProbeResult(
        status_code=state.status_code,
        success=is_success_status(state.status_code),
        attempts=state.attempts,
        elapsed_ms=elapsed_ms,
    )

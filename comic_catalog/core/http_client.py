"""
Throttled, circuit-protected HTTP access for upstream APIs

Each upstream host gets a HostGate. The gate spaces requests out, honors
Retry-After after a 429 and stops calling the host after repeated
transport failures. ResilientHTTPClient puts the gates in front of one
shared httpx.AsyncClient.

Marvel reports bad params and bad credentials as JSON envelopes on 4xx
responses, and its rate-limit and server errors as JSON envelopes on 429
and 5xx. All of those come back to the caller as ordinary responses, the
retryable ones once their retries run out. Only transport failures, long
Retry-After holds and an open circuit raise.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import httpx

from comic_catalog.core.config import settings

logger = logging.getLogger(__name__)

# Retry-After waits longer than this fail the request instead of sleeping
MAX_BLOCK_SECONDS = 60.0


class HostBlocked(Exception):
    """The host asked (via Retry-After) to be left alone for longer than MAX_BLOCK_SECONDS."""
    def __init__(self, host: str, wait_time: float):
        self.host = host
        self.wait_time = wait_time
        super().__init__(f"{host} is refusing requests for another {wait_time:.0f}s")


class CircuitOpen(Exception):
    def __init__(self, host: str, retry_in: float):
        self.host = host
        self.retry_in = retry_in
        super().__init__(f"{host} circuit is open, next trial in {retry_in:.1f}s")


class Circuit(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"  # one trial request at a time decides


@dataclass
class ThrottlePolicy:
    min_interval: float = 0.5  # seconds between requests to a host
    per_second: int = 5


@dataclass
class RetryPolicy:
    """How often to retry. max_retries=0 means a single attempt."""
    max_retries: int = 0
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.5
    retry_statuses: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def backoff(self, attempt: int) -> float:
        delay = self.base_delay * 2 ** attempt
        delay += delay * self.jitter * random.uniform(-1.0, 1.0)
        return max(0.0, min(delay, self.max_delay))


@dataclass
class CircuitPolicy:
    open_after: int = 5    # consecutive failures
    close_after: int = 2   # successes while half open
    cooldown: float = 60.0


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Seconds to wait according to Retry-After (delta-seconds or HTTP date)."""
    value = response.headers.get("Retry-After")
    if not value:
        return None
    if value.strip().isdigit():
        return float(value)
    try:
        return parsedate_to_datetime(value).timestamp() - time.time()
    except (TypeError, ValueError):
        return None


class HostGate:
    """Pacing and failure tracking for a single host."""

    def __init__(self, host: str, throttle: ThrottlePolicy, circuit: CircuitPolicy):
        self.host = host
        self.throttle = throttle
        self.circuit_policy = circuit

        self.circuit = Circuit.CLOSED
        self.failures = 0
        self.successes = 0
        self.opened_at = 0.0
        self.blocked_until: Optional[float] = None

        self._last_sent = 0.0
        self._second_start = 0.0
        self._sent_this_second = 0
        self._lock = asyncio.Lock()
        self._trial_in_flight = False

    def admit(self) -> None:
        """
        Raise CircuitOpen unless the circuit lets a request through.

        While half open only one request is admitted until release().
        """
        if self.circuit == Circuit.CLOSED:
            return
        if self.circuit == Circuit.OPEN:
            waited = time.time() - self.opened_at
            if waited <= self.circuit_policy.cooldown:
                retry_in = self.circuit_policy.cooldown - waited
                logger.warning(f"[CIRCUIT] {self.host}: open, refusing request ({retry_in:.1f}s left)")
                raise CircuitOpen(self.host, retry_in)
            logger.info(f"[CIRCUIT] {self.host}: cooldown over, letting a trial request through")
            self.circuit = Circuit.HALF_OPEN
            self.successes = 0
        elif self._trial_in_flight:
            logger.debug(f"[CIRCUIT] {self.host}: trial request in flight, refusing request")
            raise CircuitOpen(self.host, 0.0)
        self._trial_in_flight = True

    def release(self) -> None:
        """The admitted request finished, whatever its outcome."""
        self._trial_in_flight = False

    def block(self, seconds: float) -> None:
        """Hold every request to this host for `seconds` (from a 429)."""
        self.blocked_until = time.time() + seconds
        logger.warning(f"[429] {self.host}: rate limited, holding requests for {seconds:.1f}s")
        if seconds > MAX_BLOCK_SECONDS:
            raise HostBlocked(self.host, seconds)

    async def wait_turn(self) -> None:
        async with self._lock:
            if self.blocked_until is not None:
                remaining = self.blocked_until - time.time()
                if remaining > MAX_BLOCK_SECONDS:
                    raise HostBlocked(self.host, remaining)
                if remaining > 0:
                    logger.info(f"[RATE_LIMIT] {self.host}: waiting {remaining:.1f}s for Retry-After")
                    await asyncio.sleep(remaining)
                self.blocked_until = None

            gap = time.time() - self._last_sent
            if gap < self.throttle.min_interval:
                await asyncio.sleep(self.throttle.min_interval - gap)

            now = time.time()
            if now - self._second_start >= 1.0:
                self._second_start = now
                self._sent_this_second = 0
            elif self._sent_this_second >= self.throttle.per_second:
                pause = 1.0 - (now - self._second_start)
                logger.debug(f"[RATE_LIMIT] {self.host}: {self.throttle.per_second}/s reached, pausing {pause:.2f}s")
                await asyncio.sleep(pause)
                self._second_start = time.time()
                self._sent_this_second = 0

            self._sent_this_second += 1
            self._last_sent = time.time()

    def record_success(self) -> None:
        self.failures = 0
        if self.circuit == Circuit.HALF_OPEN:
            self.successes += 1
            if self.successes >= self.circuit_policy.close_after:
                logger.info(f"[CIRCUIT] {self.host}: closed again after {self.successes} successes")
                self.circuit = Circuit.CLOSED

    def record_failure(self) -> None:
        self.failures += 1
        self.successes = 0
        if self.circuit == Circuit.HALF_OPEN or self.failures >= self.circuit_policy.open_after:
            if self.circuit != Circuit.OPEN:
                logger.error(f"[CIRCUIT] {self.host}: opening after {self.failures} failure(s)")
            self.circuit = Circuit.OPEN
            self.opened_at = time.time()


class ResilientHTTPClient:
    """
    httpx.AsyncClient behind per-host gates.

    Usage:
        async with ResilientHTTPClient() as client:
            response = await client.get(url, params={...})
    """

    def __init__(
        self,
        throttle: Optional[ThrottlePolicy] = None,
        retry: Optional[RetryPolicy] = None,
        circuit: Optional[CircuitPolicy] = None,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.throttle = throttle or ThrottlePolicy()
        self.retry = retry or RetryPolicy()
        self.circuit = circuit or CircuitPolicy()
        self.timeout = timeout
        self.headers = dict(headers or {})

        self._client: Optional[httpx.AsyncClient] = None
        self._gates: Dict[str, HostGate] = {}

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self):
        """Create the underlying client. Pair with close() outside a context manager."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
            )
        return self

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def gate(self, host: str) -> HostGate:
        gate = self._gates.get(host)
        if gate is None:
            gate = self._gates[host] = HostGate(host, self.throttle, self.circuit)
        return gate

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Send a request through the host's gate.

        Raises:
            httpx.TransportError: the last attempt failed at the transport level
            HostBlocked: Retry-After longer than MAX_BLOCK_SECONDS
            CircuitOpen: too many recent failures for the host
        """
        if self._client is None:
            await self.open()

        gate = self.gate(urlparse(url).netloc)
        gate.admit()
        try:
            return await self._send(gate, method, url, **kwargs)
        finally:
            gate.release()

    async def _send(self, gate: HostGate, method: str, url: str, **kwargs) -> httpx.Response:
        attempt = 0
        while True:
            final = attempt >= self.retry.max_retries
            await gate.wait_turn()
            logger.debug(f"[HTTP] {method} {url} (attempt {attempt + 1})")

            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                gate.record_failure()
                if final:
                    logger.error(f"[HTTP] {gate.host}: {type(e).__name__} on attempt {attempt + 1}, giving up")
                    raise
                delay = self.retry.backoff(attempt)
                logger.warning(f"[HTTP] {gate.host}: {type(e).__name__}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                attempt += 1
                continue

            status = response.status_code
            if status not in self.retry.retry_statuses:
                gate.record_success()
                return response

            if status == 429:
                wait = parse_retry_after(response)
                gate.block(wait if wait is not None else self.retry.backoff(attempt))
            else:
                gate.record_failure()

            if final:
                logger.warning(f"[HTTP] {gate.host}: status {status} after {attempt + 1} attempt(s), returning it")
                return response
            if status != 429:
                delay = self.retry.backoff(attempt)
                logger.warning(f"[HTTP] {gate.host}: status {status}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
            attempt += 1

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)


def get_marvel_client() -> ResilientHTTPClient:
    """
    Client configured for the Marvel comics API.

    Marvel allows 3000 calls a day per key and takes seconds per page, so
    requests are spaced out and, unless MARVEL_MAX_RETRIES says otherwise,
    made once.
    """
    return ResilientHTTPClient(
        throttle=ThrottlePolicy(
            min_interval=settings.MARVEL_MIN_REQUEST_INTERVAL,
            per_second=4,
        ),
        retry=RetryPolicy(
            max_retries=settings.MARVEL_MAX_RETRIES,
            base_delay=2.0,
        ),
        circuit=CircuitPolicy(open_after=3, close_after=1, cooldown=120.0),
        timeout=settings.MARVEL_REQUEST_TIMEOUT,
        headers={"Accept": "application/json"},
    )

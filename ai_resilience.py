"""AI Resilience Layer — Retry, Circuit Breaker, Cache.

resilient_llm_call() is the only way the assistant talks to a model provider.
It short-circuits providers that keep failing, retries transient errors with
exponential backoff (tenacity) and caches successful answers for a TTL, so a
slow or failing provider degrades the assistant instead of the whole app.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 2048


# ── TTL Cache ───────────────────────────────────────────────

class TTLCache:
    """Thread-safe answer cache; when full, the entry closest to expiry goes first."""

    MAX_ENTRIES = 1000

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float]] = {}  # key -> (text, expires_at)
        self._lock = threading.Lock()

    @staticmethod
    def make_key(prompt: str, system: str, model: str, json_mode: bool = False) -> str:
        digest = hashlib.sha256()
        for part in (model, system, prompt, "json" if json_mode else "text"):
            digest.update(part.encode())
            digest.update(b"\x00")
        return digest.hexdigest()

    def get(self, key: str) -> str | None:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            if hit[1] < time.time():
                self._entries.pop(key)
                return None
            return hit[0]

    def set(self, key: str, value: str, ttl_seconds: int = 3600) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.MAX_ENTRIES:
                soonest = min(self._entries, key=lambda k: self._entries[k][1])
                self._entries.pop(soonest)
            self._entries[key] = (value, time.time() + ttl_seconds)

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = time.time()
        with self._lock:
            stale = [k for k, (_, expires_at) in self._entries.items() if expires_at < now]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ── Circuit Breaker ─────────────────────────────────────────

CLOSED, OPEN, HALF_OPEN = "closed", "open", "half_open"


@dataclass
class _Circuit:
    state: str = CLOSED
    failures: int = 0
    opened_at: float = 0.0
    trial_in_flight: bool = False


class CircuitBreaker:
    """Tracks each provider separately.

    FAILURE_THRESHOLD consecutive failures open the circuit. After
    RECOVERY_TIMEOUT seconds a single trial call is let through (half open);
    success closes the circuit, failure opens it again.
    """

    FAILURE_THRESHOLD = 3
    RECOVERY_TIMEOUT = 60  # seconds

    def __init__(self) -> None:
        self._circuits: dict[str, _Circuit] = {}
        self._lock = threading.Lock()

    def _circuit(self, provider: str) -> _Circuit:
        return self._circuits.setdefault(provider, _Circuit())

    def record_success(self, provider: str) -> None:
        with self._lock:
            self._circuits[provider] = _Circuit()

    def record_failure(self, provider: str) -> None:
        with self._lock:
            circuit = self._circuit(provider)
            circuit.failures += 1
            circuit.trial_in_flight = False
            if circuit.state == HALF_OPEN or circuit.failures >= self.FAILURE_THRESHOLD:
                if circuit.state != OPEN:
                    logger.warning("Circuit opened for %s after %d failures", provider, circuit.failures)
                circuit.state = OPEN
                circuit.opened_at = time.time()

    def is_open(self, provider: str) -> bool:
        """True while calls to provider must be refused."""
        with self._lock:
            circuit = self._circuit(provider)
            if circuit.state == CLOSED:
                return False
            if circuit.state == HALF_OPEN:
                # one trial at a time until it reports back
                return circuit.trial_in_flight
            if time.time() - circuit.opened_at < self.RECOVERY_TIMEOUT:
                return True
            circuit.state = HALF_OPEN
            circuit.trial_in_flight = True
            return False

    def get_state(self, provider: str) -> str:
        with self._lock:
            return self._circuit(provider).state

    def reset(self) -> None:
        with self._lock:
            self._circuits.clear()


_circuit_breaker = CircuitBreaker()
_cache = TTLCache()


# ── Errors ──────────────────────────────────────────────────

class TransientLLMError(Exception):
    """A provider error worth retrying (rate limit, overload, network)."""


class CircuitOpenError(RuntimeError):
    """The provider has failed repeatedly and calls are short-circuited."""


_TRANSIENT_MARKERS = (
    "rate limit",
    "429",
    "500",
    "502",
    "503",
    "overloaded",
    "temporarily unavailable",
    "timeout",
    "timed out",
    "connection",
)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    # SDK errors carry the HTTP status in a few different places
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if status in (429, 500, 502, 503, 504):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


# ── Providers ───────────────────────────────────────────────

def _call_openai(model: str, prompt: str, system: str, json_mode: bool) -> str:
    from openai import OpenAI

    client = OpenAI(api_key=os.getenv("OPENAI_API_KEY", ""))
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})
    extra = {"response_format": {"type": "json_object"}} if json_mode else {}
    response = client.chat.completions.create(model=model, messages=messages, **extra)
    return response.choices[0].message.content or ""


def _call_claude(model: str, prompt: str, system: str, json_mode: bool) -> str:
    import anthropic

    client = anthropic.Anthropic(api_key=os.getenv("ANTHROPIC_API_KEY", ""))
    extra = {"system": system} if system else {}
    response = client.messages.create(
        model=model,
        max_tokens=MAX_OUTPUT_TOKENS,
        messages=[{"role": "user", "content": prompt}],
        **extra,
    )
    return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")


def _call_gemini(model: str, prompt: str, system: str, json_mode: bool) -> str:
    import google.generativeai as genai

    genai.configure(api_key=os.getenv("GOOGLE_API_KEY", ""))
    generation_config = {"response_mime_type": "application/json"} if json_mode else None
    gm = genai.GenerativeModel(model, generation_config=generation_config)
    response = gm.generate_content(f"{system}\n\n{prompt}" if system else prompt)
    return response.text


PROVIDERS: dict[str, Callable[[str, str, str, bool], str]] = {
    "openai": _call_openai,
    "claude": _call_claude,
    "gemini": _call_gemini,
}


def _do_call(provider: str, model: str, prompt: str, system: str, json_mode: bool) -> str:
    """One raw provider call: no retry, no cache."""
    call = PROVIDERS.get(provider)
    if call is None:
        raise ValueError(f"Unknown provider: {provider}")
    return call(model, prompt, system, json_mode)


@retry(
    retry=retry_if_exception_type(TransientLLMError),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    stop=stop_after_attempt(3),
    reraise=True,
)
def _call_with_retry(provider: str, model: str, prompt: str, system: str, json_mode: bool) -> str:
    try:
        return _do_call(provider, model, prompt, system, json_mode)
    except Exception as exc:
        if not _is_transient(exc):
            raise
        logger.warning("Transient %s error, will retry: %s", provider, exc)
        raise TransientLLMError(str(exc)) from exc


# ── Main entry point ────────────────────────────────────────

def resilient_llm_call(
    provider: str,
    model: str,
    prompt: str,
    system: str = "",
    json_mode: bool = False,
    cache_ttl: int = 0,
) -> str:
    """Call provider/model and return the response text.

    cache_ttl > 0 serves repeated identical prompts from the cache and stores
    non-empty answers for that many seconds. Cached answers are served even while
    the provider is short-circuited.

    Raises CircuitOpenError while the provider is short-circuited, otherwise
    whatever the provider raised once retries were exhausted.
    """
    key = TTLCache.make_key(prompt, system, model, json_mode) if cache_ttl > 0 else None
    if key:
        cached = _cache.get(key)
        if cached is not None:
            logger.debug("LLM cache hit for %s/%s", provider, model)
            return cached

    if _circuit_breaker.is_open(provider):
        raise CircuitOpenError(f"Circuit breaker open for provider: {provider}")

    started = time.perf_counter()
    try:
        text = _call_with_retry(provider, model, prompt, system, json_mode)
    except Exception:
        _circuit_breaker.record_failure(provider)
        raise
    _circuit_breaker.record_success(provider)
    logger.info("LLM call %s/%s took %dms", provider, model, (time.perf_counter() - started) * 1000)

    if key and text:
        _cache.set(key, text, cache_ttl)
    return text


def get_circuit_breaker() -> CircuitBreaker:
    return _circuit_breaker


def get_cache() -> TTLCache:
    return _cache

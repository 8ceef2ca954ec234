"""Tests for the AI resilience layer."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest

from ai_resilience import (
    CircuitBreaker,
    CircuitOpenError,
    TTLCache,
    TransientLLMError,
    _call_with_retry,
    _is_transient,
    get_cache,
    get_circuit_breaker,
    resilient_llm_call,
)


# ── TTLCache Tests ──────────────────────────────────────────


class TestTTLCache:
    def test_set_and_get(self):
        cache = TTLCache()
        cache.set("k1", "v1", ttl_seconds=60)
        assert cache.get("k1") == "v1"
        assert len(cache) == 1

    def test_expired_entry_returns_none(self):
        cache = TTLCache()
        cache.set("k2", "v2", ttl_seconds=0)
        time.sleep(0.01)
        assert cache.get("k2") is None

    def test_eviction_drops_earliest_expiry(self):
        cache = TTLCache()
        cache.MAX_ENTRIES = 3
        cache.set("a", "1", ttl_seconds=10)
        cache.set("b", "2", ttl_seconds=20)
        cache.set("c", "3", ttl_seconds=30)
        cache.set("d", "4", ttl_seconds=40)
        assert cache.get("a") is None
        assert cache.get("d") == "4"
        assert len(cache) == 3

    def test_cleanup_removes_expired(self):
        cache = TTLCache()
        cache.set("exp1", "val", ttl_seconds=0)
        cache.set("exp2", "val", ttl_seconds=0)
        cache.set("keep", "val", ttl_seconds=60)
        time.sleep(0.01)
        assert cache.cleanup() == 2
        assert cache.get("keep") == "val"

    def test_make_key(self):
        assert TTLCache.make_key("p", "s", "m") == TTLCache.make_key("p", "s", "m")
        assert TTLCache.make_key("p", "s", "m") != TTLCache.make_key("p", "s", "m", json_mode=True)
        assert TTLCache.make_key("a", "b", "c") != TTLCache.make_key("x", "y", "z")


# ── CircuitBreaker Tests ────────────────────────────────────


class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker()
        assert not cb.is_open("openai")
        assert cb.get_state("openai") == "closed"

    def test_opens_after_threshold_failures(self):
        cb = CircuitBreaker()
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("openai")
        assert cb.is_open("openai")
        assert cb.get_state("openai") == "open"

    def test_success_resets(self):
        cb = CircuitBreaker()
        cb.record_failure("openai")
        cb.record_failure("openai")
        cb.record_success("openai")
        assert cb.get_state("openai") == "closed"

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker()
        cb.RECOVERY_TIMEOUT = 0.01
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("claude")
        time.sleep(0.02)
        assert not cb.is_open("claude")
        assert cb.get_state("claude") == "half_open"
        cb.record_failure("claude")
        assert cb.get_state("claude") == "open"

    def test_half_open_admits_single_trial(self):
        cb = CircuitBreaker()
        cb.RECOVERY_TIMEOUT = 0.01
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("openai")
        time.sleep(0.02)
        assert [cb.is_open("openai") for _ in range(5)] == [False, True, True, True, True]
        cb.record_success("openai")
        assert cb.get_state("openai") == "closed"
        assert not cb.is_open("openai")

    def test_failed_trial_blocks_until_next_timeout(self):
        cb = CircuitBreaker()
        cb.RECOVERY_TIMEOUT = 0.01
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("gemini")
        time.sleep(0.02)
        assert not cb.is_open("gemini")
        cb.record_failure("gemini")
        assert cb.is_open("gemini")
        time.sleep(0.02)
        assert not cb.is_open("gemini")
        assert cb.is_open("gemini")

    def test_independent_providers(self):
        cb = CircuitBreaker()
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("gemini")
        assert cb.is_open("gemini")
        assert not cb.is_open("openai")

    def test_reset(self):
        cb = CircuitBreaker()
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("openai")
        cb.reset()
        assert cb.get_state("openai") == "closed"


# ── Retry Tests ─────────────────────────────────────────────


class TestRetry:
    @pytest.mark.parametrize("exc, expected", [
        (ConnectionError("reset by peer"), True),
        (TimeoutError(), True),
        (RuntimeError("Error code: 429 - rate limit exceeded"), True),
        (RuntimeError("model is overloaded"), True),
        (ValueError("invalid api key"), False),
    ])
    def test_is_transient(self, exc, expected):
        assert _is_transient(exc) is expected

    def test_status_code_attribute(self):
        class APIStatusError(Exception):
            status_code = 529

        class RateLimited(Exception):
            status_code = 429

        assert _is_transient(RateLimited("slow down")) is True
        assert _is_transient(APIStatusError("unknown")) is False

    def test_transient_error_is_retried(self):
        with patch("ai_resilience._do_call", side_effect=[ConnectionError("boom"), "ok"]) as mock_call, \
                patch.object(_call_with_retry.retry, "sleep", lambda _: None):
            assert _call_with_retry("openai", "gpt-4o", "p", "", False) == "ok"
        assert mock_call.call_count == 2

    def test_gives_up_after_three_attempts(self):
        with patch("ai_resilience._do_call", side_effect=ConnectionError("down")) as mock_call, \
                patch.object(_call_with_retry.retry, "sleep", lambda _: None):
            with pytest.raises(TransientLLMError):
                _call_with_retry("openai", "gpt-4o", "p", "", False)
        assert mock_call.call_count == 3

    def test_permanent_error_not_retried(self):
        with patch("ai_resilience._do_call", side_effect=ValueError("bad request")) as mock_call:
            with pytest.raises(ValueError):
                _call_with_retry("openai", "gpt-4o", "p", "", False)
        assert mock_call.call_count == 1


# ── resilient_llm_call Tests ────────────────────────────────


class TestResilientLLMCall:
    @patch("ai_resilience._call_with_retry")
    def test_basic_call(self, mock_retry):
        mock_retry.return_value = "LLM says hello"
        assert resilient_llm_call("openai", "gpt-4o", "Hello") == "LLM says hello"
        mock_retry.assert_called_once_with("openai", "gpt-4o", "Hello", "", False)
        assert len(get_cache()) == 0

    @patch("ai_resilience._call_with_retry")
    def test_cache_hit(self, mock_retry):
        mock_retry.return_value = "cached response"
        first = resilient_llm_call("openai", "gpt-4o", "test prompt", cache_ttl=60)
        second = resilient_llm_call("openai", "gpt-4o", "test prompt", cache_ttl=60)
        assert first == second == "cached response"
        assert mock_retry.call_count == 1

    @patch("ai_resilience._call_with_retry")
    def test_empty_response_not_cached(self, mock_retry):
        mock_retry.return_value = ""
        resilient_llm_call("openai", "gpt-4o", "prompt", cache_ttl=60)
        resilient_llm_call("openai", "gpt-4o", "prompt", cache_ttl=60)
        assert mock_retry.call_count == 2

    @patch("ai_resilience._call_with_retry")
    def test_circuit_breaker_blocks_call(self, mock_retry):
        cb = get_circuit_breaker()
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("openai")

        with pytest.raises(CircuitOpenError, match="Circuit breaker open"):
            resilient_llm_call("openai", "gpt-4o", "prompt")
        mock_retry.assert_not_called()

    @patch("ai_resilience._call_with_retry")
    def test_failure_records_to_circuit_breaker(self, mock_retry):
        mock_retry.side_effect = ValueError("Non-transient error")
        cb = get_circuit_breaker()

        for _ in range(cb.FAILURE_THRESHOLD):
            with pytest.raises(ValueError):
                resilient_llm_call("openai", "gpt-4o", "prompt")

        assert cb.get_state("openai") == "open"

    @patch("ai_resilience._call_with_retry")
    def test_cache_served_while_circuit_open(self, mock_retry):
        mock_retry.return_value = "kept"
        resilient_llm_call("claude", "sonnet", "same prompt", cache_ttl=60)
        cb = get_circuit_breaker()
        for _ in range(cb.FAILURE_THRESHOLD):
            cb.record_failure("claude")
        assert resilient_llm_call("claude", "sonnet", "same prompt", cache_ttl=60) == "kept"
        assert mock_retry.call_count == 1

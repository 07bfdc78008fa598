"""Tests for the gateway error hierarchy, classification, and retry engine."""

from __future__ import annotations

import anyio
import pytest

from pagesmith_llm.errors import (
    AccessDeniedError,
    AuthenticationError,
    ConfigurationError,
    ContextLengthError,
    InvalidRequestError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    RoutingError,
    SDKError,
    ServerError,
    classify_http_error,
)
from pagesmith_llm.retry import RetryPolicy, retry_with_policy

# ================================================================== #
# Error hierarchy
# ================================================================== #


class TestErrorHierarchy:
    def test_all_errors_inherit_from_provider_error(self):
        errors = [
            AuthenticationError("test"),
            AccessDeniedError("test"),
            NotFoundError("test"),
            ContextLengthError("test"),
            InvalidRequestError("test"),
            RateLimitError("test"),
            ServerError("test"),
            NetworkError("test"),
            RequestTimeoutError("test"),
            MalformedResponseError("test"),
            RoutingError("test"),
            ConfigurationError("test"),
        ]
        for err in errors:
            assert isinstance(err, ProviderError)
            assert isinstance(err, SDKError)

    def test_routing_error_keeps_model(self):
        err = RoutingError("no route", model="llama-3")
        assert err.model == "llama-3"
        assert err.retryable is False


class TestRetryability:
    @pytest.mark.parametrize(
        ("error_cls", "expected"),
        [
            (AuthenticationError, False),
            (AccessDeniedError, False),
            (InvalidRequestError, False),
            (MalformedResponseError, False),
            (RoutingError, False),
            (ConfigurationError, False),
            (RateLimitError, True),
            (ServerError, True),
            (NetworkError, True),
            (RequestTimeoutError, True),
        ],
    )
    def test_retryability(self, error_cls, expected):
        err = error_cls("test")
        assert err.retryable is expected

    def test_explicit_retryable_overrides_class_default(self):
        assert ProviderError("x", retryable=True).retryable is True
        assert ServerError("x", retryable=False).retryable is False

    def test_rate_limit_retry_after(self):
        err = RateLimitError("slow down", retry_after=30.0)
        assert err.retry_after == 30.0
        assert err.retryable is True


# ================================================================== #
# classify_http_error
# ================================================================== #


class TestClassifyHttpError:
    def test_401_is_auth_error(self):
        err = classify_http_error(401, "unauthorized", "anthropic")
        assert isinstance(err, AuthenticationError)
        assert err.retryable is False
        assert err.provider == "anthropic"
        assert err.status_code == 401

    def test_403_is_access_denied(self):
        err = classify_http_error(403, "forbidden", "openai")
        assert isinstance(err, AccessDeniedError)

    def test_404_is_not_found(self):
        assert isinstance(classify_http_error(404, "no model", "fireworks"), NotFoundError)

    def test_413_is_context_length(self):
        assert isinstance(classify_http_error(413, "too big", "openai"), ContextLengthError)

    def test_429_is_rate_limit(self):
        err = classify_http_error(429, "too many", "anthropic")
        assert isinstance(err, RateLimitError)
        assert err.retryable is True

    def test_429_extracts_retry_after(self):
        err = classify_http_error(429, "too many", "openai", headers={"Retry-After": "30"})
        assert isinstance(err, RateLimitError)
        assert err.retry_after == 30.0

    def test_429_retry_after_case_insensitive(self):
        err = classify_http_error(429, "x", "openai", headers={"retry-after": "15"})
        assert err.retry_after == 15.0

    def test_429_unparseable_retry_after_is_ignored(self):
        err = classify_http_error(429, "x", "openai", headers={"retry-after": "soon"})
        assert err.retry_after is None

    def test_500_is_server_error(self):
        err = classify_http_error(500, "internal", "fireworks")
        assert isinstance(err, ServerError)
        assert err.retryable is True

    def test_502_is_server_error(self):
        assert isinstance(classify_http_error(502, "bad gateway", "anthropic"), ServerError)

    def test_408_is_retryable_timeout(self):
        err = classify_http_error(408, "timeout", "openai")
        assert isinstance(err, RequestTimeoutError)
        assert err.retryable is True

    def test_400_is_not_retryable(self):
        err = classify_http_error(400, "bad request", "anthropic")
        assert isinstance(err, InvalidRequestError)
        assert err.retryable is False

    def test_422_is_invalid_request(self):
        assert isinstance(classify_http_error(422, "bad schema", "openai"), InvalidRequestError)

    def test_529_overloaded_is_server_error(self):
        err = classify_http_error(529, "overloaded", "anthropic", raw_response={"type": "error"})
        assert isinstance(err, ServerError)
        assert err.raw_response == {"type": "error"}

    def test_body_text_does_not_change_the_class(self):
        err = classify_http_error(409, "unauthorized: context length", "openai")
        assert type(err) is ProviderError

    def test_unknown_status_is_plain_provider_error(self):
        err = classify_http_error(418, "teapot", "openai")
        assert type(err) is ProviderError
        assert err.retryable is False


# ================================================================== #
# RetryPolicy
# ================================================================== #


class TestRetryPolicy:
    def test_defaults(self):
        p = RetryPolicy()
        assert p.max_retries == 2
        assert p.initial_delay == 1.0
        assert p.backoff_factor == 2.0
        assert p.max_delay == 30.0

    def test_compute_delay_exponential(self):
        p = RetryPolicy(initial_delay=1.0, backoff_factor=2.0, jitter=False)
        assert p.compute_delay(0) == 1.0
        assert p.compute_delay(1) == 2.0
        assert p.compute_delay(2) == 4.0

    def test_compute_delay_respects_max(self):
        p = RetryPolicy(initial_delay=1.0, backoff_factor=10.0, max_delay=5.0, jitter=False)
        assert p.compute_delay(1) == 5.0  # capped at max_delay
        assert p.compute_delay(2) == 5.0

    def test_compute_delay_with_jitter(self):
        p = RetryPolicy(initial_delay=2.0, jitter=True)
        for _ in range(20):
            d = p.compute_delay(0)
            assert 1.0 <= d <= 2.0


# ================================================================== #
# retry_with_policy
# ================================================================== #

FAST = RetryPolicy(max_retries=2, initial_delay=0.0, jitter=False)


class TestRetryWithPolicy:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            return "ok"

        assert await retry_with_policy(fn, FAST) == "ok"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_retries_retryable_then_succeeds(self):
        outcomes = [ServerError("boom"), NetworkError("reset"), "ok"]

        async def fn():
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        assert await retry_with_policy(fn, FAST) == "ok"
        assert outcomes == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            raise ServerError("still down")

        with pytest.raises(ServerError):
            await retry_with_policy(fn, FAST)
        assert calls == 3  # one attempt plus two retries

    @pytest.mark.asyncio
    async def test_non_retryable_is_raised_immediately(self):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            raise AuthenticationError("bad key")

        with pytest.raises(AuthenticationError):
            await retry_with_policy(fn, FAST)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_retry_after_raises_the_delay(self, monkeypatch, caplog):
        delays: list[float] = []
        outcomes = [RateLimitError("slow", retry_after=0.01), "ok"]

        async def fn():
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr(anyio, "sleep", fake_sleep)

        assert await retry_with_policy(fn, FAST) == "ok"
        assert delays == [0.01]
        assert "RateLimitError" in caplog.text
        assert "retry 1/2" in caplog.text

    @pytest.mark.asyncio
    async def test_negative_max_retries_rejected(self):
        async def fn():
            return "ok"

        with pytest.raises(ValueError, match="max_retries"):
            await retry_with_policy(fn, RetryPolicy(max_retries=-1))

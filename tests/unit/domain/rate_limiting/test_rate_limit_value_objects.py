"""Tests for the rate limiting value objects."""

import dataclasses

import pytest

from tutorguard.domain.rate_limiting import RateLimitKey, RateLimitOverride, RateLimitPolicy


class TestRateLimitPolicy:

    def test_valid_policy(self):
        policy = RateLimitPolicy("contact", 3, 900, "Contact form submissions")

        assert policy.max_requests == 3
        assert policy.window_ms == 900_000
        assert policy.requests_per_second == pytest.approx(3 / 900)
        assert str(policy) == "contact: 3 per 900s"

    @pytest.mark.parametrize(
        "category, max_requests, window_seconds",
        [
            ("", 3, 60),
            ("   ", 3, 60),
            ("contact:form", 3, 60),
            ("contact@v2", 3, 60),
            ("contact", 0, 60),
            ("contact", -1, 60),
            ("contact", 3, 0),
            ("contact", 3, -5),
        ],
    )
    def test_invalid_policy(self, category, max_requests, window_seconds):
        with pytest.raises(ValueError):
            RateLimitPolicy(category, max_requests, window_seconds)

    def test_policy_is_immutable(self):
        policy = RateLimitPolicy("api", 100, 60)

        with pytest.raises(dataclasses.FrozenInstanceError):
            policy.max_requests = 1000

    @pytest.mark.parametrize(
        "rate_string, max_requests, window_seconds",
        [
            ("100/minute", 100, 60),
            ("3/15minute", 3, 900),
            ("2/30minutes", 2, 1800),
            ("3/hour", 3, 3600),
            ("10 / second", 10, 1),
            ("1000/day", 1000, 86400),
            ("5/15 minutes", 5, 900),
        ],
    )
    def test_from_rate_string(self, rate_string, max_requests, window_seconds):
        policy = RateLimitPolicy.from_rate_string("api", rate_string)

        assert policy.max_requests == max_requests
        assert policy.window_seconds == window_seconds

    @pytest.mark.parametrize("rate_string", ["", "100", "100/fortnight", "abc/minute", "0/minute", "5/0minute"])
    def test_from_rate_string_rejects_garbage(self, rate_string):
        with pytest.raises(ValueError):
            RateLimitPolicy.from_rate_string("api", rate_string)

    def test_with_override(self):
        policy = RateLimitPolicy("api", 100, 60, "General API")

        effective = policy.with_override(RateLimitOverride(200, 60))

        assert effective.category == "api"
        assert effective.max_requests == 200
        assert effective.description == "General API"
        assert policy.with_override(None) is policy


class TestRateLimitOverride:

    def test_namespace_uses_milliseconds(self):
        assert RateLimitOverride(200, 60).namespace == "200/60000"
        assert RateLimitOverride(10, 0.5).namespace == "10/500"

    @pytest.mark.parametrize("max_requests, window_seconds", [(0, 60), (5, 0)])
    def test_invalid_override(self, max_requests, window_seconds):
        with pytest.raises(ValueError):
            RateLimitOverride(max_requests, window_seconds)

    def test_overrides_compare_by_value(self):
        assert RateLimitOverride(10, 60) == RateLimitOverride(10, 60.0)
        assert len({RateLimitOverride(10, 60), RateLimitOverride(10, 60)}) == 1


class TestRateLimitKey:

    def test_default_key(self):
        key = RateLimitKey("contact", "203.0.113.7")

        assert key.storage_key == "contact:203.0.113.7"
        assert str(key) == key.storage_key

    def test_override_key_is_namespaced(self):
        key = RateLimitKey("api", "203.0.113.7", RateLimitOverride(200, 60))

        assert key.storage_key == "api@200/60000:203.0.113.7"

    def test_default_and_override_keys_never_collide(self):
        identifier = "203.0.113.7"
        keys = {
            RateLimitKey("api", identifier).storage_key,
            RateLimitKey("api", identifier, RateLimitOverride(200, 60)).storage_key,
            RateLimitKey("api", identifier, RateLimitOverride(100, 60)).storage_key,
            RateLimitKey("api", identifier, RateLimitOverride(200, 30)).storage_key,
        }

        assert len(keys) == 4

    def test_identifier_may_contain_separators(self):
        key = RateLimitKey("api", "2001:db8::1")

        assert key.storage_key == "api:2001:db8::1"

    @pytest.mark.parametrize("category, identifier", [("", "ip"), ("a:b", "ip"), ("a@b", "ip"), ("api", "")])
    def test_invalid_key(self, category, identifier):
        with pytest.raises(ValueError):
            RateLimitKey(category, identifier)

import pytest
from pydantic import ValidationError

from tutorguard.core.config import Settings, create_settings
from tutorguard.domain.retry import RetryPolicy


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_defaults(monkeypatch):
    monkeypatch.delenv("REDIS_HOST", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)

    settings = make_settings()

    assert settings.RATE_LIMIT_ENABLED is True
    assert settings.RATE_LIMIT_KEY_PREFIX == "ratelimit"
    assert settings.RETRY_DEFAULT_PRESET == "standard"
    assert settings.redis_configured is False
    assert settings.REDIS_URL == ""


def test_default_policies():
    policies = {policy.category: policy for policy in make_settings().build_policies()}

    assert set(policies) == {"contact", "enrollment", "api", "auth", "password_reset"}
    assert (policies["contact"].max_requests, policies["contact"].window_seconds) == (3, 900)
    assert (policies["enrollment"].max_requests, policies["enrollment"].window_seconds) == (2, 1800)
    assert (policies["api"].max_requests, policies["api"].window_seconds) == (100, 60)
    assert (policies["auth"].max_requests, policies["auth"].window_seconds) == (5, 900)
    assert (policies["password_reset"].max_requests, policies["password_reset"].window_seconds) == (3, 3600)
    assert policies["contact"].description == "Contact form submissions"


def test_policies_from_environment(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_POLICIES", '{"api": "10/second", "uploads": "5/hour"}')

    policies = make_settings().build_policies()

    assert [(p.category, p.max_requests, p.window_seconds) for p in policies] == [
        ("api", 10, 1),
        ("uploads", 5, 3600),
    ]


@pytest.mark.parametrize(
    "policies",
    [
        {},
        {"api": "lots"},
        {"api:v2": "10/minute"},
    ],
)
def test_invalid_policies_rejected(policies):
    with pytest.raises(ValidationError):
        make_settings(RATE_LIMIT_POLICIES=policies)


def test_whitelist_from_comma_separated_string():
    settings = make_settings(RATE_LIMIT_WHITELIST=" 127.0.0.1, 10.0.0.5 ,,")

    assert settings.RATE_LIMIT_WHITELIST == ["127.0.0.1", "10.0.0.5"]


def test_allowed_origins_from_comma_separated_string():
    settings = make_settings(ALLOWED_ORIGINS="https://school.example.com,https://admin.example.com")

    assert settings.ALLOWED_ORIGINS == ["https://school.example.com", "https://admin.example.com"]


def test_redis_url_assembled_from_parts():
    settings = make_settings(
        REDIS_HOST="cache.internal",
        REDIS_PORT=6380,
        REDIS_PASSWORD="s3cret",
        REDIS_SSL=True,
        REDIS_DB=2,
    )

    assert settings.REDIS_URL == "rediss://:s3cret@cache.internal:6380/2"
    assert settings.redis_configured is True
    assert "s3cret" not in repr(settings.REDIS_PASSWORD)


def test_explicit_redis_url_wins():
    settings = make_settings(REDIS_HOST="ignored", REDIS_URL="redis://localhost:6379/0")

    assert settings.REDIS_URL == "redis://localhost:6379/0"


def test_retry_preset():
    settings = make_settings(RETRY_DEFAULT_PRESET="Patient")

    assert settings.RETRY_DEFAULT_PRESET == "patient"
    assert settings.default_retry_policy() == RetryPolicy.preset("patient")


def test_unknown_retry_preset():
    with pytest.raises(ValidationError, match="Unknown retry preset"):
        make_settings(RETRY_DEFAULT_PRESET="reckless")


def test_log_level_is_normalized():
    assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
    with pytest.raises(ValidationError):
        make_settings(LOG_LEVEL="verbose")


def test_unknown_environment_rejected():
    settings = make_settings(APP_ENV="qa")

    with pytest.raises(ValueError, match="Unknown APP_ENV"):
        settings.validate_required_fields()


def test_create_settings_applies_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_ENV", "test")

    settings = create_settings(APP_ENV="test", RATE_LIMIT_ENABLED=False)

    assert settings.APP_ENV == "test"
    assert settings.RATE_LIMIT_ENABLED is False


def test_create_settings_reads_environment_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_ENV", "staging")
    (tmp_path / ".env.staging").write_text("RATE_LIMIT_KEY_PREFIX=staging-rl\nREDIS_HOST=cache\n")

    settings = create_settings()

    assert settings.RATE_LIMIT_KEY_PREFIX == "staging-rl"
    assert settings.REDIS_URL == "redis://cache:6379/0"

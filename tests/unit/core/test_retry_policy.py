"""Тесты RetryPolicy и TransportConfig."""

import pytest

from src.gemini_transport.core.config import (
    ApiVersion,
    DEFAULT_BASE_URL,
    RetryPolicy,
    TimeoutConfig,
    TransportConfig,
)
from src.gemini_transport.core.exceptions import (
    AuthError,
    ErrorKind,
    NetworkError,
    QuotaError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)

PRESETS = ["default", "no_retry", "aggressive", "conservative"]


# ==================== Валидация ====================

def test_defaults():
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert policy.initial_delay == 1.0
    assert policy.backoff_multiplier == 2.0
    assert policy.max_delay == 30.0
    assert policy.retryable_error_kinds == {
        ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT, ErrorKind.SERVER
    }
    assert policy.retryable_status_codes == {408, 429, 500, 502, 503, 504}


@pytest.mark.parametrize("kwargs", [
    {"max_attempts": 0},
    {"initial_delay": -1},
    {"backoff_multiplier": 0},
    {"max_delay": -1},
    {"initial_delay": 10, "max_delay": 5},
])
def test_invalid_policy(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_policy_is_immutable():
    policy = RetryPolicy()
    with pytest.raises(AttributeError):
        policy.max_attempts = 10


def test_sets_are_frozen():
    policy = RetryPolicy(retryable_status_codes={500}, retryable_error_kinds={"timeout"})
    assert isinstance(policy.retryable_status_codes, frozenset)
    assert policy.retryable_error_kinds == frozenset({ErrorKind.TIMEOUT})


def test_with_changes_revalidates():
    policy = RetryPolicy().with_changes(max_attempts=5)
    assert policy.max_attempts == 5
    with pytest.raises(ValueError):
        RetryPolicy().with_changes(max_attempts=0)


@pytest.mark.parametrize("name", PRESETS)
def test_presets(name):
    policy = RetryPolicy.from_preset(name)
    assert policy == RetryPolicy.from_dict(policy.to_dict())


def test_unknown_preset():
    with pytest.raises(ValueError, match="Unknown retry preset"):
        RetryPolicy.from_preset("reckless")


def test_no_retry_preset():
    policy = RetryPolicy.no_retry()
    assert policy.max_attempts == 1
    assert policy.should_retry(ServerError("down", 503), 1) is False


# ==================== should_retry ====================

@pytest.mark.parametrize("error", [
    AuthError("bad key"),
    ValidationError("bad request"),
    QuotaError("quota"),
])
def test_never_retry_fatal(error):
    assert RetryPolicy(max_attempts=10).should_retry(error, 1) is False


@pytest.mark.parametrize("error", [
    NetworkError("refused"),
    TimeoutError("late", 30),
    RateLimitError("slow", 1),
    ServerError("down", 503),
])
def test_retry_transient(error):
    policy = RetryPolicy()
    assert policy.should_retry(error, 1) is True
    assert policy.should_retry(error, 2) is True
    assert policy.should_retry(error, 3) is False


def test_status_code_must_be_listed():
    policy = RetryPolicy()
    assert policy.should_retry(ServerError("not implemented", 501), 1) is False
    assert policy.should_retry(NetworkError("not found", status_code=404), 1) is False


def test_kind_must_be_listed():
    policy = RetryPolicy(retryable_error_kinds={ErrorKind.SERVER})
    assert policy.should_retry(TimeoutError("late", 30), 1) is False
    assert policy.should_retry(NetworkError("refused"), 1) is False


def test_conservative_does_not_retry_rate_limit():
    assert RetryPolicy.conservative().should_retry(RateLimitError("slow", 1), 1) is False


# ==================== Задержки ====================

def test_delay_for_default():
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


def test_delay_for_non_positive_attempt():
    assert RetryPolicy().delay_for(0) == 0.0
    assert RetryPolicy().delay_for(-3) == 0.0


def test_delay_for_huge_attempt_is_capped():
    assert RetryPolicy().delay_for(10_000) == 30.0


@pytest.mark.parametrize("policy", [RetryPolicy.from_preset(name) for name in PRESETS] + [
    RetryPolicy(initial_delay=0.1, backoff_multiplier=1.0, max_delay=0.1),
    RetryPolicy(initial_delay=0.3, backoff_multiplier=1.1, max_delay=7.0),
    RetryPolicy(initial_delay=2.5, backoff_multiplier=10.0, max_delay=1000.0),
])
def test_backoff_is_monotonic_and_bounded(policy):
    delays = [policy.delay_for(n) for n in range(1, 60)]
    assert all(0 <= d <= policy.max_delay for d in delays)
    assert all(a <= b for a, b in zip(delays, delays[1:]))


@pytest.mark.parametrize("retry_after", [0, 1, 5, 29.9, 30, 31, 60, 3600])
def test_rate_limit_delay_is_capped(retry_after):
    policy = RetryPolicy()
    delay = policy.rate_limit_delay(RateLimitError("slow", retry_after))
    assert delay == min(retry_after, policy.max_delay)


def test_delay_after_uses_retry_after_for_rate_limit():
    policy = RetryPolicy()
    assert policy.delay_after(RateLimitError("slow", 5), 1) == 5.0
    assert policy.delay_after(ServerError("down", 503), 2) == 2.0


# ==================== TransportConfig ====================

def test_transport_config_defaults():
    config = TransportConfig()
    assert config.base_url == DEFAULT_BASE_URL
    assert config.api_version is ApiVersion.V1
    assert config.timeout == TimeoutConfig()
    assert config.user_agent.startswith("gemini-transport/")


def test_base_url_trailing_slash_removed():
    assert TransportConfig(base_url="https://example.com/").base_url == "https://example.com"


@pytest.mark.parametrize("url", ["", "example.com", "ftp://example.com"])
def test_invalid_base_url(url):
    with pytest.raises(ValueError):
        TransportConfig(base_url=url)


def test_create_accepts_shortcuts():
    config = TransportConfig.create(api_version="v1beta", timeout=(3, 45), retry="aggressive")
    assert config.api_version is ApiVersion.V1BETA
    assert config.timeout.as_tuple() == (3, 45)
    assert config.retry == RetryPolicy.aggressive()


def test_create_number_timeout_is_read():
    assert TransportConfig.create(timeout=60).timeout.read == 60


def test_headers_are_read_only():
    config = TransportConfig(headers={"X-Trace": "1"})
    with pytest.raises(TypeError):
        config.headers["X-Other"] = "2"


def test_with_headers_merges():
    config = TransportConfig(headers={"A": "1"}).with_headers({"B": "2"})
    assert dict(config.headers) == {"A": "1", "B": "2"}


def test_config_dict_round_trip():
    config = TransportConfig.create(api_version="v1beta", timeout=(2, 20), retry="conservative")
    restored = TransportConfig.from_dict(config.to_dict())
    assert restored.to_dict() == config.to_dict()


def test_timeout_validation():
    with pytest.raises(ValueError):
        TimeoutConfig(connect=0)
    assert TimeoutConfig(connect=5, read=30).total == 30

"""
Retry and Error Handling Examples

Presets, custom policies and per-kind error handling.
"""

from src.gemini_transport import (
    ApiKeyAuth,
    AuthError,
    GeminiHTTPClient,
    RateLimitError,
    RetryPolicy,
    ServerError,
    TimeoutError,
    TransportConfig,
)

PROMPT = {"contents": [{"parts": [{"text": "Hello"}]}]}


def show_delays(policy: RetryPolicy):
    delays = [policy.delay_for(n) for n in range(1, policy.max_attempts)]
    print(f"max_attempts={policy.max_attempts} delays={delays}")


def presets():
    """Built-in policies."""
    print("\n=== Presets ===")
    for name in ("default", "no_retry", "aggressive", "conservative"):
        print(name, end=": ")
        show_delays(RetryPolicy.from_preset(name))


def custom_policy():
    """Custom backoff: 0.5s, 1s, 2s, 4s (capped at 5s)."""
    print("\n=== Custom policy ===")
    policy = RetryPolicy(max_attempts=5, initial_delay=0.5, backoff_multiplier=2.0, max_delay=5.0)
    show_delays(policy)

    config = TransportConfig.create(api_version="v1beta", timeout=(5, 60), retry=policy)
    with GeminiHTTPClient(ApiKeyAuth.from_env(), config) as client:
        try:
            client.post("models/gemini-pro:generateContent", body=PROMPT)
        except RateLimitError as e:
            print(f"Still rate limited, server asked to wait {e.retry_after}s")
        except (ServerError, TimeoutError) as e:
            print(f"Gave up after {policy.max_attempts} attempts: {e}")
        except AuthError as e:
            print(f"Check GEMINI_API_KEY: {e}")


if __name__ == "__main__":
    presets()
    custom_policy()

"""
Environment Configuration and Logging Examples

Reads GEMINI_* variables (or a .env file) and writes JSON logs.

    GEMINI_API_KEY=AIza...
    GEMINI_API_VERSION=v1beta
    GEMINI_RETRY_PRESET=aggressive
    GEMINI_LOG_ENABLED=true
    GEMINI_LOG_FORMAT=json
"""

from src.gemini_transport import GeminiHTTPClient, LoggingConfig, load_auth_from_env, load_from_env


def from_env():
    print("\n=== Config from environment ===")
    config = load_from_env()
    print(config.to_dict())

    with GeminiHTTPClient(load_auth_from_env(), config) as client:
        print(client.get("models")["models"][0]["name"])


def with_file_logging():
    """Every attempt is logged; the API key never appears in the file."""
    print("\n=== JSON logs in a rotating file ===")
    logging_config = LoggingConfig.create(
        level="DEBUG",
        format="json",
        enable_file=True,
        file_path="logs/gemini.log",
        extra_fields={"service": "example"},
    )
    config = load_from_env(logging=logging_config)

    with GeminiHTTPClient(load_auth_from_env(), config) as client:
        client.get("models")
    print("See logs/gemini.log")


if __name__ == "__main__":
    from_env()
    with_file_logging()

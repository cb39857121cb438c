"""
Pytest configuration and fixtures for gemini-transport tests.
"""

import pytest
import responses as responses_lib

from src.gemini_transport.core.auth import ApiKeyAuth
from src.gemini_transport.core.config import RetryPolicy, TimeoutConfig, TransportConfig
from src.gemini_transport.core.http_client import GeminiHTTPClient
from src.gemini_transport.core.logging.config import LoggingConfig
from src.gemini_transport.core.logging.filters import clear_correlation_id

TEST_API_KEY = "AIzaSyTEST-key-0123456789abcdefghijk"
BASE_URL = "https://generativelanguage.googleapis.com"


class RecordingSleep:
    """Заменитель time.sleep: запоминает задержки и не ждёт."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _reset_correlation_id():
    yield
    clear_correlation_id()


@pytest.fixture
def api_key():
    return TEST_API_KEY


@pytest.fixture
def auth():
    return ApiKeyAuth(TEST_API_KEY)


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def mock_responses():
    """Mock HTTP responses using responses library."""
    with responses_lib.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def config():
    """Конфиг по умолчанию: 3 попытки, 1с, x2, потолок 30с."""
    return TransportConfig(retry=RetryPolicy(), timeout=TimeoutConfig(connect=5, read=10))


@pytest.fixture
def client(auth, config, sleep):
    client = GeminiHTTPClient(auth, config, sleep=sleep)
    yield client
    client.close()


@pytest.fixture
def logging_config():
    return LoggingConfig.create(
        level="DEBUG",
        enable_console=True,
        enable_file=False
    )

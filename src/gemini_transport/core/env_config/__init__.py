"""
Environment configuration.

Example:
    >>> from gemini_transport.core.env_config import load_from_env, load_auth_from_env
    >>> client = GeminiHTTPClient(load_auth_from_env(), load_from_env())
"""

from .loader import load_auth_from_env, load_from_env
from .validator import TransportSettings

__all__ = [
    "load_from_env",
    "load_auth_from_env",
    "TransportSettings",
]

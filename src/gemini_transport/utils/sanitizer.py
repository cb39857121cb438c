# src/gemini_transport/utils/sanitizer.py
"""
Маскирование чувствительных данных перед логированием.

Главное, что нужно прятать в этом клиенте - API ключ: он ходит в заголовке
x-goog-api-key и иногда в query параметре ?key=.
"""

import re
from typing import Any, Dict

REDACTED = "***REDACTED***"

# Ключи сравниваются в нижнем регистре, по подстроке
SENSITIVE_KEYS = {
    'x-goog-api-key', 'api_key', 'apikey', 'api-key', 'key',
    'authorization', 'auth', 'token', 'access_token', 'refresh_token',
    'secret', 'client_secret', 'password', 'cookie', 'credentials',
}

# Ключи, которые содержат sensitive подстроку, но безопасны
_SAFE_KEYS = {'keys', 'auth_type'}

SENSITIVE_PATTERNS = [
    (re.compile(r'(Bearer\s+)([A-Za-z0-9\-._~+/]+=*)', re.IGNORECASE), rf'\1{REDACTED}'),
    (re.compile(r'(x-goog-api-key["\']?[\s:=]+["\']?)([^\s&,;"\']+)', re.IGNORECASE), rf'\1{REDACTED}'),
    (re.compile(r'(api[_-]?key["\']?[\s:=]+["\']?)([^\s&,;"\']+)', re.IGNORECASE), rf'\1{REDACTED}'),
    (re.compile(r'([?&]key=)([^&\s#]+)', re.IGNORECASE), rf'\1{REDACTED}'),
    # Ключи Google API без контекста
    (re.compile(r'AIza[0-9A-Za-z\-_]{20,}'), REDACTED),
]


def mask_sensitive_data(data: Any, mask: str = REDACTED) -> Any:
    """
    Рекурсивно маскирует чувствительные данные в dict / list / str.

    Args:
        data: Данные для маскирования
        mask: Строка-заменитель

    Returns:
        Копия данных с замаскированными значениями

    Examples:
        >>> mask_sensitive_data({"x-goog-api-key": "AIza...", "Accept": "application/json"})
        {'x-goog-api-key': '***REDACTED***', 'Accept': 'application/json'}
    """
    if data is None or isinstance(data, (bool, int, float)):
        return data

    if isinstance(data, str):
        return _mask_string(data, mask)

    if isinstance(data, dict):
        return _mask_dict(data, mask)

    if isinstance(data, (list, tuple)):
        return type(data)(mask_sensitive_data(item, mask) for item in data)

    return data


def _mask_dict(data: Dict[Any, Any], mask: str) -> Dict[Any, Any]:
    result = {}
    for key, value in data.items():
        key_lower = key.lower() if isinstance(key, str) else str(key).lower()
        if _is_sensitive_key(key_lower):
            result[key] = mask
        else:
            result[key] = mask_sensitive_data(value, mask)
    return result


def _mask_string(text: str, mask: str) -> str:
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        if mask != REDACTED:
            replacement = replacement.replace(REDACTED, mask)
        result = pattern.sub(replacement, result)
    return result


def _is_sensitive_key(key: str) -> bool:
    # promptTokenCount, key_count и т.п.
    if key in _SAFE_KEYS or key.endswith('count'):
        return False
    if key in SENSITIVE_KEYS:
        return True
    # 'key' слишком общий для поиска по подстроке ("monkey", "keyword")
    return any(
        sensitive in key
        for sensitive in SENSITIVE_KEYS
        if sensitive != 'key'
    )


def sanitize_url(url: str, mask: str = REDACTED) -> str:
    """
    Маскирует ключ и прочие секреты в query параметрах URL.

    Examples:
        >>> sanitize_url("https://host/v1beta/models?key=AIzaSecret&alt=sse")
        'https://host/v1beta/models?key=***REDACTED***&alt=sse'
    """
    url = re.sub(r'://([^:/@]+):([^@]+)@', rf'://\1:{mask}@', url)

    for sensitive_key in sorted(SENSITIVE_KEYS):
        pattern = re.compile(rf'([?&]{re.escape(sensitive_key)}=)([^&#\s]+)', re.IGNORECASE)
        url = pattern.sub(rf'\g<1>{mask}', url)

    return url


def mask_headers(headers: Dict[str, str], mask: str = REDACTED) -> Dict[str, str]:
    """Маскирует чувствительные HTTP заголовки."""
    return _mask_dict(dict(headers), mask)

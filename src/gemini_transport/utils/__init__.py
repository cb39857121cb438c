"""Утилиты."""

from .sanitizer import mask_headers, mask_sensitive_data, sanitize_url

__all__ = ["mask_sensitive_data", "mask_headers", "sanitize_url"]

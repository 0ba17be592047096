"""Credential format validation, applied when a credential is created."""

from __future__ import annotations

import re
from typing import Dict, Mapping, Optional, Tuple

from ..errors import CredentialFormatError

CREDENTIAL_TYPES = ("api_key", "token", "secret", "connection_string", "multi_field")

_PATTERNS: Dict[str, Tuple[str, str]] = {
    "openai": (r"^sk-[a-zA-Z0-9_-]{20,}$", "Invalid OpenAI API key format (must start with sk-)"),
    "anthropic": (r"^sk-ant-[a-zA-Z0-9_-]{95,}$", "Invalid Anthropic API key format (must start with sk-ant-)"),
    "stripe": (r"^(sk|pk)_(test|live)_[a-zA-Z0-9]{24,}$", "Invalid Stripe key format"),
    "slack": (r"^xox[abp]-[a-zA-Z0-9-]+$", "Invalid Slack token format"),
    "telegram": (r"^[0-9]{8,10}:[a-zA-Z0-9_-]{35}$", "Invalid Telegram bot token format"),
    "github": (r"^(ghp|gho|ghu|ghs|ghr)_[a-zA-Z0-9]{36,}$", "Invalid GitHub token format"),
    "resend": (r"^re_[a-zA-Z0-9]{32,}$", "Invalid Resend API key format"),
}

_LENGTHS: Dict[str, Tuple[int, Optional[int]]] = {
    "discord": (50, 100),
    "reddit": (20, None),
}

_GENERIC_LENGTHS: Dict[str, Tuple[int, int, str]] = {
    "api_key": (10, 500, "API key"),
    "token": (10, 500, "Token"),
    "secret": (8, 500, "Secret"),
    "connection_string": (10, 2000, "Connection string"),
}


def _check_length(platform: str, value: str, low: int, high: Optional[int], label: str) -> None:
    if len(value) < low:
        raise CredentialFormatError(platform, f"{label} must be at least {low} characters")
    if high is not None and len(value) > high:
        raise CredentialFormatError(platform, f"{label} too long")


def validate_credential_value(platform: str, value: str, credential_type: str = "api_key") -> None:
    """Raise ``CredentialFormatError`` when ``value`` is malformed for ``platform``."""
    platform = platform.lower()
    if credential_type not in CREDENTIAL_TYPES:
        raise CredentialFormatError(platform, f"Unknown credential type: {credential_type}")

    pattern = _PATTERNS.get(platform)
    if pattern is not None:
        regex, message = pattern
        if not re.match(regex, value):
            raise CredentialFormatError(platform, message)
        return

    length = _LENGTHS.get(platform)
    if length is not None:
        _check_length(platform, value, length[0], length[1], "Credential")
        return

    generic = _GENERIC_LENGTHS.get(credential_type)
    if generic is not None:
        _check_length(platform, value, *generic)


def validate_credential(
    platform: str,
    credential_type: str,
    value: Optional[str] = None,
    fields: Optional[Mapping[str, str]] = None,
) -> None:
    """Validate a single-value or multi-field credential before it is stored."""
    if credential_type == "multi_field":
        if not fields:
            raise CredentialFormatError(platform, "Multi-field credentials require fields")
        empty = [name for name, field in fields.items() if not field]
        if empty:
            raise CredentialFormatError(platform, f"Empty field(s): {', '.join(empty)}")
        return
    if not value:
        raise CredentialFormatError(platform, "Credential value is required")
    validate_credential_value(platform, value, credential_type)

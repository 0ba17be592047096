"""Models for stored and resolved secrets."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SecretKind = Literal["oauth", "api_key"]


class StoredSecret(BaseModel):
    """Encrypted secret as persisted by a ``SecretStore``.

    Single-value secrets carry ``value``; multi-field secrets carry ``fields``,
    each field encrypted separately.
    """

    key: str
    kind: SecretKind = "api_key"
    value: Optional[str] = None
    fields: Dict[str, str] = Field(default_factory=dict)
    credential_type: str = "api_key"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_multi_field(self) -> bool:
        return bool(self.fields)


class ResolvedCredential(BaseModel):
    """Decrypted secret material handed to a capability."""

    model_config = ConfigDict(frozen=True)

    reference: str
    platform: str
    key: str
    kind: SecretKind
    value: Any

    def __repr__(self) -> str:  # pragma: no cover - keep secrets out of logs
        return f"ResolvedCredential(platform={self.platform!r}, key={self.key!r}, kind={self.kind!r})"

    __str__ = __repr__

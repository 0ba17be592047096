"""Turn logical credential references into concrete secret material."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Tuple

from ..errors import CredentialMissingError
from .cipher import SecretCipher
from .models import ResolvedCredential, StoredSecret
from .platforms import (
    AuthMethod,
    api_key_chain,
    base_platform,
    get_platform_capability,
    oauth_chain,
)
from .requirements import Requirement, requirement_for
from .store import SecretStore

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r"^\s*(?:\{\{\s*)?(?:(credential|user)\.)?([A-Za-z0-9_-]+)(?:\s*\}\})?\s*$")


def parse_reference(reference: str) -> str:
    """``{{credential.twitter}}``, ``user.twitter`` and ``twitter`` all name ``twitter``."""
    match = REFERENCE_RE.match(reference)
    if not match:
        raise ValueError(f"Invalid credential reference: {reference}")
    return match.group(2)


class CredentialResolver:
    """Resolve references against a secret store using platform rules."""

    def __init__(self, store: SecretStore, cipher: SecretCipher) -> None:
        self._store = store
        self._cipher = cipher

    def requirement(self, reference: str, functions: Iterable[str] = ()) -> Tuple[str, Requirement]:
        """Return the base platform and what it needs for ``functions``."""
        platform = base_platform(parse_reference(reference))
        capability = get_platform_capability(platform)
        return platform, requirement_for(capability, functions)

    async def resolve(
        self, reference: str, functions: Iterable[str] = ()
    ) -> Optional[ResolvedCredential]:
        """Resolve ``reference``; ``None`` means no credential is required.

        Raises:
            CredentialMissingError: no stored secret satisfies the requirement.
        """
        name = parse_reference(reference)
        platform, requirement = self.requirement(name, functions)
        if not requirement.methods:
            logger.debug(f"No credential required for {platform}")
            return None

        for method in requirement.methods:
            found = await self._fetch(method, name, platform)
            if found is not None:
                logger.debug(f"Resolved {name} via {found.kind} key '{found.key}'")
                return found
        raise CredentialMissingError(platform, requirement.label)

    async def _fetch(
        self, method: AuthMethod, name: str, platform: str
    ) -> Optional[ResolvedCredential]:
        keys = oauth_chain(platform) if method == AuthMethod.OAUTH else api_key_chain(name, platform)
        for key in keys:
            secret = await self._store.get(key)
            if secret is None or secret.kind != method.value:
                continue
            return ResolvedCredential(
                reference=name,
                platform=platform,
                key=key,
                kind=secret.kind,
                value=self._decrypt(secret),
            )
        return None

    def _decrypt(self, secret: StoredSecret):
        if secret.is_multi_field:
            return {field: self._cipher.decrypt(token) for field, token in secret.fields.items()}
        return self._cipher.decrypt(secret.value or "")

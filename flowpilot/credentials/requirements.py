"""Credential requirement strategies.

Each platform category maps to exactly one requirement variant, and each
variant knows which secret kinds to try and in which order. The resolver
never branches on the category itself.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .platforms import AuthMethod, CredentialCategory, PlatformCapability


class NoCredential(BaseModel):
    """The invoked functions work without any secret."""

    model_config = ConfigDict(frozen=True)

    @property
    def methods(self) -> Tuple[AuthMethod, ...]:
        return ()

    @property
    def label(self) -> str:
        return "none"


class ApiKeyOnly(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def methods(self) -> Tuple[AuthMethod, ...]:
        return (AuthMethod.API_KEY,)

    @property
    def label(self) -> str:
        return "api_key"


class OAuthOnly(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def methods(self) -> Tuple[AuthMethod, ...]:
        return (AuthMethod.OAUTH,)

    @property
    def label(self) -> str:
        return "oauth"


class EitherCredential(BaseModel):
    """Either kind satisfies the reference; ``preferred`` is tried first."""

    model_config = ConfigDict(frozen=True)

    preferred: AuthMethod = AuthMethod.API_KEY

    @property
    def methods(self) -> Tuple[AuthMethod, ...]:
        if self.preferred == AuthMethod.OAUTH:
            return (AuthMethod.OAUTH, AuthMethod.API_KEY)
        return (AuthMethod.API_KEY, AuthMethod.OAUTH)

    @property
    def label(self) -> str:
        return "oauth or api_key"


Requirement = Union[NoCredential, ApiKeyOnly, OAuthOnly, EitherCredential]


def _requirement_from_functions(
    capability: PlatformCapability, functions: Iterable[str], unknown: Optional[AuthMethod]
) -> Requirement:
    needs_oauth = False
    needs_api_key = False
    known = 0
    for function in functions:
        method = capability.requirement_for(function) or unknown
        if method is None:
            continue
        known += 1
        if method == AuthMethod.OAUTH:
            needs_oauth = True
        elif method == AuthMethod.API_KEY:
            needs_api_key = True

    preferred = capability.preferred_method or AuthMethod.API_KEY
    if needs_oauth and not needs_api_key:
        return OAuthOnly()
    if needs_api_key and not needs_oauth:
        return ApiKeyOnly()
    if known and not needs_oauth and not needs_api_key:
        return NoCredential()
    return EitherCredential(preferred=preferred)


def _none(capability: PlatformCapability, functions: Iterable[str]) -> Requirement:
    return NoCredential()


def _api_key(capability: PlatformCapability, functions: Iterable[str]) -> Requirement:
    return ApiKeyOnly()


def _oauth(capability: PlatformCapability, functions: Iterable[str]) -> Requirement:
    return OAuthOnly()


def _optional(capability: PlatformCapability, functions: Iterable[str]) -> Requirement:
    functions = list(functions)
    if not functions:
        return NoCredential()
    # unlisted functions of an optional platform are treated as public
    return _requirement_from_functions(capability, functions, unknown=AuthMethod.NONE)


def _both(capability: PlatformCapability, functions: Iterable[str]) -> Requirement:
    return _requirement_from_functions(capability, functions, unknown=None)


_STRATEGIES: Dict[
    CredentialCategory, Callable[[PlatformCapability, Iterable[str]], Requirement]
] = {
    CredentialCategory.NONE: _none,
    CredentialCategory.API_KEY: _api_key,
    CredentialCategory.OAUTH: _oauth,
    CredentialCategory.OPTIONAL: _optional,
    CredentialCategory.BOTH: _both,
}


def requirement_for(capability: PlatformCapability, functions: Iterable[str] = ()) -> Requirement:
    """Determine what a reference needs given the functions invoked in the run."""
    return _STRATEGIES[capability.category](capability, functions)

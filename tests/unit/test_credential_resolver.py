"""Credential resolution against the platform capability table."""

import pytest

from flowpilot.credentials import (
    ApiKeyOnly,
    CredentialResolver,
    EitherCredential,
    InMemorySecretStore,
    NoCredential,
    OAuthOnly,
    SecretCipher,
    StoredSecret,
    base_platform,
    parse_reference,
)
from flowpilot.credentials.platforms import AuthMethod
from flowpilot.errors import CredentialMissingError


class CountingStore(InMemorySecretStore):
    """In-memory store that records every key looked up."""

    def __init__(self) -> None:
        super().__init__()
        self.lookups = []

    async def get(self, key):
        self.lookups.append(key)
        return await super().get(key)


@pytest.fixture
def cipher():
    return SecretCipher(SecretCipher.generate_key())


async def _put(store, cipher, key, value, kind="api_key"):
    await store.put(StoredSecret(key=key, kind=kind, value=cipher.encrypt(value)))


def test_reference_parsing_and_suffix_stripping():
    assert parse_reference("{{credential.twitter}}") == "twitter"
    assert parse_reference("{{ user.github }}") == "github"
    assert parse_reference("openai") == "openai"
    assert base_platform("openai_api_key") == "openai"
    assert base_platform("slack_access_token") == "slack"
    assert base_platform("rapidapi-weather") == "rapidapi"
    with pytest.raises(ValueError):
        parse_reference("{{credential.}}")


@pytest.mark.asyncio
@pytest.mark.parametrize("platform", ["http", "json", "datetime", "text"])
async def test_none_category_never_touches_the_store(platform, cipher):
    store = CountingStore()
    resolver = CredentialResolver(store, cipher)

    assert await resolver.resolve(f"{{{{credential.{platform}}}}}", {"anything"}) is None
    assert store.lookups == []


def test_both_category_with_api_key_functions_requires_only_api_key(cipher):
    resolver = CredentialResolver(InMemorySecretStore(), cipher)
    _, requirement = resolver.requirement("youtube", {"searchVideos", "getVideoDetails"})
    assert isinstance(requirement, ApiKeyOnly)
    assert requirement.methods == (AuthMethod.API_KEY,)


def test_both_category_requirement_variants(cipher):
    resolver = CredentialResolver(InMemorySecretStore(), cipher)
    assert isinstance(resolver.requirement("youtube", {"postComment"})[1], OAuthOnly)
    mixed = resolver.requirement("youtube", {"postComment", "searchVideos"})[1]
    assert isinstance(mixed, EitherCredential)
    assert mixed.methods[0] == AuthMethod.API_KEY


def test_optional_category_public_functions_need_nothing(cipher):
    resolver = CredentialResolver(InMemorySecretStore(), cipher)
    assert isinstance(resolver.requirement("reddit", {"getSubredditPosts"})[1], NoCredential)
    assert isinstance(resolver.requirement("reddit", {"submitPost"})[1], OAuthOnly)


@pytest.mark.asyncio
async def test_api_key_only_resolution_never_queries_oauth_keys(cipher):
    store = CountingStore()
    await _put(store, cipher, "youtube", "AIza-key")
    await _put(store, cipher, "youtube_oauth", "oauth-token", kind="oauth")
    resolver = CredentialResolver(store, cipher)

    resolved = await resolver.resolve("{{credential.youtube}}", {"searchVideos"})

    assert resolved.value == "AIza-key"
    assert resolved.kind == "api_key"
    assert "youtube_oauth" not in store.lookups


@pytest.mark.asyncio
async def test_alias_chain_prefers_earlier_keys(cipher):
    store = InMemorySecretStore()
    await _put(store, cipher, "twitter", "legacy-token", kind="oauth")
    await _put(store, cipher, "twitter_oauth", "current-token", kind="oauth")
    resolver = CredentialResolver(store, cipher)

    resolved = await resolver.resolve("{{credential.twitter}}")

    assert resolved.key == "twitter_oauth"
    assert resolved.value == "current-token"


@pytest.mark.asyncio
async def test_missing_credential_names_platform_and_type(cipher):
    resolver = CredentialResolver(InMemorySecretStore(), cipher)
    with pytest.raises(CredentialMissingError) as exc_info:
        await resolver.resolve("{{credential.openai_api_key}}")
    assert exc_info.value.platform == "openai"
    assert exc_info.value.required_type == "api_key"
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_multi_field_secrets_are_decrypted_per_field(cipher):
    store = InMemorySecretStore()
    await store.put(
        StoredSecret(
            key="stripe",
            fields={"public": cipher.encrypt("pk"), "secret": cipher.encrypt("sk")},
            credential_type="multi_field",
        )
    )
    resolver = CredentialResolver(store, cipher)

    resolved = await resolver.resolve("stripe", {"createCharge"})
    assert resolved.value == {"public": "pk", "secret": "sk"}

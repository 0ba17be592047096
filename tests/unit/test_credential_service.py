import pytest

from flowpilot.credentials import (
    CredentialService,
    InMemorySecretStore,
    SecretCipher,
    SQLiteSecretStore,
    StoredSecret,
    validate_credential_value,
)
from flowpilot.errors import CredentialFormatError


@pytest.fixture
def cipher():
    return SecretCipher(SecretCipher.generate_key())


def test_cipher_round_trip_and_wrong_key(cipher):
    token = cipher.encrypt("s3cret")
    assert token != "s3cret"
    assert cipher.decrypt(token) == "s3cret"

    other = SecretCipher(SecretCipher.generate_key())
    with pytest.raises(ValueError):
        other.decrypt(token)


@pytest.mark.parametrize(
    "platform, value",
    [
        ("openai", "not-a-key"),
        ("slack", "abc"),
        ("github", "ghp_short"),
        ("discord", "x" * 10),
        ("unknownplatform", "short"),
    ],
)
def test_malformed_values_are_rejected(platform, value):
    with pytest.raises(CredentialFormatError):
        validate_credential_value(platform, value)


def test_well_formed_values_pass():
    validate_credential_value("openai", "sk-" + "a" * 40)
    validate_credential_value("slack", "xoxb-1234-abcd")
    validate_credential_value("somecrm", "0123456789abcdef")


def test_unknown_credential_type_is_rejected():
    with pytest.raises(CredentialFormatError):
        validate_credential_value("somecrm", "0123456789abcdef", credential_type="password")


@pytest.mark.asyncio
async def test_store_credential_encrypts_and_validates(cipher):
    store = InMemorySecretStore()
    service = CredentialService(store, cipher)

    with pytest.raises(CredentialFormatError):
        await service.store_credential("openai", "nope")
    assert await store.get("openai") is None

    secret = await service.store_credential("openai", "sk-" + "b" * 30)
    assert secret.key == "openai"
    assert secret.value != "sk-" + "b" * 30
    assert cipher.decrypt(secret.value) == "sk-" + "b" * 30


@pytest.mark.asyncio
async def test_oauth_tokens_skip_format_validation(cipher):
    service = CredentialService(InMemorySecretStore(), cipher)
    secret = await service.store_credential("twitter", "t", kind="oauth", key="twitter_oauth")
    assert secret.kind == "oauth"
    assert secret.key == "twitter_oauth"


@pytest.mark.asyncio
async def test_multi_field_credentials(cipher):
    service = CredentialService(InMemorySecretStore(), cipher)

    with pytest.raises(CredentialFormatError):
        await service.store_credential("twilio", fields={"sid": "abc", "token": ""})

    secret = await service.store_credential("twilio", fields={"sid": "abc", "token": "xyz"})
    assert secret.credential_type == "multi_field"
    assert secret.value is None
    assert {k: cipher.decrypt(v) for k, v in secret.fields.items()} == {"sid": "abc", "token": "xyz"}

    listed = await service.list_credentials()
    assert listed[0]["key"] == "twilio"
    assert "value" not in listed[0]


@pytest.mark.asyncio
async def test_sqlite_secret_store(tmp_path):
    store = SQLiteSecretStore(tmp_path / "secrets.db")
    await store.put(StoredSecret(key="github", value="enc-1"))
    await store.put(StoredSecret(key="stripe", fields={"public": "p", "secret": "s"}))

    fetched = await store.get("github")
    assert fetched.value == "enc-1"
    assert fetched.kind == "api_key"
    assert (await store.get("stripe")).fields == {"public": "p", "secret": "s"}
    assert [s.key for s in await store.list_secrets()] == ["github", "stripe"]

    assert await store.delete("github") is True
    assert await store.delete("github") is False
    assert await store.get("github") is None

"""Store credentials and see how a workflow's references resolve."""

import asyncio

from flowpilot import build_runtime
from flowpilot.config import FlowpilotConfig, SecretsConfig
from flowpilot.credentials import SecretCipher


async def main():
    config = FlowpilotConfig(secrets=SecretsConfig(encryption_key=SecretCipher.generate_key()))
    runtime = build_runtime(config)

    await runtime.credentials.store_credential("openai", "sk-" + "0" * 40)
    await runtime.credentials.store_credential("twitter_oauth", "oauth-token", kind="oauth")
    await runtime.credentials.store_credential(
        "twilio", fields={"account_sid": "AC123", "auth_token": "secret"}
    )

    for reference, functions in (
        ("{{credential.openai}}", set()),
        ("{{credential.twitter}}", set()),
        ("{{credential.twilio}}", set()),
        ("{{credential.json}}", set()),
    ):
        resolved = await runtime.resolver.resolve(reference, functions)
        if resolved is None:
            print(f"🔓 {reference}: no credential needed")
        else:
            print(f"🔑 {reference}: {resolved.kind} from '{resolved.key}'")


if __name__ == "__main__":
    asyncio.run(main())

"""Run a workflow once, in process, with a custom capability."""

import asyncio

from flowpilot import ModuleRegistry, RunRequest, WorkflowDefinition, build_runtime
from flowpilot.config import FlowpilotConfig
from flowpilot.registry import Capability


def shout(text: str, times: int = 1):
    """Upper-case ``text`` and repeat it."""
    return " ".join([text.upper()] * times)


async def main():
    # Built-in utilities plus one capability registered by hand
    builtins = list(ModuleRegistry.discover())
    registry = ModuleRegistry(
        builtins + [Capability.from_function(shout, category="custom", platform="demo")]
    )

    runtime = build_runtime(FlowpilotConfig(), registry=registry)

    definition = WorkflowDefinition.parse(
        {
            "name": "greeting",
            "steps": [
                {
                    "id": "greet",
                    "module": "utilities.text.template",
                    "inputs": {"text": "hello {name}", "values": {"name": "{{trigger.name}}"}},
                },
                {
                    "id": "loud",
                    "module": "custom.demo.shout",
                    "inputs": {"text": "{{greet}}", "times": 2},
                },
            ],
        },
        workflow_id="greeting",
    )
    await runtime.repository.save_workflow("greeting", definition)

    run = await runtime.executor.execute(
        RunRequest(workflow_id="greeting", trigger_data={"name": "ada"})
    )

    print(f"✅ Run {run.id} finished with status {run.status}")
    print(f"📦 Output: {run.output}")
    print(f"⏱️  Took {run.duration}ms")


if __name__ == "__main__":
    asyncio.run(main())

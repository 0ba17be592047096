"""Static analysis of which credentials a workflow needs."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from ..contracts import WorkflowDefinition
from ..templates import iter_references
from .platforms import base_platform, get_platform_capability
from .requirements import EitherCredential, NoCredential, requirement_for

CREDENTIAL_REF_RE = re.compile(r"^(credential|user)\.([A-Za-z0-9_-]+)$")

UTILITY_CATEGORIES = {"utilities", "util", "utility"}


class RequiredCredential(BaseModel):
    platform: str
    type: str
    variable: str
    preferred_type: Optional[str] = None
    functions: List[str] = Field(default_factory=list)


def credential_references(value) -> List[str]:
    """Return credential names referenced by templates inside ``value``."""
    names = []
    for path in iter_references(value):
        match = CREDENTIAL_REF_RE.match(path.strip())
        if match and not (match.group(1) == "user" and match.group(2) == "id"):
            names.append(match.group(2))
    return names


def module_platform(module: str) -> Optional[tuple[str, str]]:
    """Return ``(platform, function)`` for a capability path, skipping utilities."""
    parts = module.split(".")
    if len(parts) < 3 or parts[0].lower() in UTILITY_CATEGORIES:
        return None
    platform = parts[-2].lower()
    if platform.startswith("rapidapi-"):
        platform = "rapidapi"
    return platform, parts[-1]


def platform_usage(definition: WorkflowDefinition) -> Dict[str, Set[str]]:
    """Map each platform used by ``definition`` to the functions invoked on it."""
    usage: Dict[str, Set[str]] = {}
    for step in definition.walk():
        if step.module:
            found = module_platform(step.module)
            if found:
                usage.setdefault(found[0], set()).add(found[1])
        for name in credential_references(step.inputs):
            usage.setdefault(base_platform(name), set())
    return usage


def analyze_workflow_credentials(definition: WorkflowDefinition) -> List[RequiredCredential]:
    """List credentials that must exist before ``definition`` can run."""
    required: List[RequiredCredential] = []
    for platform, functions in sorted(platform_usage(definition).items()):
        requirement = requirement_for(get_platform_capability(platform), functions)
        if isinstance(requirement, NoCredential):
            continue
        required.append(
            RequiredCredential(
                platform=platform,
                type=requirement.label,
                variable=f"credential.{platform}",
                preferred_type=(
                    requirement.preferred.value
                    if isinstance(requirement, EitherCredential)
                    else None
                ),
                functions=sorted(functions),
            )
        )
    return required

from .resources import (
    ResourceKind,
    Resource,
    Tool,
    Assistant,
    AssistantModel,
    CloneResult,
    CredentialRecord
)

__all__ = [
    "ResourceKind",
    "Resource",
    "Tool",
    "Assistant",
    "AssistantModel",
    "CloneResult",
    "CredentialRecord"
]

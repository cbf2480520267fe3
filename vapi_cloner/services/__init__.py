from .vapi_client import VAPIClient, RetryPolicy
from .resource_service import ResourceService, ToolService, AssistantService, service_for

__all__ = [
    "VAPIClient",
    "RetryPolicy",
    "ResourceService",
    "ToolService",
    "AssistantService",
    "service_for"
]

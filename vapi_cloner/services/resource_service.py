from typing import Any, Dict, List, Type

from ..core.exceptions.vapi_exceptions import ResourceNotFoundError, VAPIAPIError
from ..core.models import Assistant, Resource, ResourceKind, Tool
from .vapi_client import VAPIClient


class ResourceService:
    """CRUD for one VAPI resource kind.

    Errors keep their HTTP status so callers can branch on 400 vs 401/403.
    """

    kind: ResourceKind
    model: Type[Resource]

    def __init__(self, client: VAPIClient):
        self.client = client

    def _wrap(self, e: VAPIAPIError, action: str) -> VAPIAPIError:
        return VAPIAPIError(
            f"Failed to {action}: {e}",
            status_code=e.status_code,
            response_body=e.response_body
        )

    async def list(self) -> List[Resource]:
        """List all resources of this kind in the account."""
        try:
            items = await self.client.list_resources(self.kind)
        except VAPIAPIError as e:
            raise self._wrap(e, f"list {self.kind.value}s") from e
        return [self.model.model_validate(item) for item in items]

    async def get(self, resource_id: str) -> Resource:
        try:
            response = await self.client.get_resource(self.kind, resource_id)
        except VAPIAPIError as e:
            if e.is_not_found:
                raise ResourceNotFoundError(f"{self.kind.value.capitalize()} {resource_id} not found") from e
            raise self._wrap(e, f"get {self.kind.value} {resource_id}") from e
        return self.model.model_validate(response)

    async def create(self, data: Dict[str, Any]) -> Resource:
        """Create a resource; the platform assigns its id."""
        try:
            response = await self.client.create_resource(self.kind, data)
        except VAPIAPIError as e:
            raise self._wrap(e, f"create {self.kind.value}") from e

        created = self.model.model_validate(response)
        if not created.id:
            raise VAPIAPIError(
                f"Created {self.kind.value} has no id",
                status_code=None,
                response_body=response
            )
        return created

    async def update(self, resource_id: str, data: Dict[str, Any]) -> Resource:
        try:
            response = await self.client.update_resource(self.kind, resource_id, data)
        except VAPIAPIError as e:
            if e.is_not_found:
                raise ResourceNotFoundError(f"{self.kind.value.capitalize()} {resource_id} not found") from e
            raise self._wrap(e, f"update {self.kind.value} {resource_id}") from e
        return self.model.model_validate(response)

    async def delete(self, resource_id: str) -> bool:
        try:
            await self.client.delete_resource(self.kind, resource_id)
            return True
        except VAPIAPIError as e:
            if e.is_not_found:
                raise ResourceNotFoundError(f"{self.kind.value.capitalize()} {resource_id} not found") from e
            raise self._wrap(e, f"delete {self.kind.value} {resource_id}") from e


class ToolService(ResourceService):
    """Service for managing VAPI tools."""
    kind = ResourceKind.TOOL
    model = Tool


class AssistantService(ResourceService):
    """Service for managing VAPI assistants."""
    kind = ResourceKind.ASSISTANT
    model = Assistant


def service_for(kind: ResourceKind, client: VAPIClient) -> ResourceService:
    if ResourceKind(kind) == ResourceKind.TOOL:
        return ToolService(client)
    return AssistantService(client)

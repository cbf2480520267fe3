from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(str, Enum):
    TOOL = "tool"
    ASSISTANT = "assistant"

    @property
    def singular_path(self) -> str:
        return self.value

    @property
    def plural_path(self) -> str:
        return f"{self.value}s"


class Resource(BaseModel):
    """Fields shared by tools and assistants; everything else rides in the extras."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    org_id: Optional[str] = Field(None, alias="orgId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class Tool(Resource):
    type: Optional[str] = None
    description: Optional[str] = None
    function: Optional[Dict[str, Any]] = None
    server: Optional[Dict[str, Any]] = None
    messages: Optional[List[Dict[str, Any]]] = None


class AssistantModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    provider: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    tool_ids: Optional[List[str]] = Field(None, alias="toolIds")
    messages: Optional[List[Dict[str, Any]]] = None


class Assistant(Resource):
    model: Optional[AssistantModel] = None
    voice: Optional[Dict[str, Any]] = None
    transcriber: Optional[Dict[str, Any]] = None
    first_message: Optional[str] = Field(None, alias="firstMessage")
    metadata: Optional[Dict[str, Any]] = None


class CloneResult(BaseModel):
    """Successful reconciliation outcome."""
    model_config = ConfigDict(populate_by_name=True)

    assistant_id: str = Field(..., alias="assistantId")
    tool_id: str = Field(..., alias="toolId")
    actions: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CredentialRecord(BaseModel):
    """Per-user credential row as seen by callers; ciphertexts stay encrypted."""
    user_id: str
    encrypted_api_key: str
    web_token: Optional[str] = None
    assistant_id: Optional[str] = None
    tool_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_clone(self) -> bool:
        return bool(self.assistant_id and self.tool_id)

"""
Resource sanitization.

Strips platform-assigned, read-only fields from tool and assistant payloads
before they are submitted for creation or update, and prunes containers left
empty afterwards.
"""

import copy
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .logging import get_logger
from .models.resources import ResourceKind

logger = get_logger(__name__)

ASSISTANT_READONLY_FIELDS: FrozenSet[str] = frozenset({
    'id',
    '_id',
    'orgId',
    'createdAt',
    'updatedAt',
    'owner',
    'isServerUrlSecretSet',
    'phoneNumbers',
    'billing',
    'lastModifiedBy',
    '_rev',
})

TOOL_READONLY_FIELDS: FrozenSet[str] = frozenset({
    'id',
    '_id',
    'orgId',
    'createdAt',
    'updatedAt',
    'owner',
    'lastModifiedBy',
    '_rev',
})

READONLY_FIELDS: Dict[ResourceKind, FrozenSet[str]] = {
    ResourceKind.TOOL: TOOL_READONLY_FIELDS,
    ResourceKind.ASSISTANT: ASSISTANT_READONLY_FIELDS,
}

# Assistants reference their tools through model.toolIds
DEPENDENCY_FIELD_PATH = ('model', 'toolIds')

# Minimal model block created when tool ids are injected into a template without one
DEFAULT_ASSISTANT_MODEL: Dict[str, Any] = {
    'provider': 'openai',
    'model': 'gpt-4',
}


def readonly_fields_for(kind: ResourceKind) -> FrozenSet[str]:
    """Return the read-only field set for a resource kind."""
    return READONLY_FIELDS[ResourceKind(kind)]


def remove_fields(value: Any, fields_to_remove: Iterable[str]) -> Any:
    """Recursively drop the named keys from every mapping in a JSON-like tree."""
    fields = frozenset(fields_to_remove)

    if isinstance(value, list):
        return [remove_fields(item, fields) for item in value]

    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key in fields:
                logger.debug("Removing read-only field: %s", key)
                continue
            result[key] = remove_fields(item, fields)
        return result

    return value


def remove_empty_fields(value: Any) -> Any:
    """
    Recursively drop None values, and mappings or lists that end up empty.

    Returns None when the value itself collapses to nothing, so that the
    caller omits it instead of keeping an empty container.
    """
    if isinstance(value, list):
        cleaned = [remove_empty_fields(item) for item in value]
        cleaned = [item for item in cleaned if item is not None]
        return cleaned or None

    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            cleaned = remove_empty_fields(item)
            if cleaned is not None:
                result[key] = cleaned
        return result or None

    return value


def _inject_dependency_ids(resource: Dict[str, Any], dependency_ids: List[str]) -> None:
    container_key, ids_key = DEPENDENCY_FIELD_PATH
    container = resource.get(container_key)
    if not isinstance(container, dict):
        container = copy.deepcopy(DEFAULT_ASSISTANT_MODEL)
        resource[container_key] = container
    container[ids_key] = list(dependency_ids)
    logger.debug("Injected dependency ids: %s", ", ".join(dependency_ids))


def sanitize(
    resource: Dict[str, Any],
    readonly_fields: Iterable[str],
    dependency_ids: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Return a cleaned deep copy of ``resource``.

    Args:
        resource: Raw resource object as returned by the platform or loaded from a template
        readonly_fields: Field names to drop at every nesting level
        dependency_ids: Optional ids written to ``model.toolIds``

    Returns:
        A new dict; the input is never mutated
    """
    sanitized = remove_fields(copy.deepcopy(resource), readonly_fields)

    if dependency_ids:
        _inject_dependency_ids(sanitized, dependency_ids)

    return remove_empty_fields(sanitized) or {}


def sanitize_tool(tool: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize a tool for creation/update."""
    logger.debug("Sanitizing tool: %s", tool.get('name'))
    return sanitize(tool, TOOL_READONLY_FIELDS)


def sanitize_assistant(assistant: Dict[str, Any], tool_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    """Sanitize an assistant for creation/update, optionally injecting tool ids."""
    logger.debug("Sanitizing assistant: %s", assistant.get('name'))
    return sanitize(assistant, ASSISTANT_READONLY_FIELDS, tool_ids)


def sanitize_resource(
    kind: ResourceKind,
    resource: Dict[str, Any],
    dependency_ids: Optional[List[str]] = None
) -> Dict[str, Any]:
    """Sanitize a resource of either kind with its read-only field set."""
    return sanitize(resource, readonly_fields_for(kind), dependency_ids)


def validate_assistant(assistant: Dict[str, Any]) -> bool:
    """An assistant needs a non-empty string name."""
    name = assistant.get('name') if isinstance(assistant, dict) else None
    if not name or not isinstance(name, str):
        logger.error("Assistant validation failed: missing name")
        return False
    return True


def validate_tool(tool: Dict[str, Any]) -> bool:
    """A tool needs a non-empty string type."""
    tool_type = tool.get('type') if isinstance(tool, dict) else None
    if not tool_type or not isinstance(tool_type, str):
        logger.error("Tool validation failed: missing type")
        return False
    return True


def validate_resource(kind: ResourceKind, resource: Dict[str, Any]) -> bool:
    """Kind-specific minimal shape check; failures are reported, not raised."""
    if ResourceKind(kind) == ResourceKind.TOOL:
        return validate_tool(resource)
    return validate_assistant(resource)

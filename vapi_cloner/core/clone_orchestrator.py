"""
Clone and version reconciliation.

Converges a user's VAPI account to exactly one current copy of the template
tool and assistant. For each kind the user's resources sharing the template's
base name form the candidate set; the template is created, reused, upgraded
(create new, delete every candidate) or skipped when the user already holds a
newer version. The tool runs first because the assistant references its id.

Two runs for the same user inside one process are serialised by
:class:`CloneService`. Runs from separate processes can still race on the
candidate listing; the next run collapses any duplicates they leave behind.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from ..config.settings import get_settings
from ..services.resource_service import service_for
from ..services.vapi_client import VAPIClient
from .credential_store import CredentialStore
from .exceptions.vapi_exceptions import (
    CloneError,
    CloneErrorCode,
    CredentialStoreError,
    CryptoError,
    ValidationError,
    VAPIAPIError,
)
from .logging import get_logger, mask_secret
from .models import CloneResult, CredentialRecord, Resource, ResourceKind
from .sanitizer import sanitize_resource, validate_resource
from .template_loader import TemplateLoader
from .version import ZERO_VERSION, compare_versions, get_base_name, parse_version_from_name

logger = get_logger(__name__)

ClientFactory = Callable[[str], VAPIClient]


class ActionVerb(str, Enum):
    CREATED = "created-{kind}"
    REUSED = "reused-{kind}"
    DELETED_OLD = "deleted-old-{kind}"
    DELETE_FAILED = "delete-failed-{kind}"
    SKIPPED_NEWER_EXISTS = "skipped-{kind}-newer-exists"

    def format_action(self, kind: ResourceKind, resource_id: str) -> str:
        return f"{self.value.format(kind=ResourceKind(kind).value)}:{resource_id}"


class ActionLog:
    """Append-only, chronological record of what a run did."""

    def __init__(self):
        self._entries: List[str] = []

    def record(self, verb: ActionVerb, kind: ResourceKind, resource_id: str) -> str:
        entry = verb.format_action(kind, resource_id)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))


class Decision(str, Enum):
    CREATE = "create"      # no candidates
    UPGRADE = "upgrade"    # template newer than every candidate
    REUSE = "reuse"        # template equals the newest candidate
    SKIP = "skip"          # user already holds a newer version


@dataclass
class ReconcilePlan:
    decision: Decision
    template_version: str
    candidates: List[Resource]
    newest: Optional[Resource] = None
    newest_version: Optional[str] = None


def _version_of(name: Optional[str]) -> str:
    return parse_version_from_name(name) or ZERO_VERSION


def find_candidates(template_name: str, existing: Sequence[Resource]) -> List[Resource]:
    """Resources whose base name equals the template's base name.

    Unnamed resources never match, even a template whose base name is empty.
    """
    base_name = get_base_name(template_name)
    return [
        resource for resource in existing
        if resource.id and resource.name is not None and get_base_name(resource.name) == base_name
    ]


def select_newest(candidates: Sequence[Resource]) -> Tuple[Resource, str]:
    """Highest version wins; ties keep the first one listed."""
    newest = candidates[0]
    newest_version = _version_of(newest.name)
    for candidate in candidates[1:]:
        version = _version_of(candidate.name)
        if compare_versions(version, newest_version) > 0:
            newest, newest_version = candidate, version
    return newest, newest_version


def plan_reconciliation(template_name: str, existing: Sequence[Resource]) -> ReconcilePlan:
    """Decide what to do for one resource kind without touching the platform."""
    template_version = _version_of(template_name)
    candidates = find_candidates(template_name, existing)

    if not candidates:
        return ReconcilePlan(Decision.CREATE, template_version, candidates)

    newest, newest_version = select_newest(candidates)
    comparison = compare_versions(template_version, newest_version)
    if comparison > 0:
        decision = Decision.UPGRADE
    elif comparison == 0:
        decision = Decision.REUSE
    else:
        decision = Decision.SKIP

    return ReconcilePlan(decision, template_version, candidates, newest, newest_version)


class CloneOrchestrator:
    """Runs the tool-then-assistant reconciliation against one user's account."""

    def __init__(self, client: VAPIClient):
        self.client = client
        self.services = {kind: service_for(kind, client) for kind in ResourceKind}

    async def reconcile(
        self,
        kind: ResourceKind,
        template: Dict[str, Any],
        actions: ActionLog,
        dependency_ids: Optional[List[str]] = None
    ) -> str:
        """
        Converge one resource kind and return the id to use downstream.

        Args:
            kind: Resource kind being reconciled
            template: Versioned template definition (never mutated)
            actions: Log that receives one entry per action taken
            dependency_ids: Ids injected into the sanitized payload (assistant only)

        Returns:
            The new id after a create/upgrade, otherwise the newest candidate's id
        """
        kind = ResourceKind(kind)
        service = self.services[kind]
        template_name = template.get('name') or ''

        existing = await service.list()
        plan = plan_reconciliation(template_name, existing)
        logger.info(
            "%s %r: template v%s, %d candidate(s), decision=%s",
            kind.value, get_base_name(template_name), plan.template_version,
            len(plan.candidates), plan.decision.value
        )

        if plan.decision == Decision.REUSE:
            actions.record(ActionVerb.REUSED, kind, plan.newest.id)
            logger.info("Reusing existing %s v%s: %s", kind.value, plan.newest_version, plan.newest.id)
            return plan.newest.id

        if plan.decision == Decision.SKIP:
            actions.record(ActionVerb.SKIPPED_NEWER_EXISTS, kind, plan.newest.id)
            logger.info("User has newer %s v%s. Skipping clone.", kind.value, plan.newest_version)
            return plan.newest.id

        if plan.decision == Decision.UPGRADE:
            logger.info(
                "Template %s v%s is newer than user's v%s. Creating new version.",
                kind.value, plan.template_version, plan.newest_version
            )

        new_id = await self._create(kind, template, dependency_ids)
        actions.record(ActionVerb.CREATED, kind, new_id)

        for old in plan.candidates:
            await self._delete_old(kind, old.id, actions)

        return new_id

    async def _create(
        self,
        kind: ResourceKind,
        template: Dict[str, Any],
        dependency_ids: Optional[List[str]]
    ) -> str:
        payload = sanitize_resource(kind, template, dependency_ids)
        if not validate_resource(kind, payload):
            raise ValidationError(f"Sanitized {kind.value} payload is invalid")

        created = await self.services[kind].create(payload)
        logger.info("Created %s: %s", kind.value, created.id)
        return created.id

    async def _delete_old(self, kind: ResourceKind, resource_id: str, actions: ActionLog) -> None:
        try:
            await self.services[kind].delete(resource_id)
        except Exception as e:
            # A failed cleanup leaves an orphan to remove by hand; the upgrade still stands
            logger.error("Failed to delete old %s %s: %s", kind.value, resource_id, e)
            actions.record(ActionVerb.DELETE_FAILED, kind, resource_id)
            return

        actions.record(ActionVerb.DELETED_OLD, kind, resource_id)
        logger.info("Deleted old %s: %s", kind.value, resource_id)

    async def run(
        self,
        tool_template: Dict[str, Any],
        assistant_template: Dict[str, Any],
        actions: Optional[ActionLog] = None
    ) -> CloneResult:
        """
        Reconcile the tool, then the assistant bound to the tool's final id.

        Raises:
            CloneError: with the partial action log on any failure
        """
        actions = actions if actions is not None else ActionLog()

        try:
            tool_id = await self.reconcile(ResourceKind.TOOL, tool_template, actions)
            assistant_id = await self.reconcile(
                ResourceKind.ASSISTANT, assistant_template, actions, dependency_ids=[tool_id]
            )
        except VAPIAPIError as e:
            raise _api_error_to_clone_error(e, actions) from e
        except ValidationError as e:
            raise CloneError(CloneErrorCode.INVALID_TEMPLATE, str(e), actions.entries) from e
        except Exception as e:
            logger.exception("Unexpected error during clone")
            raise CloneError(
                CloneErrorCode.INTERNAL_ERROR,
                "Internal error during clone process",
                actions.entries,
                details=str(e)
            ) from e

        return CloneResult(assistant_id=assistant_id, tool_id=tool_id, actions=actions.entries)


def _api_error_to_clone_error(e: VAPIAPIError, actions: ActionLog) -> CloneError:
    if e.is_permission_error:
        return CloneError(
            CloneErrorCode.INSUFFICIENT_PERMISSIONS,
            "Insufficient permissions. Please ensure your API key has create/delete permissions.",
            actions.entries,
            details=str(e)
        )
    if e.is_bad_request:
        return CloneError(CloneErrorCode.VAPI_BAD_REQUEST, "Bad request to VAPI API", actions.entries, details=str(e))
    return CloneError(
        CloneErrorCode.INTERNAL_ERROR,
        "Internal error during clone process",
        actions.entries,
        details=str(e)
    )


def _require_user_id(user_id: Any) -> str:
    if not user_id or not isinstance(user_id, str) or not user_id.strip():
        raise CloneError(CloneErrorCode.INVALID_USER_ID, "Missing or invalid userId")
    return user_id


class CloneService:
    """Entry point for linking an account and cloning templates into it."""

    def __init__(
        self,
        store: CredentialStore,
        templates: Optional[TemplateLoader] = None,
        client_factory: Optional[ClientFactory] = None,
        clone_timeout: Optional[float] = None
    ):
        self.store = store
        self.templates = templates
        self.client_factory = client_factory or (lambda api_key: VAPIClient(api_key))
        self.clone_timeout = clone_timeout if clone_timeout is not None else get_settings().clone_timeout
        # user id -> (lock, number of runs holding or waiting on it)
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialise runs for one user; the lock is dropped once no run holds or awaits it."""
        lock, users = self._locks.get(user_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[user_id] = (lock, users + 1)

        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[user_id]
            if users == 1:
                del self._locks[user_id]
            else:
                self._locks[user_id] = (lock, users - 1)

    async def link(self, user_id: str, api_key: str) -> None:
        """Validate a platform API key against the platform, then store it encrypted."""
        user_id = _require_user_id(user_id)
        if not api_key or not isinstance(api_key, str) or not api_key.strip():
            raise CloneError(CloneErrorCode.INVALID_API_KEY, "Missing or invalid API key")

        logger.info("Validating API key %s for user: %s", mask_secret(api_key.strip()), user_id)
        client = self.client_factory(api_key.strip())
        try:
            assistants = await service_for(ResourceKind.ASSISTANT, client).list()
        except VAPIAPIError as e:
            if e.is_permission_error:
                raise CloneError(
                    CloneErrorCode.UNAUTHORIZED,
                    "Invalid API key or insufficient permissions",
                    details=str(e)
                ) from e
            raise CloneError(CloneErrorCode.INTERNAL_ERROR, "Could not validate API key", details=str(e)) from e
        logger.info("API key validated. Found %d assistants.", len(assistants))

        try:
            self.store.save_api_key(user_id, api_key.strip())
        except (CryptoError, CredentialStoreError) as e:
            raise CloneError(CloneErrorCode.INTERNAL_ERROR, "Could not store API key", details=str(e)) from e

    def _load_templates(
        self,
        tool_template: Optional[Dict[str, Any]],
        assistant_template: Optional[Dict[str, Any]]
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        try:
            if tool_template is None or assistant_template is None:
                loader = self.templates or TemplateLoader()
                tool_template = tool_template if tool_template is not None else loader.load(ResourceKind.TOOL)
                assistant_template = (
                    assistant_template if assistant_template is not None
                    else loader.load(ResourceKind.ASSISTANT)
                )
        except ValidationError as e:
            raise CloneError(CloneErrorCode.INVALID_TEMPLATE, str(e)) from e

        for kind, template in ((ResourceKind.TOOL, tool_template), (ResourceKind.ASSISTANT, assistant_template)):
            if not isinstance(template, dict) or not validate_resource(kind, template) or not template.get('name'):
                raise CloneError(CloneErrorCode.INVALID_TEMPLATE, f"Invalid {kind.value} template")
        return tool_template, assistant_template

    def _api_key_for(self, user_id: str) -> str:
        try:
            api_key = self.store.get_api_key(user_id)
        except (CryptoError, CredentialStoreError) as e:
            raise CloneError(CloneErrorCode.INTERNAL_ERROR, "Could not read stored API key", details=str(e)) from e

        if not api_key:
            raise CloneError(
                CloneErrorCode.API_KEY_NOT_FOUND,
                "API key not found. Please link your VAPI account first."
            )
        return api_key

    async def clone(
        self,
        user_id: str,
        tool_template: Optional[Dict[str, Any]] = None,
        assistant_template: Optional[Dict[str, Any]] = None
    ) -> CloneResult:
        """
        Reconcile the user's account against the templates and persist the result.

        Templates default to the files configured for the TemplateLoader.
        """
        user_id = _require_user_id(user_id)
        tool_template, assistant_template = self._load_templates(tool_template, assistant_template)
        logger.info("Starting clone process for user: %s", user_id)

        async with self._user_lock(user_id):
            api_key = self._api_key_for(user_id)
            orchestrator = CloneOrchestrator(self.client_factory(api_key))
            actions = ActionLog()

            try:
                result = await asyncio.wait_for(
                    orchestrator.run(tool_template, assistant_template, actions),
                    timeout=self.clone_timeout
                )
            except asyncio.TimeoutError as e:
                logger.error("Clone for user %s exceeded %.1fs", user_id, self.clone_timeout)
                raise CloneError(
                    CloneErrorCode.TIMEOUT,
                    f"Clone did not finish within {self.clone_timeout:g}s",
                    actions.entries
                ) from e

            try:
                self.store.save_cloned_resources(user_id, result.assistant_id, result.tool_id)
            except CredentialStoreError as e:
                raise CloneError(
                    CloneErrorCode.INTERNAL_ERROR,
                    "Could not save cloned resources",
                    result.actions,
                    details=str(e)
                ) from e

        logger.info("Clone completed for user %s: %s", user_id, ", ".join(result.actions))
        return result

    def status(self, user_id: str) -> Optional[CredentialRecord]:
        """Stored credential record for the user, or None if not linked."""
        return self.store.get_record(_require_user_id(user_id))

    def unlink(self, user_id: str) -> bool:
        """Forget the user's credentials and cloned ids."""
        return self.store.delete(_require_user_id(user_id))

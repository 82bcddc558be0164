"""Permission filtering of search results."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Iterable, Optional, Protocol

from quarry.constants import VISIBILITY_PUBLIC
from quarry.errors import AccessDenied
from quarry.models import RankedResult


class Authorizer(Protocol):
    """External authorization collaborator."""

    async def has_workspace_access(self, user_id: str, workspace_id: str) -> bool: ...


class InMemoryAuthorizer:
    """Workspace ownership and membership held in memory.

    Owners always have access to their workspace.
    """

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}
        self._members: dict[str, set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def set_owner(self, workspace_id: str, user_id: str) -> None:
        with self._lock:
            self._owners[workspace_id] = user_id

    def add_member(self, workspace_id: str, user_id: str) -> None:
        with self._lock:
            self._members[workspace_id].add(user_id)

    def remove_member(self, workspace_id: str, user_id: str) -> None:
        with self._lock:
            self._members[workspace_id].discard(user_id)

    async def has_workspace_access(self, user_id: str, workspace_id: str) -> bool:
        with self._lock:
            return (
                self._owners.get(workspace_id) == user_id
                or user_id in self._members.get(workspace_id, ())
            )


class PermissionFilter:
    """Drops results the requester is not allowed to see.

    A result is kept if it is public, owned by the requester, or belongs to a
    workspace the requester can access. Membership answers are memoized for
    the duration of one filter() call.
    """

    def __init__(self, authorizer: Authorizer) -> None:
        self._authorizer = authorizer

    async def check_scope(self, user_id: Optional[str], workspace_id: Optional[str]) -> None:
        """Reject a workspace-scoped search the requester cannot access.

        Raises:
            AccessDenied: If the requester has no access to the workspace.
        """
        if workspace_id is None:
            return
        if user_id is None or not await self._authorizer.has_workspace_access(
            user_id, workspace_id
        ):
            raise AccessDenied("Access denied to workspace")

    async def filter(
        self, results: Iterable[RankedResult], user_id: Optional[str]
    ) -> list[RankedResult]:
        """Keep only the results visible to user_id, preserving order."""
        access: dict[str, bool] = {}
        kept = []
        for result in results:
            if await self.can_see(result, user_id, access):
                kept.append(result)
        return kept

    async def can_see(
        self, result: RankedResult, user_id: Optional[str], access: dict[str, bool]
    ) -> bool:
        entry = result.entry
        if entry.visibility == VISIBILITY_PUBLIC:
            return True
        if user_id is None:
            return False
        if entry.owner_id is not None and entry.owner_id == user_id:
            return True
        if entry.workspace_id is None:
            return False
        if entry.workspace_id not in access:
            access[entry.workspace_id] = await self._authorizer.has_workspace_access(
                user_id, entry.workspace_id
            )
        return access[entry.workspace_id]

"""
Role → (resource, actions) permission table.

The table is declared once, built at process start, and read everywhere
afterwards. ``PermissionTable`` is immutable: ``is_allowed`` and
``access_scope`` are pure lookups with no failure modes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union

from .common import Role

RoleLike = Union[Role, str, None]

BROAD_ACTIONS: tuple[str, ...] = ("manage_all", "view_team")
NARROW_ACTION = "view_own"


class AccessScope(str, Enum):
    ALL = "all"
    OWN = "own"
    NONE = "none"


@dataclass(frozen=True)
class Permission:
    resource: str
    actions: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {"resource": self.resource, "actions": sorted(self.actions)}


def _perm(resource: str, *actions: str) -> Permission:
    return Permission(resource=resource, actions=frozenset(actions))


DEFAULT_ROLE_PERMISSIONS: Mapping[Role, tuple[Permission, ...]] = {
    Role.ADMIN: (
        _perm("leads", "create", "read", "update", "delete", "manage_all"),
        _perm("users", "create", "read", "update", "delete", "manage_roles"),
        _perm("pipeline", "create", "read", "update", "delete", "manage_stages"),
        _perm("analytics", "read", "export"),
        _perm("settings", "read", "update"),
    ),
    Role.USER: (
        _perm("leads", "create", "read", "update", "delete", "view_own"),
        _perm("pipeline", "read", "update_own"),
        _perm("analytics", "read_own"),
    ),
    Role.VIEWER: (
        _perm("leads", "read", "view_own"),
        _perm("pipeline", "read"),
        _perm("analytics", "read_own"),
    ),
}


def _role_key(role: RoleLike) -> Optional[str]:
    if role is None:
        return None
    if isinstance(role, Role):
        return role.value
    return str(role)


class PermissionTable:
    """Immutable lookup from role to its granted permissions."""

    def __init__(self, entries: Mapping[RoleLike, Iterable[Permission]]):
        table = {}
        for role, perms in entries.items():
            key = _role_key(role)
            if key is None:
                continue
            table[key] = tuple(perms)
        self._table = MappingProxyType(table)

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(self._table)

    def permissions_for(self, role: RoleLike) -> tuple[Permission, ...]:
        """Permissions granted to ``role``; empty for unknown roles."""
        key = _role_key(role)
        if key is None:
            return ()
        return self._table.get(key, ())

    def is_allowed(self, role: RoleLike, resource: str, action: str) -> bool:
        return any(
            p.resource == resource and action in p.actions
            for p in self.permissions_for(role)
        )

    def access_scope(
        self,
        role: RoleLike,
        resource: str,
        *,
        broad: Iterable[str] = BROAD_ACTIONS,
        narrow: str = NARROW_ACTION,
    ) -> AccessScope:
        """Which visibility tier ``role`` has on ``resource``.

        ALL when any broad action is granted, OWN when only the narrow
        action is, NONE otherwise.
        """
        if any(self.is_allowed(role, resource, action) for action in broad):
            return AccessScope.ALL
        if self.is_allowed(role, resource, narrow):
            return AccessScope.OWN
        return AccessScope.NONE


def build_permission_table(
    entries: Optional[Mapping[RoleLike, Iterable[Permission]]] = None,
) -> PermissionTable:
    return PermissionTable(entries if entries is not None else DEFAULT_ROLE_PERMISSIONS)

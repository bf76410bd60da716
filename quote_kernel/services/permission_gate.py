"""
PermissionGate -- authorization check in front of every quotation action.

Responsibility:
    Decide whether an actor may perform an action on a resource type.
    ``RolePermissionGate`` maps ``(resource_type, action)`` to a permission
    string and checks it against the permissions granted to the actor's
    roles by configuration.

Invariants enforced:
    - Fail closed: an actor with no roles, or an action with no mapped
      permission, is denied.
    - The ``*`` permission grants everything.
    - The gate never resolves identity; the caller supplies the Actor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from quote_config.schema import RbacConfig
from quote_kernel.logging_config import get_logger

logger = get_logger("services.permission")

WILDCARD = "*"

# (resource_type, action) -> permission string
ACTION_TO_PERMISSION: dict[tuple[str, str], str] = {
    ("quotation", "create"): "quotation.create",
    ("quotation", "edit"): "quotation.edit",
    ("quotation", "get"): "quotation.read",
    ("quotation", "list"): "quotation.read",
    ("quotation", "counts"): "quotation.read",
    ("quotation", "receipts"): "quotation.read",
    ("quotation", "send"): "quotation.send",
    ("quotation", "view"): "quotation.view",
    ("quotation", "accept"): "quotation.respond",
    ("quotation", "reject"): "quotation.respond",
    ("quotation", "expire"): "quotation.expire",
    ("quotation", "expire_overdue"): "quotation.expire",
    ("quotation", "convert"): "quotation.convert",
    ("quotation", "duplicate"): "quotation.duplicate",
    ("quotation", "delete"): "quotation.delete",
    ("quotation", "record_receipt"): "receipt.record",
}


@dataclass(frozen=True)
class Actor:
    """Who is acting, and under which roles."""

    id: str
    roles: tuple[str, ...] = ()


class PermissionGate(Protocol):
    def authorize(self, actor: Actor, action: str, resource_type: str) -> bool:
        ...


def get_permission_for_action(resource_type: str, action: str) -> str | None:
    """Return the permission required for this action, or None if not mapped."""
    return ACTION_TO_PERMISSION.get((resource_type, action))


class RolePermissionGate:
    """Config-driven role -> permission check."""

    def __init__(self, rbac: RbacConfig):
        self._rbac = rbac

    def authorize(self, actor: Actor, action: str, resource_type: str) -> bool:
        permission = get_permission_for_action(resource_type, action)
        if permission is None:
            logger.warning(
                "permission_unmapped",
                extra={"action": action, "resource_type": resource_type},
            )
            return False
        granted = self._rbac.permissions_for(actor.roles)
        allowed = WILDCARD in granted or permission in granted
        if not allowed:
            logger.info(
                "permission_denied",
                extra={
                    "actor_id": actor.id,
                    "roles": list(actor.roles),
                    "permission": permission,
                },
            )
        return allowed

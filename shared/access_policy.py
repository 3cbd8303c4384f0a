"""
Role-scoped access policy.

``is_allowed`` is a pure function of the role, the operation and, for
owned resources, the owner and principal ids. ``require_operation``
wraps it as a FastAPI dependency for operations that need no owner.
"""

import enum
from typing import Optional

from fastapi import Depends

from shared.auth import Principal, get_current_principal
from shared.errors import Forbidden
from shared.models import UserRole


class Operation(str, enum.Enum):
    """Operations the policy can decide on."""
    RESERVATION_CREATE = "reservation:create"
    RESERVATION_READ = "reservation:read"
    RESERVATION_CANCEL = "reservation:cancel"
    RESERVATION_LIST_MINE = "reservation:list_mine"
    RESERVATION_LIST_ALL = "reservation:list_all"
    CATALOG_BROWSE = "catalog:browse"
    CATALOG_BROWSE_INACTIVE = "catalog:browse_inactive"
    CATALOG_MANAGE = "catalog:manage"
    CATALOG_RESTORE = "catalog:restore"
    USER_MANAGE = "user:manage"
    NOTIFICATION_READ = "notification:read"


# operations a client may only perform on resources it owns
OWNED_OPERATIONS = {
    Operation.RESERVATION_CREATE,
    Operation.RESERVATION_READ,
    Operation.RESERVATION_CANCEL,
}

CLIENT_OPERATIONS = OWNED_OPERATIONS | {
    Operation.RESERVATION_LIST_MINE,
    Operation.CATALOG_BROWSE,
    Operation.NOTIFICATION_READ,
}

EMPLOYEE_OPERATIONS = {
    Operation.RESERVATION_CREATE,
    Operation.RESERVATION_READ,
    Operation.RESERVATION_CANCEL,
    Operation.RESERVATION_LIST_ALL,
    Operation.CATALOG_BROWSE,
    Operation.CATALOG_BROWSE_INACTIVE,
    Operation.CATALOG_MANAGE,
    Operation.CATALOG_RESTORE,
    Operation.NOTIFICATION_READ,
}

ADMIN_OPERATIONS = EMPLOYEE_OPERATIONS | {Operation.USER_MANAGE}


def is_allowed(
    role: int,
    operation: Operation,
    resource_owner_id: Optional[int] = None,
    principal_id: Optional[int] = None,
) -> bool:
    """
    Decide whether a role may perform an operation.

    Args:
        role: Role of the principal (1 admin, 2 employee, 3 client)
        operation: Operation requested
        resource_owner_id: Owner of the resource, for owned operations
        principal_id: ID of the principal, for owned operations

    Returns:
        bool: True if allowed

    Example:
        >>> is_allowed(UserRole.CLIENT, Operation.RESERVATION_READ, 7, 7)
        True
        >>> is_allowed(UserRole.CLIENT, Operation.RESERVATION_READ, 7, 8)
        False
    """
    try:
        role = UserRole(role)
    except ValueError:
        return False

    if role == UserRole.ADMIN:
        return operation in ADMIN_OPERATIONS
    if role == UserRole.EMPLOYEE:
        return operation in EMPLOYEE_OPERATIONS

    if operation not in CLIENT_OPERATIONS:
        return False
    if operation in OWNED_OPERATIONS:
        if resource_owner_id is None:
            return True
        return principal_id is not None and resource_owner_id == principal_id
    return True


def authorize(
    principal: Principal,
    operation: Operation,
    resource_owner_id: Optional[int] = None,
    message: str = "You do not have permission to perform this action",
):
    """Raise Forbidden unless the policy allows the principal."""
    if not is_allowed(principal.role, operation, resource_owner_id, principal.user_id):
        raise Forbidden(message)


def require_operation(operation: Operation):
    """
    Build a dependency that authenticates and checks an operation.

    Example:
        @app.post("/halls")
        def create_hall(principal: Principal = Depends(require_operation(Operation.CATALOG_MANAGE))):
            ...
    """
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        authorize(principal, operation)
        return principal
    return dependency

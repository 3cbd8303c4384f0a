"""
Unit tests for the role-scoped access policy.
"""

import pytest

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.access_policy import Operation, authorize, is_allowed
from shared.auth import Principal
from shared.errors import Forbidden
from shared.models import UserRole


def test_client_owns_its_reservations():
    assert is_allowed(UserRole.CLIENT, Operation.RESERVATION_READ, 5, 5)
    assert is_allowed(UserRole.CLIENT, Operation.RESERVATION_CANCEL, 5, 5)
    assert not is_allowed(UserRole.CLIENT, Operation.RESERVATION_READ, 5, 6)
    assert not is_allowed(UserRole.CLIENT, Operation.RESERVATION_CANCEL, 5, 6)


def test_client_creates_only_for_self():
    assert is_allowed(UserRole.CLIENT, Operation.RESERVATION_CREATE, None, 5)
    assert is_allowed(UserRole.CLIENT, Operation.RESERVATION_CREATE, 5, 5)
    assert not is_allowed(UserRole.CLIENT, Operation.RESERVATION_CREATE, 6, 5)


@pytest.mark.parametrize("operation", [
    Operation.RESERVATION_LIST_ALL,
    Operation.CATALOG_MANAGE,
    Operation.CATALOG_RESTORE,
    Operation.CATALOG_BROWSE_INACTIVE,
    Operation.USER_MANAGE,
])
def test_client_denied_staff_operations(operation):
    assert not is_allowed(UserRole.CLIENT, operation)


def test_client_browses_catalog_and_own_list():
    assert is_allowed(UserRole.CLIENT, Operation.CATALOG_BROWSE)
    assert is_allowed(UserRole.CLIENT, Operation.RESERVATION_LIST_MINE)


def test_employee_manages_everything_but_users():
    for operation in (
        Operation.RESERVATION_LIST_ALL,
        Operation.CATALOG_MANAGE,
        Operation.CATALOG_RESTORE,
        Operation.CATALOG_BROWSE_INACTIVE,
    ):
        assert is_allowed(UserRole.EMPLOYEE, operation)
    assert is_allowed(UserRole.EMPLOYEE, Operation.RESERVATION_CANCEL, 5, 9)
    assert not is_allowed(UserRole.EMPLOYEE, Operation.USER_MANAGE)
    assert not is_allowed(UserRole.EMPLOYEE, Operation.RESERVATION_LIST_MINE)


def test_admin_unrestricted_except_client_view():
    assert is_allowed(UserRole.ADMIN, Operation.USER_MANAGE)
    assert is_allowed(UserRole.ADMIN, Operation.RESERVATION_READ, 5, 1)
    assert not is_allowed(UserRole.ADMIN, Operation.RESERVATION_LIST_MINE)


def test_unknown_role_denied():
    assert not is_allowed(7, Operation.CATALOG_BROWSE)


def test_authorize_raises_forbidden():
    principal = Principal(user_id=5, role=UserRole.CLIENT)
    authorize(principal, Operation.RESERVATION_READ, 5)
    with pytest.raises(Forbidden):
        authorize(principal, Operation.RESERVATION_READ, 6)

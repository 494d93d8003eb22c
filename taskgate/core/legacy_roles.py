"""Bridge from the coarse employee/customer role to catalog permissions.

Users created before fine-grained roles existed only carry ``users.legacy_role``.
The evaluator treats that column as one more source of permissions by asking
this adapter for its equivalent set; it has no other knowledge of legacy roles.
"""

import enum
from typing import FrozenSet, Optional

from taskgate.core.permissions import P


class LegacyRole(str, enum.Enum):
    employee = "employee"
    customer = "customer"


EMPLOYEE_PERMISSIONS: FrozenSet[str] = frozenset({
    P.VIEW_DASHBOARD,
    P.VIEW_TASKS,
    P.VIEW_CLIENTS,
    P.VIEW_TEAM,
    P.VIEW_SETTINGS,
    P.CREATE_TASK,
    P.EDIT_TASK,
    P.COMPLETE_TASK,
    P.RETURN_TASK,
    P.VIEW_ALL_TASKS,
    P.EDIT_CLIENTS,
    P.INVITE_USERS,
    P.UPLOAD_FILES,
    P.DELETE_FILES,
    P.CREATE_COMMENTS,
})

CUSTOMER_PERMISSIONS: FrozenSet[str] = frozenset({
    P.VIEW_DASHBOARD,
    P.VIEW_TASKS,
    P.VIEW_SETTINGS,
    P.SUBMIT_TASK,
    P.UPLOAD_FILES,
    P.CREATE_COMMENTS,
})

_LEGACY_MAP = {
    LegacyRole.employee: EMPLOYEE_PERMISSIONS,
    LegacyRole.customer: CUSTOMER_PERMISSIONS,
}


def legacy_permissions(legacy_role: Optional[str]) -> FrozenSet[str]:
    """Permission set implied by a legacy role; empty for None or unknown values."""
    if legacy_role is None:
        return frozenset()
    try:
        role = LegacyRole(getattr(legacy_role, "value", legacy_role))
    except ValueError:
        return frozenset()
    return _LEGACY_MAP[role]

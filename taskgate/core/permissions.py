"""Permission catalog.

The catalog is the closed set of named capabilities the system knows about.
Roles may only reference keys from here; anything else is rejected on write and
evaluates to ``False`` on read. Categories exist purely for grouping in UIs.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List


@dataclass(frozen=True)
class Permission:
    key: str
    description: str
    category: str


class P:
    """Permission keys as constants."""

    # Navigation
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_TASKS = "view_tasks"
    VIEW_CLIENTS = "view_clients"
    VIEW_TEAM = "view_team"
    VIEW_SETTINGS = "view_settings"
    VIEW_ROLES = "view_roles"
    VIEW_PERMISSIONS = "view_permissions"
    VIEW_USERS = "view_users"

    # Tasks
    CREATE_TASK = "create_task"
    EDIT_TASK = "edit_task"
    DELETE_TASK = "delete_task"
    SUBMIT_TASK = "submit_task"
    COMPLETE_TASK = "complete_task"
    RETURN_TASK = "return_task"
    VIEW_ALL_TASKS = "view_all_tasks"

    # Clients
    CREATE_CLIENTS = "create_clients"
    EDIT_CLIENTS = "edit_clients"
    DELETE_CLIENTS = "delete_clients"

    # Users
    INVITE_USERS = "invite_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"
    MANAGE_USER_ROLES = "manage_user_roles"

    # Files
    UPLOAD_FILES = "upload_files"
    DELETE_FILES = "delete_files"

    # Comments
    CREATE_COMMENTS = "create_comments"
    DELETE_COMMENTS = "delete_comments"

    # Roles
    CREATE_ROLES = "create_roles"
    EDIT_ROLES = "edit_roles"
    DELETE_ROLES = "delete_roles"
    ASSIGN_PERMISSIONS = "assign_permissions"

    # Audit
    VIEW_AUDIT_LOGS = "view_audit_logs"


CATEGORIES: Dict[str, str] = {
    "navigation": "Navigation",
    "tasks": "Tasks",
    "clients": "Clients",
    "users": "Users",
    "files": "Files",
    "comments": "Comments",
    "roles": "Roles",
    "audit": "Audit",
}

PERMISSIONS: tuple = (
    Permission(P.VIEW_DASHBOARD, "Show the dashboard", "navigation"),
    Permission(P.VIEW_TASKS, "Show tasks", "navigation"),
    Permission(P.VIEW_CLIENTS, "Show clients", "navigation"),
    Permission(P.VIEW_TEAM, "Show the team page", "navigation"),
    Permission(P.VIEW_SETTINGS, "Show settings", "navigation"),
    Permission(P.VIEW_ROLES, "Show roles", "navigation"),
    Permission(P.VIEW_PERMISSIONS, "Show the permission catalog", "navigation"),
    Permission(P.VIEW_USERS, "Show users", "navigation"),
    Permission(P.CREATE_TASK, "Create tasks", "tasks"),
    Permission(P.EDIT_TASK, "Edit tasks, including administrative status changes", "tasks"),
    Permission(P.DELETE_TASK, "Delete tasks", "tasks"),
    Permission(P.SUBMIT_TASK, "Submit an open task", "tasks"),
    Permission(P.COMPLETE_TASK, "Complete a submitted task", "tasks"),
    Permission(P.RETURN_TASK, "Return a submitted task to the client", "tasks"),
    Permission(P.VIEW_ALL_TASKS, "See tasks of every tenant", "tasks"),
    Permission(P.CREATE_CLIENTS, "Create clients", "clients"),
    Permission(P.EDIT_CLIENTS, "Edit clients", "clients"),
    Permission(P.DELETE_CLIENTS, "Delete clients", "clients"),
    Permission(P.INVITE_USERS, "Invite users", "users"),
    Permission(P.EDIT_USERS, "Edit users", "users"),
    Permission(P.DELETE_USERS, "Delete users", "users"),
    Permission(P.MANAGE_USER_ROLES, "Grant and revoke user roles", "users"),
    Permission(P.UPLOAD_FILES, "Upload files", "files"),
    Permission(P.DELETE_FILES, "Delete files", "files"),
    Permission(P.CREATE_COMMENTS, "Write comments", "comments"),
    Permission(P.DELETE_COMMENTS, "Delete comments", "comments"),
    Permission(P.CREATE_ROLES, "Create roles", "roles"),
    Permission(P.EDIT_ROLES, "Edit roles", "roles"),
    Permission(P.DELETE_ROLES, "Delete roles", "roles"),
    Permission(P.ASSIGN_PERMISSIONS, "Change the permissions of a role", "roles"),
    Permission(P.VIEW_AUDIT_LOGS, "Read the audit trail", "audit"),
)

PERMISSION_KEYS: FrozenSet[str] = frozenset(p.key for p in PERMISSIONS)


def is_known(key: str) -> bool:
    return key in PERMISSION_KEYS


def unknown_keys(keys) -> List[str]:
    """Return the keys that are not in the catalog, sorted."""
    return sorted(set(keys) - PERMISSION_KEYS)


def by_category() -> Dict[str, List[Permission]]:
    """Group the catalog by category, preserving catalog order."""
    grouped: Dict[str, List[Permission]] = {}
    for perm in PERMISSIONS:
        grouped.setdefault(perm.category, []).append(perm)
    return grouped

"""
End-to-end API tests against the real application.
"""

import pytest

from taskgate.core.permissions import P, PERMISSIONS
from taskgate.db.seeds.seed_admin import seed_admin
from taskgate.db.seeds.seed_roles import seed_roles
from taskgate.models.audit_log import AuditLog
from taskgate.models.task import Task, TaskStatus
from taskgate.services.audit_dispatcher import audit_dispatcher
from tests.conftest import auth_headers


@pytest.fixture
def admin(db):
    seed_roles(db)
    return seed_admin(db)


def _audit_rows(db, **filters):
    audit_dispatcher.flush()
    db.expire_all()
    query = db.query(AuditLog)
    for column, value in filters.items():
        query = query.filter(getattr(AuditLog, column) == value)
    return query.order_by(AuditLog.id).all()


# -----------------------------------------------------------------------------
# Basics
# -----------------------------------------------------------------------------
class TestBasics:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "ok"

    def test_request_id_header(self, client):
        resp = client.get("/api/health", headers={"X-Request-Id": "abc"})
        assert resp.headers["X-Request-Id"] == "abc"

    def test_unauthenticated_is_401_and_not_audited(self, client, db):
        resp = client.get("/api/tasks/")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Not authenticated"}
        assert _audit_rows(db) == []

    def test_invalid_token_is_401(self, client):
        resp = client.get("/api/tasks/", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


# -----------------------------------------------------------------------------
# Task workflow
# -----------------------------------------------------------------------------
class TestTaskWorkflow:

    def test_create_submit_complete(self, client, db, customer, employee):
        resp = client.post(
            "/api/tasks/",
            json={"title": "Tax return 2023", "description": "Please file"},
            headers=auth_headers(employee),
        )
        assert resp.status_code == 201
        task = resp.json()
        assert task["status"] == "open"
        assert task["traffic_light"] == "green"
        assert task["tenant_id"] == employee.tenant_id

        resp = client.post(f"/api/tasks/{task['id']}/submit", headers=auth_headers(customer))
        assert resp.status_code == 200
        assert resp.json()["status"] == "submitted"

        resp = client.post(f"/api/tasks/{task['id']}/complete", headers=auth_headers(employee))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"
        assert body["completed_by"] == employee.id

        actions = [row.action for row in _audit_rows(db, entity_type="task", entity_id=str(task["id"]))]
        assert actions == ["SUBMIT", "COMPLETE"]
        created = _audit_rows(db, action="CREATE")
        assert len(created) == 1 and created[0].status == "success"

    def test_forbidden_complete_is_audited_once_as_failed(self, client, db, customer, make_task):
        task = make_task(status=TaskStatus.submitted)

        resp = client.post(f"/api/tasks/{task.id}/complete", headers=auth_headers(customer))

        assert resp.status_code == 403
        rows = _audit_rows(db)
        assert len(rows) == 1
        row = rows[0]
        assert row.action == "COMPLETE"
        assert row.status == "failed"
        assert row.entity_id == str(task.id)
        assert row.actor_user_id == customer.id
        assert row.actor_email == customer.email
        db.expire_all()
        assert db.get(Task, task.id).status == TaskStatus.submitted

    def test_invalid_transition_is_409(self, client, employee, make_task):
        task = make_task(status=TaskStatus.open)
        resp = client.post(f"/api/tasks/{task.id}/complete", headers=auth_headers(employee))
        assert resp.status_code == 409
        assert "open" in resp.json()["detail"]

    def test_return_requires_reason(self, client, employee, make_task):
        task = make_task(status=TaskStatus.submitted)
        resp = client.post(
            f"/api/tasks/{task.id}/return", json={"reason": " "}, headers=auth_headers(employee),
        )
        assert resp.status_code == 422

    def test_return_with_reason_adds_message(self, client, employee, make_task):
        task = make_task(status=TaskStatus.submitted)
        resp = client.post(
            f"/api/tasks/{task.id}/return",
            json={"reason": "Signature missing"},
            headers=auth_headers(employee),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "open"
        assert [m["content"] for m in body["messages"]] == ["Returned to client: Signature missing"]

    def test_missing_task_is_404(self, client, employee):
        resp = client.get("/api/tasks/999", headers=auth_headers(employee))
        assert resp.status_code == 404

    def test_other_tenant_task_is_403(self, client, outsider, make_task):
        task = make_task(tenant_id=1)
        resp = client.get(f"/api/tasks/{task.id}", headers=auth_headers(outsider))
        assert resp.status_code == 403

    def test_list_is_tenant_scoped(self, client, customer, outsider, make_task):
        make_task(tenant_id=1, title="mine")
        make_task(tenant_id=2, title="theirs")

        resp = client.get("/api/tasks/", headers=auth_headers(outsider))

        assert resp.status_code == 200
        assert [t["title"] for t in resp.json()["tasks"]] == ["theirs"]

    def test_list_filters_by_status(self, client, customer, make_task):
        make_task(status=TaskStatus.open, title="a")
        make_task(status=TaskStatus.submitted, title="b")
        resp = client.get("/api/tasks/?status=submitted", headers=auth_headers(customer))
        assert [t["title"] for t in resp.json()["tasks"]] == ["b"]

    def test_status_override(self, client, employee, make_task):
        task = make_task(status=TaskStatus.open)
        resp = client.put(
            f"/api/tasks/{task.id}/status", json={"status": "completed"}, headers=auth_headers(employee),
        )
        assert resp.status_code == 200
        assert resp.json()["completed_by"] == employee.id


# -----------------------------------------------------------------------------
# Roles and permissions
# -----------------------------------------------------------------------------
class TestRolesApi:

    def test_permission_catalog(self, client, admin):
        resp = client.get("/api/permissions/", headers=auth_headers(admin))
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["permissions"]) == len(PERMISSIONS)
        assert "tasks" in body["categorized"]

    def test_catalog_requires_permission(self, client, customer):
        resp = client.get("/api/permissions/", headers=auth_headers(customer))
        assert resp.status_code == 403

    def test_role_lifecycle(self, client, db, admin, customer):
        headers = auth_headers(admin)

        resp = client.post(
            "/api/roles/",
            json={"name": "Reviewers", "permissions": [P.COMPLETE_TASK]},
            headers=headers,
        )
        assert resp.status_code == 201
        role = resp.json()
        assert role["permissions"] == [P.COMPLETE_TASK]

        assert client.post("/api/roles/", json={"name": "Reviewers"}, headers=headers).status_code == 409
        assert client.post(
            "/api/roles/", json={"name": "Bad", "permissions": ["nope"]}, headers=headers,
        ).status_code == 422

        resp = client.post(
            f"/api/users/{customer.id}/roles", json={"role_id": role["id"]}, headers=headers,
        )
        assert resp.status_code == 201

        mine = client.get("/api/me/permissions", headers=auth_headers(customer)).json()
        assert P.COMPLETE_TASK in mine["permissions"]
        assert mine["roles"] == ["Reviewers"]

        listed = {r["name"]: r["user_count"] for r in client.get("/api/roles/", headers=headers).json()}
        assert listed["Reviewers"] == 1

        resp = client.put(
            f"/api/roles/{role['id']}/permissions",
            json={"permissions": [P.RETURN_TASK]},
            headers=headers,
        )
        assert resp.json()["permissions"] == [P.RETURN_TASK]

        resp = client.delete(f"/api/users/{customer.id}/roles/{role['id']}", headers=headers)
        assert resp.json() == {"message": "Role removed"}

        assert client.delete(f"/api/roles/{role['id']}", headers=headers).status_code == 200
        assert client.get(f"/api/roles/{role['id']}", headers=headers).status_code == 404

        actions = [row.action for row in _audit_rows(db)]
        assert actions == [
            "CREATE", "CREATE", "CREATE", "ASSIGN_ROLE", "GRANT_PERMISSION", "REMOVE_ROLE", "DELETE",
        ]
        statuses = [row.status for row in _audit_rows(db, action="CREATE")]
        assert statuses == ["success", "failed", "failed"]

    def test_system_roles_are_protected(self, client, admin):
        headers = auth_headers(admin)
        roles = {r["name"]: r for r in client.get("/api/roles/", headers=headers).json()}
        admin_role = roles["Administrator"]

        assert client.delete(f"/api/roles/{admin_role['id']}", headers=headers).status_code == 422
        resp = client.put(f"/api/roles/{admin_role['id']}", json={"name": "Root"}, headers=headers)
        assert resp.status_code == 422

    def test_role_management_requires_permission(self, client, employee):
        resp = client.post("/api/roles/", json={"name": "Mine"}, headers=auth_headers(employee))
        assert resp.status_code == 403

    def test_forbidden_role_create_is_audited_as_failed(self, client, db, employee):
        resp = client.post("/api/roles/", json={"name": "Mine"}, headers=auth_headers(employee))

        assert resp.status_code == 403
        [row] = _audit_rows(db)
        assert (row.action, row.entity_type, row.status) == ("CREATE", "role", "failed")
        assert row.actor_user_id == employee.id
        assert row.error_message == "Missing permission 'create_roles'"

    def test_forbidden_grant_is_audited_as_failed(self, client, db, admin, employee, customer):
        role_id = client.get("/api/roles/", headers=auth_headers(admin)).json()[0]["id"]

        resp = client.post(
            f"/api/users/{customer.id}/roles", json={"role_id": role_id}, headers=auth_headers(employee),
        )

        assert resp.status_code == 403
        [row] = _audit_rows(db)
        assert (row.action, row.entity_type, row.status) == ("ASSIGN_ROLE", "user", "failed")
        assert row.entity_id == str(customer.id)
        assert row.actor_user_id == employee.id
        assert client.get(
            f"/api/users/{customer.id}/roles", headers=auth_headers(admin),
        ).json() == []

    def test_forbidden_role_delete_is_audited_as_failed(self, client, db, admin, employee):
        role_id = client.get("/api/roles/", headers=auth_headers(admin)).json()[0]["id"]

        resp = client.delete(f"/api/roles/{role_id}", headers=auth_headers(employee))

        assert resp.status_code == 403
        [row] = _audit_rows(db)
        assert (row.action, row.entity_id, row.status) == ("DELETE", str(role_id), "failed")


# -----------------------------------------------------------------------------
# Audit log reading
# -----------------------------------------------------------------------------
class TestAuditLogsApi:

    def test_requires_permission(self, client, customer):
        resp = client.get("/api/audit-logs/", headers=auth_headers(customer))
        assert resp.status_code == 403

    def test_lists_newest_first(self, client, admin, employee, make_task):
        task = make_task(status=TaskStatus.submitted)
        client.get(f"/api/tasks/{task.id}", headers=auth_headers(employee))
        client.post(f"/api/tasks/{task.id}/complete", headers=auth_headers(employee))
        audit_dispatcher.flush()

        resp = client.get(
            "/api/audit-logs/", params={"entity_type": "task"}, headers=auth_headers(admin),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 2
        assert [log["action"] for log in body["logs"]] == ["COMPLETE", "READ"]
        assert body["logs"][0]["metadata"]["path"] == f"/api/tasks/{task.id}/complete"

"""Integration tests for sessions, user accounts and permission grants."""

from datetime import timedelta

from tests.conftest import PASSWORD, authHeader, createUser
from transitdesk.src.db import User, sessionMaker
from transitdesk.src.enums import UserRole


def countUsers() -> int:
    session = sessionMaker()
    try:
        return session.query(User).count()
    finally:
        session.close()


class TestSession:
    def test_login(self, client, superadmin):
        response = client.post(
            "/api/session", json={"email": superadmin.email, "password": PASSWORD}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "superadmin"
        assert body["token"]["data"]
        assert "password" not in body

    def test_wrong_password(self, client, superadmin):
        response = client.post(
            "/api/session", json={"email": superadmin.email, "password": "wrong"}
        )
        assert response.status_code == 401

    def test_unknown_email(self, client):
        response = client.post(
            "/api/session",
            json={"email": "nobody@transitdesk.com", "password": PASSWORD},
        )
        assert response.status_code == 401

    def test_missing_token(self, client):
        assert client.get("/api/users").status_code == 401

    def test_expired_token(self, client, superadmin):
        headers = authHeader(superadmin, timedelta(seconds=-5))
        response = client.get("/api/users", headers=headers)
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "OK"


class TestUser:
    def test_password_never_returned(self, client, rootHeader):
        response = client.post(
            "/api/users",
            headers=rootHeader,
            json={
                "username": "New parent",
                "email": "new@transitdesk.com",
                "password": PASSWORD,
            },
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["password"] is None
        assert body["role"] == "parent"
        assert body["myadmin"] == "root@transitdesk.com"

    def test_admin_creates_parent_under_itself(self, client, admin, adminHeader):
        response = client.post(
            "/api/users",
            headers=adminHeader,
            json={
                "username": "Parent",
                "email": "family@transitdesk.com",
                "password": PASSWORD,
            },
        )
        assert response.status_code == 200, response.text
        assert response.json()["myadmin"] == admin.email

    def test_admin_cannot_create_admin(self, client, adminHeader):
        response = client.post(
            "/api/users",
            headers=adminHeader,
            json={
                "username": "Other admin",
                "email": "other@transitdesk.com",
                "password": PASSWORD,
                "role": "admin",
            },
        )
        assert response.status_code == 403

    def test_parent_cannot_create_users(self, client, parentHeader):
        before = countUsers()
        response = client.post(
            "/api/users",
            headers=parentHeader,
            json={
                "username": "Child",
                "email": "child@transitdesk.com",
                "password": PASSWORD,
            },
        )
        assert response.status_code == 403
        assert countUsers() == before

    def test_duplicate_email(self, client, rootHeader, admin):
        response = client.post(
            "/api/users",
            headers=rootHeader,
            json={"username": "Copy", "email": admin.email, "password": PASSWORD},
        )
        assert response.status_code == 400

    def test_admin_list_scope(self, client, admin, parent, adminHeader):
        response = client.get("/api/users", headers=adminHeader)
        assert response.status_code == 200
        emails = {x["email"] for x in response.json()}
        assert emails == {admin.email, parent.email}


class TestProtectedAccount:
    def test_cannot_delete(self, client, superadmin, rootHeader):
        response = client.delete(f"/api/users/{superadmin.id}", headers=rootHeader)
        assert response.status_code == 403

    def test_cannot_change_email(self, client, superadmin, rootHeader):
        response = client.put(
            f"/api/users/{superadmin.id}",
            headers=rootHeader,
            json={"email": "moved@transitdesk.com"},
        )
        assert response.status_code == 403

    def test_updated_by_itself(self, client, superadmin, rootHeader):
        response = client.put(
            f"/api/users/{superadmin.id}",
            headers=rootHeader,
            json={"username": "Root"},
        )
        assert response.status_code == 200, response.text
        assert response.json()["username"] == "Root"

    def test_not_updated_by_admin(self, client, superadmin, adminHeader):
        response = client.put(
            f"/api/users/{superadmin.id}",
            headers=adminHeader,
            json={"username": "Hijacked"},
        )
        assert response.status_code == 403


class TestAdminScope:
    def test_admin_deletes_own_parent(self, client, parent, adminHeader):
        response = client.delete(f"/api/users/{parent.id}", headers=adminHeader)
        assert response.status_code == 200
        assert response.json()["message"] == "User deleted successfully"

    def test_admin_cannot_delete_itself(self, client, admin, adminHeader):
        response = client.delete(f"/api/users/{admin.id}", headers=adminHeader)
        assert response.status_code == 403

    def test_admin_cannot_delete_foreign_account(self, client, superadmin, adminHeader):
        stranger = createUser(
            UserRole.PARENT, "stranger@transitdesk.com", myadmin=superadmin.email
        )
        response = client.delete(f"/api/users/{stranger.id}", headers=adminHeader)
        assert response.status_code == 404


class TestUserPermission:
    def test_assign_agency(self, client, admin, parent, agency, rootHeader):
        form = {"userId": admin.id, "agencyId": agency["id"]}
        response = client.post(
            "/api/userpermission/assign-agency", headers=rootHeader, json=form
        )
        assert response.status_code == 200, response.text
        assert response.json()["user"]["agencies"] == [agency["id"]]

        # Accounts created by the admin follow it
        response = client.get(f"/api/users/{parent.id}", headers=rootHeader)
        assert response.json()["agencies"] == [agency["id"]]

        response = client.post(
            "/api/userpermission/assign-agency", headers=rootHeader, json=form
        )
        assert response.status_code == 400

    def test_unassign_agency(self, client, admin, agency, rootHeader):
        form = {"userId": admin.id, "agencyId": agency["id"]}
        response = client.post(
            "/api/userpermission/unassign-agency", headers=rootHeader, json=form
        )
        assert response.status_code == 400

        client.post("/api/userpermission/assign-agency", headers=rootHeader, json=form)
        response = client.post(
            "/api/userpermission/unassign-agency", headers=rootHeader, json=form
        )
        assert response.status_code == 200
        assert response.json()["user"]["agencies"] == []

    def test_assign_agency_to_parent(self, client, parent, agency, rootHeader):
        response = client.post(
            "/api/userpermission/assign-agency",
            headers=rootHeader,
            json={"userId": parent.id, "agencyId": agency["id"]},
        )
        assert response.status_code == 400

    def test_admin_cannot_assign_agency(self, client, admin, agency, adminHeader):
        response = client.post(
            "/api/userpermission/assign-agency",
            headers=adminHeader,
            json={"userId": admin.id, "agencyId": agency["id"]},
        )
        assert response.status_code == 403

    def test_trip_route(self, client, trip, route, adminHeader):
        form = {"tripId": trip["id"], "routeId": route["id"]}
        response = client.post(
            "/api/userpermission/assign-trip-route", headers=adminHeader, json=form
        )
        assert response.status_code == 400

        response = client.post(
            "/api/userpermission/unassign-trip-route", headers=adminHeader, json=form
        )
        assert response.status_code == 200
        assert response.json()["trip"]["route"] is None

    def test_unassign_trip_unknown_route(self, client, trip, adminHeader):
        response = client.post(
            "/api/userpermission/unassign-trip-route",
            headers=adminHeader,
            json={"tripId": trip["id"], "routeId": 999},
        )
        assert response.status_code == 404

    def test_unassign_route_not_held(self, client, route, rootHeader):
        other = client.post(
            "/api/agencies", headers=rootHeader, json={"name": "Other agency"}
        ).json()
        response = client.post(
            "/api/userpermission/unassign-route-agency",
            headers=rootHeader,
            json={"agencyId": other["id"], "routeId": route["id"]},
        )
        assert response.status_code == 404

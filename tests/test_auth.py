from __future__ import annotations

from sitetrack.extensions import db
from sitetrack.models import AuditLog, User


def test_seed_admin_only_when_no_users_exist(app, client):
    resp = client.post("/auth/seed-admin", json={"email": "Boss@Example.com", "password": "longpass"})
    assert resp.status_code == 201
    assert resp.get_json()["user"]["role"] == "admin"
    assert resp.get_json()["user"]["email"] == "boss@example.com"

    again = client.post("/auth/seed-admin", json={"email": "x@example.com", "password": "longpass"})
    assert again.status_code == 403
    assert again.get_json()["error"] == "forbidden"


def test_login_and_me(client, users):
    resp = client.post("/auth/login", json={"email": "manager@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["role"] == "manager"

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.get_json()["user"]["email"] == "manager@example.com"

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_login_with_wrong_password(client, users):
    resp = client.post("/auth/login", json={"email": "manager@example.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.get_json()["ok"] is False


def test_inactive_user_cannot_log_in(app, client, users):
    with app.app_context():
        db.session.get(User, users["manager"]).is_active = False
        db.session.commit()

    resp = client.post("/auth/login", json={"email": "manager@example.com", "password": "secret123"})
    assert resp.status_code == 403


def test_unauthenticated_api_access_returns_json_401(client):
    resp = client.get("/projects/")
    assert resp.status_code == 401
    assert resp.get_json() == {"ok": False, "error": "unauthorized", "message": "Login required."}


def test_signup_creates_manager_without_projects(app, client):
    resp = client.post(
        "/auth/signup",
        json={"name": "New Manager", "email": "new@example.com", "password": "longpass"},
    )
    assert resp.status_code == 201
    user = resp.get_json()["user"]
    assert user["role"] == "manager"
    assert user["assigned_project_ids"] == []

    # signed-in right away
    assert client.get("/auth/me").get_json()["user"]["email"] == "new@example.com"

    with app.app_context():
        assert AuditLog.query.filter_by(entity_type="User", action="CREATE").count() == 1


def test_signup_validation(client, users):
    duplicate = client.post(
        "/auth/signup",
        json={"name": "Dup", "email": "manager@example.com", "password": "longpass"},
    )
    assert duplicate.status_code == 400

    short = client.post("/auth/signup", json={"name": "A", "email": "a@example.com", "password": "123"})
    assert short.status_code == 400
    assert short.get_json()["details"]["field"] == "password"


def test_signup_can_be_disabled(app, client):
    app.config["ALLOW_SIGNUP"] = False
    resp = client.post(
        "/auth/signup",
        json={"name": "New Manager", "email": "new@example.com", "password": "longpass"},
    )
    assert resp.status_code == 403


def test_csrf_token_endpoint(client):
    resp = client.get("/auth/csrf-token")
    assert resp.status_code == 200
    assert resp.get_json()["csrf_token"]


def test_admin_manages_users(admin_client, users, project):
    resp = admin_client.get("/users/managers")
    assert {u["email"] for u in resp.get_json()["users"]} == {"manager@example.com", "other@example.com"}

    resp = admin_client.put(f"/users/{users['other_manager']}/projects", json={"assigned_project_ids": [project]})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["assigned_project_ids"] == [project]

    resp = admin_client.put(f"/users/{users['other_manager']}/projects", json={"assigned_project_ids": [999]})
    assert resp.status_code == 400

    resp = admin_client.patch(f"/users/{users['other_manager']}", json={"is_active": False, "name": "Renamed"})
    assert resp.get_json()["user"]["is_active"] is False
    assert resp.get_json()["user"]["name"] == "Renamed"


def test_admin_cannot_lock_themselves_out(admin_client, users):
    resp = admin_client.patch(f"/users/{users['admin']}", json={"role": "manager"})
    assert resp.status_code == 400
    resp = admin_client.patch(f"/users/{users['admin']}", json={"is_active": False})
    assert resp.status_code == 400


def test_managers_cannot_manage_users(manager_client, users):
    assert manager_client.get("/users/").status_code == 403
    assert manager_client.patch(f"/users/{users['manager']}", json={"role": "admin"}).status_code == 403


def test_is_active_from_form_data(admin_client, users):
    resp = admin_client.patch(f"/users/{users['manager']}", data={"is_active": "false"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["is_active"] is False

    resp = admin_client.patch(f"/users/{users['manager']}", data={"is_active": "1"})
    assert resp.get_json()["user"]["is_active"] is True

    resp = admin_client.patch(f"/users/{users['manager']}", data={"is_active": "maybe"})
    assert resp.status_code == 400
    assert resp.get_json()["details"]["field"] == "is_active"

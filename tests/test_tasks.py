from __future__ import annotations


def _create(client, project, **extra):
    data = {"project_id": project, "title": "Pour slab", "expected_completion_date": "2024-06-30"}
    data.update(extra)
    return client.post("/tasks/", json=data)


def test_admin_creates_task_in_todo(admin_client, project):
    resp = _create(admin_client, project, status="done")
    assert resp.status_code == 201
    task = resp.get_json()["task"]
    assert task["status"] == "todo"
    assert task["expected_completion_date"] == "2024-06-30"


def test_task_validation(admin_client, project):
    assert _create(admin_client, project, title="").status_code == 400
    assert _create(admin_client, project, expected_completion_date="next week").status_code == 400
    assert _create(admin_client, 999).status_code == 400


def test_manager_moves_task_status(admin_client, manager_client, other_client, project):
    task = _create(admin_client, project).get_json()["task"]

    resp = manager_client.patch(f"/tasks/{task['id']}/status", json={"status": "inprogress"})
    assert resp.status_code == 200
    assert resp.get_json()["task"]["status"] == "inprogress"

    assert manager_client.patch(f"/tasks/{task['id']}/status", json={"status": "blocked"}).status_code == 400
    assert other_client.patch(f"/tasks/{task['id']}/status", json={"status": "done"}).status_code == 403
    assert manager_client.patch(f"/tasks/{task['id']}", json={"title": "Renamed"}).status_code == 403
    assert manager_client.delete(f"/tasks/{task['id']}").status_code == 403


def test_admin_edits_and_deletes_task(admin_client, project):
    task = _create(admin_client, project).get_json()["task"]

    resp = admin_client.patch(
        f"/tasks/{task['id']}",
        json={"title": "Pour first floor slab", "status": "done", "expected_completion_date": ""},
    )
    data = resp.get_json()["task"]
    assert data["title"] == "Pour first floor slab"
    assert data["status"] == "done"
    assert data["expected_completion_date"] is None

    assert admin_client.delete(f"/tasks/{task['id']}").status_code == 200
    assert admin_client.get("/tasks/").get_json()["tasks"] == []


def test_task_list_scoping_and_filters(admin_client, manager_client, other_client, project):
    first = _create(admin_client, project, title="A").get_json()["task"]
    _create(admin_client, project, title="B")
    admin_client.patch(f"/tasks/{first['id']}", json={"status": "done"})

    assert len(manager_client.get("/tasks/").get_json()["tasks"]) == 2
    done = manager_client.get(f"/tasks/?project_id={project}&status=done").get_json()["tasks"]
    assert [t["title"] for t in done] == ["A"]

    assert other_client.get("/tasks/").get_json()["tasks"] == []
    assert other_client.get(f"/tasks/?project_id={project}").status_code == 403

from __future__ import annotations


def test_admin_dashboard_stats(admin_client, manager_client, project, workers):
    first = manager_client.post(
        "/transactions/expenses", json={"project_id": project, "amount": "1100", "category": "Steel"}
    ).get_json()["transaction"]
    manager_client.post("/transactions/expenses", json={"project_id": project, "amount": "40", "category": "Tea"})
    admin_client.post(f"/transactions/{first['id']}/approve")
    admin_client.post("/transactions/income", json={"project_id": project, "amount": "900"})
    admin_client.post("/payroll/accrue", json={"payment_type": "daily"})

    resp = admin_client.get("/dashboard/admin")
    assert resp.status_code == 200
    body = resp.get_json()
    stats = body["stats"]
    assert stats["total_income"] == 900
    assert stats["total_expenses"] == 1100
    assert stats["pending_expenses"] == 40
    assert stats["pending_expense_count"] == 1
    assert stats["outstanding_payroll"] == 500
    assert stats["project_count"] == 1
    assert stats["worker_count"] == 3
    assert [p["id"] for p in body["over_budget_projects"]] == [project]


def test_admin_dashboard_is_admin_only(manager_client, users):
    assert manager_client.get("/dashboard/admin").status_code == 403


def test_manager_dashboard(admin_client, manager_client, other_client, project):
    admin_client.post("/tasks/", json={"project_id": project, "title": "Open"})
    done = admin_client.post("/tasks/", json={"project_id": project, "title": "Closed"}).get_json()["task"]
    admin_client.patch(f"/tasks/{done['id']}", json={"status": "done"})

    items = manager_client.get("/dashboard/").get_json()["projects"]
    assert len(items) == 1
    assert items[0]["project"]["id"] == project
    assert items[0]["open_task_count"] == 1
    assert items[0]["financials"]["budget_limit"] == 1000

    assert other_client.get("/dashboard/").get_json()["projects"] == []

from conftest import PASSWORD


def test_list_users_with_counts(client, admin, admin_headers, responsible, make_asset):
    asset = make_asset()
    client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                headers=admin_headers)

    r = client.get("/users", headers=admin_headers)
    assert r.status_code == 200
    by_email = {u["email"]: u for u in r.json()}
    assert by_email["admin@example.com"]["counts"]["created_assets"] == 1
    assert by_email["responsible@example.com"]["counts"]["assigned_assets"] == 1


def test_manager_can_read_but_not_create_users(client, manager_headers):
    assert client.get("/users", headers=manager_headers).status_code == 200
    r = client.post("/users", json={"email": "x@example.com", "password": "secret123"},
                    headers=manager_headers)
    assert r.status_code == 403


def test_responsible_cannot_list_users(client, responsible_headers):
    assert client.get("/users", headers=responsible_headers).status_code == 403


def test_admin_creates_user_with_role(client, admin_headers):
    r = client.post("/users", json={
        "email": "new.manager@example.com", "password": "secret123", "role": "INVENTORY_MANAGER",
    }, headers=admin_headers)
    assert r.status_code == 201, r.text
    assert r.json()["role"] == "INVENTORY_MANAGER"

    login = client.post("/auth/login", json={"email": "new.manager@example.com", "password": "secret123"})
    assert login.status_code == 200


def test_create_user_duplicate_email(client, admin_headers, manager):
    r = client.post("/users", json={"email": "manager@example.com", "password": "secret123"},
                    headers=admin_headers)
    assert r.status_code == 409


def test_get_user(client, admin_headers, manager):
    r = client.get(f"/users/{manager.id}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["email"] == "manager@example.com"
    assert r.json()["counts"] == {"created_assets": 0, "assigned_assets": 0}
    assert client.get("/users/9999", headers=admin_headers).status_code == 404


def test_update_user(client, admin_headers, responsible):
    r = client.put(f"/users/{responsible.id}", json={"name": "Renamed", "role": "INVENTORY_MANAGER"},
                   headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["role"] == "INVENTORY_MANAGER"


def test_update_user_email_must_stay_unique(client, admin_headers, manager, responsible):
    r = client.put(f"/users/{responsible.id}", json={"email": "manager@example.com"}, headers=admin_headers)
    assert r.status_code == 409


def test_delete_user(client, admin_headers, make_user):
    user = make_user("temp@example.com")
    r = client.delete(f"/users/{user.id}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["message"] == "User deleted"
    assert client.get(f"/users/{user.id}", headers=admin_headers).status_code == 404


def test_cannot_delete_yourself(client, admin, admin_headers):
    r = client.delete(f"/users/{admin.id}", headers=admin_headers)
    assert r.status_code == 400


def test_delete_user_with_assigned_assets(client, admin_headers, responsible, make_asset):
    asset = make_asset()
    client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                headers=admin_headers)
    r = client.delete(f"/users/{responsible.id}", headers=admin_headers)
    assert r.status_code == 409
    assert "1 assigned" in r.json()["detail"]


def test_delete_user_who_created_assets_deactivates(client, admin_headers, manager, manager_headers, category):
    r = client.post("/assets", json={
        "code": "MGR-1", "name": "Made by manager", "acquisition_cost": 10, "purchase_date": "2024-01-01",
        "useful_life": 2, "category_id": category["id"],
    }, headers=manager_headers)
    assert r.status_code == 201

    r = client.delete(f"/users/{manager.id}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["user"]["is_active"] is False
    assert client.get(f"/users/{manager.id}", headers=admin_headers).json()["is_active"] is False


def test_delete_user_with_history_deactivates(client, admin_headers, make_user, make_asset, headers_for):
    user = make_user("history@example.com")
    asset = make_asset()
    client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": user.id},
                headers=admin_headers)
    client.post(f"/assignments/{asset['id']}/return", json={}, headers=admin_headers)

    r = client.delete(f"/users/{user.id}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["user"]["is_active"] is False


def test_change_own_password(client, responsible, responsible_headers):
    r = client.put("/users/me/password", json={"current_password": PASSWORD, "new_password": "brandnew1"},
                   headers=responsible_headers)
    assert r.status_code == 200

    ok = client.post("/auth/login", json={"email": "responsible@example.com", "password": "brandnew1"})
    assert ok.status_code == 200
    old = client.post("/auth/login", json={"email": "responsible@example.com", "password": PASSWORD})
    assert old.status_code == 401


def test_change_password_wrong_current(client, responsible_headers):
    r = client.put("/users/me/password", json={"current_password": "nope-nope", "new_password": "brandnew1"},
                   headers=responsible_headers)
    assert r.status_code == 400


def test_responsibles(client, manager_headers, responsible, make_user, admin_headers, make_asset):
    make_user("inactive@example.com", is_active=False)
    asset = make_asset()
    client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                headers=admin_headers)

    r = client.get("/users/responsibles", headers=manager_headers)
    assert r.status_code == 200
    emails = [u["email"] for u in r.json()]
    assert "inactive@example.com" not in emails
    entry = next(u for u in r.json() if u["email"] == "responsible@example.com")
    assert entry["assigned_assets"] == 1


def test_responsibles_needs_inventory_access(client, responsible_headers):
    assert client.get("/users/responsibles", headers=responsible_headers).status_code == 403


def test_user_assets_own_and_others(client, admin_headers, responsible, responsible_headers, manager, make_asset):
    asset = make_asset()
    client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                headers=admin_headers)

    mine = client.get(f"/users/{responsible.id}/assets", headers=responsible_headers)
    assert mine.status_code == 200
    assert [a["code"] for a in mine.json()] == [asset["code"]]

    assert client.get(f"/users/{manager.id}/assets", headers=responsible_headers).status_code == 403
    assert client.get(f"/users/{responsible.id}/assets", headers=admin_headers).status_code == 200

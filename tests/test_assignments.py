import pytest


@pytest.fixture
def assigned(client, admin_headers, responsible, make_asset):
    asset = make_asset()
    r = client.post("/assignments", json={
        "asset_id": asset["id"], "assigned_to_id": responsible.id,
        "location": "Office 101", "reason": "New hire",
    }, headers=admin_headers)
    assert r.status_code == 201, r.text
    return asset, r.json()


def _asset(client, headers, asset_id):
    return client.get(f"/assets/{asset_id}", headers=headers).json()


def test_assign(client, admin, admin_headers, responsible, assigned):
    asset, assignment = assigned
    assert assignment["status"] == "ACTIVE"
    assert assignment["assigned_to"]["id"] == responsible.id
    assert assignment["assigned_by"]["id"] == admin.id
    assert assignment["asset"]["code"] == asset["code"]

    a = _asset(client, admin_headers, asset["id"])
    assert a["status"] == "IN_USE"
    assert a["assigned_to_id"] == responsible.id
    assert a["current_location"] == "Office 101"
    assert a["assigned_at"] is not None


def test_assign_already_assigned(client, admin_headers, manager, assigned):
    asset, _ = assigned
    r = client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": manager.id},
                    headers=admin_headers)
    assert r.status_code == 409


def test_assign_unknown_asset_or_user(client, admin_headers, responsible, make_asset):
    asset = make_asset()
    assert client.post("/assignments", json={"asset_id": 999, "assigned_to_id": responsible.id},
                       headers=admin_headers).status_code == 404
    assert client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": 999},
                       headers=admin_headers).status_code == 404


def test_assign_inactive_user(client, admin_headers, make_user, make_asset):
    user = make_user("inactive@example.com", is_active=False)
    asset = make_asset()
    r = client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": user.id},
                    headers=admin_headers)
    assert r.status_code == 409


def test_assign_decommissioned(client, admin_headers, responsible, make_asset):
    asset = make_asset(status="DECOMMISSIONED")
    r = client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                    headers=admin_headers)
    assert r.status_code == 409


def test_assign_requires_inventory_access(client, responsible, responsible_headers, make_asset):
    asset = make_asset()
    r = client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                    headers=responsible_headers)
    assert r.status_code == 403


def test_return(client, admin_headers, assigned):
    asset, assignment = assigned
    r = client.post(f"/assignments/{asset['id']}/return", json={"notes": "Left the company"},
                    headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == assignment["id"]
    assert body["status"] == "RETURNED"
    assert body["returned_at"] is not None
    assert body["notes"] == "Left the company"

    a = _asset(client, admin_headers, asset["id"])
    assert a["status"] == "AVAILABLE"
    assert a["assigned_to_id"] is None


def test_return_without_body(client, admin_headers, assigned):
    asset, _ = assigned
    assert client.post(f"/assignments/{asset['id']}/return", headers=admin_headers).status_code == 200


def test_return_without_active_assignment(client, admin_headers, make_asset):
    asset = make_asset()
    r = client.post(f"/assignments/{asset['id']}/return", json={}, headers=admin_headers)
    assert r.status_code == 409


def test_transfer(client, admin_headers, manager, assigned):
    asset, old = assigned
    r = client.post(f"/assignments/{asset['id']}/transfer", json={
        "new_assigned_to_id": manager.id, "notes": "Team change",
    }, headers=admin_headers)
    assert r.status_code == 200, r.text
    new = r.json()
    assert new["status"] == "ACTIVE"
    assert new["assigned_to_id"] == manager.id
    assert new["location"] == "Office 101"
    assert new["reason"] == "Transfer"

    previous = client.get(f"/assignments/{old['id']}", headers=admin_headers).json()
    assert previous["status"] == "TRANSFERRED"
    assert previous["notes"] == "Transferred. Team change"
    assert previous["returned_at"] is not None

    a = _asset(client, admin_headers, asset["id"])
    assert a["assigned_to_id"] == manager.id
    assert a["status"] == "IN_USE"


def test_transfer_without_notes(client, admin_headers, manager, assigned):
    asset, old = assigned
    client.post(f"/assignments/{asset['id']}/transfer",
                json={"new_assigned_to_id": manager.id, "location": "Lab 3"}, headers=admin_headers)
    previous = client.get(f"/assignments/{old['id']}", headers=admin_headers).json()
    assert previous["notes"] == "Transferred"
    assert _asset(client, admin_headers, asset["id"])["current_location"] == "Lab 3"


def test_transfer_to_same_user(client, admin_headers, responsible, assigned):
    asset, _ = assigned
    r = client.post(f"/assignments/{asset['id']}/transfer",
                    json={"new_assigned_to_id": responsible.id}, headers=admin_headers)
    assert r.status_code == 409


def test_transfer_errors(client, admin_headers, manager, make_asset, assigned):
    free = make_asset()
    asset, _ = assigned
    assert client.post(f"/assignments/{free['id']}/transfer",
                       json={"new_assigned_to_id": manager.id}, headers=admin_headers).status_code == 409
    assert client.post(f"/assignments/{asset['id']}/transfer",
                       json={"new_assigned_to_id": 999}, headers=admin_headers).status_code == 404


def test_history_and_filters(client, admin_headers, responsible_headers, manager, responsible, assigned):
    asset, _ = assigned
    client.post(f"/assignments/{asset['id']}/transfer",
                json={"new_assigned_to_id": manager.id}, headers=admin_headers)

    all_ = client.get("/assignments", headers=responsible_headers).json()
    assert len(all_) == 2

    active = client.get("/assignments/active", headers=admin_headers).json()
    assert [a["assigned_to_id"] for a in active] == [manager.id]

    by_status = client.get("/assignments", params={"status": "TRANSFERRED"}, headers=admin_headers).json()
    assert [a["assigned_to_id"] for a in by_status] == [responsible.id]

    per_asset = client.get(f"/assignments/asset/{asset['id']}", headers=admin_headers).json()
    assert len(per_asset) == 2
    per_user = client.get(f"/assignments/user/{manager.id}", headers=admin_headers).json()
    assert len(per_user) == 1


def test_get_missing_assignment(client, admin_headers, db):
    assert client.get("/assignments/999", headers=admin_headers).status_code == 404

import pytest


@pytest.fixture
def report(client, responsible_headers):
    def factory(asset_id, type="DAMAGE", **extra):
        r = client.post("/incidents", json={"asset_id": asset_id, "type": type,
                                            "description": "Something happened", **extra},
                        headers=responsible_headers)
        assert r.status_code == 201, r.text
        return r.json()
    return factory


def _asset(client, headers, asset_id):
    return client.get(f"/assets/{asset_id}", headers=headers).json()


def test_report(client, responsible, report, make_asset):
    inc = report(make_asset()["id"], cost=30)
    assert inc["status"] == "REPORTED"
    assert inc["reported_by_id"] == responsible.id
    assert inc["reported_date"] is not None
    assert inc["cost"] == 30


def test_report_for_decommissioned_or_missing_asset(client, responsible_headers, make_asset):
    asset = make_asset(status="DECOMMISSIONED")
    r = client.post("/incidents", json={"asset_id": asset["id"], "type": "DAMAGE", "description": "x"},
                    headers=responsible_headers)
    assert r.status_code == 409
    r = client.post("/incidents", json={"asset_id": 999, "type": "DAMAGE", "description": "x"},
                    headers=responsible_headers)
    assert r.status_code == 404


@pytest.mark.parametrize("kind", ["THEFT", "LOSS"])
def test_theft_or_loss_decommissions(client, admin_headers, responsible, report, make_asset, kind):
    asset = make_asset()
    assignment = client.post("/assignments", json={
        "asset_id": asset["id"], "assigned_to_id": responsible.id, "location": "Desk 4",
    }, headers=admin_headers).json()

    report(asset["id"], type=kind)

    a = _asset(client, admin_headers, asset["id"])
    assert a["status"] == "DECOMMISSIONED"
    assert a["assigned_to_id"] is None
    assert a["assigned_at"] is None
    assert a["current_location"] is None

    closed = client.get(f"/assignments/{assignment['id']}", headers=admin_headers).json()
    assert closed["status"] == "RETURNED"
    assert closed["returned_at"] is not None


def test_damage_keeps_asset_status(client, admin_headers, report, make_asset):
    asset = make_asset()
    report(asset["id"], type="DAMAGE")
    assert _asset(client, admin_headers, asset["id"])["status"] == "AVAILABLE"


def test_lifecycle(client, manager_headers, report, make_asset):
    inc = report(make_asset()["id"], cost=10)

    r = client.post(f"/incidents/{inc['id']}/investigate", headers=manager_headers)
    assert r.json()["status"] == "INVESTIGATING"

    r = client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "Repaired"}, headers=manager_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "RESOLVED"
    assert body["resolution"] == "Repaired"
    assert body["resolved_date"] is not None
    assert body["cost"] == 10

    r = client.post(f"/incidents/{inc['id']}/close", headers=manager_headers)
    assert r.json()["status"] == "CLOSED"


def test_resolve_directly_from_reported(client, admin_headers, report, make_asset):
    inc = report(make_asset()["id"])
    r = client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "False alarm", "cost": 0},
                    headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["cost"] == 0


def test_invalid_transitions(client, admin_headers, report, make_asset):
    inc = report(make_asset()["id"])
    assert client.post(f"/incidents/{inc['id']}/close", headers=admin_headers).status_code == 409

    client.post(f"/incidents/{inc['id']}/investigate", headers=admin_headers)
    assert client.post(f"/incidents/{inc['id']}/investigate", headers=admin_headers).status_code == 409

    client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "ok"}, headers=admin_headers)
    assert client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "again"},
                       headers=admin_headers).status_code == 409

    client.post(f"/incidents/{inc['id']}/close", headers=admin_headers)
    assert client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "again"},
                       headers=admin_headers).status_code == 409


def test_resolving_damage_restores_asset_in_repair(client, admin_headers, responsible, report, make_asset):
    asset = make_asset()
    client.post("/assignments", json={"asset_id": asset["id"], "assigned_to_id": responsible.id},
                headers=admin_headers)
    inc = report(asset["id"], type="DAMAGE")
    client.patch(f"/assets/{asset['id']}/status", json={"status": "IN_REPAIR"}, headers=admin_headers)

    client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "Fixed"}, headers=admin_headers)
    assert _asset(client, admin_headers, asset["id"])["status"] == "IN_USE"


def test_transitions_need_inventory_access(client, responsible_headers, report, make_asset):
    inc = report(make_asset()["id"])
    assert client.post(f"/incidents/{inc['id']}/investigate", headers=responsible_headers).status_code == 403
    assert client.post(f"/incidents/{inc['id']}/resolve", json={"resolution": "x"},
                       headers=responsible_headers).status_code == 403
    assert client.post(f"/incidents/{inc['id']}/close", headers=responsible_headers).status_code == 403


def test_history_and_active(client, admin_headers, report, make_asset):
    a1 = make_asset()
    a2 = make_asset()
    first = report(a1["id"], type="MALFUNCTION")
    second = report(a2["id"], type="DAMAGE")
    client.post(f"/incidents/{first['id']}/resolve", json={"resolution": "ok"}, headers=admin_headers)

    def ids(**params):
        return [i["id"] for i in client.get("/incidents", params=params, headers=admin_headers).json()]

    assert ids() == [second["id"], first["id"]]
    assert ids(type="MALFUNCTION") == [first["id"]]
    assert ids(status="RESOLVED") == [first["id"]]
    assert ids(asset_id=a2["id"]) == [second["id"]]

    active = client.get("/incidents/active", headers=admin_headers).json()
    assert [i["id"] for i in active] == [second["id"]]

    per_asset = client.get(f"/incidents/asset/{a1['id']}", headers=admin_headers).json()
    assert [i["id"] for i in per_asset] == [first["id"]]
    assert client.get(f"/incidents/{second['id']}", headers=admin_headers).json()["asset"]["id"] == a2["id"]
    assert client.get("/incidents/999", headers=admin_headers).status_code == 404


def test_resolved_date_with_offset_is_stored_as_utc(client, admin_headers, report, make_asset):
    inc = report(make_asset()["id"], type="MALFUNCTION")
    r = client.post(f"/incidents/{inc['id']}/resolve", json={
        "resolution": "Replaced fuse", "resolved_date": "2024-03-10T08:15:00+01:00",
    }, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["resolved_date"] == "2024-03-10T07:15:00"

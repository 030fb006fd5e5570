from __future__ import annotations

from conftest import auth_header, png_bytes
from rentcircle import moderation
from rentcircle.auth import ANONYMOUS


FORM = {
    "title": "Bright 1BHK with balcony",
    "property_type": "1bhk",
    "rent": "16000",
    "area": "Kharadi",
    "phone": "9822000000",
    "description": "Near EON IT park",
}


def upload_files(n: int):
    return [("files", (f"photo{i}.png", png_bytes((i * 20, 100, 100)), "image/png")) for i in range(n)]


def submit(client, profile, n_files=2, **form):
    data = dict(FORM)
    data.update(form)
    return client.post("/properties", data=data, files=upload_files(n_files), headers=auth_header(profile))


def test_health_and_meta(client):
    assert client.get("/health").json() == {"ok": True}
    meta = client.get("/meta/catalog").json()
    assert "Kharadi" in meta["areas"]
    assert meta["listing_quota"] == 2


def test_security_headers(client):
    r = client.get("/health")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"


def test_register_login_me(client):
    r = client.post("/auth/register", json={"email": "Fresh@Example.com", "password": "s3cret!", "full_name": "Fresh"})
    assert r.status_code == 201
    token = r.json()["access_token"]

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "fresh@example.com"
    assert me.json()["is_admin"] is False

    r = client.post("/auth/login", json={"email": "fresh@example.com", "password": "wrong-pass"})
    assert r.status_code == 401
    assert r.json()["code"] == "unauthorized"


def test_me_requires_login(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_submit_approve_browse(client, owner, admin):
    r = submit(client, owner)
    assert r.status_code == 201, r.text
    body = r.json()
    pid = body["id"]
    assert body["status"] == "pending"
    assert [i["display_order"] for i in body["images"]] == [0, 1]

    assert client.get("/properties").json()["count"] == 0
    assert client.get(f"/properties/{pid}").status_code == 404
    assert client.get(f"/properties/{pid}", headers=auth_header(owner)).status_code == 200

    r = client.post(f"/admin/properties/{pid}/approve", headers=auth_header(admin))
    assert r.json() == {"ok": True, "id": pid, "status": "approved"}

    listed = client.get("/properties", params={"area": "Kharadi", "rent_max": 20000}).json()
    assert [x["id"] for x in listed["items"]] == [pid]
    # Public payload carries the owner's phone but not the email.
    assert listed["items"][0]["profile"]["phone"] == "9822000000"
    assert "email" not in listed["items"][0]["profile"]


def test_submit_requires_login(client):
    r = client.post("/properties", data=FORM, files=upload_files(2))
    assert r.status_code == 401


def test_submit_validation_errors(client, owner):
    r = submit(client, owner, n_files=1)
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_argument"

    r = submit(client, owner, area="Goa")
    assert r.status_code == 400


def test_submit_quota(client, owner):
    assert submit(client, owner).status_code == 201
    assert submit(client, owner).status_code == 201
    r = submit(client, owner)
    assert r.status_code == 409
    assert r.json()["code"] == "quota_exceeded"


def test_submit_blocked_contact(client, owner, admin):
    r = client.post("/admin/blocked", json={"phone": "9822000000", "reason": "Broker"}, headers=auth_header(admin))
    assert r.status_code == 201
    r = submit(client, owner)
    assert r.status_code == 403
    assert r.json()["code"] == "blocked"


def test_partial_upload_then_resume(client, owner, store):
    store.fail_indexes = {1}
    r = submit(client, owner, n_files=3)
    assert r.status_code == 502
    body = r.json()
    assert body["code"] == "storage_failure"
    assert body["listing_saved"] is True
    assert body["images_saved"] == 2
    pid = body["property_id"]

    store.fail_indexes = set()
    r = client.post(f"/properties/{pid}/images", files=upload_files(1), headers=auth_header(owner))
    assert r.status_code == 200
    assert [i["display_order"] for i in r.json()["images"]] == [0, 1, 2]


def test_owner_listing_and_delete(client, owner, other_owner, store):
    pid = submit(client, owner).json()["id"]

    mine = client.get("/owner/properties", headers=auth_header(owner)).json()
    assert [x["id"] for x in mine["items"]] == [pid]
    assert mine["quota"] == 2

    assert client.delete(f"/owner/properties/{pid}", headers=auth_header(other_owner)).status_code == 403
    r = client.delete(f"/owner/properties/{pid}", headers=auth_header(owner))
    assert r.json() == {"ok": True, "id": pid, "orphaned_objects": 0}
    assert store.objects == {}


def test_admin_routes_forbidden_for_owner(client, owner):
    h = auth_header(owner)
    assert client.get("/admin/properties", headers=h).status_code == 403
    assert client.get("/admin/stats", headers=h).status_code == 403
    assert client.get("/admin/reports", headers=h).status_code == 403
    assert client.post("/admin/properties/1/approve").status_code == 401


def test_reject_and_reopen_via_api(client, owner, admin):
    pid = submit(client, owner).json()["id"]
    h = auth_header(admin)

    r = client.post(f"/admin/properties/{pid}/reject", json={"reason": ""}, headers=h)
    assert r.status_code == 400

    r = client.post(f"/admin/properties/{pid}/reject", json={"reason": "Duplicate post"}, headers=h)
    assert r.json()["status"] == "rejected"
    mine = client.get("/owner/properties", headers=auth_header(owner)).json()["items"]
    assert mine[0]["rejection_reason"] == "Duplicate post"

    assert client.post(f"/admin/properties/{pid}/reopen", headers=h).json()["status"] == "pending"
    client.post(f"/admin/properties/{pid}/approve", headers=h)
    r = client.post(f"/admin/properties/{pid}/reopen", headers=h)
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"


def test_admin_listing_filters(client, owner, admin):
    pid = submit(client, owner).json()["id"]
    h = auth_header(admin)
    got = client.get("/admin/properties", params={"status": "pending", "q": "owner@example"}, headers=h).json()
    assert [x["id"] for x in got["items"]] == [pid]
    assert got["items"][0]["profile"]["email"] == "owner@example.com"
    assert client.get("/admin/properties", params={"status": "gone"}, headers=h).status_code == 400


def test_report_flow_and_stats(client, db, owner, admin, add_property):
    prop = add_property(owner, title="Suspicious flat")
    r = client.post(f"/properties/{prop.id}/reports", json={"reason": "Asked for advance", "reporter_email": "t@x.com"})
    assert r.status_code == 201
    rid = r.json()["id"]

    h = auth_header(admin)
    reports = client.get("/admin/reports", params={"status": "open"}, headers=h).json()["items"]
    assert [x["id"] for x in reports] == [rid]
    assert reports[0]["property_title"] == "Suspicious flat"

    assert client.post(f"/admin/reports/{rid}/review", json={"admin_notes": "Checking"}, headers=h).json()["status"] == "reviewed"
    assert client.post(f"/admin/reports/{rid}/resolve", json={}, headers=h).json()["status"] == "resolved"
    assert client.post(f"/admin/reports/{rid}/resolve", json={}, headers=h).status_code == 409

    stats = client.get("/admin/stats", headers=h).json()
    assert stats["total_listings"] == 1
    assert stats["total_reports"] == 1
    assert stats["flagged_for_review"] == 0


def test_report_requires_reason(client, owner, add_property):
    prop = add_property(owner)
    r = client.post(f"/properties/{prop.id}/reports", json={"reason": "  "})
    assert r.status_code == 400


def test_report_rate_limited(client, owner, add_property, monkeypatch):
    monkeypatch.setenv("REPORT_RATE_LIMIT", "2")
    prop = add_property(owner)
    for _ in range(2):
        assert client.post(f"/properties/{prop.id}/reports", json={"reason": "Spam"}).status_code == 201
    r = client.post(f"/properties/{prop.id}/reports", json={"reason": "Spam"})
    assert r.status_code == 429
    assert r.json()["code"] == "rate_limited"
    assert int(r.headers["Retry-After"]) >= 1


def test_deleted_listing_report_keeps_title(client, db, owner, admin, add_property):
    prop = add_property(owner, title="Soon deleted")
    moderation.file_report(db, ANONYMOUS, prop.id, "Fake")
    h = auth_header(admin)
    assert client.delete(f"/admin/properties/{prop.id}", headers=h).status_code == 200

    item = client.get("/admin/reports", headers=h).json()["items"][0]
    assert item["property_id"] is None
    assert item["property_deleted"] is True
    assert item["property_title"] == "Soon deleted"


def test_blocklist_routes(client, owner, admin):
    h = auth_header(admin)
    assert client.post("/admin/blocked", json={}, headers=h).status_code == 400
    bid = client.post("/admin/blocked", json={"email": "bad@example.com"}, headers=h).json()["id"]
    assert [x["id"] for x in client.get("/admin/blocked", headers=h).json()["items"]] == [bid]
    assert client.delete(f"/admin/blocked/{bid}", headers=h).json() == {"ok": True}
    assert client.delete(f"/admin/blocked/{bid}", headers=h).status_code == 404

    r = client.post(f"/admin/profiles/{owner.id}/block", headers=h)
    assert r.json()["is_blocked"] is True
    assert submit(client, owner).status_code == 403
    client.post(f"/admin/profiles/{owner.id}/unblock", headers=h)
    assert submit(client, owner).status_code == 201


def test_services_and_sponsor_routes(client, admin):
    h = auth_header(admin)
    sid = client.post("/admin/services", json={"title": "Movers", "price": 4999}, headers=h).json()["id"]
    assert [s["id"] for s in client.get("/services").json()["items"]] == [sid]

    r = client.post(f"/services/{sid}/requests", json={"name": "Ravi", "email": "ravi@example.com", "phone": "9000"})
    assert r.status_code == 201
    rid = r.json()["id"]
    r = client.patch(f"/admin/service-requests/{rid}", json={"status": "completed"}, headers=h)
    assert r.json()["status"] == "completed"

    assert client.patch(f"/admin/services/{sid}", json={"is_active": False}, headers=h).json()["is_active"] is False
    assert client.get("/services").json()["items"] == []
    r = client.patch(f"/admin/services/{sid}", json={"is_active": None, "display_order": None, "price": None}, headers=h)
    assert r.status_code == 200
    assert (r.json()["is_active"], r.json()["price"]) == (False, 4999)

    assert client.get("/sponsor").json()["upi_id"] is None
    client.put("/admin/sponsor", json={"upi_id": "rent@upi"}, headers=h)
    assert client.get("/sponsor").json()["upi_id"] == "rent@upi"


def test_unknown_listing_is_404(client):
    r = client.get("/properties/123456")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


def test_uploads_proxy_rejects_traversal(client):
    assert client.get("/uploads/../secret.txt").status_code == 404
    assert client.get("/uploads/nope/missing.jpg").status_code == 404

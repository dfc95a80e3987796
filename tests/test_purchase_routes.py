"""
test_purchase_routes.py - HTTP contract of /api/purchase-requests and /api/delivery
"""
from datetime import datetime, timedelta

from extensions import db
from capital.orchestrator import FundingOrchestrator
from purchases.models import PurchaseRequest
from tests.helpers import create_purchase_request, record


def put_action(client, pr_id, action, **extra):
    return client.put("/api/purchase-requests",
                      json={"purchase_request_id": pr_id, "action": action, **extra})


def fund(client, pr_id, amount="1000"):
    record(client, investor_id=1, transaction_type="inflow", amount=amount)
    resp = record(client, investor_id=1, transaction_type="deployment", amount=amount,
                  purchase_request_id=pr_id)
    assert resp.status_code == 201, resp.get_json()


def test_create_returns_enriched_request(client):
    pr = create_purchase_request(client, items=[
        {"item_description": "Cement bags", "requested_qty": 100, "unit_rate": "7.50", "tax_percent": 18},
    ])
    assert pr["status"] == "draft"
    assert pr["estimated_total"] == 885.0
    assert pr["remaining_amount"] == 885.0
    assert pr["funded_amount"] == 0
    assert pr["items"][0]["status"] == "pending"


def test_create_rejects_unknown_contractor(client):
    resp = client.post("/api/purchase-requests", json={
        "contractor_id": 9, "items": [{"item_description": "x", "requested_qty": 1, "unit_rate": 1}],
    })
    assert resp.status_code == 404


def test_submit_and_vendor_gate(client):
    pr = create_purchase_request(client)
    assert client.post(f"/api/purchase-requests/{pr['id']}/submit").status_code == 200

    resp = put_action(client, pr["id"], "approve_for_purchase")
    assert resp.status_code == 422
    assert resp.get_json()["kind"] == "PreconditionFailed"

    assert put_action(client, pr["id"], "assign_vendor", vendor_id=1).status_code == 200
    resp = put_action(client, pr["id"], "approve_for_purchase", admin_notes="rates verified")
    assert resp.status_code == 200
    body = resp.get_json()["purchase_request"]
    assert body["status"] == "approved"
    assert body["vendor"]["company_name"] == "Steel & Co"
    assert all(i["approved_qty"] == i["requested_qty"] for i in body["items"])


def test_action_errors(client):
    pr = create_purchase_request(client)
    assert put_action(client, pr["id"], "launch").status_code == 400
    resp = put_action(client, pr["id"], 7)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "action"
    assert put_action(client, 404, "reject").status_code == 404
    assert put_action(client, pr["id"], "assign_vendor", vendor_id=55).status_code == 404
    # draft requests cannot be approved
    assert put_action(client, pr["id"], "approve_for_funding").status_code == 409


def test_vendor_locked_after_funding(client):
    pr = create_purchase_request(client, status="submitted", vendor_id=1)
    fund(client, pr["id"])
    resp = put_action(client, pr["id"], "assign_vendor", vendor_id=1)
    assert resp.status_code == 409
    assert resp.get_json()["kind"] == "Conflict"

    detail = client.get(f"/api/purchase-requests/{pr['id']}").get_json()
    assert detail["status"] == "funded"
    assert detail["funded_amount"] == 1000.0
    assert detail["platform_fee"] == 2.5
    assert detail["total_due"] == 1002.5
    assert all(i["status"] == "ordered" for i in detail["items"])


def test_reject_fans_out(client):
    pr = create_purchase_request(client, status="submitted")
    resp = put_action(client, pr["id"], "reject", admin_notes="duplicate")
    items = resp.get_json()["purchase_request"]["items"]
    assert resp.get_json()["purchase_request"]["status"] == "rejected"
    assert all(i["status"] == "rejected" and i["approved_qty"] is None for i in items)


def test_list_with_status_summary(client):
    create_purchase_request(client)
    create_purchase_request(client, status="submitted")
    create_purchase_request(client, status="submitted")

    data = client.get("/api/purchase-requests?status=submitted").get_json()
    assert len(data["purchase_requests"]) == 2
    assert data["summary"]["submitted"] == 2
    assert data["summary"]["draft"] == 1
    assert data["summary"]["total"] == 3
    assert client.get("/api/purchase-requests?status=bogus").status_code == 400


def test_purchase_order_and_delivery_flow(client):
    pr = create_purchase_request(client, status="submitted", vendor_id=1)
    assert client.post(f"/api/purchase-requests/{pr['id']}/purchase-order").status_code == 409
    fund(client, pr["id"])
    resp = client.post(f"/api/purchase-requests/{pr['id']}/purchase-order")
    assert resp.get_json()["purchase_request"]["status"] == "po_generated"

    resp = client.post("/api/delivery", json={"purchase_request_id": pr["id"], "dispute_window_hours": 200})
    assert resp.status_code == 200
    shipped = resp.get_json()["purchase_request"]
    dispatched = datetime.strptime(shipped["dispatched_at"], "%Y-%m-%d %H:%M:%S")
    deadline = datetime.strptime(shipped["dispute_deadline"], "%Y-%m-%d %H:%M:%S")
    assert deadline - dispatched == timedelta(hours=72)

    again = client.post("/api/delivery", json={"purchase_request_id": pr["id"]})
    assert again.status_code == 409

    assert client.post(f"/api/delivery/{pr['id']}/dispute", json={}).status_code == 400
    disputed = client.post(f"/api/delivery/{pr['id']}/dispute", json={"reason": "short by 2 bundles"})
    assert disputed.get_json()["purchase_request"]["disputed"] is True

    listed = client.get("/api/delivery?status=dispatched").get_json()["deliveries"]
    assert [d["id"] for d in listed] == [pr["id"]]

    done = client.post(f"/api/delivery/{pr['id']}/confirm")
    assert done.get_json()["purchase_request"]["delivery_status"] == "delivered"


def test_dispatch_requires_funding(client):
    pr = create_purchase_request(client, status="submitted")
    resp = client.post("/api/delivery", json={"purchase_request_id": pr["id"]})
    assert resp.status_code == 409


def test_deemed_delivery_job(app, client):
    from capital.service import build_orchestrator

    pr = create_purchase_request(client, status="submitted")
    fund(client, pr["id"])
    client.post("/api/delivery", json={"purchase_request_id": pr["id"], "dispute_window_hours": 24})

    row = db.session.get(PurchaseRequest, pr["id"])
    row.dispute_deadline = datetime.utcnow() - timedelta(minutes=5)
    db.session.commit()

    assert build_orchestrator().run_deemed_delivery() == [pr["id"]]
    refreshed = client.get(f"/api/purchase-requests/{pr['id']}").get_json()
    assert refreshed["delivery_status"] == "delivered"
    assert refreshed["deemed_delivery"] is True


def test_finance_overview(client):
    pr = create_purchase_request(client, status="submitted")
    fund(client, pr["id"])
    record(client, transaction_type="return", amount="400", purchase_request_id=pr["id"])

    data = client.get("/api/finance/overview").get_json()
    assert data["summary"]["total_requests"] == 1
    assert data["summary"]["total_funded"] == 1000.0
    assert data["summary"]["total_returns"] == 400.0
    assert data["summary"]["total_outstanding"] == 602.5
    project = data["projects"][0]
    assert project["project_name"] == "Riverside Tower"
    assert project["contractor_name"] == "Northwind Builders"
    investor = data["investors"][0]
    assert investor["investor_id"] == 1
    assert investor["total_deployed"] == 1000.0
    assert investor["total_returns"] == 400.0


def test_audit_log_endpoint(client):
    pr = create_purchase_request(client, status="submitted")
    put_action(client, pr["id"], "reject")
    logs = client.get(f"/api/audit/logs?table_name=purchase_requests&record_id={pr['id']}").get_json()
    assert [entry["action"] for entry in logs] == ["reject", "create"]


def test_committed_action_is_reported_when_enrichment_fails(client, monkeypatch):
    pr = create_purchase_request(client, status="submitted")

    def unavailable(self, request, snapshot=None):
        raise RuntimeError("fee terms unavailable")
    monkeypatch.setattr(FundingOrchestrator, "summarize", unavailable)

    resp = put_action(client, pr["id"], "reject", admin_notes="duplicate")
    assert resp.status_code == 200
    body = resp.get_json()["purchase_request"]
    assert body["status"] == "rejected"
    assert "funded_amount" not in body

    monkeypatch.undo()
    assert client.get(f"/api/purchase-requests/{pr['id']}").get_json()["status"] == "rejected"


def test_dispute_body_must_be_an_object(client):
    pr = create_purchase_request(client, status="submitted")
    fund(client, pr["id"])
    client.post("/api/delivery", json={"purchase_request_id": pr["id"]})
    resp = client.post(f"/api/delivery/{pr['id']}/dispute", json=["late"])
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "reason"

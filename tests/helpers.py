"""
helpers.py - HTTP shortcuts shared by the route tests
"""


def create_purchase_request(client, items=None, **extra):
    payload = {
        "contractor_id": 1,
        "project_id": 1,
        "items": items or [
            {"item_description": "TMT steel bars", "requested_qty": 10, "unit_rate": "100.00"},
        ],
    }
    payload.update(extra)
    resp = client.post("/api/purchase-requests", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["purchase_request"]


def record(client, **payload):
    payload.setdefault("description", "test movement")
    return client.post("/api/capital/transactions", json=payload)

# Overview: HTTP-level coverage for the JSON API.

from branchstock.services import stock_ledger


def test_health_and_version(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"

    response = client.get("/version")
    assert response.json["name"] == "branchstock"
    assert response.json["policies"]["sale_cancellation_mode"] == "purge"


def test_mutations_require_actor(client, db_session, branch_x, product):
    response = client.post("/api/stock/adjust", json={
        "branch_id": branch_x.id, "product_id": product.id, "quantity": 5,
    })
    assert response.status_code == 401

    response = client.post("/api/stock/adjust", headers={"X-Actor-Id": "abc"}, json={})
    assert response.status_code == 401


def test_adjust_and_read(client, db_session, branch_x, product, actor_headers):
    response = client.post("/api/stock/adjust", headers=actor_headers, json={
        "branch_id": branch_x.id, "product_id": product.id, "quantity": 8, "notes": "count",
    })
    assert response.status_code == 201
    assert response.json["quantity"] == 8
    assert response.json["movement"]["created_by"] == 7

    response = client.get(f"/api/stock/{branch_x.id}/{product.id}?qty=9")
    assert response.json["quantity"] == 8
    assert response.json["available"] is False

    response = client.post("/api/stock/adjust", headers=actor_headers, json={
        "branch_id": branch_x.id, "product_id": product.id, "quantity": -20,
    })
    assert response.status_code == 409
    assert response.json["code"] == "INSUFFICIENT_STOCK"
    assert response.json["details"]["available"] == 8

    response = client.post("/api/stock/adjust", headers=actor_headers, json={
        "branch_id": branch_x.id, "product_id": product.id, "quantity": 0,
    })
    assert response.status_code == 400
    assert response.json["code"] == "INVALID_QUANTITY"

    response = client.get(f"/api/stock/movements?branch_id={branch_x.id}")
    assert [m["quantity"] for m in response.json["items"]] == [8]

    response = client.get("/api/stock/verify")
    assert response.json["consistent"] is True


def test_min_stock_and_low(client, db_session, branch_x, product, seed_stock, actor_headers):
    seed_stock(branch_x, product, 4)
    assert len(client.get("/api/stock/low").json["items"]) == 1

    response = client.put(
        f"/api/stock/{branch_x.id}/{product.id}/min-stock", headers=actor_headers, json={"min_stock": 1}
    )
    assert response.status_code == 200
    assert client.get("/api/stock/low").json["items"] == []


def test_sale_lifecycle(client, db_session, branch_x, product, seed_stock, actor_headers):
    seed_stock(branch_x, product, 10)

    response = client.post("/api/sales", headers=actor_headers, json={
        "branch_id": branch_x.id,
        "items": [{"product_id": product.id, "quantity": 3}],
        "payment_method": "transfer",
    })
    assert response.status_code == 201
    sale = response.json
    assert sale["grand_total_cents"] == 450000
    assert sale["items"][0]["quantity"] == 3
    assert client.post("/api/sales", headers=actor_headers, json={
        "branch_id": branch_x.id,
        "items": [{"product_id": product.id, "quantity": 2}],
    }).status_code == 201

    response = client.post("/api/sales", headers=actor_headers, json={
        "branch_id": branch_x.id,
        "items": [{"product_id": product.id, "quantity": 30}],
    })
    assert response.status_code == 409

    assert client.get(f"/api/sales/{sale['id']}").status_code == 200
    response = client.delete(f"/api/sales/{sale['id']}", headers=actor_headers)
    assert response.status_code == 200
    assert client.get(f"/api/sales/{sale['id']}").status_code == 404
    assert stock_ledger.current_quantity(branch_x.id, product.id) == 8
    assert client.get("/api/stock/verify").json["consistent"] is True
    assert client.get("/api/stock/verify?check_chain=true").json["consistent"] is False


def test_transfer_flow(client, db_session, branch_x, branch_y, product, seed_stock, actor_headers):
    seed_stock(branch_x, product, 10)

    response = client.post("/api/transfers", headers=actor_headers, json={
        "from_branch_id": branch_x.id,
        "to_branch_id": branch_y.id,
        "items": [{"product_id": product.id, "quantity_requested": 6}],
    })
    assert response.status_code == 201
    transfer_id = response.json["id"]
    item_id = response.json["items"][0]["id"]

    response = client.post(f"/api/transfers/{transfer_id}/send", headers=actor_headers, json={})
    assert response.status_code == 409
    assert response.json["code"] == "INVALID_TRANSITION"

    assert client.post(f"/api/transfers/{transfer_id}/approve", headers=actor_headers).status_code == 200
    response = client.post(f"/api/transfers/{transfer_id}/reject", headers=actor_headers, json={"reason": "x"})
    assert response.status_code == 409

    response = client.post(
        f"/api/transfers/{transfer_id}/send", headers=actor_headers, json={"quantities": {str(item_id): 4}}
    )
    assert response.status_code == 200
    assert response.json["total_sent"] == 4

    response = client.post(f"/api/transfers/{transfer_id}/receive", headers=actor_headers, json={})
    assert response.status_code == 200
    assert response.json["status"] == "RECEIVED"
    assert stock_ledger.current_quantity(branch_y.id, product.id) == 4

    response = client.delete(f"/api/transfers/{transfer_id}", headers=actor_headers)
    assert response.status_code == 409

    assert client.get("/api/transfers?status=RECEIVED").json["items"][0]["id"] == transfer_id
    assert client.get("/api/transfers/999999").status_code == 404


def test_product_request_flow(client, db_session, branch_x, actor_headers):
    response = client.post("/api/product-requests", headers=actor_headers, json={
        "branch_id": branch_x.id, "sku": "SC-001", "name": "Scarf", "price_cents": 50000,
    })
    assert response.status_code == 201
    request_id = response.json["id"]

    response = client.post(f"/api/product-requests/{request_id}/approve", headers=actor_headers)
    assert response.status_code == 200
    assert response.json["product_id"] is not None

    response = client.post(f"/api/product-requests/{request_id}/reject", headers=actor_headers, json={"reason": "no"})
    assert response.status_code == 409

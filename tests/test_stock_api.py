"""API tests for the stock endpoints."""

import pytest

BASE = "/api/v1/stock"


def _submit(client, headers, setup, kind="IN", reason="PURCHASE", quantity=100, **extra):
    body = {
        "product_id": setup["widget"].id,
        "warehouse_id": setup["wh1"].id,
        "kind": kind,
        "reason": reason,
        "quantity": quantity,
        **extra,
    }
    return client.post(f"{BASE}/movements", json=body, headers=headers)


@pytest.fixture
def received(client, auth_headers, stock_setup):
    response = _submit(client, auth_headers, stock_setup)
    assert response.status_code == 201
    return stock_setup


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestMovementsApi:
    def test_submit_requires_auth(self, client, stock_setup):
        response = _submit(client, {}, stock_setup)
        assert response.status_code == 401

    def test_submit_applies_receipt(self, client, auth_headers, stock_setup):
        response = _submit(client, auth_headers, stock_setup, kind="in", reason="purchase")

        assert response.status_code == 201
        data = response.json()
        assert data["approval_state"] == "APPLIED"
        assert data["balance"]["quantity"] == 100
        assert data["balance"]["batch_number"] is None

    def test_insufficient_stock_is_409_with_context(self, client, auth_headers, received):
        response = _submit(client, auth_headers, received, kind="OUT", reason="SALE", quantity=150)

        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "INSUFFICIENT_STOCK"
        assert data["requested"] == 150
        assert data["available"] == 100

    def test_zero_quantity_is_422(self, client, auth_headers, stock_setup):
        response = _submit(client, auth_headers, stock_setup, quantity=0)
        assert response.status_code == 422

    def test_incompatible_reason_is_422(self, client, auth_headers, stock_setup):
        response = _submit(client, auth_headers, stock_setup, kind="IN", reason="SALE")
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_unknown_product_is_404(self, client, auth_headers, stock_setup):
        body = {"product_id": 9999, "warehouse_id": stock_setup["wh1"].id, "kind": "IN", "reason": "PURCHASE", "quantity": 1}
        response = client.post(f"{BASE}/movements", json=body, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_draft_and_approval(self, client, auth_headers, manager_headers, received):
        draft = _submit(client, auth_headers, received, kind="OUT", reason="SALE", quantity=10, is_approved=False)
        assert draft.status_code == 201
        movement_id = draft.json()["movement_id"]
        assert draft.json()["approval_state"] == "DRAFT"

        params = {"product_id": received["widget"].id, "warehouse_id": received["wh1"].id}
        assert client.get(f"{BASE}/balance", params=params).json()["quantity"] == 100

        forbidden = client.post(f"{BASE}/movements/{movement_id}/approve", headers=auth_headers)
        assert forbidden.status_code == 403

        approved = client.post(f"{BASE}/movements/{movement_id}/approve", headers=manager_headers)
        assert approved.status_code == 200
        assert approved.json()["balance"]["quantity"] == 90

        again = client.post(f"{BASE}/movements/{movement_id}/approve", headers=manager_headers)
        assert again.status_code == 409
        assert again.json()["code"] == "ALREADY_APPLIED"

    def test_list_movements(self, client, auth_headers, received):
        _submit(client, auth_headers, received, kind="OUT", reason="SALE", quantity=5, is_approved=False)

        response = client.get(f"{BASE}/movements")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["items"][0]["approval_state"] == "DRAFT"
        assert data["items"][0]["performed_by_name"] == "Sam Staff"

        drafts = client.get(f"{BASE}/movements", params={"approval_state": "draft"}).json()
        assert drafts["total"] == 1


class TestInventoryApi:
    def test_list_inventory(self, client, received):
        response = client.get(f"{BASE}/inventory")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["available"] == 100

    def test_low_stock_filter_and_reorder_point(self, client, auth_headers, received):
        assert client.get(f"{BASE}/inventory", params={"low_stock": True}).json()["total"] == 0

        body = {
            "product_id": received["widget"].id,
            "warehouse_id": received["wh1"].id,
            "reorder_point": 150,
            "min_stock": 20,
        }
        response = client.put(f"{BASE}/reorder-point", json=body, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["reorder_point"] == 150
        assert response.json()["min_stock"] == 20

        assert client.get(f"{BASE}/inventory", params={"low_stock": True}).json()["total"] == 1

    def test_balance_of_untouched_triple_is_404(self, client, stock_setup):
        params = {"product_id": stock_setup["widget"].id, "warehouse_id": stock_setup["wh2"].id}
        assert client.get(f"{BASE}/balance", params=params).status_code == 404

    def test_product_stock_totals(self, client, auth_headers, received):
        body = {
            "product_id": received["widget"].id,
            "from_warehouse_id": received["wh1"].id,
            "to_warehouse_id": received["wh2"].id,
            "quantity": 30,
        }
        client.post(f"{BASE}/transfers", json=body, headers=auth_headers)

        data = client.get(f"{BASE}/products/{received['widget'].id}").json()
        assert data["product_name"] == "Widget"
        assert data["total_quantity"] == 100
        assert len(data["records"]) == 2

    def test_replay_check(self, client, auth_headers, received):
        _submit(client, auth_headers, received, kind="OUT", reason="SALE", quantity=25)
        params = {"product_id": received["widget"].id, "warehouse_id": received["wh1"].id}

        data = client.get(f"{BASE}/replay", params=params).json()
        assert data["stored_quantity"] == 75
        assert data["replayed_quantity"] == 75
        assert data["movement_count"] == 2
        assert data["consistent"] is True


class TestTransfersApi:
    def test_transfer_and_lookup(self, client, auth_headers, received):
        body = {
            "product_id": received["widget"].id,
            "from_warehouse_id": received["wh1"].id,
            "to_warehouse_id": received["wh2"].id,
            "quantity": 40,
        }
        response = client.post(f"{BASE}/transfers", json=body, headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["source"]["quantity"] == 60
        assert data["destination"]["quantity"] == 40

        legs = client.get(f"{BASE}/transfers/{data['transfer_id']}").json()
        assert [m["kind"] for m in legs["movements"]] == ["TRANSFER_OUT", "TRANSFER_IN"]

    def test_same_warehouse_is_422(self, client, auth_headers, received):
        body = {
            "product_id": received["widget"].id,
            "from_warehouse_id": received["wh1"].id,
            "to_warehouse_id": received["wh1"].id,
            "quantity": 1,
        }
        response = client.post(f"{BASE}/transfers", json=body, headers=auth_headers)
        assert response.status_code == 422


class TestAlertsApi:
    def test_out_of_stock_alert(self, client, auth_headers, received):
        _submit(client, auth_headers, received, kind="OUT", reason="SALE", quantity=100)

        data = client.get(f"{BASE}/alerts").json()
        assert data["out_of_stock"] == 1
        assert data["alerts"][0]["alert_type"] == "OUT_OF_STOCK"
        assert data["alerts"][0]["severity"] == "critical"


class TestReservationsApi:
    def test_reserve_release_fulfil(self, client, auth_headers, received):
        body = {"product_id": received["widget"].id, "warehouse_id": received["wh1"].id, "quantity": 60}

        reserved = client.post(f"{BASE}/reservations/reserve", json=body, headers=auth_headers)
        assert reserved.status_code == 200
        assert reserved.json()["available"] == 40

        released = client.post(
            f"{BASE}/reservations/release", json={**body, "quantity": 10}, headers=auth_headers
        )
        assert released.json()["reserved"] == 50

        fulfilled = client.post(
            f"{BASE}/reservations/fulfil", json={**body, "quantity": 50, "reference": "ORDER-1"}, headers=auth_headers
        )
        assert fulfilled.status_code == 200
        balance = fulfilled.json()["balance"]
        assert (balance["quantity"], balance["reserved"], balance["available"]) == (50, 0, 50)

    def test_over_reserve_is_409(self, client, auth_headers, received):
        body = {"product_id": received["widget"].id, "warehouse_id": received["wh1"].id, "quantity": 101}
        response = client.post(f"{BASE}/reservations/reserve", json=body, headers=auth_headers)
        assert response.status_code == 409

    def test_reserve_unknown_product_is_404(self, client, auth_headers, received):
        body = {"product_id": 9999, "warehouse_id": received["wh1"].id, "quantity": 1}
        response = client.post(f"{BASE}/reservations/reserve", json=body, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

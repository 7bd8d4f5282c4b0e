"""Integration tests for payout and seller earnings endpoints."""

import pytest


@pytest.fixture()
def period_json(period):
    start, end = period
    return {"period_start": start.isoformat(), "period_end": end.isoformat()}


def _create(client, seller_id, period_json, **extra):
    return client.post("/payouts", json={"seller_id": seller_id, **period_json, **extra})


class TestPayoutEndpoints:
    def test_create_and_fetch(self, client, paid_order, make_item, period_json):
        order_id = paid_order(items=[make_item(seller_id="seller-pa1", price=100.0)])

        response = _create(client, "seller-pa1", period_json, seller_email="pa1@example.com")

        assert response.status_code == 201
        payout_id = response.json()["payout_id"]
        detail = client.get(f"/payouts/{payout_id}").json()
        assert detail["payout"]["gross_earnings"] == 100.0
        assert detail["payout"]["platform_fees"] == 10.0
        assert detail["payout"]["processing_fees"] == 3.0
        assert detail["payout"]["net_earnings"] == 87.0
        assert detail["payout"]["order_ids"] == [order_id]
        assert detail["orders"][0]["items"][0]["line_total"] == 100.0

    def test_nothing_to_pay(self, client, period_json):
        response = _create(client, "seller-empty", period_json)
        assert response.status_code == 400

    def test_second_batch_is_empty(self, client, paid_order, make_item, period_json):
        paid_order(items=[make_item(seller_id="seller-pa2")])
        assert _create(client, "seller-pa2", period_json).status_code == 201
        assert _create(client, "seller-pa2", period_json).status_code == 400

    def test_complete_payout(self, client, paid_order, make_item, period_json):
        order_id = paid_order(items=[make_item(seller_id="seller-pa3")])
        payout_id = _create(client, "seller-pa3", period_json).json()["payout_id"]

        response = client.patch(
            f"/payouts/{payout_id}",
            json={"status": "completed", "processed_by": "admin-api", "transaction_id": "UTR-API-1"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["transaction_id"] == "UTR-API-1"
        item = client.get(f"/orders/{order_id}").json()["items"][0]
        assert item["payout_status"] == "paid"

    def test_completed_payout_cannot_fail(self, client, paid_order, make_item, period_json):
        paid_order(items=[make_item(seller_id="seller-pa4")])
        payout_id = _create(client, "seller-pa4", period_json).json()["payout_id"]
        client.patch(f"/payouts/{payout_id}", json={"status": "completed"})

        response = client.patch(f"/payouts/{payout_id}", json={"status": "failed"})

        assert response.status_code == 400

    def test_list_with_filters(self, client, paid_order, make_item, period_json):
        paid_order(items=[make_item(seller_id="seller-pa5")])
        _create(client, "seller-pa5", period_json)

        response = client.get("/payouts", params={"seller_id": "seller-pa5", "status": "pending"})

        assert response.status_code == 200
        data = response.json()
        assert len(data["payouts"]) == 1
        assert data["summary"]["pending"]["count"] == 1

    def test_unknown_payout(self, client):
        assert client.get("/payouts/missing").status_code == 404

    def test_extra_fields_are_rejected(self, client, period_json):
        response = _create(client, "seller-pa6", period_json, net_earnings=1_000_000)
        assert response.status_code == 422


class TestSellerEarnings:
    def test_earnings(self, client, paid_order, make_item, period_json):
        paid_order(items=[make_item(seller_id="seller-pa7", price=100.0)])
        payout_id = _create(client, "seller-pa7", period_json).json()["payout_id"]
        client.patch(f"/payouts/{payout_id}", json={"status": "completed"})

        response = client.get("/sellers/seller-pa7/earnings")

        assert response.status_code == 200
        data = response.json()
        assert data["gross_sales"] == 100.0
        assert data["total_paid_out"] == 87.0
        assert data["pending_item_count"] == 0

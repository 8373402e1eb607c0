"""
Offline sync tests.

Verifies:
- Each record is classified independently (synced, duplicate, insufficient_stock, failed)
- A replayed client_txn_id never decrements stock twice
- Client-reported prices are kept and cross-checked against the total
- Conflict resolution (approve / reject / delete with stock restore)
"""

from smart_retail.extensions import db
from smart_retail.models import InventoryAdjustment, Sale, SaleLine

from conftest import set_stock, stock_of


def offline_sale(txn_id, branch_id, product_id, quantity=1, price_cents=20000, total_cents=None, **extra):
    record = {
        "client_txn_id": txn_id,
        "branch_id": branch_id,
        "items": [{"product_id": product_id, "quantity": quantity, "price_cents": price_cents}],
        "total_cents": price_cents * quantity if total_cents is None else total_cents,
        "created_at": "2026-03-01T09:30:00Z",
    }
    record.update(extra)
    return record


def sync(client, headers, *sales, client_id="till-01"):
    return client.post("/api/sync", json={"client_id": client_id, "sales": list(sales)}, headers=headers)


class TestSyncBatch:

    def test_records_sale_with_client_price(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 10)

        resp = sync(client, customer_headers, offline_sale("txn-1", branch.id, product.id, quantity=2))

        assert resp.status_code == 200
        result = resp.json["results"][0]
        assert result["status"] == "synced"
        assert resp.json["summary"]["synced"] == 1
        assert stock_of(branch.id, product.id) == 8

        sale = db.session.get(Sale, result["server_id"])
        assert sale.source == "offline"
        assert sale.client_id == "till-01"
        assert sale.total_cents == 40000
        assert sale.created_at.isoformat() == "2026-03-01T09:30:00"
        assert db.session.query(SaleLine).filter_by(sale_id=sale.id).one().unit_price_cents == 20000

    def test_duplicate_does_not_decrement_twice(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 10)
        record = offline_sale("txn-1", branch.id, product.id, quantity=3)
        first = sync(client, customer_headers, record).json["results"][0]

        resp = sync(client, customer_headers, record)

        result = resp.json["results"][0]
        assert result["status"] == "duplicate"
        assert result["server_id"] == first["server_id"]
        assert stock_of(branch.id, product.id) == 7
        assert db.session.query(Sale).count() == 1

    def test_duplicate_within_one_batch(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 10)
        record = offline_sale("txn-1", branch.id, product.id)

        resp = sync(client, customer_headers, record, record)

        assert [r["status"] for r in resp.json["results"]] == ["synced", "duplicate"]
        assert stock_of(branch.id, product.id) == 9

    def test_mixed_batch_is_isolated_per_record(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 5)

        resp = sync(
            client,
            customer_headers,
            offline_sale("txn-ok", branch.id, product.id, quantity=2),
            offline_sale("txn-short", branch.id, product.id, quantity=10),
            offline_sale("txn-bad-total", branch.id, product.id, quantity=1, total_cents=1),
            {"client_txn_id": "txn-malformed", "branch_id": branch.id},
            offline_sale("txn-ok-2", branch.id, product.id, quantity=3),
        )

        statuses = {r["client_txn_id"]: r["status"] for r in resp.json["results"]}
        assert statuses == {
            "txn-ok": "synced",
            "txn-short": "insufficient_stock",
            "txn-bad-total": "failed",
            "txn-malformed": "failed",
            "txn-ok-2": "synced",
        }
        assert resp.json["summary"] == {
            "total": 5, "synced": 2, "duplicate": 0, "insufficient_stock": 1, "failed": 2,
        }
        assert stock_of(branch.id, product.id) == 0
        assert db.session.query(Sale).count() == 2

    def test_insufficient_stock_reports_shortfall(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 1)

        resp = sync(client, customer_headers, offline_sale("txn-1", branch.id, product.id, quantity=4))

        result = resp.json["results"][0]
        assert result["status"] == "insufficient_stock"
        assert result["details"] == {"product_id": product.id, "available": 1, "requested": 4}
        assert stock_of(branch.id, product.id) == 1

    def test_total_mismatch_reports_both_totals(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 5)

        resp = sync(client, customer_headers, offline_sale("txn-1", branch.id, product.id, total_cents=999))

        result = resp.json["results"][0]
        assert result["status"] == "failed"
        assert result["details"] == {"reported_total_cents": 999, "computed_total_cents": 20000}
        assert stock_of(branch.id, product.id) == 5

    def test_payment_info_sets_status(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 5)

        resp = sync(
            client,
            customer_headers,
            offline_sale("txn-paid", branch.id, product.id, payment_info={
                "method": "mpesa", "reference": "QK9", "phone": "254712345678", "status": "completed",
            }),
            offline_sale("txn-pending", branch.id, product.id),
        )

        ids = {r["client_txn_id"]: r["server_id"] for r in resp.json["results"]}
        paid = db.session.get(Sale, ids["txn-paid"])
        assert paid.status == "paid"
        assert paid.payment_ref == "QK9"
        assert db.session.get(Sale, ids["txn-pending"]).status == "pending"

    def test_missing_txn_id_fails_record(self, client, customer_headers, branch, product):
        resp = sync(client, customer_headers, {"branch_id": branch.id})
        assert resp.json["results"][0]["status"] == "failed"

    def test_envelope_must_have_sales_list(self, client, customer_headers):
        resp = client.post("/api/sync", json={"client_id": "till-01"}, headers=customer_headers)
        assert resp.status_code == 400


class TestSyncStatus:

    def test_status_counts(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 5)
        sync(client, customer_headers, offline_sale("txn-1", branch.id, product.id))

        resp = client.get("/api/sync/status/till-01", headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json["total_synced"] == 1
        assert resp.json["pending"] == 1
        assert resp.json["last_sync_at"] is not None

    def test_pending_lists_offline_sales(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 5)
        sync(client, customer_headers, offline_sale("txn-1", branch.id, product.id))

        resp = client.get(f"/api/sync/pending?branch_id={branch.id}", headers=customer_headers)

        assert resp.json["count"] == 1
        assert resp.json["items"][0]["client_txn_id"] == "txn-1"


class TestResolveConflict:

    def _synced_sale(self, client, headers, branch, product, quantity=2):
        set_stock(branch.id, product.id, 10)
        return sync(client, headers, offline_sale("txn-1", branch.id, product.id, quantity=quantity)).json["results"][0]["server_id"]

    def test_approve(self, client, admin_headers, branch, product):
        sale_id = self._synced_sale(client, admin_headers, branch, product)

        resp = client.post(f"/api/sync/sales/{sale_id}/resolve", json={"action": "approve"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["sale"]["status"] == "paid"

    def test_reject(self, client, admin_headers, branch, product):
        sale_id = self._synced_sale(client, admin_headers, branch, product)

        resp = client.post(f"/api/sync/sales/{sale_id}/resolve", json={"action": "reject"}, headers=admin_headers)

        assert resp.json["sale"]["status"] == "failed"

    def test_delete_restores_stock(self, client, admin_headers, branch, product):
        sale_id = self._synced_sale(client, admin_headers, branch, product, quantity=4)
        assert stock_of(branch.id, product.id) == 6

        resp = client.post(f"/api/sync/sales/{sale_id}/resolve", json={"action": "delete"}, headers=admin_headers)

        assert resp.status_code == 200
        assert stock_of(branch.id, product.id) == 10
        assert db.session.query(Sale).filter_by(id=sale_id).count() == 0
        adjustment = db.session.query(InventoryAdjustment).filter_by(sale_id=sale_id).one()
        assert adjustment.reason == "sale_deleted"
        assert (adjustment.previous_quantity, adjustment.new_quantity) == (6, 10)

    def test_unknown_action_is_400(self, client, admin_headers, branch, product):
        sale_id = self._synced_sale(client, admin_headers, branch, product)
        resp = client.post(f"/api/sync/sales/{sale_id}/resolve", json={"action": "merge"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_customer_forbidden(self, client, customer_headers, branch, product):
        sale_id = self._synced_sale(client, customer_headers, branch, product)
        resp = client.post(f"/api/sync/sales/{sale_id}/resolve", json={"action": "approve"}, headers=customer_headers)
        assert resp.status_code == 403

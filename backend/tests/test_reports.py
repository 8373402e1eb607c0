"""
Reporting tests. Only paid sales count toward revenue.
"""

from datetime import timedelta

from smart_retail.extensions import db
from smart_retail.models import Product, Sale
from smart_retail.services import reporting_service
from smart_retail.time_utils import utcnow

from conftest import create_order, set_stock


def _paid_sale(client, headers, branch_id, product_id, quantity):
    sale_id = client.post(
        "/api/sales",
        json={"branch_id": branch_id, "items": [{"product_id": product_id, "quantity": quantity}]},
        headers=headers,
    ).json["sale"]["id"]
    client.patch(f"/api/sales/{sale_id}/status", json={"status": "paid"}, headers=headers)
    return sale_id


class TestSalesReports:

    def test_sales_report_counts_paid_only(self, client, admin_headers, branch, product):
        set_stock(branch.id, product.id, 20)
        _paid_sale(client, admin_headers, branch.id, product.id, 2)
        client.post(
            "/api/sales",
            json={"branch_id": branch.id, "items": [{"product_id": product.id, "quantity": 1}]},
            headers=admin_headers,
        )

        resp = client.get("/api/reports/sales", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["period"] == "week"
        assert resp.json["total_sales"] == 1
        assert resp.json["total_revenue_cents"] == 50000
        assert resp.json["brand_breakdown"] == [{
            "brand": "Tusker",
            "revenue_cents": 50000,
            "units_sold": 2,
            "sales_count": 1,
            "average_price_cents": 25000,
        }]

    def test_old_sales_fall_outside_period(self, client, admin_headers, branch, product):
        set_stock(branch.id, product.id, 20)
        sale_id = _paid_sale(client, admin_headers, branch.id, product.id, 1)
        sale = db.session.get(Sale, sale_id)
        sale.created_at = utcnow() - timedelta(days=10)
        db.session.commit()

        assert client.get("/api/reports/sales?period=week", headers=admin_headers).json["total_sales"] == 0
        assert client.get("/api/reports/sales?period=month", headers=admin_headers).json["total_sales"] == 1

    def test_invalid_period_is_400(self, client, admin_headers):
        resp = client.get("/api/reports/sales?period=decade", headers=admin_headers)
        assert resp.status_code == 400

    def test_branch_performance_top_products(self, client, admin_headers, branch, product):
        other = Product(name="Pilsner 500ml", brand="Pilsner", price_cents=20000)
        db.session.add(other)
        db.session.commit()
        set_stock(branch.id, product.id, 20)
        set_stock(branch.id, other.id, 20)
        _paid_sale(client, admin_headers, branch.id, product.id, 1)
        _paid_sale(client, admin_headers, branch.id, other.id, 3)

        resp = client.get("/api/reports/branches", headers=admin_headers)

        report = resp.json["branch_reports"][0]
        assert report["total_sales"] == 2
        assert report["total_revenue_cents"] == 85000
        assert [p["product_id"] for p in report["top_products"]] == [other.id, product.id]

    def test_revenue_average_and_empty(self, client, admin_headers, branch, product):
        empty = client.get("/api/reports/revenue", headers=admin_headers).json
        assert empty["average_sale_cents"] == 0
        assert empty["period"] == "month"

        set_stock(branch.id, product.id, 20)
        _paid_sale(client, admin_headers, branch.id, product.id, 1)
        _paid_sale(client, admin_headers, branch.id, product.id, 3)

        body = client.get("/api/reports/revenue", headers=admin_headers).json
        assert body["total_revenue_cents"] == 100000
        assert body["average_sale_cents"] == 50000
        assert body["top_brands"] == [{"brand": "Tusker", "revenue_cents": 100000}]

    def test_daily_trend(self, client, admin_headers, branch, product):
        set_stock(branch.id, product.id, 20)
        _paid_sale(client, admin_headers, branch.id, product.id, 2)

        body = client.get("/api/reports/daily-trend?days=7", headers=admin_headers).json

        assert body["period"] == "7 days"
        assert body["daily_sales"][0]["sales"] == 1
        assert body["daily_sales"][0]["revenue_cents"] == 50000
        assert client.get("/api/reports/daily-trend?days=0", headers=admin_headers).status_code == 400


class TestOtherReports:

    def test_low_stock_grouped_by_branch(self, client, admin_headers, hq, branch, product):
        set_stock(hq.id, product.id, 4)
        set_stock(branch.id, product.id, 50)

        body = client.get("/api/reports/low-stock", headers=admin_headers).json

        assert body["total_low_stock_items"] == 1
        assert body["branches"][0]["branch_id"] == hq.id
        assert body["branches"][0]["count"] == 1

    def test_order_report(self, client, customer_headers, admin_headers, branch, product):
        set_stock(branch.id, product.id, 20)
        first = create_order(client, customer_headers, branch.id, product.id).json["order"]["id"]
        second = create_order(client, customer_headers, branch.id, product.id).json["order"]["id"]
        create_order(client, customer_headers, branch.id, product.id)
        client.patch(f"/api/orders/{first}/status", json={"status": "completed"}, headers=admin_headers)
        client.patch(f"/api/orders/{second}/status", json={"status": "cancelled"}, headers=admin_headers)

        body = client.get("/api/reports/orders", headers=admin_headers).json

        assert body["total_orders"] == 3
        assert body["by_status"] == {"processing": 1, "completed": 1, "cancelled": 1}
        assert body["completed_revenue_cents"] == 50000

    def test_sales_report_branch_filter(self, db_session, branch, hq):
        report = reporting_service.sales_report(period="today", branch_id=hq.id)
        assert report["total_sales"] == 0
        assert report["brand_breakdown"] == []

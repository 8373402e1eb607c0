"""
Request parser tests. Nothing here touches the database.
"""

import pytest

from smart_retail.errors import ValidationError
from smart_retail.time_utils import parse_iso_datetime, period_start, to_utc_z
from smart_retail.validation import (
    normalize_phone,
    parse_bulk_restock,
    parse_create_sale,
    parse_status,
    parse_sync_record,
    parse_threshold,
)


class TestLineItems:

    def test_parses_sale(self):
        req = parse_create_sale({"branch_id": 1, "items": [{"product_id": 2, "quantity": 3}]})
        assert req.branch_id == 1
        assert req.items[0].quantity == 3
        assert req.items[0].price_cents is None

    @pytest.mark.parametrize("body", [
        None,
        [],
        {"items": [{"product_id": 1, "quantity": 1}]},
        {"branch_id": "1", "items": [{"product_id": 1, "quantity": 1}]},
        {"branch_id": True, "items": [{"product_id": 1, "quantity": 1}]},
        {"branch_id": 1, "items": []},
        {"branch_id": 1, "items": ["x"]},
        {"branch_id": 1, "items": [{"product_id": 1, "quantity": 0}]},
        {"branch_id": 1, "items": [{"product_id": 1, "quantity": 1.5}]},
        {"branch_id": 1, "items": [{"product_id": 1, "quantity": 1, "price_cents": -1}]},
    ])
    def test_rejects_bad_sale(self, body):
        with pytest.raises(ValidationError):
            parse_create_sale(body)

    def test_error_names_line_index(self):
        with pytest.raises(ValidationError) as exc:
            parse_create_sale({"branch_id": 1, "items": [
                {"product_id": 1, "quantity": 1},
                {"product_id": 1, "quantity": -2},
            ]})
        assert exc.value.details["index"] == 1

    def test_bulk_restock_items(self):
        req = parse_bulk_restock({"branch_id": 2, "items": [{"product_id": 1, "quantity": 4}]})
        assert req.items[0].quantity == 4


class TestSyncRecord:

    def test_requires_line_prices(self):
        with pytest.raises(ValidationError):
            parse_sync_record({
                "client_txn_id": "t1",
                "branch_id": 1,
                "items": [{"product_id": 1, "quantity": 1}],
                "total_cents": 100,
            })

    def test_parses_created_at_to_naive_utc(self):
        record = parse_sync_record({
            "client_txn_id": "t1",
            "branch_id": 1,
            "items": [{"product_id": 1, "quantity": 1, "price_cents": 100}],
            "total_cents": 100,
            "created_at": "2026-03-01T12:30:00+03:00",
        })
        assert record.created_at.isoformat() == "2026-03-01T09:30:00"

    def test_bad_created_at(self):
        with pytest.raises(ValidationError):
            parse_sync_record({
                "client_txn_id": "t1",
                "branch_id": 1,
                "items": [{"product_id": 1, "quantity": 1, "price_cents": 100}],
                "total_cents": 100,
                "created_at": "last tuesday",
            })


@pytest.mark.parametrize("raw,expected", [
    ("0712345678", "254712345678"),
    ("+254712345678", "254712345678"),
    ("254 712 345 678", "254712345678"),
    ("712345678", "254712345678"),
    ("0110123456", "254110123456"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "0812345678", "", 712345678])
def test_normalize_phone_rejects(raw):
    with pytest.raises(ValidationError):
        normalize_phone(raw)


def test_parse_status():
    assert parse_status({"status": "paid"}, ("paid", "failed")) == "paid"
    with pytest.raises(ValidationError):
        parse_status({"status": "refunded"}, ("paid", "failed"))


@pytest.mark.parametrize("raw,expected", [(None, 10), ("5", 5), ("0", 10), ("-3", 10), ("abc", 10)])
def test_parse_threshold(raw, expected):
    assert parse_threshold(raw, 10) == expected


def test_time_helpers():
    now = parse_iso_datetime("2026-05-20T15:45:00Z")
    assert to_utc_z(now) == "2026-05-20T15:45:00Z"
    assert period_start("today", now).isoformat() == "2026-05-20T00:00:00"
    assert (now - period_start("week", now)).days == 7
    assert (now - period_start("month", now)).days == 30
    assert (now - period_start("year", now)).days == 365

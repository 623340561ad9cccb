"""API tests for stock counts, movements and stock balances."""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.models.stock import Stock


API = "/api/v1"


@pytest.fixture
def draft(client, count_setup, accountant_headers):
    """A draft count at KHO-01 created over HTTP."""
    response = client.post(
        f"{API}/stock-counts",
        json={"location_id": count_setup["location"].id, "reference_code": "CNT-API-1"},
        headers=accountant_headers,
    )
    assert response.status_code == 201
    return response.json()


class TestAccessControl:
    """Role gate in front of every endpoint."""

    def test_requires_token(self, client):
        response = client.get(f"{API}/stock-counts")
        assert response.status_code == 401

    def test_rejects_garbage_token(self, client):
        response = client.get(f"{API}/stock-counts", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_staff_can_read(self, client, staff_headers):
        response = client.get(f"{API}/stock-counts", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_staff_cannot_write(self, client, count_setup, staff_headers):
        response = client.post(
            f"{API}/stock-counts",
            json={"location_id": count_setup["location"].id},
            headers=staff_headers,
        )
        assert response.status_code == 403

    def test_staff_cannot_post(self, client, draft, staff_headers):
        response = client.post(f"{API}/stock-counts/{draft['id']}/post", headers=staff_headers)
        assert response.status_code == 403

    def test_admin_can_write(self, client, count_setup, admin_headers):
        response = client.post(
            f"{API}/stock-counts",
            json={"location_id": count_setup["location"].id, "reference_code": "CNT-ADM"},
            headers=admin_headers,
        )
        assert response.status_code == 201


class TestStockCountFlow:
    def test_create_returns_lines(self, draft, count_setup):
        assert draft["status"] == "draft"
        assert draft["reference_code"] == "CNT-API-1"
        assert [line["item_id"] for line in draft["lines"]] == [count_setup["item_a"].id]
        assert draft["lines"][0]["counted_qty"] == "0"
        assert draft["created_by"] == 2

    def test_count_and_post(self, client, draft, count_setup, accountant_headers, staff_headers):
        line_id = draft["lines"][0]["id"]

        response = client.put(
            f"{API}/stock-counts/lines/{line_id}",
            json={"counted_qty": "8"},
            headers=accountant_headers,
        )
        assert response.status_code == 200
        assert response.json()["counted_qty"] == "8"

        response = client.get(f"{API}/stock-counts/{draft['id']}", headers=staff_headers)
        assert response.status_code == 200
        detail = response.json()
        assert detail["variance_count"] == 1
        assert detail["lines"][0]["book_qty"] == "10"
        assert detail["lines"][0]["diff"] == "-2"

        response = client.post(f"{API}/stock-counts/{draft['id']}/post", headers=accountant_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["stock_count"]["status"] == "posted"
        assert body["movement"]["type"] == "ADJUST"
        assert body["movement"]["reference_code"] == "ADJ-CNT-API-1"
        assert body["movement"]["lines"][0]["qty"] == "2"
        assert body["movement"]["lines"][0]["from_location_id"] == count_setup["location"].id
        assert body["movement"]["lines"][0]["to_location_id"] is None
        assert body["adjustments"] == [
            {"item_id": count_setup["item_a"].id, "book_qty": "10", "counted_qty": "8", "diff": "-2"}
        ]

        stock = count_setup["db"].query(Stock).filter(Stock.item_id == count_setup["item_a"].id).one()
        count_setup["db"].refresh(stock)
        assert str(stock.qty.normalize()) == "8"

    def test_post_accepts_movement_overrides(self, client, draft, accountant_headers):
        response = client.post(
            f"{API}/stock-counts/{draft['id']}/post",
            json={"movement_reference_code": "ADJ-X", "movement_note": "Recount"},
            headers=accountant_headers,
        )
        assert response.status_code == 200
        assert response.json()["movement"]["reference_code"] == "ADJ-X"
        assert response.json()["movement"]["note"] == "Recount"

    def test_zero_diff_post_has_no_movement(self, client, draft, accountant_headers):
        client.put(
            f"{API}/stock-counts/lines/{draft['lines'][0]['id']}",
            json={"counted_qty": 10},
            headers=accountant_headers,
        )
        response = client.post(f"{API}/stock-counts/{draft['id']}/post", headers=accountant_headers)
        assert response.status_code == 200
        assert response.json()["movement"] is None
        assert response.json()["adjustments"] == []

    def test_list_counts(self, client, draft, staff_headers):
        response = client.get(f"{API}/stock-counts?status=draft", headers=staff_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["has_more"] is False
        assert body["items"][0]["id"] == draft["id"]

        response = client.get(f"{API}/stock-counts?status=posted", headers=staff_headers)
        assert response.json()["total"] == 0

    def test_delete_draft(self, client, draft, accountant_headers, staff_headers):
        response = client.delete(f"{API}/stock-counts/{draft['id']}", headers=accountant_headers)
        assert response.status_code == 200
        assert response.json() == {"deleted": True, "id": draft["id"]}

        response = client.get(f"{API}/stock-counts/{draft['id']}", headers=staff_headers)
        assert response.status_code == 404


class TestErrorMapping:
    """Ledger errors surface with their status code and class name."""

    def test_not_found(self, client, staff_headers):
        response = client.get(f"{API}/stock-counts/9999", headers=staff_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "StockCountNotFound"

    def test_unknown_location(self, client, accountant_headers):
        response = client.post(
            f"{API}/stock-counts", json={"location_id": 9999}, headers=accountant_headers
        )
        assert response.status_code == 404
        assert response.json()["error"] == "LocationNotFound"

    def test_duplicate_reference(self, client, draft, count_setup, accountant_headers):
        response = client.post(
            f"{API}/stock-counts",
            json={"location_id": count_setup["location"].id, "reference_code": "CNT-API-1"},
            headers=accountant_headers,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateReference"

    def test_invalid_quantity(self, client, draft, accountant_headers):
        response = client.put(
            f"{API}/stock-counts/lines/{draft['lines'][0]['id']}",
            json={"counted_qty": "eight"},
            headers=accountant_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidQuantity"

    def test_negative_quantity(self, client, draft, accountant_headers):
        response = client.put(
            f"{API}/stock-counts/lines/{draft['lines'][0]['id']}",
            json={"counted_qty": -1},
            headers=accountant_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidQuantity"

    def test_already_posted(self, client, draft, accountant_headers):
        client.post(f"{API}/stock-counts/{draft['id']}/post", headers=accountant_headers)

        response = client.post(f"{API}/stock-counts/{draft['id']}/post", headers=accountant_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "AlreadyPosted"

        response = client.put(
            f"{API}/stock-counts/lines/{draft['lines'][0]['id']}",
            json={"counted_qty": "1"},
            headers=accountant_headers,
        )
        assert response.status_code == 409

        response = client.delete(f"{API}/stock-counts/{draft['id']}", headers=accountant_headers)
        assert response.status_code == 409


class TestMovementsAndStocks:
    def test_movements(self, client, count_setup, staff_headers):
        response = client.get(f"{API}/movements", headers=staff_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        movement = body["items"][0]
        assert movement["type"] == "IN"
        assert movement["lines"][0]["qty"] == "10"

        response = client.get(f"{API}/movements/{movement['id']}", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["reference_code"] == movement["reference_code"]

        response = client.get(f"{API}/movements?type=ADJUST", headers=staff_headers)
        assert response.json()["total"] == 0

        response = client.get(f"{API}/movements/9999", headers=staff_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "MovementNotFound"

    def test_stocks(self, client, count_setup, staff_headers):
        response = client.get(f"{API}/stocks", headers=staff_headers)
        assert response.status_code == 200
        rows = response.json()["items"]
        assert [(row["sku"], row["qty"]) for row in rows] == [("A-001", "10")]

        response = client.get(f"{API}/stocks/summary-by-item", headers=staff_headers)
        assert response.status_code == 200
        totals = {row["sku"]: row["total_qty"] for row in response.json()["items"]}
        assert totals == {"A-001": "10", "B-001": "0"}

    def test_audit_and_rebuild(self, client, count_setup, staff_headers, accountant_headers):
        response = client.get(f"{API}/stocks/audit", headers=staff_headers)
        assert response.status_code == 200
        assert response.json() == {"consistent": True, "discrepancies": []}

        db = count_setup["db"]
        stock = db.query(Stock).one()
        stock.qty = 3
        db.commit()

        body = client.get(f"{API}/stocks/audit", headers=staff_headers).json()
        assert body["consistent"] is False
        assert body["discrepancies"][0]["difference"] == "-7"

        response = client.post(f"{API}/stocks/rebuild", headers=staff_headers)
        assert response.status_code == 403

        response = client.post(f"{API}/stocks/rebuild", headers=accountant_headers)
        assert response.status_code == 200
        assert len(response.json()["discrepancies"]) == 1

        body = client.get(f"{API}/stocks/audit", headers=staff_headers).json()
        assert body["consistent"] is True


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_health_reports_unreachable_database(client, monkeypatch, caplog):
    class BrokenSession:
        def execute(self, statement):
            raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

        def close(self):
            pass

    monkeypatch.setattr("stockledger.main.SessionLocal", BrokenSession)
    with caplog.at_level(logging.ERROR, logger="stockledger.main"):
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == "unhealthy"
    assert any(
        record.msg == "Database health check failed: %s"
        and "unable to open database file" in record.getMessage()
        for record in caplog.records
    )

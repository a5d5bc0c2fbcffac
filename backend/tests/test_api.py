"""
Test degli endpoint HTTP: flusso completo fattura, preventivi,
movimenti e formato delle risposte di errore.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import get_db
from app.main import app


@pytest.fixture
async def client(session_factory):
    """Client HTTP sull'app con il database di test."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def customer_id(client) -> str:
    response = await client.post(
        "/api/v1/customers/",
        json={"name": "Erika Musterfrau", "email": "erika@musterfrau.de"},
    )
    assert response.status_code == 201
    return response.json()["id"]


INVOICE_ITEMS = [
    {"description": "Consulting", "quantity": 2, "unit": "Stunde", "unit_price": 100.0, "vat_rate": 19}
]


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestCustomersApi:

    async def test_create_assigns_number(self, client, customer_id):
        response = await client.get(f"/api/v1/customers/{customer_id}")

        assert response.status_code == 200
        assert response.json()["customer_number"].endswith("-001")

    async def test_not_found_shape(self, client):
        response = await client.get("/api/v1/customers/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "RESOURCE_NOT_FOUND"
        assert "detail" in body


class TestInvoiceFlow:
    """Bozza, invio, modifica rifiutata e storno."""

    async def test_full_flow(self, client, customer_id):
        response = await client.post(
            "/api/v1/invoices/",
            json={"customer_id": customer_id, "items": INVOICE_ITEMS},
        )
        assert response.status_code == 201
        invoice = response.json()
        assert invoice["subtotal"] == pytest.approx(200.0)
        assert invoice["total_vat"] == pytest.approx(38.0)
        assert invoice["total_gross"] == pytest.approx(238.0)
        assert invoice["status"] == "draft"

        response = await client.post(f"/api/v1/invoices/{invoice['id']}/send")
        assert response.status_code == 200
        assert response.json()["is_locked"] is True

        response = await client.patch(
            f"/api/v1/invoices/{invoice['id']}",
            json={"items": [{"description": "Consulting", "quantity": 3, "unit_price": 100.0}]},
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVOICE_LOCKED"

        response = await client.post(
            f"/api/v1/invoices/{invoice['id']}/cancel",
            json={"reason": "client cancelled"},
        )
        assert response.status_code == 201
        cancellation = response.json()
        assert cancellation["total_gross"] == pytest.approx(-238.0)
        assert cancellation["correction_type"] == "cancellation"
        assert cancellation["corrects_id"] == invoice["id"]

        response = await client.get(f"/api/v1/invoices/{invoice['id']}")
        original = response.json()
        assert original["is_cancelled"] is True
        assert original["corrected_by_id"] == cancellation["id"]

        response = await client.get(f"/api/v1/invoices/{invoice['id']}/corrections")
        assert [d["id"] for d in response.json()] == [cancellation["id"]]

    async def test_second_cancel_is_rejected(self, client, customer_id):
        invoice = (await client.post(
            "/api/v1/invoices/", json={"customer_id": customer_id, "items": INVOICE_ITEMS}
        )).json()
        await client.post(f"/api/v1/invoices/{invoice['id']}/send")
        await client.post(f"/api/v1/invoices/{invoice['id']}/cancel", json={"reason": "Fehler"})

        response = await client.post(f"/api/v1/invoices/{invoice['id']}/cancel", json={"reason": "Fehler"})

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVOICE_ALREADY_CANCELLED"

    async def test_pay_without_body(self, client, customer_id):
        invoice = (await client.post(
            "/api/v1/invoices/", json={"customer_id": customer_id, "items": INVOICE_ITEMS}
        )).json()
        await client.post(f"/api/v1/invoices/{invoice['id']}/send")

        response = await client.post(f"/api/v1/invoices/{invoice['id']}/pay")

        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        assert response.json()["paid_amount"] == pytest.approx(238.0)

    async def test_revenue_report(self, client, customer_id):
        invoice = (await client.post(
            "/api/v1/invoices/", json={"customer_id": customer_id, "items": INVOICE_ITEMS}
        )).json()
        await client.post(f"/api/v1/invoices/{invoice['id']}/send")

        response = await client.get("/api/v1/reports/revenue")

        assert response.status_code == 200
        assert response.json()["total_open"] == pytest.approx(238.0)

    @pytest.mark.parametrize("field", ["invoice_date", "due_date", "customer_id"])
    async def test_null_header_field_rejected(self, client, customer_id, field):
        invoice = (await client.post(
            "/api/v1/invoices/", json={"customer_id": customer_id, "items": INVOICE_ITEMS}
        )).json()

        response = await client.patch(f"/api/v1/invoices/{invoice['id']}", json={field: None})

        assert response.status_code == 422
        unchanged = (await client.get(f"/api/v1/invoices/{invoice['id']}")).json()
        assert unchanged[field] == invoice[field]


class TestReportsApi:

    async def test_vat_summary(self, client):
        account = (await client.post("/api/v1/bank-accounts/", json={"name": "Geschäftskonto"})).json()
        await client.post(
            "/api/v1/transactions/",
            json={
                "bank_account_id": account["id"],
                "date": "2026-03-05",
                "amount": -119.0,
                "description": "Druckerpapier",
                "vat_rate": 19,
            },
        )

        response = await client.get(
            "/api/v1/reports/vat", params={"from_date": "2026-03-01", "to_date": "2026-03-31"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_expense"] == pytest.approx(119.0)
        assert body["vat_payable"] == pytest.approx(-19.0)
        assert body["vat_by_rate"][0]["net_amount"] == pytest.approx(-100.0)

    async def test_vat_summary_requires_period(self, client):
        response = await client.get("/api/v1/reports/vat", params={"from_date": "2026-03-01"})
        assert response.status_code == 422

    async def test_inverted_period(self, client):
        response = await client.get(
            "/api/v1/reports/vat", params={"from_date": "2026-03-31", "to_date": "2026-03-01"}
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "BUSINESS_VALIDATION_ERROR"

    @pytest.mark.parametrize("month", ["2026-13", "März"])
    async def test_dashboard_rejects_bad_month(self, client, month):
        response = await client.get("/api/v1/reports/dashboard", params={"month": month})
        assert response.status_code == 422

    async def test_dashboard_current_month(self, client):
        response = await client.get("/api/v1/reports/dashboard")

        assert response.status_code == 200
        assert response.json()["transaction_count"] == 0


class TestQuotesApi:

    async def test_double_convert_returns_existing_invoice(self, client, customer_id):
        quote = (await client.post(
            "/api/v1/quotes/", json={"customer_id": customer_id, "items": INVOICE_ITEMS}
        )).json()

        first = await client.post(f"/api/v1/quotes/{quote['id']}/convert")
        second = await client.post(f"/api/v1/quotes/{quote['id']}/convert")

        assert first.status_code == 201
        assert second.status_code == 409
        body = second.json()
        assert body["error_code"] == "QUOTE_ALREADY_CONVERTED"
        assert body["extra"]["invoice_id"] == first.json()["id"]
        assert body["extra"]["invoice_number"] == first.json()["invoice_number"]

        response = await client.get(f"/api/v1/quotes/{quote['id']}")
        assert response.json()["invoice_id"] == first.json()["id"]
        assert response.json()["status"] == "accepted"

    @pytest.mark.parametrize("field", ["quote_date", "valid_until", "customer_id"])
    async def test_null_header_field_rejected(self, client, customer_id, field):
        quote = (await client.post(
            "/api/v1/quotes/", json={"customer_id": customer_id, "items": INVOICE_ITEMS}
        )).json()

        response = await client.patch(f"/api/v1/quotes/{quote['id']}", json={field: None})

        assert response.status_code == 422
        unchanged = (await client.get(f"/api/v1/quotes/{quote['id']}")).json()
        assert unchanged[field] == quote[field]


class TestTransactionsApi:

    async def test_upload_twice(self, client):
        content = (
            "Booking Date,Description,Amount\n"
            "2026-03-15,Office Supplies,-89.99\n"
            "2026-03-16,Software,-19.99\n"
        ).encode("utf-8")

        first = await client.post(
            "/api/v1/transactions/upload",
            files={"file": ("maerz.csv", content, "text/csv")},
        )
        second = await client.post(
            "/api/v1/transactions/upload",
            files={"file": ("maerz.csv", content, "text/csv")},
        )

        assert first.status_code == 201
        assert first.json()["imported"] == 2
        assert second.json()["imported"] == 0
        assert second.json()["duplicates"] == 2

    async def test_upload_rejects_other_files(self, client):
        response = await client.post(
            "/api/v1/transactions/upload",
            files={"file": ("maerz.txt", b"irrelevant", "text/plain")},
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "BUSINESS_VALIDATION_ERROR"

    async def test_check_duplicates_and_deduplicate(self, client):
        account = (await client.post("/api/v1/bank-accounts/", json={"name": "Geschäftskonto"})).json()
        record = {"external_id": "tx-1", "date": "2026-03-15", "amount": -10.0, "description": "A"}
        response = await client.post(
            "/api/v1/transactions/import",
            json={"bank_account_id": account["id"], "transactions": [record]},
        )
        assert response.json()["imported"] == 1

        response = await client.post(
            "/api/v1/transactions/check-duplicates",
            json={
                "bank_account_id": account["id"],
                "candidates": [record, {**record, "external_id": "tx-2", "description": "B"}],
            },
        )
        assert response.json() == {"duplicates": {"0": True, "1": False}, "duplicate_count": 1}

        response = await client.delete("/api/v1/transactions/deduplicate")
        assert response.status_code == 200
        assert response.json()["deleted"] == 0


class TestSequencesApi:

    async def test_issue_and_current(self, client):
        issued = await client.post("/api/v1/sequences/customer/issue")
        current = await client.get("/api/v1/sequences/customer")

        assert issued.status_code == 201
        assert issued.json()["number"].endswith("-001")
        assert current.json()["last_number"] == 1

    async def test_unknown_type(self, client):
        response = await client.get("/api/v1/sequences/lieferschein")
        assert response.status_code == 422


class TestSettingsApi:

    async def test_public_settings(self, client):
        response = await client.get("/api/v1/settings/")

        assert response.status_code == 200
        body = response.json()
        assert body["documents"]["invoice_payment_days"] == 14
        assert body["numbering"]["customer_prefix"] == "KD"
        assert "database_url" not in str(body)

    async def test_settings_are_read_only(self, client):
        response = await client.patch("/api/v1/settings/", json={"company_name": "Neu GmbH"})

        assert response.status_code == 405
        assert (await client.get("/api/v1/settings/")).json()["company"]["name"] != "Neu GmbH"

"""
Tests for invoice and student API endpoints.

These test the HTTP layer: status codes, response format and
error mapping. Business rules are tested in tests/services.
"""


def create_students(client, *numbers):
    ids = []
    for number in numbers:
        response = client.post("/students", json={
            "student_number": number,
            "first_name": "Test",
            "last_name": number,
        })
        assert response.status_code == 201
        ids.append(response.json()["id"])
    return ids


class TestStudents:

    def test_duplicate_student_number_returns_400(self, client):
        create_students(client, "STU001")
        response = client.post("/students", json={
            "student_number": "STU001",
            "first_name": "Again",
            "last_name": "Again",
        })
        assert response.status_code == 400

    def test_get_unknown_student_returns_404(self, client):
        assert client.get("/students/999").status_code == 404


class TestGenerate:

    def test_generate_twice(self, client):
        create_students(client, "STU001", "STU002")
        body = {"month": 3, "year": 2025, "amount_due": "450.00"}

        first = client.post("/invoices/generate", json=body)
        second = client.post("/invoices/generate", json=body)

        assert first.status_code == 201
        assert first.json() == {"created_count": 2, "skipped_count": 0}
        assert second.json() == {"created_count": 0, "skipped_count": 2}

    def test_amount_too_large_for_storage_returns_422(self, client):
        response = client.post("/invoices/generate", json={
            "month": 3, "year": 2025, "amount_due": "10000000000.00",
        })
        assert response.status_code == 422

    def test_invalid_month_returns_422(self, client):
        response = client.post("/invoices/generate", json={
            "month": 13, "year": 2025, "amount_due": "450.00",
        })
        assert response.status_code == 422


class TestListAndGet:

    def test_list_returns_invoices_summary_pagination(self, client):
        create_students(client, "STU001", "STU002", "STU003")
        client.post("/invoices/generate", json={
            "month": 3, "year": 2025, "amount_due": "100.00",
        })

        response = client.get("/invoices", params={"limit": 2, "status": "Unpaid"})
        data = response.json()

        assert response.status_code == 200
        assert len(data["invoices"]) == 2
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["total_pages"] == 2
        assert data["summary"]["unpaid_count"] == 3
        assert float(data["summary"]["total_amount_due"]) == 300.0

    def test_get_invoice(self, client):
        create_students(client, "STU001")
        client.post("/invoices/generate", json={
            "month": 3, "year": 2025, "amount_due": "100.00",
        })
        invoice_id = client.get("/invoices").json()["invoices"][0]["id"]

        response = client.get(f"/invoices/{invoice_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "Unpaid"

    def test_unknown_invoice_returns_404(self, client):
        response = client.get("/invoices/999")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "INVOICE_NOT_FOUND"


class TestExportAndAdmin:

    def test_export_csv(self, client):
        create_students(client, "STU001")
        client.post("/invoices/generate", json={
            "month": 3, "year": 2025, "amount_due": "100.00",
        })

        response = client.get("/invoices/export/csv", params={"month": 3, "year": 2025})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Reference Number,")
        assert lines[1].startswith("STU001,STU001,")

    def test_integrity_is_empty_for_consistent_ledger(self, client):
        create_students(client, "STU001")
        client.post("/invoices/generate", json={
            "month": 3, "year": 2025, "amount_due": "100.00",
        })
        response = client.get("/invoices/integrity")
        assert response.status_code == 200
        assert response.json() == []

    def test_rebuild_unknown_invoice_returns_404(self, client):
        assert client.post("/invoices/999/rebuild").status_code == 404

    def test_clear_all(self, client):
        create_students(client, "STU001", "STU002")
        client.post("/invoices/generate", json={
            "month": 3, "year": 2025, "amount_due": "100.00",
        })

        response = client.delete("/invoices")

        assert response.status_code == 200
        assert response.json()["deleted_invoices"] == 2
        assert client.get("/invoices").json()["pagination"]["total"] == 0

"""
Backend API Tests for the Biodata Service
Testing: create, status polling, webhook confirmation, client verification,
download gate, ownership isolation and the template catalogue.

Runs the app in-process against the in-memory store.
"""
import json

import pytest
from PIL import Image

from fakes import OWNER, OTHER_OWNER, WEBHOOK_HEADERS, auth_headers, webhook_payload

CREATE_BODY = {"template_id": "eg1", "form_data": {"name": "X"}, "channel": "ANDROID"}


async def create_record(client, body=None, user_id=OWNER):
    response = await client.post("/api/biodata/create", json=body or CREATE_BODY, headers=auth_headers(user_id))
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:

    async def test_health(self, api_client):
        response = await api_client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestEndToEnd:
    """create -> webhook -> status -> download"""

    async def test_webhook_purchase_flow(self, api_client, store):
        created = await create_record(api_client)
        record_id = created["id"]
        assert created["app_user_id"] == f"{OWNER}_{record_id}"

        response = await api_client.get(f"/api/biodata/{record_id}/status", headers=auth_headers())
        assert response.json() == {"payment_status": "INITIATED", "pdf_ready": False, "transaction_id": None}

        response = await api_client.post(
            "/api/webhook/revenuecat",
            content=json.dumps(webhook_payload(created["app_user_id"], "t1")),
            headers={**WEBHOOK_HEADERS, "Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "processed"

        response = await api_client.get(f"/api/biodata/{record_id}/status", headers=auth_headers())
        assert response.json() == {"payment_status": "SUCCESS", "pdf_ready": True, "transaction_id": "t1"}

        response = await api_client.get(f"/api/biodata/{record_id}/download", headers=auth_headers())
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == f"attachment; filename=biodata-{record_id}.pdf"
        assert response.content.startswith(b"%PDF")
        assert (await store.find_by_id(record_id))["pdf_generated"] is True

    async def test_client_verification_flow(self, api_client, revenuecat_api):
        created = await create_record(api_client)
        revenuecat_api.purchases.add("GPA.42")

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "GPA.42", "product_id": "eg1"},
            headers=auth_headers()
        )
        assert response.status_code == 200, response.text
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

        response = await api_client.get(f"/api/biodata/{created['id']}/status", headers=auth_headers())
        assert response.json()["payment_status"] == "SUCCESS"

    async def test_client_verification_after_webhook(self, api_client, revenuecat_api):
        created = await create_record(api_client)
        await api_client.post(
            "/api/webhook/revenuecat",
            content=json.dumps(webhook_payload(created["app_user_id"], "t1")),
            headers=WEBHOOK_HEADERS
        )

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "t1"},
            headers=auth_headers()
        )
        assert response.status_code == 200
        assert revenuecat_api.requests == []


class TestCreate:

    async def test_requires_auth(self, api_client):
        response = await api_client.post("/api/biodata/create", json=CREATE_BODY)
        assert response.status_code == 401

    async def test_rejects_bad_token(self, api_client):
        response = await api_client.post(
            "/api/biodata/create", json=CREATE_BODY, headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    @pytest.mark.parametrize("override,detail", [
        ({"form_data": {}}, "Form data is required"),
        ({"form_data": None}, "Form data is required"),
        ({"template_id": None}, "Template ID is required"),
        ({"channel": "FAX"}, "Invalid channel"),
        ({"channel": None}, "Invalid channel"),
        ({"template_id": "eg99"}, "Invalid template_id"),
        ({"currency": "EUR"}, "Invalid currency"),
    ])
    async def test_validation(self, api_client, store, override, detail):
        response = await api_client.post(
            "/api/biodata/create", json={**CREATE_BODY, **override}, headers=auth_headers()
        )
        assert response.status_code == 400
        assert detail in response.json()["detail"]
        assert store.records == {}

    async def test_stores_request_metadata(self, api_client, store, audit):
        created = await create_record(api_client, {**CREATE_BODY, "amount": 99, "currency": "INR"})

        record = await store.find_by_id(created["id"])
        assert record["user_id"] == OWNER
        assert record["channel"] == "ANDROID"
        assert record["amount"] == 99
        assert record["payment_status"] == "INITIATED"
        assert record["app_user_id"] == created["app_user_id"]
        assert "user_agent" in record
        assert audit.actions(created["id"]) == ["CREATE"]


class TestOwnership:

    async def test_other_owner_gets_404(self, api_client):
        created = await create_record(api_client)
        headers = auth_headers(OTHER_OWNER)

        for path in ("", "/status", "/download"):
            response = await api_client.get(f"/api/biodata/{created['id']}{path}", headers=headers)
            assert response.status_code == 404, path

    async def test_other_owner_cannot_confirm(self, api_client, revenuecat_api):
        created = await create_record(api_client)
        revenuecat_api.purchases.add("GPA.42")

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "GPA.42"},
            headers=auth_headers(OTHER_OWNER)
        )
        assert response.status_code == 404

    async def test_list_only_returns_own_records(self, api_client):
        first = await create_record(api_client)
        second = await create_record(api_client, {**CREATE_BODY, "template_id": "eg2"})
        await create_record(api_client, user_id=OTHER_OWNER)

        response = await api_client.get("/api/biodata", headers=auth_headers())
        assert response.status_code == 200
        ids = [r["id"] for r in response.json()]
        assert set(ids) == {first["id"], second["id"]}

    async def test_get_single_record(self, api_client):
        created = await create_record(api_client)

        response = await api_client.get(f"/api/biodata/{created['id']}", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()
        assert data["template_id"] == "eg1"
        assert data["form_data"] == {"name": "X"}
        assert data["payment_status"] == "INITIATED"

    async def test_malformed_id(self, api_client):
        response = await api_client.get("/api/biodata/not-an-id", headers=auth_headers())
        assert response.status_code == 400


class TestDownloadGate:

    async def test_unpaid_download_is_forbidden(self, api_client):
        created = await create_record(api_client)

        response = await api_client.get(f"/api/biodata/{created['id']}/download", headers=auth_headers())
        assert response.status_code == 403


class TestUpdatePayment:

    @pytest.mark.parametrize("body", [{"transaction_id": "t1"}, {"id": "65f0c0ffee65f0c0ffee65f0"}])
    async def test_missing_fields(self, api_client, body):
        response = await api_client.post("/api/biodata/update-payment", json=body, headers=auth_headers())
        assert response.status_code == 400

    async def test_malformed_id(self, api_client):
        response = await api_client.post(
            "/api/biodata/update-payment", json={"id": "r1", "transaction_id": "t1"}, headers=auth_headers()
        )
        assert response.status_code == 400

    async def test_unverified_purchase(self, api_client):
        created = await create_record(api_client)

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "GPA.unknown"},
            headers=auth_headers()
        )
        assert response.status_code == 400

    async def test_product_mismatch(self, api_client, revenuecat_api):
        created = await create_record(api_client)
        revenuecat_api.purchases.add("GPA.42")

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "GPA.42", "product_id": "eg25"},
            headers=auth_headers()
        )
        assert response.status_code == 400

    async def test_transaction_reused_for_another_record(self, api_client, revenuecat_api):
        first = await create_record(api_client)
        second = await create_record(api_client)
        revenuecat_api.purchases.add("GPA.42")

        response = await api_client.post(
            "/api/biodata/update-payment", json={"id": first["id"], "transaction_id": "GPA.42"},
            headers=auth_headers()
        )
        assert response.status_code == 200

        response = await api_client.post(
            "/api/biodata/update-payment", json={"id": second["id"], "transaction_id": "GPA.42"},
            headers=auth_headers()
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Transaction already used for another biodata"

    async def test_provider_outage(self, api_client, revenuecat_api):
        created = await create_record(api_client)
        revenuecat_api.status_code = 500

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "GPA.42"},
            headers=auth_headers()
        )
        assert response.status_code == 500

    async def test_error_record_answers_conflict(self, api_client, store, revenuecat_api):
        created = await create_record(api_client)
        store.records[created["id"]]["payment_status"] = "ERROR"
        revenuecat_api.purchases.add("GPA.42")

        response = await api_client.post(
            "/api/biodata/update-payment",
            json={"id": created["id"], "transaction_id": "GPA.42"},
            headers=auth_headers()
        )
        assert response.status_code == 409
        assert "ERROR" in response.json()["detail"]
        assert revenuecat_api.requests == []


class TestWebhookEndpoint:

    async def test_missing_credentials(self, api_client):
        response = await api_client.post("/api/webhook/revenuecat", json=webhook_payload("u1_x", "t1"))
        assert response.status_code == 401
        assert response.json()["status"] == "unauthorized"

    @pytest.mark.parametrize("payload,expected", [
        (webhook_payload("u1_65f0c0ffee65f0c0ffee65f0", "t1"), "not_found"),
        (webhook_payload("u1_65f0c0ffee65f0c0ffee65f0", "t1", event_type="TEST"), "ignored"),
        ({"nothing": "here"}, "invalid_payload"),
    ])
    async def test_permanent_failures_answer_200(self, api_client, payload, expected):
        response = await api_client.post("/api/webhook/revenuecat", json=payload, headers=WEBHOOK_HEADERS)
        assert response.status_code == 200
        assert response.json()["status"] == expected

    async def test_duplicate_delivery(self, api_client):
        created = await create_record(api_client)
        payload = webhook_payload(created["app_user_id"], "t1")

        first = await api_client.post("/api/webhook/revenuecat", json=payload, headers=WEBHOOK_HEADERS)
        second = await api_client.post("/api/webhook/revenuecat", json=payload, headers=WEBHOOK_HEADERS)

        assert first.json()["status"] == "processed"
        assert second.json()["status"] == "already_processed"


class TestTemplates:

    async def test_list_with_prices(self, api_client):
        response = await api_client.get("/api/template/list")
        assert response.status_code == 200
        templates = {t["id"]: t for t in response.json()}
        assert len(templates) == 23
        assert templates["eg0"]["price"] == 0
        assert templates["eg1"]["price"] == 99.0
        assert templates["eg23"]["price"] == 199.0
        assert templates["eg20"]["image_only"] is True

    async def test_invalid_currency(self, api_client):
        response = await api_client.get("/api/template/list", params={"currency": "EUR"})
        assert response.status_code == 400

    async def test_preview(self, api_client):
        response = await api_client.post(
            "/api/template/preview", json={"template_id": "eg12", "form_data": {"name": "X"}}
        )
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    async def test_preview_unknown_template(self, api_client):
        response = await api_client.post("/api/template/preview", json={"template_id": "eg99"})
        assert response.status_code == 400

    async def test_preview_ignores_server_paths(self, api_client, tmp_path):
        photo = tmp_path / "photo.png"
        Image.new("RGB", (10, 10), "red").save(photo)

        response = await api_client.post(
            "/api/template/preview",
            json={"template_id": "eg6", "form_data": {"name": "X"}, "image_path": str(photo)}
        )
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")
        assert b"/Subtype /Image" not in response.content

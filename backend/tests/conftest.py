"""
Shared fixtures: an in-memory record store, a fake RevenueCat API behind
httpx.MockTransport and an in-process client for the FastAPI app.
"""
import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from fakes import (
    InMemoryBiodataStore, FakeRevenueCatAPI, RecordingAuditService, FixedPriceService,
    WEBHOOK_TOKEN, OWNER
)
from core.pdf_service import BiodataPDFGenerator
from core.reconciliation import PaymentReconciliationService, ReconciliationConfig
from core.revenuecat_client import RevenueCatClient


@pytest.fixture
def store():
    return InMemoryBiodataStore()


@pytest.fixture
def revenuecat_api():
    return FakeRevenueCatAPI()


@pytest.fixture
def audit():
    return RecordingAuditService()


@pytest.fixture
def renderer():
    return BiodataPDFGenerator()


@pytest.fixture
def service(store, revenuecat_api, renderer, audit):
    provider = RevenueCatClient(
        api_key="sk_test",
        project_id="proj_test",
        transport=httpx.MockTransport(revenuecat_api)
    )
    return PaymentReconciliationService(
        store=store,
        provider_client=provider,
        renderer=renderer,
        config=ReconciliationConfig(webhook_bearer_token=WEBHOOK_TOKEN),
        audit_service=audit
    )


@pytest.fixture
async def new_record(store):
    """An INITIATED record owned by OWNER with its app_user_id set"""
    record = await store.create({
        "user_id": OWNER,
        "template_id": "eg1",
        "form_data": {"Name": "Asha"},
        "image_path": None,
    })
    await store.set_app_user_id(record["id"], f"{OWNER}_{record['id']}")
    return await store.find_by_id(record["id"])


@pytest.fixture
async def api_client(store, service, renderer, audit):
    from server import app
    from dependencies import (
        get_store, get_audit_service, get_renderer, get_price_service,
        get_reconciliation_service
    )

    prices = FixedPriceService()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_audit_service] = lambda: audit
    app.dependency_overrides[get_renderer] = lambda: renderer
    app.dependency_overrides[get_price_service] = lambda: prices
    app.dependency_overrides[get_reconciliation_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

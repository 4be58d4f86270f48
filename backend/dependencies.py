"""
Service wiring.

One instance of each service per process, built from Settings. Routes reach
them through the get_* providers so tests can swap them with
app.dependency_overrides.
"""

from motor.motor_asyncio import AsyncIOMotorClient

from config import Settings
from audit_service import AuditService
from core.biodata_store import BiodataStore
from core.pdf_service import BiodataPDFGenerator
from core.price_config import PriceConfigService
from core.reconciliation import PaymentReconciliationService, ReconciliationConfig
from core.revenuecat_client import RevenueCatClient

settings = Settings.from_env()

# MongoDB connection
client = AsyncIOMotorClient(settings.mongo_url)
db = client[settings.db_name]

# Initialize services
biodata_store = BiodataStore(db)
audit_service = AuditService(db)
price_service = PriceConfigService(db)
pdf_generator = BiodataPDFGenerator(
    devanagari_font_path=settings.devanagari_font_path,
    allowed_image_hosts=settings.image_hosts
)
revenuecat_client = RevenueCatClient(
    api_key=settings.revenuecat_api_key,
    project_id=settings.revenuecat_project_id,
    base_url=settings.revenuecat_api_base_url
)
reconciliation_service = PaymentReconciliationService(
    store=biodata_store,
    provider_client=revenuecat_client,
    renderer=pdf_generator,
    config=ReconciliationConfig(
        webhook_bearer_token=settings.revenuecat_webhook_token,
        webhook_signing_secret=settings.revenuecat_webhook_signing_secret
    ),
    audit_service=audit_service
)


def get_store() -> BiodataStore:
    return biodata_store


def get_audit_service() -> AuditService:
    return audit_service


def get_renderer() -> BiodataPDFGenerator:
    return pdf_generator


def get_price_service() -> PriceConfigService:
    return price_service


def get_reconciliation_service() -> PaymentReconciliationService:
    return reconciliation_service

from fastapi import FastAPI, APIRouter, HTTPException, status, Depends, Request, Query
from fastapi.responses import StreamingResponse
from starlette.middleware.cors import CORSMiddleware
from bson import ObjectId
from io import BytesIO
import asyncio
import logging
from typing import List, Dict, Any
from datetime import datetime

# Import custom modules
from models import (
    Channel, Currency,
    BiodataCreate, BiodataCreated, BiodataSummary, PaymentStatusResponse,
    UpdatePaymentRequest,
    TemplateListItem, TemplatePreviewRequest,
    HealthResponse
)
from auth import get_current_user
from audit_service import AuditService
from dependencies import (
    settings, client, biodata_store,
    get_store, get_audit_service, get_renderer, get_price_service,
    get_reconciliation_service
)
from webhook_routes import webhook_router
from core.app_user_id import compose_app_user_id
from core.biodata_store import BiodataStore, InvalidRecordIdError
from core.biodata_templates import InvalidTemplateError, get_template, list_templates
from core.duplicate_protection import DuplicateTransactionError
from core.form_data import is_empty
from core.pdf_service import BiodataPDFGenerator
from core.price_config import PriceConfigService, SUPPORTED_CURRENCIES
from core.reconciliation import (
    PaymentReconciliationService,
    RecordNotFoundError, ProductMismatchError,
    PurchaseVerificationError, PaymentRequiredError, PaymentStateError
)
from core.revenuecat_client import RevenueCatAPIError
from core.state_machine import PaymentStatus


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize MongoDB document for JSON response (handles ObjectId, datetime)"""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            result[key] = str(value)
        elif isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, dict):
            result[key] = serialize_doc(value)
        elif isinstance(value, list):
            result[key] = [
                serialize_doc(item) if isinstance(item, dict)
                else str(item) if isinstance(item, ObjectId)
                else item
                for item in value
            ]
        else:
            result[key] = value
    return result


# Create the main app
app = FastAPI(
    title="Biodata Service",
    version="1.0.0",
    description="Biodata PDF generation with in-app purchase reconciliation"
)

# Create router with /api prefix
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def get_owned_record(store: BiodataStore, record_id: str, user_id: str) -> Dict[str, Any]:
    """Fetch a record the caller owns; other owners' records are reported as missing"""
    try:
        record = await store.find_by_id_and_owner(record_id, user_id)
    except InvalidRecordIdError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Biodata not found or you don't have access to it"
        )
    return record


def pdf_response(pdf_bytes: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# ============================================
# BIODATA ENDPOINTS
# ============================================

@api_router.post("/biodata/create", response_model=BiodataCreated, status_code=status.HTTP_201_CREATED)
async def create_biodata(
    biodata: BiodataCreate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    store: BiodataStore = Depends(get_store),
    audit_service: AuditService = Depends(get_audit_service)
):
    """
    Create a biodata record in INITIATED state.

    The returned app_user_id ("<user_id>_<record_id>") must be passed to the
    purchase SDK so that webhook events can be matched back to the record.
    """
    user_id = current_user["user_id"]

    if is_empty(biodata.form_data):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Form data is required")

    if not biodata.template_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template ID is required")

    if biodata.channel not in [c.value for c in Channel]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid channel. Must be one of: {', '.join(c.value for c in Channel)}"
        )

    if biodata.currency not in SUPPORTED_CURRENCIES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid currency")

    try:
        get_template(biodata.template_id)
    except InvalidTemplateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    record = await store.create({
        "user_id": user_id,
        "template_id": biodata.template_id,
        "form_data": biodata.form_data,
        "image_path": biodata.image_path,
        "channel": biodata.channel,
        "amount": biodata.amount,
        "currency": biodata.currency,
        "user_agent": request.headers.get("user-agent"),
        "ip_address": request.client.host if request.client else None,
    })

    app_user_id = compose_app_user_id(user_id, record["id"])
    await store.set_app_user_id(record["id"], app_user_id)

    await audit_service.log_action(
        entity_type="BIODATA",
        entity_id=record["id"],
        action_type="CREATE",
        user_id=user_id,
        new_value={"template_id": biodata.template_id, "channel": biodata.channel}
    )

    logger.info(f"[BIODATA] Created record {record['id']} for user {user_id}")
    return BiodataCreated(id=record["id"], app_user_id=app_user_id)


@api_router.get("/biodata", response_model=List[BiodataSummary])
async def list_biodata(
    current_user: dict = Depends(get_current_user),
    store: BiodataStore = Depends(get_store)
):
    """List the caller's records, newest first"""
    records = await store.list_by_owner(current_user["user_id"])
    return [BiodataSummary(**record) for record in records]


@api_router.get("/biodata/{record_id}")
async def get_biodata(
    record_id: str,
    current_user: dict = Depends(get_current_user),
    store: BiodataStore = Depends(get_store)
):
    record = await get_owned_record(store, record_id, current_user["user_id"])
    return serialize_doc({
        "id": record["id"],
        "template_id": record.get("template_id"),
        "form_data": record.get("form_data"),
        "image_path": record.get("image_path"),
        "payment_status": record.get("payment_status"),
        "pdf_generated": record.get("pdf_generated", False),
        "created_at": record.get("created_at"),
    })


@api_router.get("/biodata/{record_id}/status", response_model=PaymentStatusResponse)
async def get_payment_status(
    record_id: str,
    current_user: dict = Depends(get_current_user),
    store: BiodataStore = Depends(get_store)
):
    """Payment status for polling after a purchase; pdf_ready follows payment"""
    record = await get_owned_record(store, record_id, current_user["user_id"])
    payment_status = record.get("payment_status", PaymentStatus.INITIATED.value)
    return PaymentStatusResponse(
        payment_status=payment_status,
        pdf_ready=payment_status == PaymentStatus.SUCCESS.value,
        transaction_id=record.get("transaction_id")
    )


@api_router.get("/biodata/{record_id}/download")
async def download_biodata(
    record_id: str,
    current_user: dict = Depends(get_current_user),
    store: BiodataStore = Depends(get_store),
    service: PaymentReconciliationService = Depends(get_reconciliation_service)
):
    """Stream the PDF of a paid record"""
    record = await get_owned_record(store, record_id, current_user["user_id"])

    try:
        pdf_bytes = await service.release_pdf(record)
    except PaymentRequiredError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InvalidTemplateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return pdf_response(pdf_bytes, service.renderer.get_filename(record["id"]))


@api_router.post("/biodata/update-payment")
async def update_payment(
    payment: UpdatePaymentRequest,
    current_user: dict = Depends(get_current_user),
    service: PaymentReconciliationService = Depends(get_reconciliation_service)
):
    """
    Client-side purchase confirmation.

    Verifies the transaction with RevenueCat, moves the record to SUCCESS
    and streams the PDF. Safe to call again after a webhook already
    confirmed the record.
    """
    if not payment.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Biodata ID is required")
    if not payment.transaction_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Transaction ID is required")

    user_id = current_user["user_id"]

    try:
        record = await service.verify_client_purchase(
            owner_id=user_id,
            record_id=payment.id,
            transaction_id=payment.transaction_id,
            product_id=payment.product_id
        )
        pdf_bytes = await service.release_pdf(record)
    except InvalidRecordIdError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (ProductMismatchError, PurchaseVerificationError, InvalidTemplateError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DuplicateTransactionError as e:
        logger.warning(f"[PAYMENT] {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Transaction already used for another biodata"
        )
    except PaymentStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PaymentRequiredError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except RevenueCatAPIError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to verify purchase: {e}"
        )

    return pdf_response(pdf_bytes, service.renderer.get_filename(record["id"]))


# ============================================
# TEMPLATE ENDPOINTS
# ============================================

@api_router.get("/template/list", response_model=List[TemplateListItem])
async def list_biodata_templates(
    currency: str = Query(default=Currency.INR.value),
    price_service: PriceConfigService = Depends(get_price_service)
):
    """Storefront template list with prices in the requested currency"""
    currency = currency.upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid currency")

    prices = await price_service.get_tier_prices(currency)
    return [
        TemplateListItem(
            id=template.template_id,
            image_url=template.image_url,
            price=prices.get(template.price_tier, 0),
            image_only=template.image_only
        )
        for template in list_templates()
    ]


@api_router.post("/template/preview")
async def preview_template(
    preview: TemplatePreviewRequest,
    renderer: BiodataPDFGenerator = Depends(get_renderer)
):
    """Watermarked preview of unsaved form data; no payment required"""
    try:
        pdf_bytes = await asyncio.to_thread(
            renderer.render,
            preview.template_id,
            preview.form_data,
            preview.image_path,
            True
        )
    except InvalidTemplateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return StreamingResponse(
        BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": "inline; filename=biodata-preview.pdf"}
    )


@api_router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(status="healthy", timestamp=datetime.utcnow(), version=app.version)


# Include routers in main app
app.include_router(api_router)
app.include_router(webhook_router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def create_indexes():
    await biodata_store.ensure_indexes()


@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()

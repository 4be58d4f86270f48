"""
RevenueCat webhook endpoint.

Authentication and payload handling live in PaymentReconciliationService;
this route only hands it the raw body (signatures are computed over the
exact bytes received) and turns the acknowledgment into a response.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import logging

from core.reconciliation import PaymentReconciliationService
from dependencies import get_reconciliation_service

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/api/webhook", tags=["Webhooks"])


@webhook_router.post("/revenuecat")
async def revenuecat_webhook(
    request: Request,
    service: PaymentReconciliationService = Depends(get_reconciliation_service)
):
    """
    Receive a RevenueCat event.

    Answers 200 for everything the provider should not retry, 401 when the
    delivery fails authentication.
    """
    raw_body = await request.body()
    ack = await service.handle_webhook(request.headers, raw_body)
    if ack.http_status != 200:
        logger.warning(f"[WEBHOOK] Delivery rejected: {ack.message}")
    return JSONResponse(content=ack.to_dict(), status_code=ack.http_status)

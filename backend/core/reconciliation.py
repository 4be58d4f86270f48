"""
PAYMENT RECONCILIATION

Two independent signals can confirm payment for a biodata record:

A. Webhook push from RevenueCat (NON_RENEWING_PURCHASE events)
B. Client pull: the app sends the store transaction id and we verify it
   against the RevenueCat REST API

Both may arrive twice, late, or at the same time. They converge on a single
write (INITIATED -> SUCCESS) that is:
- decided by `decide_confirmation`, a pure function of the current record,
  the acting owner and the current holder of the transaction id
- applied by BiodataStore.confirm_payment, a conditional update, so a losing
  concurrent writer becomes a no-op

The provider's own retry policy is the only retry mechanism. Nothing here
retries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Mapping
import asyncio
import json
import logging

from .app_user_id import parse_app_user_id, InvalidAppUserIdError
from .biodata_store import InvalidRecordIdError
from .duplicate_protection import DuplicateTransactionError, DuplicateTransactionProtection
from .revenuecat_client import RevenueCatClient
from .state_machine import PaymentStatus, payment_state_machine
from .webhook_events import (
    parse_webhook_event, MalformedEventError, NonRenewingPurchaseEvent
)
from .webhook_security import WebhookAuthenticator, WebhookAuthenticationError

logger = logging.getLogger(__name__)

PROVIDER_REVENUECAT = "REVENUECAT"
SOURCE_WEBHOOK = "WEBHOOK"
SOURCE_CLIENT_VERIFY = "CLIENT_VERIFY"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ReconciliationError(Exception):
    pass


class RecordNotFoundError(ReconciliationError):
    """Record missing or owned by someone else; callers must not tell which"""
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__("Biodata not found or you don't have access to it")


class ProductMismatchError(ReconciliationError):
    def __init__(self, product_id: str, template_id: str):
        self.product_id = product_id
        self.template_id = template_id
        super().__init__("Product ID does not match the template ID")


class PurchaseVerificationError(ReconciliationError):
    pass


class PaymentRequiredError(ReconciliationError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__("Payment not completed for this biodata")


class PaymentStateError(ReconciliationError):
    """Record is in a state that payment confirmation cannot leave"""
    def __init__(self, record_id: str, status: str):
        self.record_id = record_id
        self.status = status
        super().__init__(f"Payment cannot be confirmed for a biodata in status {status}")


# =============================================================================
# DECISION (pure)
# =============================================================================

class ReconciliationOutcome(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    NOT_FOUND = "not_found"
    OWNER_MISMATCH = "owner_mismatch"
    DUPLICATE_TRANSACTION = "duplicate_transaction"


@dataclass
class PaymentConfirmation:
    """A provider-confirmed purchase, from either trigger"""
    transaction_id: str
    source: str
    app_user_id: Optional[str] = None
    product_id: Optional[str] = None
    event_type: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None
    received_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ReconciliationDecision:
    outcome: ReconciliationOutcome
    update: Optional[Dict[str, Any]] = None
    history_entry: Optional[Dict[str, Any]] = None

    @property
    def should_write(self) -> bool:
        return self.outcome == ReconciliationOutcome.PROCESSED


def build_confirmation_update(
    record: Dict[str, Any],
    confirmation: PaymentConfirmation,
    provider_type: str = PROVIDER_REVENUECAT
) -> Dict[str, Any]:
    """The only write that moves a record into SUCCESS"""
    update = payment_state_machine.get_status_update(PaymentStatus.SUCCESS)
    update.update({
        "payment_provider_type": provider_type,
        "confirmation_source": confirmation.source,
        "transaction_id": confirmation.transaction_id,
        "app_user_id": confirmation.app_user_id or record.get("app_user_id"),
        "product_id": confirmation.product_id,
        "provider_response": confirmation.provider_response,
        "payment_confirmed_at": confirmation.received_at,
    })
    if confirmation.event_type:
        update["webhook_event_type"] = confirmation.event_type
        update["webhook_received_at"] = confirmation.received_at
    return update


def decide_confirmation(
    record: Optional[Dict[str, Any]],
    owner_id: str,
    confirmation: PaymentConfirmation,
    transaction_holder_id: Optional[str] = None,
    provider_type: str = PROVIDER_REVENUECAT
) -> ReconciliationDecision:
    """
    Decide what a confirmation does to a record.

    Args:
        record: The target record as currently stored, or None
        owner_id: Identity the confirmation claims to act for
        confirmation: The confirmed purchase
        transaction_holder_id: Id of the record already holding
            confirmation.transaction_id, if any

    Only PROCESSED carries an update. Every other outcome is a no-op.
    """
    if transaction_holder_id is not None:
        if record is not None and record["id"] == transaction_holder_id:
            return ReconciliationDecision(ReconciliationOutcome.ALREADY_PROCESSED)
        return ReconciliationDecision(ReconciliationOutcome.DUPLICATE_TRANSACTION)

    if record is None:
        return ReconciliationDecision(ReconciliationOutcome.NOT_FOUND)

    if record.get("user_id") != owner_id:
        return ReconciliationDecision(ReconciliationOutcome.OWNER_MISMATCH)

    current = record.get("payment_status", PaymentStatus.INITIATED.value)
    if current == PaymentStatus.SUCCESS.value:
        return ReconciliationDecision(ReconciliationOutcome.ALREADY_PROCESSED)

    payment_state_machine.validate_transition(current, PaymentStatus.SUCCESS)

    return ReconciliationDecision(
        outcome=ReconciliationOutcome.PROCESSED,
        update=build_confirmation_update(record, confirmation, provider_type),
        history_entry=payment_state_machine.get_history_entry(
            current,
            PaymentStatus.SUCCESS,
            source=confirmation.source,
            metadata={"transaction_id": confirmation.transaction_id}
        )
    )


# =============================================================================
# WEBHOOK ACKNOWLEDGMENT
# =============================================================================

class WebhookStatus(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    OWNER_MISMATCH = "owner_mismatch"
    INVALID_PAYLOAD = "invalid_payload"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"


@dataclass
class WebhookAck:
    status: WebhookStatus
    message: str
    http_status: int = 200
    record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "record_id": self.record_id,
        }


_ACK_BY_OUTCOME = {
    ReconciliationOutcome.PROCESSED: (WebhookStatus.PROCESSED, "Payment confirmed"),
    ReconciliationOutcome.ALREADY_PROCESSED: (WebhookStatus.ALREADY_PROCESSED, "Already processed"),
    ReconciliationOutcome.DUPLICATE_TRANSACTION: (
        WebhookStatus.ALREADY_PROCESSED, "Transaction already processed for another record"
    ),
    ReconciliationOutcome.NOT_FOUND: (WebhookStatus.NOT_FOUND, "Biodata record not found"),
    ReconciliationOutcome.OWNER_MISMATCH: (
        WebhookStatus.OWNER_MISMATCH, "app_user_id does not match the record owner"
    ),
}


# =============================================================================
# SERVICE
# =============================================================================

@dataclass
class ReconciliationConfig:
    webhook_bearer_token: Optional[str] = None
    webhook_signing_secret: Optional[str] = None
    payment_provider_type: str = PROVIDER_REVENUECAT


class PaymentReconciliationService:
    """
    Owns the payment lifecycle of biodata records.

    Collaborators are injected: record store, provider client, PDF renderer
    and (optionally) the audit trail.
    """

    def __init__(
        self,
        store,
        provider_client: RevenueCatClient,
        renderer,
        config: ReconciliationConfig,
        audit_service=None
    ):
        self.store = store
        self.provider_client = provider_client
        self.renderer = renderer
        self.config = config
        self.audit_service = audit_service
        self.authenticator = WebhookAuthenticator(
            bearer_token=config.webhook_bearer_token,
            signing_secret=config.webhook_signing_secret
        )
        self.duplicate_protection = DuplicateTransactionProtection(store)

    # =========================================================================
    # TRIGGER A: WEBHOOK
    # =========================================================================

    async def handle_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookAck:
        """
        Process one webhook delivery.

        Always answers 200 except on authentication failure (401), so the
        provider never retries permanent failures.
        """
        try:
            self.authenticator.authenticate(headers, raw_body)
        except WebhookAuthenticationError as e:
            return WebhookAck(WebhookStatus.UNAUTHORIZED, str(e), http_status=401)

        try:
            return await self._process_webhook(raw_body)
        except Exception as e:
            logger.exception(f"[WEBHOOK] Unhandled error while processing delivery: {e}")
            return WebhookAck(WebhookStatus.ERROR, f"Internal error: {e}")

    async def _process_webhook(self, raw_body: bytes) -> WebhookAck:
        try:
            payload = json.loads(raw_body or b"null")
            event = parse_webhook_event(payload)
        except (ValueError, MalformedEventError) as e:
            logger.warning(f"[WEBHOOK] Rejected payload: {e}")
            return WebhookAck(WebhookStatus.INVALID_PAYLOAD, str(e))

        if not isinstance(event, NonRenewingPurchaseEvent):
            logger.info(f"[WEBHOOK] Ignoring event type {event.event_type}")
            return WebhookAck(WebhookStatus.IGNORED, f"Event type {event.event_type} ignored")

        holder_id = await self.duplicate_protection.find_transaction_holder(event.transaction_id)

        try:
            owner_id, record_id = parse_app_user_id(event.app_user_id)
        except InvalidAppUserIdError as e:
            if holder_id is not None:
                return WebhookAck(WebhookStatus.ALREADY_PROCESSED, "Already processed", record_id=holder_id)
            logger.warning(f"[WEBHOOK] {e}")
            return WebhookAck(WebhookStatus.INVALID_PAYLOAD, str(e))

        try:
            record = await self.store.find_by_id(record_id)
        except InvalidRecordIdError:
            record = None

        confirmation = PaymentConfirmation(
            transaction_id=event.transaction_id,
            source=SOURCE_WEBHOOK,
            app_user_id=event.app_user_id,
            product_id=event.product_id,
            event_type=event.event_type,
            provider_response=event.stored_fields(),
        )
        decision = decide_confirmation(
            record, owner_id, confirmation, holder_id, self.config.payment_provider_type
        )

        if decision.should_write:
            if record.get("template_id") != event.product_id:
                logger.warning(
                    f"[WEBHOOK] Product {event.product_id} differs from template "
                    f"{record.get('template_id')} on record {record_id}"
                )
            outcome = await self._apply(record, owner_id, decision)
        else:
            outcome = decision.outcome

        status, message = _ACK_BY_OUTCOME[outcome]
        logger.info(
            f"[WEBHOOK] transaction={event.transaction_id} record={record_id} "
            f"outcome={outcome.value}"
        )
        return WebhookAck(status, message, record_id=record_id if record else holder_id)

    # =========================================================================
    # TRIGGER B: CLIENT VERIFICATION
    # =========================================================================

    async def verify_client_purchase(
        self,
        owner_id: str,
        record_id: str,
        transaction_id: str,
        product_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Confirm payment for the owner's record after checking the transaction
        with the provider. Returns the record in SUCCESS state.

        Raises:
            InvalidRecordIdError, RecordNotFoundError, ProductMismatchError,
            PaymentStateError,             DuplicateTransactionError, PurchaseVerificationError,
            RevenueCatAPIError
        """
        record = await self.store.find_by_id_and_owner(record_id, owner_id)
        if record is None:
            raise RecordNotFoundError(record_id)

        if product_id and record.get("template_id") != product_id:
            raise ProductMismatchError(product_id, record.get("template_id"))

        if record.get("payment_status") == PaymentStatus.SUCCESS.value:
            logger.info(f"[RECONCILE] Record {record_id} already SUCCESS; skipping verification")
            return record

        current = record.get("payment_status", PaymentStatus.INITIATED.value)
        if not payment_state_machine.can_transition(current, PaymentStatus.SUCCESS):
            logger.warning(f"[RECONCILE] Record {record_id} is {current}; refusing confirmation")
            raise PaymentStateError(record_id, current)

        existing = await self.duplicate_protection.check_duplicate_transaction(transaction_id, record_id)
        if existing is not None:
            return existing

        verification = await self.provider_client.verify_purchase(transaction_id)
        if not verification.verified:
            logger.warning(
                f"[RECONCILE] Verification failed for record {record_id}: {verification.error}"
            )
            raise PurchaseVerificationError(verification.error or "Purchase verification failed")

        confirmation = PaymentConfirmation(
            transaction_id=transaction_id,
            source=SOURCE_CLIENT_VERIFY,
            product_id=product_id,
            provider_response={
                "transaction_id": transaction_id,
                "revenuecat_response": verification.data,
            },
        )
        decision = decide_confirmation(
            record, owner_id, confirmation, provider_type=self.config.payment_provider_type
        )

        if decision.should_write:
            outcome = await self._apply(record, owner_id, decision)
            if outcome == ReconciliationOutcome.DUPLICATE_TRANSACTION:
                raise DuplicateTransactionError(transaction_id, None)

        return await self.store.find_by_id_and_owner(record_id, owner_id)

    # =========================================================================
    # WRITE
    # =========================================================================

    async def _apply(
        self,
        record: Dict[str, Any],
        owner_id: str,
        decision: ReconciliationDecision
    ) -> ReconciliationOutcome:
        try:
            updated = await self.store.confirm_payment(
                record["id"], owner_id, decision.update, decision.history_entry
            )
        except DuplicateTransactionError:
            return ReconciliationOutcome.DUPLICATE_TRANSACTION

        if updated is None:
            logger.info(f"[RECONCILE] Record {record['id']} confirmed concurrently; no-op")
            return ReconciliationOutcome.ALREADY_PROCESSED

        logger.info(
            f"[RECONCILE] Record {record['id']}: INITIATED -> SUCCESS "
            f"via {decision.update['confirmation_source']} "
            f"(transaction {decision.update['transaction_id']})"
        )
        if self.audit_service:
            await self.audit_service.log_action(
                entity_type="BIODATA",
                entity_id=record["id"],
                action_type="PAYMENT_CONFIRMED",
                user_id=owner_id,
                old_value={"payment_status": record.get("payment_status")},
                new_value={
                    "payment_status": PaymentStatus.SUCCESS.value,
                    "transaction_id": decision.update["transaction_id"],
                    "source": decision.update["confirmation_source"],
                }
            )
        return ReconciliationOutcome.PROCESSED

    # =========================================================================
    # FULFILLMENT
    # =========================================================================

    async def release_pdf(self, record: Dict[str, Any]) -> bytes:
        """
        Render the record's PDF. Only paid records may be rendered.

        The first successful render flips pdf_generated; failing to record
        that is logged and does not affect the returned document.
        """
        if record.get("payment_status") != PaymentStatus.SUCCESS.value:
            raise PaymentRequiredError(record["id"])

        pdf_bytes = await asyncio.to_thread(
            self.renderer.render,
            record["template_id"],
            record.get("form_data"),
            record.get("image_path")
        )

        if not record.get("pdf_generated"):
            try:
                first = await self.store.mark_fulfilled(record["id"])
                if first and self.audit_service:
                    await self.audit_service.log_action(
                        entity_type="BIODATA",
                        entity_id=record["id"],
                        action_type="PDF_GENERATED",
                        user_id=record.get("user_id"),
                    )
            except Exception as e:
                logger.warning(f"[FULFILLMENT] Could not mark record {record['id']} fulfilled: {e}")

        return pdf_bytes

"""
RevenueCat webhook payloads as a closed set of event variants.

Only one-time purchases move a record to SUCCESS. Everything else
(subscriptions, TEST pings, cancellations, ...) becomes UnhandledEvent and
is acknowledged without touching storage.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)

NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"

# Event fields kept on the record as the provider response. Free-form maps
# such as subscriber_attributes carry client-chosen keys and are dropped.
STORED_EVENT_FIELDS = (
    "id", "type", "app_user_id", "original_app_user_id", "aliases",
    "transaction_id", "original_transaction_id", "product_id",
    "price", "currency", "price_in_purchased_currency", "takehome_percentage",
    "store", "environment", "country_code", "event_timestamp_ms", "purchased_at_ms",
)


class MalformedEventError(ValueError):
    """A purchase event that is missing the fields needed to reconcile it"""
    pass


@dataclass(frozen=True)
class NonRenewingPurchaseEvent:
    app_user_id: str
    transaction_id: str
    product_id: Optional[str] = None
    event_id: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    price_in_purchased_currency: Optional[float] = None
    store: Optional[str] = None
    environment: Optional[str] = None
    event_timestamp_ms: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    event_type = NON_RENEWING_PURCHASE

    def stored_fields(self) -> Dict[str, Any]:
        """Known scalar fields of the raw event, safe to persist as-is"""
        stored = {}
        for key in STORED_EVENT_FIELDS:
            value = self.raw.get(key)
            if isinstance(value, (str, int, float, bool)):
                stored[key] = value
            elif isinstance(value, list) and all(isinstance(v, str) for v in value):
                stored[key] = list(value)
        return stored


@dataclass(frozen=True)
class UnhandledEvent:
    event_type: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


WebhookEvent = Union[NonRenewingPurchaseEvent, UnhandledEvent]


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_webhook_event(payload: Any) -> WebhookEvent:
    """
    Map a decoded webhook body ({"api_version": ..., "event": {...}}) to an
    event variant. Raises MalformedEventError for purchase events that lack
    app_user_id or transaction_id.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook body must be a JSON object")

    event = payload.get("event")
    if not isinstance(event, dict):
        raise MalformedEventError("Webhook body has no 'event' object")

    event_type = _str_or_none(event.get("type"))
    if event_type != NON_RENEWING_PURCHASE:
        return UnhandledEvent(event_type=event_type, raw=event)

    app_user_id = _str_or_none(event.get("app_user_id"))
    transaction_id = _str_or_none(event.get("transaction_id"))
    if not app_user_id or not transaction_id:
        raise MalformedEventError(
            f"{NON_RENEWING_PURCHASE} event requires app_user_id and transaction_id"
        )

    timestamp = event.get("event_timestamp_ms")
    return NonRenewingPurchaseEvent(
        app_user_id=app_user_id,
        transaction_id=transaction_id,
        product_id=_str_or_none(event.get("product_id")),
        event_id=_str_or_none(event.get("id")),
        price=_float_or_none(event.get("price")),
        currency=_str_or_none(event.get("currency")),
        price_in_purchased_currency=_float_or_none(event.get("price_in_purchased_currency")),
        store=_str_or_none(event.get("store")),
        environment=_str_or_none(event.get("environment")),
        event_timestamp_ms=timestamp if isinstance(timestamp, int) else None,
        raw=event,
    )

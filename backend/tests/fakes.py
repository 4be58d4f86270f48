"""
In-memory stand-ins for the record store, the RevenueCat REST API, the audit
trail and the price config, plus request builders shared by the tests.
"""
import asyncio
import copy
import os
from datetime import datetime

import httpx
from bson import ObjectId
from pymongo.errors import WriteError

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from auth import create_access_token
from core.biodata_store import to_object_id
from core.duplicate_protection import DuplicateTransactionError
from core.state_machine import PaymentStatus

WEBHOOK_TOKEN = "whk-test-token"
OWNER = "u1"
OTHER_OWNER = "u2"


def operator_keys(value, path=""):
    """Nested field names MongoDB refuses to store"""
    if isinstance(value, dict):
        for key, item in value.items():
            if key.startswith("$"):
                yield f"{path}{key}"
            yield from operator_keys(item, f"{path}{key}.")
    elif isinstance(value, list):
        for item in value:
            yield from operator_keys(item, path)


class InMemoryBiodataStore:
    """Dict-backed stand-in for BiodataStore"""

    def __init__(self):
        self.records = {}
        self.confirm_calls = 0
        self.fail_mark_fulfilled = False

    def _get(self, record_id):
        key = str(to_object_id(record_id))
        record = self.records.get(key)
        return copy.deepcopy(record) if record else None

    async def ensure_indexes(self):
        pass

    async def create(self, fields):
        record_id = str(ObjectId())
        self.records[record_id] = {
            "id": record_id,
            "payment_status": PaymentStatus.INITIATED.value,
            "payment_provider_type": None,
            "transaction_id": None,
            "app_user_id": None,
            "pdf_generated": False,
            "pdf_generated_at": None,
            "created_at": datetime.utcnow(),
            "state_history": [],
            **fields,
        }
        return copy.deepcopy(self.records[record_id])

    async def set_app_user_id(self, record_id, app_user_id):
        record = self.records[str(to_object_id(record_id))]
        if record["app_user_id"] is None:
            record["app_user_id"] = app_user_id

    async def find_by_id(self, record_id):
        await asyncio.sleep(0)
        return self._get(record_id)

    async def find_by_id_and_owner(self, record_id, owner_id):
        await asyncio.sleep(0)
        record = self._get(record_id)
        if record and record["user_id"] == owner_id:
            return record
        return None

    async def find_by_transaction_id(self, transaction_id):
        await asyncio.sleep(0)
        for record in self.records.values():
            if record.get("transaction_id") == transaction_id:
                return copy.deepcopy(record)
        return None

    async def list_by_owner(self, owner_id, limit=100):
        owned = [r for r in self.records.values() if r["user_id"] == owner_id]
        owned.sort(key=lambda r: r["created_at"], reverse=True)
        return [copy.deepcopy(r) for r in owned[:limit]]

    async def confirm_payment(self, record_id, owner_id, update, history_entry=None):
        await asyncio.sleep(0)
        self.confirm_calls += 1
        record = self.records.get(str(to_object_id(record_id)))
        if (record is None or record["user_id"] != owner_id
                or record["payment_status"] == PaymentStatus.SUCCESS.value):
            return None

        transaction_id = update.get("transaction_id")
        for other in self.records.values():
            if other is not record and transaction_id and other.get("transaction_id") == transaction_id:
                raise DuplicateTransactionError(transaction_id, None)

        bad_keys = list(operator_keys(update))
        if bad_keys:
            raise WriteError(f"Field names cannot start with '$': {bad_keys}", code=52)

        record.update(copy.deepcopy(update))
        if history_entry:
            record["state_history"].append(history_entry)
        return copy.deepcopy(record)

    async def mark_fulfilled(self, record_id):
        if self.fail_mark_fulfilled:
            raise RuntimeError("store unavailable")
        record = self.records[str(to_object_id(record_id))]
        if record["pdf_generated"]:
            return False
        record["pdf_generated"] = True
        record["pdf_generated_at"] = datetime.utcnow()
        return True


class FakeRevenueCatAPI:
    """Request handler for httpx.MockTransport"""

    def __init__(self):
        self.purchases = set()
        self.status_code = 200
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "unavailable"})

        transaction_id = request.url.params.get("store_purchase_identifier")
        items = []
        if transaction_id in self.purchases:
            items.append({"id": f"prch_{transaction_id}", "store_purchase_identifier": transaction_id})
        return httpx.Response(200, json={"items": items})


class RecordingAuditService:

    def __init__(self):
        self.entries = []

    async def log_action(self, entity_type, entity_id, action_type, user_id, old_value=None, new_value=None):
        self.entries.append({
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action_type": action_type,
            "user_id": user_id,
        })

    def actions(self, entity_id=None):
        return [e["action_type"] for e in self.entries if entity_id in (None, e["entity_id"])]


class FixedPriceService:

    def __init__(self, prices=None):
        self.prices = prices or {0: 0.0, 1: 99.0, 2: 149.0, 3: 199.0}
        self.currencies = []

    async def get_tier_prices(self, currency="INR"):
        self.currencies.append(currency)
        return dict(self.prices)


def webhook_payload(app_user_id, transaction_id, product_id="eg1", event_type="NON_RENEWING_PURCHASE"):
    return {
        "api_version": "1.0",
        "event": {
            "id": f"evt_{transaction_id}",
            "type": event_type,
            "app_user_id": app_user_id,
            "transaction_id": transaction_id,
            "product_id": product_id,
            "price": 1.99,
            "currency": "USD",
            "store": "PLAY_STORE",
            "environment": "SANDBOX",
            "event_timestamp_ms": 1700000000000,
        }
    }


def auth_headers(user_id=OWNER):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


WEBHOOK_HEADERS = {"Authorization": f"Bearer {WEBHOOK_TOKEN}"}


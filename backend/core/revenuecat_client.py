"""
RevenueCat REST client used by the client-initiated verification path.

A purchase is verified only when the provider returns an item whose `id` or
`store_purchase_identifier` equals the transaction id the client supplied.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import httpx

logger = logging.getLogger(__name__)


class RevenueCatAPIError(Exception):
    """Provider unreachable or answered with a server error"""
    pass


@dataclass
class PurchaseVerification:
    verified: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class RevenueCatClient:

    def __init__(
        self,
        api_key: Optional[str],
        project_id: Optional[str],
        base_url: str = "https://api.revenuecat.com/v2",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.project_id)

    async def verify_purchase(self, transaction_id: str) -> PurchaseVerification:
        """
        Look up purchases by store identifier and check one matches.

        Raises RevenueCatAPIError on network failures and 5xx answers, which
        are transient; every other failure is a PurchaseVerification with
        verified=False and a reason.
        """
        if not self.configured:
            return PurchaseVerification(False, error="RevenueCat configuration is missing")

        url = f"{self.base_url}/projects/{self.project_id}/purchases"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    url,
                    params={"store_purchase_identifier": transaction_id},
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"[REVENUECAT] Request failed: {e}")
            raise RevenueCatAPIError(f"RevenueCat request failed: {e}") from e

        if response.status_code >= 500:
            logger.error(f"[REVENUECAT] API error: {response.status_code} - {response.text}")
            raise RevenueCatAPIError(f"RevenueCat API error: {response.status_code}")

        if response.status_code != 200:
            logger.warning(f"[REVENUECAT] API error: {response.status_code} - {response.text}")
            return PurchaseVerification(False, error=f"RevenueCat API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return PurchaseVerification(False, error="RevenueCat returned a non-JSON body")

        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list) or not items:
            return PurchaseVerification(False, error="No purchases found for this transaction ID")

        matched = any(
            isinstance(item, dict) and (
                item.get("id") == transaction_id
                or str(item.get("store_purchase_identifier")) == transaction_id
            )
            for item in items
        )
        if not matched:
            return PurchaseVerification(
                False, error="Transaction ID does not match any purchase in the response"
            )

        return PurchaseVerification(True, data=data)

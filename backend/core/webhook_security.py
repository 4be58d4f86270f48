"""
WEBHOOK AUTHENTICATION

Implements:
1. Shared bearer secret (Authorization: Bearer <token>) as configured in the
   RevenueCat dashboard
2. Optional HMAC-SHA256 signature over the raw request body
3. Constant-time comparison for both

RULES:
- A signing secret, when configured, takes precedence over the bearer token
- With no secret configured at all, every call is rejected
- Authentication happens before the body is parsed or any record is read
"""

from typing import Mapping, Optional
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-revenuecat-signature"


class SecurityError(Exception):
    """Security violation error"""
    pass


class WebhookAuthenticationError(SecurityError):
    """Raised when a webhook call cannot be authenticated"""
    pass


def build_webhook_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class WebhookAuthenticator:

    def __init__(self, bearer_token: Optional[str] = None, signing_secret: Optional[str] = None):
        self.bearer_token = bearer_token
        self.signing_secret = signing_secret

    @property
    def configured(self) -> bool:
        return bool(self.bearer_token or self.signing_secret)

    def authenticate(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        """Raise WebhookAuthenticationError unless the call carries valid credentials"""
        lowered = {k.lower(): v for k, v in headers.items()}

        if self.signing_secret:
            self._verify_signature(lowered.get(SIGNATURE_HEADER), raw_body)
            return

        if self.bearer_token:
            self._verify_bearer(lowered.get("authorization"))
            return

        logger.error("[SECURITY] Webhook secret not configured; rejecting call")
        raise WebhookAuthenticationError("Webhook authentication is not configured")

    def _verify_bearer(self, authorization: Optional[str]) -> None:
        expected = f"Bearer {self.bearer_token}"
        if not authorization or not hmac.compare_digest(
            authorization.encode("utf-8"), expected.encode("utf-8")
        ):
            logger.warning("[SECURITY] Webhook bearer token mismatch")
            raise WebhookAuthenticationError("Invalid webhook authorization")

    def _verify_signature(self, signature: Optional[str], raw_body: bytes) -> None:
        if not signature:
            logger.warning("[SECURITY] Webhook signature header missing")
            raise WebhookAuthenticationError("Missing webhook signature")

        if signature.startswith("sha256="):
            signature = signature[len("sha256="):]

        expected = build_webhook_signature(self.signing_secret, raw_body)
        if not hmac.compare_digest(signature.strip().lower(), expected):
            logger.warning("[SECURITY] Webhook signature mismatch")
            raise WebhookAuthenticationError("Invalid webhook signature")

# app/services/payment_gateway.py
import logging
from typing import Any, Dict, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from core.config import settings
from core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class WebhookSignatureError(Exception):
    """Raised when a webhook payload cannot be authenticated."""


class StripeGateway:
    """Thin async wrapper over the Stripe PaymentIntent and Webhook APIs."""

    name = "stripe"

    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    # ---------- intents ----------
    async def create_intent(self, amount_minor: int, currency: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount_minor,
                currency=currency.lower(),
                metadata={k: str(v) for k, v in metadata.items() if v is not None},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed: {e}")
            raise ExternalServiceError("Payment gateway error", details={"gateway": self.name})

        return {"id": intent.id, "client_secret": intent.client_secret, "status": intent.status}

    async def retrieve_intent(self, intent_id: str) -> Dict[str, Any]:
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.retrieve, intent_id, api_key=self.secret_key
            )
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe intent {intent_id} lookup rejected: {e}")
            return {"id": intent_id, "status": "not_found"}
        except stripe.StripeError as e:
            logger.error(f"Stripe intent retrieval failed for {intent_id}: {e}")
            raise ExternalServiceError("Payment gateway error", details={"gateway": self.name})

        return {
            "id": intent.id,
            "status": intent.status,
            "amount": intent.amount,
            "currency": intent.currency,
            "last_payment_error": _error_message(_field(intent, "last_payment_error")),
        }

    # ---------- webhooks ----------
    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not signature:
            raise WebhookSignatureError("Missing stripe-signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e))
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}")

        obj = event["data"]["object"]
        return {
            "id": event["id"],
            "type": event["type"],
            "object": {
                "id": _field(obj, "id"),
                "status": _field(obj, "status"),
                "last_payment_error": _error_message(_field(obj, "last_payment_error")),
            },
        }


def _field(obj: Any, name: str) -> Any:
    # StripeObject is no longer a dict subclass in current SDKs, so no .get()
    if obj is None:
        return None
    return getattr(obj, name, None)


def _error_message(error: Any) -> Optional[str]:
    return _field(error, "message")


_gateway: Optional[StripeGateway] = None


def get_payment_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    return _gateway

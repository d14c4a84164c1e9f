# payments.py - thin Stripe Checkout wrapper
import logging

import stripe

from photostock.config import BASE_URL, STRIPE_SECRET_KEY
from photostock.models import Image
from photostock.origin import is_full_url

log = logging.getLogger(__name__)


class PaymentError(Exception):
    """Stripe call failed; the request should surface as a 502."""


def _meta(session, key: str):
    metadata = getattr(session, "metadata", None)
    if not metadata:
        return None
    try:
        return metadata[key]
    except KeyError:
        return None


class StripeGateway:
    def __init__(self, api_key: str = STRIPE_SECRET_KEY, base_url: str = BASE_URL):
        self.api_key = api_key or None
        self.base_url = base_url.rstrip("/")

    def create_checkout_session(self, image: Image, buyer_email: str) -> str:
        product_data = {"name": image.name}
        if image.preview_url and is_full_url(image.preview_url):
            product_data["images"] = [image.preview_url]
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card"],
                customer_email=buyer_email,
                line_items=[{
                    "price_data": {
                        "currency": "usd",
                        "product_data": product_data,
                        "unit_amount": int(round(image.price * 100)),
                    },
                    "quantity": 1,
                }],
                mode="payment",
                metadata={
                    "imageId": str(image.id),
                    "imageName": image.name,
                    "price": str(image.price),
                },
                success_url=f"{self.base_url}/success.html?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.base_url}/index.html",
            )
        except stripe.StripeError as e:
            log.exception("Checkout session creation failed for image %s", image.id)
            raise PaymentError(str(e)) from e
        return session.id

    def retrieve_session(self, session_id: str) -> dict:
        """
        Normalized view of a checkout session:
        paid, image_id, image_name, price, buyer_email, transaction_id
        """
        try:
            s = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            log.exception("Unable to retrieve checkout session %s", session_id)
            raise PaymentError(str(e)) from e

        details = getattr(s, "customer_details", None)
        email = getattr(details, "email", None) if details else None
        tx = getattr(s, "payment_intent", None)
        if tx is not None and not isinstance(tx, str):
            tx = getattr(tx, "id", None)
        image_id = _meta(s, "imageId")
        price = _meta(s, "price")
        try:
            image_id = int(image_id) if image_id else None
            price = float(price) if price else 0.0
        except (TypeError, ValueError) as e:
            log.error("Malformed metadata on checkout session %s: %s", session_id, e)
            raise PaymentError(f"malformed session metadata: {e}") from e
        return {
            "paid": getattr(s, "payment_status", None) == "paid",
            "image_id": image_id,
            "image_name": _meta(s, "imageName"),
            "price": price,
            "buyer_email": email or getattr(s, "customer_email", None),
            "transaction_id": tx,
        }

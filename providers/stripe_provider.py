#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Card payments through Stripe Checkout.

`StripeGateway` creates hosted Checkout Sessions and turns signed webhook
events into `NotificationEnvelope`s. The order id travels as the correlation
value in `metadata.orderId` (on the session and on its payment intent) and in
`client_reference_id`.

Which event types may settle the shipping charge is declared once, in
`EVENT_CAPABILITIES`.
"""

import asyncio
import dataclasses
import json
import logging
from typing import Any
from typing import Dict
from typing import Optional
from typing import Sequence

import db
from enums import PaymentProvider
from exceptions import ProviderError
from exceptions import ProviderSignatureError
from exceptions import ValidationError
from models import NotificationEnvelope
import stripe

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class EventCapability:
  authoritative_for_shipping: bool


# Event types that confirm a payment. Only the completed Checkout Session
# carries the shipping amount the buyer actually paid.
EVENT_CAPABILITIES: Dict[str, EventCapability] = {
    "checkout.session.completed": EventCapability(
        authoritative_for_shipping=True
    ),
    "payment_intent.succeeded": EventCapability(
        authoritative_for_shipping=False
    ),
    "charge.succeeded": EventCapability(authoritative_for_shipping=False),
}


def _ref_id(value: Any) -> Optional[str]:
  """Returns the id of an expandable reference (an id string or an object)."""
  if isinstance(value, str):
    return value or None
  if isinstance(value, dict):
    return value.get("id")
  return None


def _metadata_order_id(obj: Dict[str, Any]) -> Optional[str]:
  return (obj.get("metadata") or {}).get("orderId")


def envelope_from_event(
    event: Dict[str, Any],
) -> Optional[NotificationEnvelope]:
  """Maps a verified event to an envelope, or None for irrelevant events."""
  event_type = event.get("type")
  capability = EVENT_CAPABILITIES.get(event_type)
  if capability is None:
    logger.debug("Ignoring Stripe event type %s", event_type)
    return None

  obj = (event.get("data") or {}).get("object") or {}

  if event_type == "checkout.session.completed":
    if obj.get("payment_status") == "unpaid":
      logger.info("Checkout session %s completed unpaid", obj.get("id"))
      return None
    order_id = _metadata_order_id(obj) or obj.get("client_reference_id")
    external_id = _ref_id(obj.get("payment_intent")) or obj.get("id")
    reported_total = obj.get("amount_total")
    shipping_cost = obj.get("shipping_cost") or {}
    reported_shipping = shipping_cost.get("amount_total")
    if reported_shipping is None:
      reported_shipping = (obj.get("total_details") or {}).get(
          "amount_shipping"
      )
  elif event_type == "payment_intent.succeeded":
    order_id = _metadata_order_id(obj)
    external_id = obj.get("id")
    reported_total = obj.get("amount_received", obj.get("amount"))
    reported_shipping = None
  else:
    order_id = _metadata_order_id(obj)
    external_id = _ref_id(obj.get("payment_intent")) or obj.get("id")
    reported_total = obj.get("amount_captured", obj.get("amount"))
    reported_shipping = None

  return NotificationEnvelope(
      order_id=order_id,
      external_id=external_id or event.get("id") or "stripe",
      provider=PaymentProvider.STRIPE,
      reported_total=reported_total,
      reported_shipping=reported_shipping,
      authoritative_for_shipping=capability.authoritative_for_shipping,
  )


class StripeGateway:
  """Stripe Checkout adapter."""

  def __init__(
      self,
      api_key: Optional[str],
      webhook_secret: Optional[str],
      tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
  ):
    self.api_key = api_key
    self.webhook_secret = webhook_secret
    self.tolerance = tolerance

  def build_session_params(
      self,
      order: db.Order,
      lines: Sequence[db.OrderItem],
      success_url: str,
      cancel_url: str,
  ) -> Dict[str, Any]:
    """Builds Checkout Session parameters for an order.

    Product lines become line items; the shipping line becomes the single
    fixed shipping option, so the completed session reports it back as
    `shipping_cost`.
    """
    currency = order.currency.lower()
    line_items = []
    shipping_options = []
    for line in lines:
      if line.product_id is None:
        shipping_options.append({
            "shipping_rate_data": {
                "type": "fixed_amount",
                "display_name": line.title or "Shipping",
                "fixed_amount": {
                    "amount": line.unit_price * line.qty,
                    "currency": currency,
                },
            }
        })
        continue
      line_items.append({
          "quantity": line.qty,
          "price_data": {
              "currency": currency,
              "unit_amount": line.unit_price,
              "product_data": {
                  "name": line.title or line.product_id,
                  "metadata": {"productId": line.product_id},
              },
          },
      })

    params = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": order.id,
        "metadata": {"orderId": order.id},
        "payment_intent_data": {"metadata": {"orderId": order.id}},
    }
    if shipping_options:
      params["shipping_options"] = shipping_options[:1]
    if order.email:
      params["customer_email"] = order.email
    return params

  async def create_session(
      self,
      order: db.Order,
      lines: Sequence[db.OrderItem],
      success_url: str,
      cancel_url: str,
  ) -> Dict[str, str]:
    """Creates a hosted Checkout Session and returns its id and url."""
    if not self.api_key:
      raise ProviderError("Stripe is not configured", status_code=503)

    params = self.build_session_params(order, lines, success_url, cancel_url)
    try:
      session = await asyncio.to_thread(
          stripe.checkout.Session.create,
          api_key=self.api_key,
          **params,
      )
    except stripe.StripeError as e:
      raise ProviderError(f"Stripe session creation failed: {e}") from e
    return {"id": session.id, "url": session.url}

  def parse_event(
      self, payload: bytes, signature: Optional[str]
  ) -> Optional[NotificationEnvelope]:
    """Verifies a webhook delivery and maps it to an envelope.

    Args:
      payload: The raw request body, exactly as received.
      signature: The Stripe-Signature header.

    Returns:
      The envelope, or None for event types that do not confirm a payment.

    Raises:
      ProviderSignatureError: If the signature is missing or invalid.
      ValidationError: If the payload is not a JSON event.
    """
    if not self.webhook_secret:
      logger.error("Stripe webhook received but no webhook secret configured")
      raise ProviderSignatureError("Webhook secret not configured")
    if not signature:
      logger.warning("Stripe webhook without signature header")
      raise ProviderSignatureError()

    try:
      stripe.Webhook.construct_event(
          payload, signature, self.webhook_secret, tolerance=self.tolerance
      )
    except stripe.SignatureVerificationError as e:
      logger.warning("Invalid Stripe webhook signature: %s", e)
      raise ProviderSignatureError() from e
    except ValueError as e:
      raise ValidationError("Malformed webhook payload") from e

    event = json.loads(payload)
    return envelope_from_event(event)

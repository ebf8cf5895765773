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

"""Checkout service for handing pending orders over to a payment provider.

This module provides the `CheckoutService` class, which creates (or reuses) a
pending order, prices its shipping and opens a hosted payment session with
the chosen provider.

Key responsibilities include:
- Creating orders from drafts with idempotency support.
- Materializing the shipping quote as the order's shipping line.
- Passing the order id to the provider as the correlation value.
- Capturing approved PayPal orders and feeding the capture into
  reconciliation.

Payment is never confirmed here. A buyer reaching the success URL proves
nothing; orders are only marked paid by reconciliation of provider
notifications.
"""

import hashlib
import json
import logging
from typing import Any
from typing import List
from typing import Optional

import db
from enums import OrderStatus
from enums import PaymentProvider
from exceptions import IdempotencyConflictError
from exceptions import OrderNotFoundError
from exceptions import PaymentStartError
from exceptions import ProviderError
from exceptions import ValidationError
from fastapi import BackgroundTasks
from models import CheckoutHandoff
from models import CheckoutRequest
from models import FinalizeResult
from providers.paypal_provider import PayPalGateway
from providers.stripe_provider import StripeGateway
from pydantic import BaseModel
from services import shipping_service
from services.order_store import is_valid_order_id
from services.order_store import OrderStore
from services.reconciliation_service import ReconciliationService
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class CheckoutService:
  """Service for starting payments for orders."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
      site_url: str,
      stripe_gateway: Optional[StripeGateway] = None,
      paypal_gateway: Optional[PayPalGateway] = None,
      reconciliation: Optional[ReconciliationService] = None,
      currency: str = "EUR",
      free_shipping_min: Optional[int] = None,
  ):
    self.transactions_session = transactions_session
    self.order_store = OrderStore(
        products_session, transactions_session, currency=currency
    )
    self.site_url = site_url.rstrip("/")
    self.stripe_gateway = stripe_gateway
    self.paypal_gateway = paypal_gateway
    self.reconciliation = reconciliation
    self.free_shipping_min = free_shipping_min

  def _compute_hash(self, data: Any) -> str:
    """Computes SHA256 hash of the JSON-serialized data."""
    if isinstance(data, BaseModel):
      json_str = json.dumps(data.model_dump(mode="json"), sort_keys=True)
    else:
      json_str = json.dumps(data, sort_keys=True)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()

  async def start_checkout(
      self,
      checkout_req: CheckoutRequest,
      idempotency_key: Optional[str] = None,
  ) -> CheckoutHandoff:
    """Prepares an order for payment and opens a provider session.

    The order (new or existing) is committed as `pending` with its shipping
    line before the provider is called. If the provider call fails the order
    stays pending and can be retried.

    Args:
      checkout_req: Draft items or an existing order id, buyer and provider.
      idempotency_key: Optional key; replays return the first handoff.

    Returns:
      The handoff the buyer's browser is redirected with.

    Raises:
      IdempotencyConflictError: If the key was used with another request.
      ValidationError: If the draft has nothing purchasable or the existing
        order is not pending.
      OrderNotFoundError: If the existing order id is unknown.
      PaymentStartError: If the provider did not create a session.
    """
    logger.info("Starting %s checkout", checkout_req.provider.value)

    request_hash = self._compute_hash(checkout_req)
    if idempotency_key:
      existing_record = await db.get_idempotency_record(
          self.transactions_session, idempotency_key
      )
      if existing_record:
        if existing_record.request_hash != request_hash:
          raise IdempotencyConflictError(
              "Idempotency key reused with different parameters"
          )
        return CheckoutHandoff(**existing_record.response_body)

    try:
      order = await self._prepare_order(checkout_req)
      lines = await self.order_store.get_items(order.id)
      await self.transactions_session.commit()
    except Exception as e:
      await self.transactions_session.rollback()
      raise e

    try:
      handoff = await self._open_session(checkout_req.provider, order, lines)
    except ProviderError as e:
      logger.error(
          "Could not start %s payment for order %s: %s",
          checkout_req.provider.value,
          order.id,
          e.message,
      )
      raise PaymentStartError() from e

    if idempotency_key:
      await db.save_idempotency_record(
          self.transactions_session,
          idempotency_key,
          request_hash,
          200,
          handoff.model_dump(mode="json"),
      )
      await self.transactions_session.commit()

    logger.info(
        "Order %s handed to %s session %s",
        order.id,
        handoff.provider.value,
        handoff.session_handle,
    )
    return handoff

  async def _prepare_order(self, checkout_req: CheckoutRequest) -> db.Order:
    if checkout_req.order_id:
      if not is_valid_order_id(checkout_req.order_id):
        raise ValidationError("Malformed order id")
      order = await self.order_store.get_order(checkout_req.order_id)
      if order is None:
        raise OrderNotFoundError(checkout_req.order_id)
      if order.status != OrderStatus.PENDING.value:
        raise ValidationError(f"Order {order.id} is not pending")
      buyer = checkout_req.buyer
      order.email = order.email or buyer.email
      order.buyer_name = order.buyer_name or buyer.name
      if not order.country and buyer.country:
        order.country = buyer.country.strip().upper()
    else:
      order = await self.order_store.create_order(
          checkout_req.buyer, checkout_req.items
      )

    weight, subtotal = await self.order_store.product_summary(order.id)
    quote = shipping_service.quote(
        order.country, weight, subtotal, self.free_shipping_min
    )
    await self.order_store.replace_shipping_line(
        order.id, quote.amount, quote.label
    )
    logger.info(
        "Order %s shipping: %s %s (free=%s, available=%s)",
        order.id,
        quote.label,
        quote.amount,
        quote.free_by_threshold,
        quote.available,
    )
    return order

  async def _open_session(
      self,
      provider: PaymentProvider,
      order: db.Order,
      lines: List[db.OrderItem],
  ) -> CheckoutHandoff:
    success_url = f"{self.site_url}/checkout/success?order={order.id}"
    cancel_url = f"{self.site_url}/checkout/cancel?order={order.id}"

    if provider == PaymentProvider.STRIPE:
      if self.stripe_gateway is None:
        raise ProviderError("Stripe is not configured", status_code=503)
      session = await self.stripe_gateway.create_session(
          order,
          lines,
          success_url + "&session_id={CHECKOUT_SESSION_ID}",
          cancel_url,
      )
      return CheckoutHandoff(
          order_id=order.id,
          session_handle=session["id"],
          redirect_url=session["url"],
          provider=provider,
      )

    if self.paypal_gateway is None:
      raise ProviderError("PayPal is not configured", status_code=503)
    created = await self.paypal_gateway.create_order(
        order, lines, success_url, cancel_url
    )
    return CheckoutHandoff(
        order_id=order.id,
        session_handle=created["id"],
        redirect_url=created["approve_url"],
        provider=provider,
    )

  async def capture_paypal_order(
      self,
      paypal_order_id: str,
      background_tasks: Optional[BackgroundTasks] = None,
  ) -> FinalizeResult:
    """Captures an approved PayPal order and reconciles the capture.

    Raises:
      ProviderError: If PayPal rejects the capture or reports no completed
        capture. The message is generic; PayPal's reason is only logged.
      ValidationError: If the capture carries no usable order id.
      OrderNotFoundError: If the capture refers to an unknown order.
    """
    if self.paypal_gateway is None or self.reconciliation is None:
      raise ProviderError("PayPal is not configured", status_code=503)

    try:
      capture = await self.paypal_gateway.capture_order(paypal_order_id)
    except ProviderError as e:
      logger.error(
          "Could not capture PayPal order %s: %s", paypal_order_id, e.message
      )
      raise ProviderError(
          "Payment could not be captured", status_code=e.status_code
      ) from e
    envelope = self.paypal_gateway.envelope_from_capture(capture)
    if envelope is None:
      raise ProviderError("Payment was not completed", status_code=402)
    if not is_valid_order_id(envelope.order_id):
      logger.warning(
          "PayPal order %s carries malformed order id %r",
          paypal_order_id,
          envelope.order_id,
      )
      raise ValidationError("Capture does not reference an order")
    return await self.reconciliation.finalize(envelope, background_tasks)

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

"""Wallet payments through the PayPal Orders v2 API.

`PayPalGateway` creates and captures PayPal orders and verifies webhook
deliveries. Both the synchronous capture response and the asynchronous
PAYMENT.CAPTURE.COMPLETED event are reduced to `NotificationEnvelope`s. The
order id travels as the purchase unit's `custom_id`.

The OAuth access token is cached in an explicit `TokenCache` value owned by
the gateway instance; `token_is_fresh` and `cache_token` are the pure rules
for using and refreshing it.
"""

import dataclasses
import decimal
import logging
import time
from typing import Any
from typing import Callable
from typing import Dict
from typing import Mapping
from typing import Optional
from typing import Sequence

import db
from enums import PaymentProvider
from exceptions import ProviderError
from exceptions import ProviderSignatureError
import httpx
from models import NotificationEnvelope

logger = logging.getLogger(__name__)

BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}

# Seconds before the reported expiry from which a token is renewed.
TOKEN_EXPIRY_BUFFER = 60

CAPTURE_COMPLETED_EVENT = "PAYMENT.CAPTURE.COMPLETED"

_TRANSMISSION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


@dataclasses.dataclass(frozen=True)
class TokenCache:
  token: str
  expires_at: float


def token_is_fresh(cache: Optional[TokenCache], now: float) -> bool:
  return cache is not None and now < cache.expires_at


def cache_token(
    token: str,
    expires_in: float,
    now: float,
    buffer: float = TOKEN_EXPIRY_BUFFER,
) -> TokenCache:
  return TokenCache(token=token, expires_at=now + max(0, expires_in - buffer))


def to_minor_units(value: Any) -> Optional[int]:
  """Converts a decimal money string such as "12.90" to cents."""
  if value is None or value == "":
    return None
  try:
    amount = decimal.Decimal(str(value))
  except decimal.InvalidOperation:
    return None
  if not amount.is_finite():
    return None
  return int(
      (amount * 100).quantize(
          decimal.Decimal(1), rounding=decimal.ROUND_HALF_UP
      )
  )


def from_minor_units(amount: int) -> str:
  whole, cents = divmod(amount, 100)
  return f"{whole}.{cents:02d}"


def _first(items: Any) -> Dict[str, Any]:
  if isinstance(items, list) and items:
    return items[0] or {}
  return {}


def envelope_from_capture(
    capture: Mapping[str, Any],
) -> Optional[NotificationEnvelope]:
  """Maps a completed capture response to an envelope.

  Returns None if the PayPal order holds no completed capture.
  """
  unit = _first(capture.get("purchase_units"))
  payment = _first((unit.get("payments") or {}).get("captures"))
  if payment.get("status") != "COMPLETED":
    logger.info(
        "PayPal order %s has no completed capture (status %s)",
        capture.get("id"),
        payment.get("status") or capture.get("status"),
    )
    return None

  breakdown = (unit.get("amount") or {}).get("breakdown") or {}
  return NotificationEnvelope(
      order_id=unit.get("custom_id") or payment.get("custom_id"),
      external_id=payment.get("id") or capture.get("id"),
      provider=PaymentProvider.PAYPAL,
      reported_total=to_minor_units((payment.get("amount") or {}).get("value")),
      reported_shipping=to_minor_units(
          (breakdown.get("shipping") or {}).get("value")
      ),
      authoritative_for_shipping=False,
  )


def envelope_from_event(
    event: Mapping[str, Any],
) -> Optional[NotificationEnvelope]:
  """Maps a verified webhook event to an envelope, or None if irrelevant."""
  event_type = event.get("event_type")
  if event_type != CAPTURE_COMPLETED_EVENT:
    logger.debug("Ignoring PayPal event type %s", event_type)
    return None

  resource = event.get("resource") or {}
  related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
  return NotificationEnvelope(
      order_id=resource.get("custom_id") or resource.get("invoice_id"),
      external_id=resource.get("id")
      or related.get("capture_id")
      or event.get("id")
      or "paypal",
      provider=PaymentProvider.PAYPAL,
      reported_total=to_minor_units(
          (resource.get("amount") or {}).get("value")
      ),
      authoritative_for_shipping=False,
  )


class PayPalGateway:
  """PayPal Orders v2 adapter."""

  envelope_from_capture = staticmethod(envelope_from_capture)

  def __init__(
      self,
      client_id: Optional[str],
      secret: Optional[str],
      mode: str = "sandbox",
      webhook_id: Optional[str] = None,
      transport: Optional[httpx.AsyncBaseTransport] = None,
      clock: Callable[[], float] = time.time,
      timeout: float = 10.0,
  ):
    self.client_id = client_id
    self.secret = secret
    self.base_url = BASE_URLS.get(mode, BASE_URLS["sandbox"])
    self.webhook_id = webhook_id
    self.transport = transport
    self.clock = clock
    self.timeout = timeout
    self.token_cache: Optional[TokenCache] = None

  def _client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=self.base_url, transport=self.transport, timeout=self.timeout
    )

  async def _access_token(self, client: httpx.AsyncClient) -> str:
    now = self.clock()
    if token_is_fresh(self.token_cache, now):
      return self.token_cache.token

    if not self.client_id or not self.secret:
      raise ProviderError("PayPal is not configured", status_code=503)

    try:
      response = await client.post(
          "/v1/oauth2/token",
          data={"grant_type": "client_credentials"},
          auth=(self.client_id, self.secret),
      )
    except httpx.HTTPError as e:
      raise ProviderError(f"PayPal OAuth failed: {e}") from e
    if response.status_code != 200:
      logger.error(
          "PayPal OAuth failed: %s %s", response.status_code, response.text
      )
      raise ProviderError("PayPal OAuth failed")

    body = response.json()
    token = body.get("access_token")
    if not token:
      raise ProviderError("PayPal OAuth response without access token")
    self.token_cache = cache_token(
        token, float(body.get("expires_in") or 0), now
    )
    return token

  async def _api(
      self,
      method: str,
      path: str,
      json_body: Optional[Dict[str, Any]] = None,
  ) -> httpx.Response:
    async with self._client() as client:
      token = await self._access_token(client)
      try:
        return await client.request(
            method,
            path,
            json=json_body,
            headers={"Authorization": f"Bearer {token}"},
        )
      except httpx.HTTPError as e:
        raise ProviderError(f"PayPal API {method} {path} failed: {e}") from e

  @staticmethod
  def _json_or_raise(response: httpx.Response, action: str) -> Dict[str, Any]:
    if response.is_success:
      return response.json() if response.content else {}
    try:
      body = response.json()
    except ValueError:
      body = {}
    message = body.get("message") or body.get("name") or response.reason_phrase
    logger.error(
        "PayPal %s failed: %s %s %s",
        action,
        response.status_code,
        message,
        body.get("details"),
    )
    raise ProviderError(f"PayPal {action} failed: {message}")

  def build_order_payload(
      self,
      order: db.Order,
      lines: Sequence[db.OrderItem],
      return_url: str,
      cancel_url: str,
  ) -> Dict[str, Any]:
    currency = order.currency.upper()
    items = []
    item_total = 0
    shipping = 0
    for line in lines:
      if line.product_id is None:
        shipping += line.unit_price * line.qty
        continue
      item_total += line.unit_price * line.qty
      items.append({
          "name": (line.title or line.product_id)[:127],
          "quantity": str(line.qty),
          "unit_amount": {
              "currency_code": currency,
              "value": from_minor_units(line.unit_price),
          },
          "sku": line.product_id,
      })

    return {
        "intent": "CAPTURE",
        "purchase_units": [{
            "reference_id": order.id,
            "custom_id": order.id,
            "amount": {
                "currency_code": currency,
                "value": from_minor_units(item_total + shipping),
                "breakdown": {
                    "item_total": {
                        "currency_code": currency,
                        "value": from_minor_units(item_total),
                    },
                    "shipping": {
                        "currency_code": currency,
                        "value": from_minor_units(shipping),
                    },
                },
            },
            "items": items,
        }],
        "application_context": {
            "return_url": return_url,
            "cancel_url": cancel_url,
            "user_action": "PAY_NOW",
        },
    }

  async def create_order(
      self,
      order: db.Order,
      lines: Sequence[db.OrderItem],
      return_url: str,
      cancel_url: str,
  ) -> Dict[str, str]:
    """Creates a PayPal order and returns its id and approval url."""
    payload = self.build_order_payload(order, lines, return_url, cancel_url)
    response = await self._api("POST", "/v2/checkout/orders", payload)
    body = self._json_or_raise(response, "create order")

    approve_url = next(
        (
            link.get("href")
            for link in body.get("links") or []
            if link.get("rel") in ("approve", "payer-action")
        ),
        None,
    )
    if not body.get("id") or not approve_url:
      raise ProviderError("PayPal order response without approval link")
    return {"id": body["id"], "approve_url": approve_url}

  async def capture_order(self, paypal_order_id: str) -> Dict[str, Any]:
    """Captures an approved PayPal order.

    An order that was captured before is fetched instead, so repeating the
    call returns the same capture.
    """
    response = await self._api(
        "POST", f"/v2/checkout/orders/{paypal_order_id}/capture", {}
    )
    if (
        response.status_code == 422
        and "ORDER_ALREADY_CAPTURED" in response.text
    ):
      logger.info("PayPal order %s already captured", paypal_order_id)
      response = await self._api(
          "GET", f"/v2/checkout/orders/{paypal_order_id}"
      )
    return self._json_or_raise(response, "capture")

  async def verify_webhook(
      self, headers: Mapping[str, str], event: Dict[str, Any]
  ) -> None:
    """Verifies a webhook delivery through PayPal's verification API.

    Raises:
      ProviderSignatureError: If verification is not configured, transmission
        headers are missing, or PayPal does not confirm the signature.
    """
    if not self.webhook_id:
      logger.error("PayPal webhook received but no webhook id configured")
      raise ProviderSignatureError("Webhook verification not configured")

    lowered = {k.lower(): v for k, v in headers.items()}
    payload = {}
    for field, header in _TRANSMISSION_HEADERS.items():
      value = lowered.get(header)
      if not value:
        logger.warning("PayPal webhook without %s header", header)
        raise ProviderSignatureError()
      payload[field] = value
    payload["webhook_id"] = self.webhook_id
    payload["webhook_event"] = event

    response = await self._api(
        "POST", "/v1/notifications/verify-webhook-signature", payload
    )
    body = self._json_or_raise(response, "webhook verification")
    if body.get("verification_status") != "SUCCESS":
      logger.warning(
          "PayPal webhook %s failed verification: %s",
          event.get("id"),
          body.get("verification_status"),
      )
      raise ProviderSignatureError()

  async def parse_event(
      self, headers: Mapping[str, str], event: Dict[str, Any]
  ) -> Optional[NotificationEnvelope]:
    """Verifies a webhook delivery and maps it to an envelope."""
    await self.verify_webhook(headers, event)
    return envelope_from_event(event)

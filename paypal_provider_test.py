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

"""Tests for the PayPal adapter."""

import asyncio
import json

from absl.testing import absltest
from absl.testing import parameterized
import db
from enums import PaymentProvider
from exceptions import ProviderError
from exceptions import ProviderSignatureError
import httpx
from providers import paypal_provider
from providers.paypal_provider import PayPalGateway

ORDER_ID = "3f2b8f8e-3c1a-4d33-9a43-0d9b5c1f9a10"

WEBHOOK_HEADERS = {
    "PAYPAL-AUTH-ALGO": "SHA256withRSA",
    "PAYPAL-CERT-URL": "https://api.paypal.com/cert",
    "PAYPAL-TRANSMISSION-ID": "tx-1",
    "PAYPAL-TRANSMISSION-SIG": "sig",
    "PAYPAL-TRANSMISSION-TIME": "2026-01-01T00:00:00Z",
}

CAPTURE_EVENT = {
    "id": "WH-1",
    "event_type": "PAYMENT.CAPTURE.COMPLETED",
    "resource": {
        "id": "CAP-1",
        "custom_id": ORDER_ID,
        "amount": {"currency_code": "EUR", "value": "16.50"},
    },
}


def completed_capture(order_id=ORDER_ID, status="COMPLETED"):
  return {
      "id": "PP-1",
      "status": "COMPLETED",
      "purchase_units": [{
          "reference_id": order_id,
          "custom_id": order_id,
          "amount": {
              "value": "16.50",
              "breakdown": {
                  "item_total": {"value": "10.00"},
                  "shipping": {"value": "6.50"},
              },
          },
          "payments": {
              "captures": [{
                  "id": "CAP-1",
                  "status": status,
                  "amount": {"value": "16.50"},
              }]
          },
      }],
  }


class FakePayPal:
  """Routes PayPal API requests to canned responses and records them."""

  def __init__(self):
    self.requests = []
    self.token_calls = 0
    self.capture_response = (201, completed_capture())
    self.verification_status = "SUCCESS"

  def handler(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    path = request.url.path
    if path == "/v1/oauth2/token":
      self.token_calls += 1
      return httpx.Response(
          200,
          json={
              "access_token": f"token-{self.token_calls}",
              "expires_in": 3600,
          },
      )
    expected_auth = f"Bearer token-{self.token_calls}"
    if request.headers.get("Authorization") != expected_auth:
      return httpx.Response(401, json={"name": "AUTHENTICATION_FAILURE"})
    if path == "/v2/checkout/orders" and request.method == "POST":
      return httpx.Response(
          201,
          json={
              "id": "PP-1",
              "links": [
                  {"rel": "self", "href": "https://paypal.test/PP-1"},
                  {"rel": "approve", "href": "https://paypal.test/approve"},
              ],
          },
      )
    if path == "/v2/checkout/orders/PP-1/capture":
      status, body = self.capture_response
      return httpx.Response(status, json=body)
    if path == "/v2/checkout/orders/PP-1":
      return httpx.Response(200, json=completed_capture())
    if path == "/v1/notifications/verify-webhook-signature":
      return httpx.Response(
          200, json={"verification_status": self.verification_status}
      )
    return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

  def gateway(self, clock=lambda: 1000.0, **kwargs) -> PayPalGateway:
    kwargs.setdefault("webhook_id", "WH-ID")
    return PayPalGateway(
        "client",
        "secret",
        transport=httpx.MockTransport(self.handler),
        clock=clock,
        **kwargs,
    )


class TokenCacheTest(absltest.TestCase):

  def test_cache_token_subtracts_buffer(self):
    cache = paypal_provider.cache_token("t", 3600, now=1000.0)
    self.assertEqual(cache.expires_at, 1000.0 + 3600 - 60)
    self.assertTrue(paypal_provider.token_is_fresh(cache, 4539.0))
    self.assertFalse(paypal_provider.token_is_fresh(cache, 4540.0))

  def test_short_lived_token_is_never_fresh(self):
    cache = paypal_provider.cache_token("t", 30, now=1000.0)
    self.assertFalse(paypal_provider.token_is_fresh(cache, 1000.0))

  def test_empty_cache(self):
    self.assertFalse(paypal_provider.token_is_fresh(None, 0))


class MinorUnitsTest(parameterized.TestCase):

  @parameterized.parameters(
      ("12.90", 1290),
      ("0.005", 1),
      ("10", 1000),
      (6.5, 650),
      ("", None),
      (None, None),
      ("abc", None),
      ("NaN", None),
  )
  def test_to_minor_units(self, value, expected):
    self.assertEqual(paypal_provider.to_minor_units(value), expected)

  @parameterized.parameters((1290, "12.90"), (5, "0.05"), (0, "0.00"))
  def test_from_minor_units(self, amount, expected):
    self.assertEqual(paypal_provider.from_minor_units(amount), expected)


class EnvelopeTest(absltest.TestCase):

  def test_envelope_from_capture(self):
    envelope = paypal_provider.envelope_from_capture(completed_capture())
    self.assertEqual(envelope.order_id, ORDER_ID)
    self.assertEqual(envelope.external_id, "CAP-1")
    self.assertEqual(envelope.provider, PaymentProvider.PAYPAL)
    self.assertEqual(envelope.reported_total, 1650)
    self.assertEqual(envelope.reported_shipping, 650)
    self.assertFalse(envelope.authoritative_for_shipping)

  def test_incomplete_capture(self):
    self.assertIsNone(
        paypal_provider.envelope_from_capture(
            completed_capture(status="PENDING")
        )
    )
    self.assertIsNone(paypal_provider.envelope_from_capture({}))

  def test_envelope_from_event(self):
    envelope = paypal_provider.envelope_from_event(CAPTURE_EVENT)
    self.assertEqual(envelope.order_id, ORDER_ID)
    self.assertEqual(envelope.external_id, "CAP-1")
    self.assertEqual(envelope.reported_total, 1650)
    self.assertIsNone(envelope.reported_shipping)

  def test_other_events_are_ignored(self):
    self.assertIsNone(
        paypal_provider.envelope_from_event(
            {"event_type": "CHECKOUT.ORDER.APPROVED", "resource": {}}
        )
    )


class GatewayTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.paypal = FakePayPal()
    self.order = db.Order(id=ORDER_ID, currency="eur", amount_total=1650)
    self.lines = [
        db.OrderItem(product_id="lp", title="Vinyl LP", qty=1, unit_price=1000),
        db.OrderItem(product_id=None, title="DPD (AT)", qty=1, unit_price=650),
    ]

  def test_build_order_payload(self):
    payload = self.paypal.gateway().build_order_payload(
        self.order, self.lines, "https://s/ok", "https://s/cancel"
    )
    (unit,) = payload["purchase_units"]
    self.assertEqual(unit["custom_id"], ORDER_ID)
    self.assertEqual(unit["amount"]["currency_code"], "EUR")
    self.assertEqual(unit["amount"]["value"], "16.50")
    breakdown = unit["amount"]["breakdown"]
    self.assertEqual(breakdown["item_total"]["value"], "10.00")
    self.assertEqual(breakdown["shipping"]["value"], "6.50")
    self.assertEqual([i["sku"] for i in unit["items"]], ["lp"])
    self.assertEqual(
        payload["application_context"]["return_url"], "https://s/ok"
    )

  def test_create_order_reuses_token(self):
    gateway = self.paypal.gateway()

    async def main():
      first = await gateway.create_order(
          self.order, self.lines, "https://s/ok", "https://s/cancel"
      )
      await gateway.create_order(
          self.order, self.lines, "https://s/ok", "https://s/cancel"
      )
      return first

    created = asyncio.run(main())
    self.assertEqual(
        created, {"id": "PP-1", "approve_url": "https://paypal.test/approve"}
    )
    self.assertEqual(self.paypal.token_calls, 1)
    body = json.loads(self.paypal.requests[1].content)
    self.assertEqual(body["purchase_units"][0]["custom_id"], ORDER_ID)

  def test_expired_token_is_renewed(self):
    now = [1000.0]
    gateway = self.paypal.gateway(clock=lambda: now[0])

    async def main():
      await gateway.capture_order("PP-1")
      now[0] += 3600
      await gateway.capture_order("PP-1")

    asyncio.run(main())
    self.assertEqual(self.paypal.token_calls, 2)

  def test_capture_order(self):
    capture = asyncio.run(self.paypal.gateway().capture_order("PP-1"))
    envelope = PayPalGateway.envelope_from_capture(capture)
    self.assertEqual(envelope.external_id, "CAP-1")

  def test_capture_already_captured_fetches_order(self):
    self.paypal.capture_response = (
        422,
        {
            "name": "UNPROCESSABLE_ENTITY",
            "details": [{"issue": "ORDER_ALREADY_CAPTURED"}],
        },
    )
    capture = asyncio.run(self.paypal.gateway().capture_order("PP-1"))
    self.assertEqual(capture["id"], "PP-1")
    self.assertEqual(self.paypal.requests[-1].method, "GET")

  def test_capture_failure_raises(self):
    self.paypal.capture_response = (
        422,
        {"name": "UNPROCESSABLE_ENTITY", "message": "Instrument declined"},
    )
    with self.assertRaises(ProviderError):
      asyncio.run(self.paypal.gateway().capture_order("PP-1"))

  def test_missing_credentials(self):
    gateway = PayPalGateway(
        None, None, transport=httpx.MockTransport(self.paypal.handler)
    )
    with self.assertRaises(ProviderError) as ctx:
      asyncio.run(gateway.capture_order("PP-1"))
    self.assertEqual(ctx.exception.status_code, 503)
    self.assertEmpty(self.paypal.requests)

  def test_parse_event_verifies_signature(self):
    envelope = asyncio.run(
        self.paypal.gateway().parse_event(WEBHOOK_HEADERS, CAPTURE_EVENT)
    )
    self.assertEqual(envelope.order_id, ORDER_ID)
    body = json.loads(self.paypal.requests[-1].content)
    self.assertEqual(body["webhook_id"], "WH-ID")
    self.assertEqual(body["transmission_id"], "tx-1")
    self.assertEqual(body["webhook_event"], CAPTURE_EVENT)

  def test_failed_verification(self):
    self.paypal.verification_status = "FAILURE"
    with self.assertRaises(ProviderSignatureError):
      asyncio.run(
          self.paypal.gateway().parse_event(WEBHOOK_HEADERS, CAPTURE_EVENT)
      )

  def test_missing_transmission_header(self):
    headers = dict(WEBHOOK_HEADERS)
    del headers["PAYPAL-TRANSMISSION-SIG"]
    with self.assertRaises(ProviderSignatureError):
      asyncio.run(self.paypal.gateway().parse_event(headers, CAPTURE_EVENT))
    self.assertEmpty(self.paypal.requests)

  def test_unconfigured_webhook_id(self):
    with self.assertRaises(ProviderSignatureError):
      asyncio.run(
          self.paypal.gateway(webhook_id=None).parse_event(
              WEBHOOK_HEADERS, CAPTURE_EVENT
          )
      )


if __name__ == "__main__":
  absltest.main()

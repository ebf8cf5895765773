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

"""Webhook receivers for payment provider notifications.

Both receivers acknowledge every delivery whose signature checks out, even
when nothing had to be done (duplicates, unknown orders, irrelevant event
types), so the provider stops redelivering. A bad signature is rejected with
400 and a transient store failure surfaces as 503 so the provider retries.
"""

import json
import logging

import dependencies
from exceptions import ValidationError
from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Depends
from fastapi import Header
from fastapi import Request
from models import WebhookAck
from providers.paypal_provider import PayPalGateway
from providers.stripe_provider import StripeGateway
from services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/webhooks/stripe",
    response_model=WebhookAck,
    operation_id="stripe_webhook",
)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    gateway: StripeGateway = Depends(dependencies.get_stripe_gateway),
    reconciliation: ReconciliationService = Depends(
        dependencies.get_reconciliation_service
    ),
) -> WebhookAck:
  """Receive a Stripe event."""
  payload = await request.body()
  envelope = gateway.parse_event(payload, stripe_signature)
  if envelope is not None:
    await reconciliation.handle_notification(envelope, background_tasks)
  return WebhookAck()


@router.post(
    "/webhooks/paypal",
    response_model=WebhookAck,
    operation_id="paypal_webhook",
)
async def paypal_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    gateway: PayPalGateway = Depends(dependencies.get_paypal_gateway),
    reconciliation: ReconciliationService = Depends(
        dependencies.get_reconciliation_service
    ),
) -> WebhookAck:
  """Receive a PayPal event."""
  try:
    event = json.loads(await request.body())
  except ValueError as e:
    raise ValidationError("Malformed webhook payload") from e
  if not isinstance(event, dict):
    raise ValidationError("Malformed webhook payload")

  envelope = await gateway.parse_event(request.headers, event)
  if envelope is not None:
    await reconciliation.handle_notification(envelope, background_tasks)
  return WebhookAck()

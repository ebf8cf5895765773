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

"""FastAPI dependencies for the storefront server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Header extraction (Idempotency-Key, Admin-Token).
- Database session management (Products and Transactions DBs).
- Service and provider gateway instantiation from flags.
"""

import hmac
from typing import AsyncGenerator, Optional

import config
import db
from fastapi import Depends
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from providers.paypal_provider import PayPalGateway
from providers.stripe_provider import StripeGateway
from services.checkout_service import CheckoutService
from services.invoice_service import InvoiceNumberAuthority
from services.notification_service import ArtifactDispatcher
from services.notification_service import LoggingDispatcher
from services.notification_service import NotificationService
from services.notification_service import RelayDispatcher
from services.order_service import OrderService
from services.order_store import OrderStore
from services.reconciliation_service import ReconciliationService
from sqlalchemy.ext.asyncio import AsyncSession


async def idempotency_header(
    idempotency_key: Optional[str] = Header(None),
) -> Optional[str]:
  """Extracts the optional Idempotency-Key header."""
  return idempotency_key


async def verify_admin_token(
    admin_token: Optional[str] = Header(None, alias="Admin-Token"),
) -> None:
  """Verifies the shared secret of the admin endpoints."""
  expected = config.FLAGS.admin_token
  if not expected:
    raise HTTPException(status_code=500, detail="Admin token not configured")
  if not admin_token or not hmac.compare_digest(admin_token, expected):
    raise HTTPException(status_code=403, detail="Invalid Admin-Token")


async def get_products_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Products DB session."""
  async with db.manager.products_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_stripe_gateway() -> StripeGateway:
  """Dependency provider for the Stripe adapter."""
  return StripeGateway(
      config.FLAGS.stripe_secret_key, config.FLAGS.stripe_webhook_secret
  )


def get_paypal_gateway(request: Request) -> PayPalGateway:
  """Dependency provider for the PayPal adapter.

  One gateway is kept per application so its access token cache survives
  across requests.
  """
  gateway = getattr(request.app.state, "paypal_gateway", None)
  if gateway is None:
    gateway = PayPalGateway(
        config.FLAGS.paypal_client_id,
        config.FLAGS.paypal_secret,
        mode=config.FLAGS.paypal_mode,
        webhook_id=config.FLAGS.paypal_webhook_id,
    )
    request.app.state.paypal_gateway = gateway
  return gateway


def get_dispatcher() -> ArtifactDispatcher:
  """Dependency provider for the document and message dispatcher."""
  if config.FLAGS.mail_relay_url:
    return RelayDispatcher(config.FLAGS.mail_relay_url, config.FLAGS.mail_from)
  return LoggingDispatcher()


def get_reconciliation_service(
    dispatcher: ArtifactDispatcher = Depends(get_dispatcher),
) -> ReconciliationService:
  """Dependency provider for ReconciliationService."""
  return ReconciliationService(
      db.manager.transactions_session_factory,
      invoice_authority=InvoiceNumberAuthority(),
      notifier=NotificationService(dispatcher, config.FLAGS.admin_email),
      max_retries=config.FLAGS.store_retry_attempts,
  )


def get_checkout_service(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
    stripe_gateway: StripeGateway = Depends(get_stripe_gateway),
    paypal_gateway: PayPalGateway = Depends(get_paypal_gateway),
    reconciliation: ReconciliationService = Depends(
        get_reconciliation_service
    ),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(
      products_session,
      transactions_session,
      config.FLAGS.site_url,
      stripe_gateway=stripe_gateway,
      paypal_gateway=paypal_gateway,
      reconciliation=reconciliation,
      currency=config.FLAGS.currency,
      free_shipping_min=config.FLAGS.free_shipping_min,
  )


def get_order_service(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> OrderService:
  """Dependency provider for OrderService."""
  return OrderService(
      OrderStore(
          products_session,
          transactions_session,
          currency=config.FLAGS.currency,
      )
  )

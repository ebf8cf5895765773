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

"""Checkout routes: starting payments and capturing PayPal orders."""

from typing import Optional

import dependencies
from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import CheckoutHandoff
from models import CheckoutRequest
from models import FinalizeResult
from services.checkout_service import CheckoutService

router = APIRouter()


@router.post(
    "/checkout-sessions",
    response_model=CheckoutHandoff,
    operation_id="start_checkout",
)
async def start_checkout(
    checkout_req: CheckoutRequest = Body(...),
    idempotency_key: Optional[str] = Depends(dependencies.idempotency_header),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> CheckoutHandoff:
  """Create or reuse a pending order and open a hosted payment session."""
  return await checkout_service.start_checkout(checkout_req, idempotency_key)


@router.post(
    "/paypal/orders/{paypal_order_id}/capture",
    response_model=FinalizeResult,
    operation_id="capture_paypal_order",
)
async def capture_paypal_order(
    background_tasks: BackgroundTasks,
    paypal_order_id: str = Path(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> FinalizeResult:
  """Capture an approved PayPal order and confirm its payment."""
  return await checkout_service.capture_paypal_order(
      paypal_order_id, background_tasks
  )

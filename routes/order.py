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

"""Order routes for the storefront server."""

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import OrderView
from models import StatusUpdateRequest
from services.order_service import OrderService

router = APIRouter()


@router.get(
    "/orders/{id}",
    response_model=OrderView,
    operation_id="get_order",
)
async def get_order(
    order_id: str = Path(..., alias="id"),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderView:
  """Get an order by ID."""
  return await order_service.get_order(order_id)


@router.patch(
    "/admin/orders/{id}/status",
    response_model=OrderView,
    operation_id="update_order_status",
    dependencies=[Depends(dependencies.verify_admin_token)],
)
async def update_order_status(
    order_id: str = Path(..., alias="id"),
    update: StatusUpdateRequest = Body(...),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderView:
  """Move an order through fulfillment, or cancel or refund it."""
  return await order_service.update_status(order_id, update.status)

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

"""Order lookup and administrative status changes."""

import logging

from enums import OrderStatus
from exceptions import OrderNotFoundError
from models import OrderItemView
from models import OrderView
from services.order_store import OrderStore

logger = logging.getLogger(__name__)


class OrderService:
  """Read access and admin overrides on top of `OrderStore`."""

  def __init__(self, order_store: OrderStore):
    self.order_store = order_store
    self.transactions_session = order_store.transactions_session

  async def get_order(self, order_id: str) -> OrderView:
    order = await self.order_store.get_order(order_id)
    if order is None:
      raise OrderNotFoundError(order_id)
    items = await self.order_store.get_items(order_id)
    # Close the read transaction so it does not hold the write lock.
    await self.transactions_session.commit()
    return self._to_view(order, items)

  async def update_status(
      self, order_id: str, status: OrderStatus
  ) -> OrderView:
    try:
      order = await self.order_store.update_status(order_id, status)
      items = await self.order_store.get_items(order_id)
      await self.transactions_session.commit()
    except Exception as e:
      await self.transactions_session.rollback()
      raise e
    return self._to_view(order, items)

  @staticmethod
  def _to_view(order, items) -> OrderView:
    view = OrderView.model_validate(order)
    return view.model_copy(
        update={"items": [OrderItemView.model_validate(i) for i in items]}
    )

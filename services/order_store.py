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

"""Order store: the only write path for order money and quantity fields.

`OrderStore` creates orders from drafts, maintains the shipping line and keeps
`Order.amount_total` equal to the sum of the order's lines. It flushes but
never commits; the calling service owns the transaction.
"""

import collections
import logging
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
import uuid

import db
from enums import FINALIZED_STATUSES
from enums import OrderStatus
from enums import TERMINAL_STATUSES
from exceptions import InvalidStatusTransitionError
from exceptions import OrderNotFoundError
from exceptions import ValidationError
from models import BuyerInfo
from models import DraftItem
from models import ShippingLine
from services import shipping_service
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_SHIPPING_TITLE = "Shipping"

_FULFILLMENT_ORDER = (
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
)


def is_valid_order_id(value) -> bool:
  """Returns whether `value` has the shape of an order id issued here."""
  if not isinstance(value, str):
    return False
  try:
    uuid.UUID(value)
  except ValueError:
    return False
  return True


class OrderStore:
  """Persistent Order aggregate over the products and transactions DBs."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
      currency: str = "EUR",
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session
    self.currency = currency

  async def create_order(
      self,
      buyer: BuyerInfo,
      items: Sequence[DraftItem],
      shipping_line: Optional[ShippingLine] = None,
  ) -> db.Order:
    """Creates a pending order from a draft.

    Duplicate product ids are merged. Unknown, inactive and sold out products
    are dropped and quantities above the available stock are clamped, so a
    partially available draft still produces an order. Prices and titles are
    snapshotted from the catalog.

    Args:
      buyer: Buyer contact and destination.
      items: Requested products and quantities.
      shipping_line: Optional shipping charge to attach right away.

    Returns:
      The flushed order.

    Raises:
      ValidationError: If a quantity is not positive or no purchasable line
        remains.
    """
    requested = collections.OrderedDict()
    for item in items:
      if item.quantity <= 0:
        raise ValidationError(
            f"Quantity for product {item.product_id} must be positive"
        )
      requested[item.product_id] = (
          requested.get(item.product_id, 0) + item.quantity
      )
    if not requested:
      raise ValidationError("Order must contain at least one item")

    products = await db.get_products(self.products_session, requested)
    inventories = await db.get_inventories(
        self.transactions_session, requested
    )

    lines = []
    for product_id, quantity in requested.items():
      product = products.get(product_id)
      inventory = inventories.get(product_id)
      if (
          product is None
          or inventory is None
          or not inventory.active
          or inventory.stock <= 0
      ):
        logger.info("Dropping unavailable product %s from draft", product_id)
        continue

      qty = min(quantity, inventory.stock)
      if qty < quantity:
        logger.info(
            "Clamped product %s from %s to %s (stock)",
            product_id,
            quantity,
            qty,
        )
      lines.append(
          db.OrderItem(
              product_id=product_id,
              title=product.title,
              qty=qty,
              unit_price=product.price or 0,
          )
      )

    if not lines:
      raise ValidationError("None of the requested products is available")

    order = db.Order(
        id=str(uuid.uuid4()),
        status=OrderStatus.PENDING.value,
        currency=self.currency,
        amount_total=0,
        email=buyer.email,
        buyer_name=buyer.name,
        country=(buyer.country or "").strip().upper() or None,
        created_at=db.utcnow_iso(),
    )
    self.transactions_session.add(order)
    await self.transactions_session.flush()

    for line in lines:
      line.order_id = order.id
      self.transactions_session.add(line)
    if shipping_line is not None and shipping_line.amount > 0:
      self.transactions_session.add(
          self._shipping_item(
              order.id, shipping_line.amount, shipping_line.label
          )
      )
    await self.transactions_session.flush()

    await self.recompute_total(order.id)
    logger.info(
        "Created order %s with %s line(s), total %s",
        order.id,
        len(lines),
        order.amount_total,
    )
    return order

  async def get_order(
      self, order_id: str, for_update: bool = False
  ) -> Optional[db.Order]:
    return await db.get_order(
        self.transactions_session, order_id, for_update=for_update
    )

  async def get_items(self, order_id: str) -> List[db.OrderItem]:
    return await db.get_order_items(self.transactions_session, order_id)

  async def _require_order(
      self, order_id: str, for_update: bool = False
  ) -> db.Order:
    order = await self.get_order(order_id, for_update=for_update)
    if order is None:
      raise OrderNotFoundError(order_id)
    return order

  async def recompute_total(self, order_id: str) -> int:
    """Writes the sum of the order's lines to `amount_total`."""
    order = await self._require_order(order_id)
    await self.transactions_session.flush()
    total = await db.sum_order_items(self.transactions_session, order_id)
    order.amount_total = total
    await self.transactions_session.flush()
    return total

  async def replace_shipping_line(
      self, order_id: str, new_amount: int, new_label: Optional[str]
  ) -> int:
    """Replaces every shipping line of an order with at most one new line.

    Safe to call repeatedly: existing lines are deleted before the new one is
    inserted, and no line is inserted for an amount of 0.

    Returns:
      The recomputed order total.
    """
    await self._require_order(order_id)
    removed = await db.delete_shipping_lines(
        self.transactions_session, order_id
    )
    if new_amount and new_amount > 0:
      self.transactions_session.add(
          self._shipping_item(order_id, new_amount, new_label)
      )
    logger.debug(
        "Order %s: replaced %s shipping line(s) with amount %s",
        order_id,
        removed,
        new_amount,
    )
    return await self.recompute_total(order_id)

  async def product_summary(self, order_id: str) -> Tuple[int, int]:
    """Returns (total weight in grams, product subtotal) of an order."""
    items = [i for i in await self.get_items(order_id) if i.product_id]
    products = await db.get_products(
        self.products_session, {i.product_id for i in items}
    )
    weight = shipping_service.total_weight(
        (products[i.product_id].weight_grams, i.qty)
        for i in items
        if i.product_id in products
    )
    subtotal = sum(i.qty * i.unit_price for i in items)
    return weight, subtotal

  async def update_status(
      self, order_id: str, status: OrderStatus
  ) -> db.Order:
    """Applies an administrative status change.

    Fulfillment only moves forward (paid, processing, shipped). Canceled and
    refunded are reachable from any non-terminal status. `paid` is never set
    here; only payment reconciliation confirms an order.
    """
    order = await self._require_order(order_id, for_update=True)
    current = OrderStatus(order.status)
    if status == current:
      return order

    if current in TERMINAL_STATUSES:
      allowed = False
    elif status in TERMINAL_STATUSES:
      allowed = True
    elif status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED):
      allowed = current in FINALIZED_STATUSES and _FULFILLMENT_ORDER.index(
          status
      ) > _FULFILLMENT_ORDER.index(current)
    else:
      allowed = False

    if not allowed:
      raise InvalidStatusTransitionError(
          f"Cannot change order {order_id} from '{current.value}' to"
          f" '{status.value}'"
      )

    order.status = status.value
    await self.transactions_session.flush()
    logger.info(
        "Order %s status changed %s -> %s",
        order_id,
        current.value,
        status.value,
    )
    return order

  @staticmethod
  def _shipping_item(
      order_id: str, amount: int, label: Optional[str]
  ) -> db.OrderItem:
    return db.OrderItem(
        order_id=order_id,
        product_id=None,
        title=label or DEFAULT_SHIPPING_TITLE,
        qty=1,
        unit_price=amount,
    )

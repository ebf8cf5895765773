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

"""Payment reconciliation: the pending -> paid transition of an order.

Provider adapters turn their notifications into `NotificationEnvelope`s and
hand them to `ReconciliationService`. Notifications may arrive any number of
times, in any order and concurrently; `finalize` applies the stock decrement,
shipping normalization, total recomputation and invoice number exactly once
per order.

All of these steps run in one transaction that starts by locking the order
(`BEGIN IMMEDIATE` on SQLite, `SELECT ... FOR UPDATE` elsewhere). A second
caller for the same order blocks until the first commits and then finds the
order already paid.
"""

import logging
from typing import List
from typing import Optional
from typing import Tuple

import db
from enums import FINALIZED_STATUSES
from enums import OrderStatus
from enums import TERMINAL_STATUSES
from exceptions import OrderNotFoundError
from exceptions import PartialLineError
from exceptions import TransientStoreError
from fastapi import BackgroundTasks
from models import FinalizeResult
from models import NotificationEnvelope
import retry
from services.invoice_service import InvoiceNumberAuthority
from services.notification_service import NotificationService
from services.order_store import is_valid_order_id
from services.order_store import OrderStore
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

_Outcome = Tuple[FinalizeResult, Optional[db.Order], List[db.OrderItem]]


class ReconciliationService:
  """Applies verified payment notifications to orders."""

  def __init__(
      self,
      transactions_session_factory: sessionmaker,
      invoice_authority: Optional[InvoiceNumberAuthority] = None,
      notifier: Optional[NotificationService] = None,
      max_retries: int = 3,
      retry_delay: float = 0.05,
  ):
    self.transactions_session_factory = transactions_session_factory
    self.invoice_authority = invoice_authority or InvoiceNumberAuthority()
    self.notifier = notifier
    self.max_retries = max_retries
    self.retry_delay = retry_delay

  async def finalize(
      self,
      envelope: NotificationEnvelope,
      background_tasks: Optional[BackgroundTasks] = None,
  ) -> FinalizeResult:
    """Moves the order of `envelope` from pending to paid, at most once.

    Args:
      envelope: The verified notification.
      background_tasks: If given, the confirmation is sent after the
        response instead of before returning.

    Returns:
      `applied` is True only for the call that performed the transition.
      Later calls for a paid order report `already_finalized`.

    Raises:
      OrderNotFoundError: If no order has the envelope's order id.
      TransientStoreError: If the store stayed locked or unavailable after
        all retries. Repeating the call later is safe.
    """
    result, order, items = await retry.retry_async(
        lambda: self._finalize_once(envelope),
        max_retries=self.max_retries,
        initial_delay=self.retry_delay,
        exceptions=(TransientStoreError,),
    )

    if result.applied and self.notifier is not None and order is not None:
      if background_tasks is not None:
        background_tasks.add_task(self.notifier.order_confirmed, order, items)
      else:
        await self.notifier.order_confirmed(order, items)
    return result

  async def handle_notification(
      self,
      envelope: NotificationEnvelope,
      background_tasks: Optional[BackgroundTasks] = None,
  ) -> FinalizeResult:
    """Finalizes for a webhook receiver, which must acknowledge when it can.

    Malformed order ids are dropped and well-formed unknown ids are
    acknowledged, so the provider stops redelivering either. Only
    `TransientStoreError` propagates.
    """
    if not is_valid_order_id(envelope.order_id):
      logger.warning(
          "Dropping %s notification %s with malformed order id %r",
          envelope.provider.value,
          envelope.external_id,
          envelope.order_id,
      )
      return FinalizeResult(
          applied=False, already_finalized=False, order_id=None
      )

    try:
      return await self.finalize(envelope, background_tasks)
    except OrderNotFoundError:
      logger.warning(
          "Acknowledging %s notification %s for unknown order %s",
          envelope.provider.value,
          envelope.external_id,
          envelope.order_id,
      )
      return FinalizeResult(
          applied=False, already_finalized=False, order_id=envelope.order_id
      )

  async def _finalize_once(self, envelope: NotificationEnvelope) -> _Outcome:
    async with self.transactions_session_factory() as session:
      try:
        outcome = await self._apply(session, envelope)
        await session.commit()
      except OperationalError as e:
        await session.rollback()
        logger.warning(
            "Store unavailable while finalizing %s: %s", envelope.order_id, e
        )
        raise TransientStoreError() from e
      except Exception as e:
        await session.rollback()
        raise e
    return outcome

  async def _apply(
      self, session: AsyncSession, envelope: NotificationEnvelope
  ) -> _Outcome:
    store = OrderStore(None, session)
    order = await store.get_order(envelope.order_id, for_update=True)
    if order is None:
      raise OrderNotFoundError(envelope.order_id)

    await db.log_request(
        session,
        method="NOTIFY",
        url=f"{envelope.provider.value}:{envelope.external_id}",
        order_id=order.id,
        payload=envelope.model_dump(mode="json"),
    )

    status = OrderStatus(order.status)
    if status in FINALIZED_STATUSES:
      logger.info(
          "Order %s already finalized, ignoring %s notification %s",
          order.id,
          envelope.provider.value,
          envelope.external_id,
      )
      return (
          FinalizeResult(
              applied=False,
              already_finalized=True,
              order_id=order.id,
              invoice_number=order.invoice_number,
          ),
          order,
          [],
      )
    if status in TERMINAL_STATUSES:
      logger.warning(
          "Order %s is %s, not applying %s notification %s",
          order.id,
          status.value,
          envelope.provider.value,
          envelope.external_id,
      )
      return (
          FinalizeResult(
              applied=False, already_finalized=False, order_id=order.id
          ),
          order,
          [],
      )

    items = await store.get_items(order.id)
    await self._decrement_stock(session, order.id, items)

    if (
        envelope.authoritative_for_shipping
        and envelope.reported_shipping is not None
    ):
      current_label = next(
          (i.title for i in items if i.product_id is None), None
      )
      await store.replace_shipping_line(
          order.id,
          envelope.reported_shipping,
          envelope.shipping_label or current_label,
      )

    total = await store.recompute_total(order.id)
    if envelope.reported_total is not None and envelope.reported_total != total:
      logger.warning(
          "Order %s: %s reported total %s, order lines sum to %s",
          order.id,
          envelope.provider.value,
          envelope.reported_total,
          total,
      )

    order.invoice_number = await self.invoice_authority.next_invoice_number(
        session
    )
    order.status = OrderStatus.PAID.value
    order.external_payment_ref = envelope.external_id
    order.payment_provider = envelope.provider.value
    order.paid_at = db.utcnow_iso()
    await session.flush()

    logger.info(
        "Order %s paid via %s (%s), invoice %s",
        order.id,
        envelope.provider.value,
        envelope.external_id,
        order.invoice_number,
    )
    return (
        FinalizeResult(
            applied=True,
            already_finalized=False,
            order_id=order.id,
            invoice_number=order.invoice_number,
        ),
        order,
        await store.get_items(order.id),
    )

  async def _decrement_stock(
      self,
      session: AsyncSession,
      order_id: str,
      items: List[db.OrderItem],
  ) -> None:
    """Decrements stock once per product line, never below 0."""
    product_items = [i for i in items if i.product_id is not None]
    inventories = await db.get_inventories(
        session, {i.product_id for i in product_items}
    )
    for item in product_items:
      inventory = inventories.get(item.product_id)
      if inventory is None:
        logger.warning("%s", PartialLineError(order_id, item.product_id))
        continue
      inventory.stock = max(0, inventory.stock - item.qty)
      if inventory.stock == 0:
        inventory.active = False

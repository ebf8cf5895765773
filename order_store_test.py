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

"""Tests for the order store."""

import asyncio

from absl.testing import absltest
import db
from enums import OrderStatus
from exceptions import InvalidStatusTransitionError
from exceptions import OrderNotFoundError
from exceptions import ValidationError
from models import BuyerInfo
from services.order_store import is_valid_order_id
from services.order_store import OrderStore
from store_fixtures import StoreFixture

PRODUCTS = [
    ("lp", "Vinyl LP", 1000, 300, 5),
    ("cd", "Compact Disc", 1490, 100, 4),
    ("tee", "T-Shirt", 1990, 200, 0),
]


class OrderStoreTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.test_dir = self.create_tempdir().full_path

  def run_with_store(self, scenario):
    async def main():
      async with StoreFixture(self.test_dir) as fixture:
        await fixture.seed(PRODUCTS)
        await scenario(fixture)

    asyncio.run(main())

  def test_create_order_snapshots_price_and_title(self):
    async def scenario(fixture):
      order_id = await fixture.create_order([("lp", 2)])
      order = await fixture.order(order_id)
      items = await fixture.items(order_id)
      self.assertEqual(order.status, OrderStatus.PENDING.value)
      self.assertEqual(order.currency, "EUR")
      self.assertEqual(order.amount_total, 2000)
      self.assertEqual(order.country, "AT")
      self.assertLen(items, 1)
      self.assertEqual(items[0].title, "Vinyl LP")
      self.assertEqual(items[0].unit_price, 1000)

      # A later catalog price change must not touch the placed order.
      async with fixture.products_session_factory() as session:
        product = await db.get_product(session, "lp")
        product.price = 9999
        await session.commit()
      self.assertEqual((await fixture.items(order_id))[0].unit_price, 1000)
      self.assertEqual((await fixture.order(order_id)).amount_total, 2000)

    self.run_with_store(scenario)

  def test_quantity_is_clamped_to_stock(self):
    async def scenario(fixture):
      order_id = await fixture.create_order([("cd", 10)])
      items = await fixture.items(order_id)
      self.assertEqual(items[0].qty, 4)
      self.assertEqual((await fixture.order(order_id)).amount_total, 4 * 1490)

    self.run_with_store(scenario)

  def test_duplicate_products_are_merged_before_clamping(self):
    async def scenario(fixture):
      order_id = await fixture.create_order([("lp", 2), ("lp", 2), ("lp", 2)])
      items = await fixture.items(order_id)
      self.assertLen(items, 1)
      self.assertEqual(items[0].qty, 5)

    self.run_with_store(scenario)

  def test_unavailable_products_are_dropped(self):
    async def scenario(fixture):
      order_id = await fixture.create_order(
          [("lp", 1), ("tee", 1), ("unknown", 3)]
      )
      items = await fixture.items(order_id)
      self.assertEqual([i.product_id for i in items], ["lp"])

    self.run_with_store(scenario)

  def test_rejects_order_without_purchasable_lines(self):
    async def scenario(fixture):
      with self.assertRaises(ValidationError):
        await fixture.create_order([("tee", 1), ("unknown", 1)])

    self.run_with_store(scenario)

  def test_rejects_non_positive_quantity(self):
    async def scenario(fixture):
      with self.assertRaises(ValidationError):
        await fixture.create_order([("lp", 1), ("cd", 0)])

    self.run_with_store(scenario)

  def test_rejects_empty_draft(self):
    async def scenario(fixture):
      async with fixture.products_session_factory() as products_session:
        async with fixture.transactions_session_factory() as session:
          store = OrderStore(products_session, session)
          with self.assertRaises(ValidationError):
            await store.create_order(BuyerInfo(), [])

    self.run_with_store(scenario)

  def test_initial_shipping_line_is_part_of_total(self):
    async def scenario(fixture):
      order_id = await fixture.create_order(
          [("lp", 1)], shipping=(650, "DPD (AT)")
      )
      items = await fixture.items(order_id)
      self.assertLen([i for i in items if i.product_id is None], 1)
      self.assertEqual((await fixture.order(order_id)).amount_total, 1650)

    self.run_with_store(scenario)

  def test_replace_shipping_line_keeps_at_most_one(self):
    async def scenario(fixture):
      order_id = await fixture.create_order([("lp", 1)])
      async with fixture.transactions_session_factory() as session:
        store = OrderStore(None, session)
        for amount in (450, 650, 650, 990):
          total = await store.replace_shipping_line(order_id, amount, "Ship")
          items = await store.get_items(order_id)
          shipping = [i for i in items if i.product_id is None]
          self.assertLen(shipping, 1)
          self.assertEqual(shipping[0].unit_price, amount)
          self.assertEqual(total, 1000 + amount)
          self.assertEqual(
              total, sum(i.qty * i.unit_price for i in items)
          )
        await session.commit()
      order = await fixture.order(order_id)
      self.assertEqual(order.amount_total, 1990)

    self.run_with_store(scenario)

  def test_replace_shipping_line_with_zero_removes_it(self):
    async def scenario(fixture):
      order_id = await fixture.create_order([("lp", 1)], shipping=(450, "Post"))
      async with fixture.transactions_session_factory() as session:
        store = OrderStore(None, session)
        total = await store.replace_shipping_line(order_id, 0, "Free")
        await session.commit()
      self.assertEqual(total, 1000)
      items = await fixture.items(order_id)
      self.assertEqual([i.product_id for i in items], ["lp"])

    self.run_with_store(scenario)

  def test_recompute_unknown_order(self):
    async def scenario(fixture):
      async with fixture.transactions_session_factory() as session:
        store = OrderStore(None, session)
        with self.assertRaises(OrderNotFoundError):
          await store.recompute_total("00000000-0000-4000-8000-000000000000")

    self.run_with_store(scenario)

  def test_product_summary(self):
    async def scenario(fixture):
      order_id = await fixture.create_order(
          [("lp", 2), ("cd", 1)], shipping=(450, "Post")
      )
      async with fixture.products_session_factory() as products_session:
        async with fixture.transactions_session_factory() as session:
          store = OrderStore(products_session, session)
          weight, subtotal = await store.product_summary(order_id)
          await session.commit()
      self.assertEqual(weight, 2 * 300 + 100)
      self.assertEqual(subtotal, 2 * 1000 + 1490)

    self.run_with_store(scenario)

  def test_product_summary_skips_weight_of_delisted_products(self):
    async def scenario(fixture):
      order_id = await fixture.create_order([("lp", 1), ("cd", 2)])
      async with fixture.products_session_factory() as session:
        await session.delete(await db.get_product(session, "cd"))
        await session.commit()
      async with fixture.products_session_factory() as products_session:
        async with fixture.transactions_session_factory() as session:
          store = OrderStore(products_session, session)
          weight, subtotal = await store.product_summary(order_id)
          await session.commit()
      self.assertEqual(weight, 300)
      self.assertEqual(subtotal, 1000 + 2 * 1490)

    self.run_with_store(scenario)


class StatusTransitionTest(absltest.TestCase):

  def _transition(self, start, target):
    directory = self.create_tempdir().full_path

    async def main():
      async with StoreFixture(directory) as fixture:
        await fixture.seed(PRODUCTS)
        order_id = await fixture.create_order([("lp", 1)])
        async with fixture.transactions_session_factory() as session:
          order = await db.get_order(session, order_id)
          order.status = start.value
          await session.commit()
        async with fixture.transactions_session_factory() as session:
          store = OrderStore(None, session)
          try:
            await store.update_status(order_id, target)
            await session.commit()
          finally:
            await session.rollback()
        return (await fixture.order(order_id)).status

    return asyncio.run(main())

  def test_fulfillment_moves_forward(self):
    self.assertEqual(
        self._transition(OrderStatus.PAID, OrderStatus.PROCESSING),
        "processing",
    )
    self.assertEqual(
        self._transition(OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        "shipped",
    )

  def test_cancel_and_refund_from_non_terminal(self):
    self.assertEqual(
        self._transition(OrderStatus.PENDING, OrderStatus.CANCELED),
        "canceled",
    )
    self.assertEqual(
        self._transition(OrderStatus.SHIPPED, OrderStatus.REFUNDED),
        "refunded",
    )

  def test_rejected_transitions(self):
    for start, target in (
        (OrderStatus.PENDING, OrderStatus.PAID),
        (OrderStatus.PENDING, OrderStatus.SHIPPED),
        (OrderStatus.SHIPPED, OrderStatus.PROCESSING),
        (OrderStatus.CANCELED, OrderStatus.REFUNDED),
        (OrderStatus.PAID, OrderStatus.PENDING),
    ):
      with self.subTest(start=start, target=target):
        with self.assertRaises(InvalidStatusTransitionError):
          self._transition(start, target)


class OrderIdTest(absltest.TestCase):

  def test_is_valid_order_id(self):
    self.assertTrue(is_valid_order_id("3f2b8f8e-3c1a-4d33-9a43-0d9b5c1f9a10"))
    self.assertFalse(is_valid_order_id(""))
    self.assertFalse(is_valid_order_id(None))
    self.assertFalse(is_valid_order_id(42))
    self.assertFalse(is_valid_order_id("order-1; DROP TABLE orders"))


if __name__ == "__main__":
  absltest.main()

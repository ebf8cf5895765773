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

"""Temporary databases and seed helpers shared by the service tests."""

import os
from typing import Iterable
from typing import Optional
from typing import Sequence
from typing import Tuple

import db
from models import BuyerInfo
from models import DraftItem
from models import ShippingLine
from services.order_store import OrderStore

# (id, title, price, weight_grams, stock)
ProductRow = Tuple[str, str, int, int, int]


class StoreFixture:
  """Products and transactions databases in a temporary directory.

  Use as an async context manager inside the test's event loop.
  """

  def __init__(self, directory: str, busy_timeout: float = 10.0):
    self.products_path = os.path.join(directory, "products.db")
    self.transactions_path = os.path.join(directory, "transactions.db")
    self.busy_timeout = busy_timeout
    self.products_engine = None
    self.transactions_engine = None
    self.products_session_factory = None
    self.transactions_session_factory = None

  async def __aenter__(self) -> "StoreFixture":
    self.products_engine = db.create_sqlite_engine(
        self.products_path, self.busy_timeout, write_lock=False
    )
    self.transactions_engine = db.create_sqlite_engine(
        self.transactions_path, self.busy_timeout
    )
    self.products_session_factory = db.create_session_factory(
        self.products_engine
    )
    self.transactions_session_factory = db.create_session_factory(
        self.transactions_engine
    )
    async with self.products_engine.begin() as conn:
      await conn.run_sync(db.ProductBase.metadata.create_all)
    async with self.transactions_engine.begin() as conn:
      await conn.run_sync(db.TransactionBase.metadata.create_all)
    return self

  async def __aexit__(self, *exc_info) -> None:
    await self.products_engine.dispose()
    await self.transactions_engine.dispose()

  async def seed(self, rows: Iterable[ProductRow]) -> None:
    rows = list(rows)
    async with self.products_session_factory() as session:
      for product_id, title, price, weight, _ in rows:
        session.add(
            db.Product(
                id=product_id, title=title, price=price, weight_grams=weight
            )
        )
      await session.commit()
    async with self.transactions_session_factory() as session:
      for product_id, _, _, _, stock in rows:
        session.add(
            db.Inventory(product_id=product_id, stock=stock, active=stock > 0)
        )
      await session.commit()

  async def create_order(
      self,
      items: Sequence[Tuple[str, int]],
      country: str = "AT",
      email: Optional[str] = "buyer@example.com",
      shipping: Optional[Tuple[int, str]] = None,
  ) -> str:
    async with self.products_session_factory() as products_session:
      async with self.transactions_session_factory() as session:
        store = OrderStore(products_session, session)
        order = await store.create_order(
            BuyerInfo(email=email, name="Test Buyer", country=country),
            [DraftItem(product_id=p, quantity=q) for p, q in items],
            ShippingLine(amount=shipping[0], label=shipping[1])
            if shipping
            else None,
        )
        await session.commit()
        return order.id

  async def inventory(self, product_id: str) -> Tuple[int, bool]:
    async with self.transactions_session_factory() as session:
      row = await db.get_inventory(session, product_id)
      await session.commit()
      return row.stock, row.active

  async def order(self, order_id: str) -> db.Order:
    async with self.transactions_session_factory() as session:
      order = await db.get_order(session, order_id)
      await session.commit()
      return order

  async def items(self, order_id: str) -> Sequence[db.OrderItem]:
    async with self.transactions_session_factory() as session:
      items = await db.get_order_items(session, order_id)
      await session.commit()
      return items

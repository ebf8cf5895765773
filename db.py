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

"""Database management and persistence layer for the storefront server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite) and implements a multi-database architecture separating
product catalog data from transactional order and inventory data.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Products' and 'Transactions' databases.
- Write locking: every transaction on an engine built by
  `create_sqlite_engine` starts with `BEGIN IMMEDIATE`, so two writers never
  interleave (SQLite has no row locks). Order reads that precede a state
  transition additionally use `SELECT ... FOR UPDATE` for row-locking
  backends.
- WAL Mode: Enabled on every connection to allow readers while a writer
  holds the lock.
- Declarative Models: Defines tables for products, inventory, orders, order
  items, the invoice counter, request logging, and idempotency tracking.
- Data Access Helpers: A suite of asynchronous functions for CRUD operations on
  the database models.
"""

import datetime
import logging
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import delete
from sqlalchemy import event
from sqlalchemy import ForeignKey
from sqlalchemy import func
from sqlalchemy import insert
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ProductBase = declarative_base()
TransactionBase = declarative_base()

INVOICE_COUNTER = "invoice"


def utcnow_iso() -> str:
  return datetime.datetime.now(datetime.timezone.utc).isoformat()


def create_sqlite_engine(
    path: str, busy_timeout: float = 10.0, write_lock: bool = True
) -> AsyncEngine:
  """Creates an async SQLite engine with serialized write transactions.

  Args:
    path: Filesystem path of the database file.
    busy_timeout: Seconds a transaction waits for the write lock before the
      driver gives up with "database is locked".
    write_lock: Whether every transaction takes the write lock up front
      (`BEGIN IMMEDIATE`). Read-mostly databases use a deferred `BEGIN`.

  Returns:
    The configured engine.
  """
  engine = create_async_engine(
      f"sqlite+aiosqlite:///{path}",
      echo=False,
      connect_args={"timeout": busy_timeout},
  )

  @event.listens_for(engine.sync_engine, "connect")
  def _on_connect(dbapi_connection, connection_record):
    del connection_record  # Unused.
    # Stop the driver from emitting its own deferred BEGIN.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

  begin_sql = "BEGIN IMMEDIATE" if write_lock else "BEGIN"

  @event.listens_for(engine.sync_engine, "begin")
  def _on_begin(conn):
    conn.exec_driver_sql(begin_sql)

  return engine


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
  return sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.products_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.products_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def init_dbs(
      self,
      products_path: str,
      transactions_path: str,
      busy_timeout: float = 10.0,
  ) -> None:
    """Initializes database engines and creates tables."""
    self.products_engine = create_sqlite_engine(
        products_path, busy_timeout, write_lock=False
    )
    self.products_session_factory = create_session_factory(
        self.products_engine
    )
    async with self.products_engine.begin() as conn:
      await conn.run_sync(ProductBase.metadata.create_all)

    # Transactions DB Setup (includes Inventory and the invoice counter)
    self.transactions_engine = create_sqlite_engine(
        transactions_path, busy_timeout
    )
    self.transactions_session_factory = create_session_factory(
        self.transactions_engine
    )
    async with self.transactions_engine.begin() as conn:
      await conn.run_sync(TransactionBase.metadata.create_all)

  async def close(self) -> None:
    """Closes all database engines."""
    if self.products_engine:
      await self.products_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class Product(ProductBase):
  __tablename__ = "products"

  id = Column(String, primary_key=True)
  title = Column(String)
  price = Column(Integer)  # Price in cents
  weight_grams = Column(Integer, default=0)
  image_url = Column(String, nullable=True)


class Inventory(TransactionBase):
  """Stock-bearing projection of a product."""

  __tablename__ = "inventory"

  product_id = Column(String, primary_key=True)
  stock = Column(Integer, default=0, nullable=False)
  # Forced to False whenever stock reaches 0.
  active = Column(Boolean, default=True, nullable=False)


class Order(TransactionBase):
  __tablename__ = "orders"

  id = Column(String, primary_key=True)
  status = Column(String, nullable=False, index=True)
  currency = Column(String, nullable=False)
  # Sum of the order's item lines in minor units, written by OrderStore only.
  amount_total = Column(Integer, nullable=False, default=0)
  email = Column(String, nullable=True)
  buyer_name = Column(String, nullable=True)
  country = Column(String, nullable=True)
  payment_provider = Column(String, nullable=True)
  external_payment_ref = Column(String, nullable=True)
  invoice_number = Column(String, nullable=True, unique=True)
  created_at = Column(String, nullable=False)
  paid_at = Column(String, nullable=True)


class OrderItem(TransactionBase):
  __tablename__ = "order_items"

  id = Column(Integer, primary_key=True, autoincrement=True)
  order_id = Column(
      String,
      ForeignKey("orders.id", ondelete="CASCADE"),
      nullable=False,
      index=True,
  )
  # NULL marks a non-product line such as the shipping charge.
  product_id = Column(String, nullable=True)
  title = Column(String)
  qty = Column(Integer, nullable=False)
  unit_price = Column(Integer, nullable=False)  # Snapshot in cents


class InvoiceCounter(TransactionBase):
  __tablename__ = "invoice_counters"

  name = Column(String, primary_key=True)
  value = Column(Integer, nullable=False, default=0)


class RequestLog(TransactionBase):
  __tablename__ = "request_logs"

  id = Column(Integer, primary_key=True, autoincrement=True)
  timestamp = Column(String)
  method = Column(String)
  url = Column(String)
  order_id = Column(String, nullable=True)
  payload = Column(JSON, nullable=True)


class IdempotencyRecord(TransactionBase):
  __tablename__ = "idempotency_records"

  key = Column(String, primary_key=True)
  request_hash = Column(String)
  response_status = Column(Integer)
  response_body = Column(JSON)
  created_at = Column(String)


# --- Data Access Helpers ---


async def get_product(
    session: AsyncSession, product_id: str
) -> Optional[Product]:
  """Retrieves a product by ID."""
  return await session.get(Product, product_id)


async def get_products(
    session: AsyncSession, product_ids: Iterable[str]
) -> Dict[str, Product]:
  """Retrieves multiple products in a single query, keyed by ID."""
  ids = list(product_ids)
  if not ids:
    return {}
  result = await session.execute(select(Product).where(Product.id.in_(ids)))
  return {p.id: p for p in result.scalars().all()}


async def get_inventory(
    session: AsyncSession, product_id: str, for_update: bool = False
) -> Optional[Inventory]:
  """Retrieves the inventory row for a product."""
  stmt = select(Inventory).where(Inventory.product_id == product_id)
  if for_update:
    stmt = stmt.with_for_update()
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def get_inventories(
    session: AsyncSession, product_ids: Iterable[str]
) -> Dict[str, Inventory]:
  """Retrieves inventory rows for several products, keyed by product ID."""
  ids = list(product_ids)
  if not ids:
    return {}
  result = await session.execute(
      select(Inventory).where(Inventory.product_id.in_(ids))
  )
  return {inv.product_id: inv for inv in result.scalars().all()}


async def get_order(
    session: AsyncSession, order_id: str, for_update: bool = False
) -> Optional[Order]:
  """Retrieves an order by ID, optionally locking its row."""
  stmt = select(Order).where(Order.id == order_id)
  if for_update:
    stmt = stmt.with_for_update()
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def get_order_items(
    session: AsyncSession, order_id: str
) -> List[OrderItem]:
  """Retrieves the lines of an order in insertion order."""
  result = await session.execute(
      select(OrderItem)
      .where(OrderItem.order_id == order_id)
      .order_by(OrderItem.id)
  )
  return list(result.scalars().all())


async def sum_order_items(session: AsyncSession, order_id: str) -> int:
  """Returns the sum of qty * unit_price over all lines of an order."""
  result = await session.execute(
      select(
          func.coalesce(func.sum(OrderItem.qty * OrderItem.unit_price), 0)
      ).where(OrderItem.order_id == order_id)
  )
  return int(result.scalar_one())


async def delete_shipping_lines(session: AsyncSession, order_id: str) -> int:
  """Deletes every non-product line of an order."""
  result = await session.execute(
      delete(OrderItem).where(
          OrderItem.order_id == order_id, OrderItem.product_id.is_(None)
      )
  )
  return result.rowcount


async def list_orders(session: AsyncSession) -> List[Order]:
  """Retrieves all orders, newest first."""
  result = await session.execute(
      select(Order).order_by(Order.created_at.desc())
  )
  return list(result.scalars().all())


async def increment_counter(session: AsyncSession, name: str) -> int:
  """Atomically increments a counter row and returns the new value.

  The row is created on first use. Under `BEGIN IMMEDIATE` (or the row lock
  taken by the UPDATE on other backends) no two callers can read the same
  value.
  """
  result = await session.execute(
      update(InvoiceCounter)
      .where(InvoiceCounter.name == name)
      .values(value=InvoiceCounter.value + 1)
      .returning(InvoiceCounter.value)
  )
  value = result.scalar_one_or_none()
  if value is not None:
    return int(value)

  await session.execute(insert(InvoiceCounter).values(name=name, value=1))
  return 1


async def log_request(
    session: AsyncSession,
    method: str,
    url: str,
    order_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
  """Logs an HTTP request to the database."""
  log_entry = RequestLog(
      timestamp=utcnow_iso(),
      method=method,
      url=url,
      order_id=order_id,
      payload=payload,
  )
  session.add(log_entry)


async def get_idempotency_record(
    session: AsyncSession, key: str
) -> Optional[IdempotencyRecord]:
  """Retrieves an idempotency record by key."""
  return await session.get(IdempotencyRecord, key)


async def save_idempotency_record(
    session: AsyncSession,
    key: str,
    request_hash: str,
    response_status: int,
    response_body: Dict[str, Any],
) -> None:
  """Saves a new idempotency record."""
  record = IdempotencyRecord(
      key=key,
      request_hash=request_hash,
      response_status=response_status,
      response_body=response_body,
      created_at=utcnow_iso(),
  )
  session.add(record)

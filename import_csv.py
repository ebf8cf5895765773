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

"""Database initialization script for the storefront server.

This script imports product and inventory data from CSV files into the
configured SQLite databases. It clears any existing data in the 'products'
and 'inventory' tables before populating them with the new dataset, and makes
sure the invoice counter continues at or after `--invoice_start`.

Usage:
  uv run import_csv.py --products_db_path=... --transactions_db_path=...
  --data_dir=... [--invoice_start=...]
"""

import asyncio
import csv
import logging
import os
from absl import app as absl_app
from absl import flags
import db
from db import Inventory
from db import InvoiceCounter
from db import Product
from sqlalchemy import delete

FLAGS = flags.FLAGS
flags.DEFINE_string("products_db_path", "products.db", "Path to products DB")
flags.DEFINE_string(
    "transactions_db_path", "transactions.db", "Path to transactions DB"
)
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing products.csv and inventory.csv",
)
flags.DEFINE_integer(
    "invoice_start",
    1,
    "Lowest sequence number the next invoice may get",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "y")


def parse_active(value, stock: int) -> bool:
  """Parses the optional 'active' column; sold out products are inactive."""
  if stock <= 0:
    return False
  if value is None or value == "":
    return True
  return str(value).strip().lower() in _TRUE_VALUES


async def seed_invoice_counter(session, invoice_start: int) -> int:
  """Raises the invoice counter so the next number is >= invoice_start.

  The counter never moves backwards.
  """
  counter = await session.get(InvoiceCounter, db.INVOICE_COUNTER)
  floor = max(0, invoice_start - 1)
  if counter is None:
    session.add(InvoiceCounter(name=db.INVOICE_COUNTER, value=floor))
    return floor
  counter.value = max(counter.value, floor)
  return counter.value


async def import_csv_data() -> None:
  """Reads CSV files and populates the database."""
  data_dir = FLAGS.data_dir
  # Ensure tables exist
  await db.manager.init_dbs(FLAGS.products_db_path, FLAGS.transactions_db_path)

  try:
    async with db.manager.products_session_factory() as session:
      logger.info("Clearing existing products...")
      await session.execute(delete(Product))

      logger.info("Importing Products from CSV...")
      products = []
      with open(os.path.join(data_dir, "products.csv"), "r") as f:
        reader = csv.DictReader(f)
        for row in reader:
          products.append(
              Product(
                  id=row["id"],
                  title=row["title"],
                  price=int(row["price"]),
                  weight_grams=int(row.get("weight_grams") or 0),
                  image_url=row.get("image_url") or None,
              )
          )
      session.add_all(products)
      await session.commit()

    async with db.manager.transactions_session_factory() as session:
      logger.info("Clearing existing inventory...")
      await session.execute(delete(Inventory))

      logger.info("Importing Inventory from CSV...")
      inventory = []
      with open(os.path.join(data_dir, "inventory.csv"), "r") as f:
        reader = csv.DictReader(f)
        for row in reader:
          stock = max(0, int(row["stock"]))
          inventory.append(
              Inventory(
                  product_id=row["product_id"],
                  stock=stock,
                  active=parse_active(row.get("active"), stock),
              )
          )
      session.add_all(inventory)

      value = await seed_invoice_counter(session, FLAGS.invoice_start)
      logger.info("Invoice counter at %s", value)
      await session.commit()

    logger.info("Database populated from CSVs.")
  finally:
    await db.manager.close()


def main(argv) -> None:
  """Main entry point for the CSV import script."""
  del argv
  asyncio.run(import_csv_data())


if __name__ == "__main__":
  absl_app.run(main)

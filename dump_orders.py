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

"""Utility script to dump order data.

This script reads from the configured transactions SQLite database and prints
a summary of all stored orders, including their status, invoice number and
lines. It is useful for debugging and verifying the state of the server.

Usage:
  uv run dump_orders.py --transactions_db_path=...
"""

import asyncio
import sys
from absl import app as absl_app
from absl import flags
import db
from services.notification_service import format_amount

FLAGS = flags.FLAGS
flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")


async def dump_orders():
  """Queries the database and prints all orders."""
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)

  engine = db.create_sqlite_engine(FLAGS.transactions_db_path, write_lock=False)
  session_factory = db.create_session_factory(engine)

  try:
    async with session_factory() as session:
      orders = await db.list_orders(session)
      if not orders:
        print("No orders found.")
        return

      for order in orders:
        print(
            f"Order: {order.id} [{order.status}]"
            f" invoice={order.invoice_number or '-'}"
            f" provider={order.payment_provider or '-'}"
            f" ref={order.external_payment_ref or '-'}"
        )
        for item in await db.get_order_items(session, order.id):
          label = item.product_id or "shipping"
          print(
              f"  - {item.title} ({label}) x{item.qty} @"
              f" {format_amount(item.unit_price, order.currency)}"
          )
        print(f"  Total: {format_amount(order.amount_total, order.currency)}")
        print("-" * 60)
  finally:
    await engine.dispose()


def main(argv):
  """Main entry point for the order dump script."""
  del argv
  asyncio.run(dump_orders())


if __name__ == "__main__":
  absl_app.run(main)

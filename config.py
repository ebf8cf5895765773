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

"""Shared configuration and startup logic for the storefront server."""

import contextlib
import uuid
from absl import flags
import db
from fastapi import FastAPI

FLAGS = flags.FLAGS

SERVER_VERSION = "1.0.0"


def get_server_version() -> str:
  return SERVER_VERSION


# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("products_db_path", None, "Path to products DB")
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_float(
      "db_busy_timeout", 10.0, "Seconds to wait for the SQLite write lock"
  )
  flags.DEFINE_string("currency", "EUR", "ISO currency code for new orders")
  flags.DEFINE_integer(
      "free_shipping_min",
      5000,
      "Subtotal (minor units) from which shipping is free; 0 disables it",
  )
  flags.DEFINE_string(
      "site_url", "http://localhost:8000", "Public base URL of the shop"
  )
  flags.DEFINE_string("stripe_secret_key", None, "Card provider API key")
  flags.DEFINE_string(
      "stripe_webhook_secret", None, "Card provider webhook signing secret"
  )
  flags.DEFINE_string("paypal_client_id", None, "Wallet provider client id")
  flags.DEFINE_string("paypal_secret", None, "Wallet provider client secret")
  flags.DEFINE_enum(
      "paypal_mode", "sandbox", ["sandbox", "live"], "Wallet provider mode"
  )
  flags.DEFINE_string(
      "paypal_webhook_id", None, "Wallet provider webhook id for verification"
  )
  flags.DEFINE_string(
      "mail_relay_url", None, "HTTP endpoint accepting outgoing messages"
  )
  flags.DEFINE_string(
      "mail_from", "shop@example.com", "Sender address of outgoing messages"
  )
  flags.DEFINE_string(
      "admin_email", None, "Address notified about every paid order"
  )
  flags.DEFINE_string(
      "admin_token",
      str(uuid.uuid4()),
      "Secret for the admin order status endpoint",
  )
  flags.DEFINE_integer(
      "store_retry_attempts",
      3,
      "Retries of a finalize call that hit a transient store error",
  )
except flags.DuplicateFlagError:
  pass


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases."""
  del app  # Unused.
  # In tests or if flags aren't set, these might be None, handled by caller
  if FLAGS.products_db_path and FLAGS.transactions_db_path:
    await db.manager.init_dbs(
        FLAGS.products_db_path,
        FLAGS.transactions_db_path,
        busy_timeout=FLAGS.db_busy_timeout,
    )
  yield
  await db.manager.close()

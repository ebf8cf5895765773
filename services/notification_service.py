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

"""Order confirmation documents and messages.

Document rendering and message transport sit behind `ArtifactDispatcher`.
`NotificationService` is called after a payment has been committed and is
best effort: a failure here is logged and never reaches the caller.
"""

import abc
import base64
import logging
from typing import Optional
from typing import Sequence

import db
import httpx

logger = logging.getLogger(__name__)


def format_amount(amount: int, currency: str) -> str:
  sign = "-" if amount < 0 else ""
  whole, cents = divmod(abs(amount), 100)
  return f"{sign}{whole}.{cents:02d} {currency}"


def render_invoice_text(
    order: db.Order,
    invoice_number: str,
    items: Sequence[db.OrderItem] = (),
) -> str:
  """Renders a plain-text invoice."""
  lines = [
      f"Invoice {invoice_number}",
      f"Order {order.id}",
      f"Date {order.paid_at or order.created_at}",
      "",
  ]
  if order.buyer_name or order.email:
    lines.append(f"Bill to: {order.buyer_name or ''} <{order.email or ''}>")
    lines.append("")
  for item in items:
    lines.append(
        f"{item.qty} x {item.title}  "
        f"{format_amount(item.qty * item.unit_price, order.currency)}"
    )
  lines.append("")
  lines.append(f"Total {format_amount(order.amount_total, order.currency)}")
  return "\n".join(lines) + "\n"


class ArtifactDispatcher(abc.ABC):
  """Produces order documents and delivers messages."""

  def generate_document(
      self,
      order: db.Order,
      invoice_number: str,
      items: Sequence[db.OrderItem] = (),
  ) -> bytes:
    return render_invoice_text(order, invoice_number, items).encode("utf-8")

  @abc.abstractmethod
  async def send_message(
      self,
      to: str,
      subject: str,
      body: str,
      attachment: Optional[bytes] = None,
  ) -> bool:
    """Sends a message, returning whether it was accepted for delivery."""


class LoggingDispatcher(ArtifactDispatcher):
  """Writes messages to the log instead of delivering them."""

  async def send_message(
      self,
      to: str,
      subject: str,
      body: str,
      attachment: Optional[bytes] = None,
  ) -> bool:
    logger.info(
        "Message to %s: %s (%s attachment bytes)",
        to,
        subject,
        len(attachment or b""),
    )
    return True


class RelayDispatcher(ArtifactDispatcher):
  """Posts messages as JSON to an HTTP mail relay."""

  def __init__(
      self,
      relay_url: str,
      sender: str,
      timeout: float = 5.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.relay_url = relay_url
    self.sender = sender
    self.timeout = timeout
    self.transport = transport

  async def send_message(
      self,
      to: str,
      subject: str,
      body: str,
      attachment: Optional[bytes] = None,
  ) -> bool:
    payload = {
        "from": self.sender,
        "to": to,
        "subject": subject,
        "text": body,
    }
    if attachment is not None:
      payload["attachment"] = {
          "filename": "invoice.txt",
          "content": base64.b64encode(attachment).decode("ascii"),
      }
    try:
      async with httpx.AsyncClient(transport=self.transport) as client:
        response = await client.post(
            self.relay_url, json=payload, timeout=self.timeout
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
      logger.error("Mail relay rejected message to %s: %s", to, e)
      return False
    return True


class NotificationService:
  """Sends the confirmations that follow a committed payment."""

  def __init__(
      self,
      dispatcher: ArtifactDispatcher,
      admin_email: Optional[str] = None,
  ):
    self.dispatcher = dispatcher
    self.admin_email = admin_email

  async def order_confirmed(
      self, order: db.Order, items: Sequence[db.OrderItem] = ()
  ) -> None:
    """Sends the buyer confirmation and the internal notice. Never raises."""
    try:
      invoice_number = order.invoice_number or ""
      document = self.dispatcher.generate_document(order, invoice_number, items)
      total = format_amount(order.amount_total, order.currency)

      if order.email:
        await self.dispatcher.send_message(
            order.email,
            f"Your order {invoice_number}",
            f"Thank you for your order. We received {total}.\n"
            "Your invoice is attached.",
            attachment=document,
        )
      else:
        logger.warning("Order %s has no buyer email", order.id)

      if self.admin_email:
        await self.dispatcher.send_message(
            self.admin_email,
            f"New paid order {invoice_number}",
            f"Order {order.id} was paid via {order.payment_provider}: {total}",
            attachment=document,
        )
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.error("Failed to dispatch confirmation for %s: %s", order.id, e)

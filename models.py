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

"""Request, response and value models for the storefront server.

The persistence schema lives in `db`; these pydantic models describe what
crosses the HTTP boundary and what the services hand to each other, most
notably the provider-neutral `NotificationEnvelope` consumed by the
reconciliation engine.
"""

from typing import List
from typing import Optional

from enums import Carrier
from enums import OrderStatus
from enums import PaymentProvider
from enums import ShippingZone
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import model_validator


class BuyerInfo(BaseModel):
  email: Optional[str] = None
  name: Optional[str] = None
  country: Optional[str] = None


class DraftItem(BaseModel):
  product_id: str
  quantity: int


class ShippingLine(BaseModel):
  amount: int
  label: str


class CheckoutRequest(BaseModel):
  """Starts a hosted payment for a new draft or an existing pending order."""

  provider: PaymentProvider
  buyer: BuyerInfo = BuyerInfo()
  items: Optional[List[DraftItem]] = None
  order_id: Optional[str] = None

  @model_validator(mode="after")
  def _draft_or_order(self) -> "CheckoutRequest":
    if bool(self.items) == bool(self.order_id):
      raise ValueError("Provide either items or order_id")
    return self


class CheckoutHandoff(BaseModel):
  order_id: str
  session_handle: str
  redirect_url: str
  provider: PaymentProvider


class ShippingQuote(BaseModel):
  """Result of a shipping calculation.

  `amount` is what the buyer pays; `base_amount` is the carrier price before
  the free-shipping rule. An unavailable quote has no carrier and amount 0.
  """

  model_config = ConfigDict(frozen=True)

  zone: ShippingZone
  carrier: Optional[Carrier]
  label: str
  amount: int
  base_amount: int
  weight_grams: int
  available: bool
  free_by_threshold: bool


class NotificationEnvelope(BaseModel):
  """Provider-neutral payment notification.

  Every provider adapter reduces its payloads to this shape. `order_id` is the
  correlation value set when the payment session was created and may be
  missing or malformed if the payload was.
  """

  model_config = ConfigDict(frozen=True)

  order_id: Optional[str]
  external_id: str
  provider: PaymentProvider
  reported_total: Optional[int] = None
  reported_shipping: Optional[int] = None
  shipping_label: Optional[str] = None
  authoritative_for_shipping: bool = False


class FinalizeResult(BaseModel):
  applied: bool
  already_finalized: bool
  order_id: Optional[str]
  invoice_number: Optional[str] = None


class WebhookAck(BaseModel):
  received: bool = True


class OrderItemView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  product_id: Optional[str]
  title: Optional[str]
  qty: int
  unit_price: int


class OrderView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  id: str
  status: OrderStatus
  currency: str
  amount_total: int
  email: Optional[str] = None
  buyer_name: Optional[str] = None
  country: Optional[str] = None
  payment_provider: Optional[PaymentProvider] = None
  invoice_number: Optional[str] = None
  created_at: str
  paid_at: Optional[str] = None
  items: List[OrderItemView] = []


class StatusUpdateRequest(BaseModel):
  status: OrderStatus

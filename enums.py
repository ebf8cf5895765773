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

"""Enumerations for the storefront order server.

This module defines standard enums used throughout the server application
to represent the state of orders, the payment providers and the shipping
zones and carriers.
"""

import enum


class OrderStatus(str, enum.Enum):
  PENDING = "pending"
  PAID = "paid"
  PROCESSING = "processing"
  SHIPPED = "shipped"
  CANCELED = "canceled"
  REFUNDED = "refunded"


# Statuses in which the pending -> paid transition has already happened.
FINALIZED_STATUSES = frozenset(
    {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.SHIPPED}
)

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELED, OrderStatus.REFUNDED})


class PaymentProvider(str, enum.Enum):
  STRIPE = "stripe"
  PAYPAL = "paypal"


class ShippingZone(str, enum.Enum):
  DOMESTIC = "domestic"
  REGIONAL = "regional"
  WORLD = "world"


class Carrier(str, enum.Enum):
  POST = "POST"
  DPD = "DPD"
  GLS = "GLS"

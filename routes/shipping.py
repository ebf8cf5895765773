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

"""Shipping quote routes."""

import config
from fastapi import APIRouter
from fastapi import Query
from models import ShippingQuote
from services import shipping_service

router = APIRouter()


@router.get(
    "/shipping/quote",
    response_model=ShippingQuote,
    operation_id="quote_shipping",
)
async def quote_shipping(
    country: str = Query(""),
    weight_grams: int = Query(0),
    subtotal: int = Query(0),
) -> ShippingQuote:
  """Quote the cheapest shipping for a parcel."""
  return shipping_service.quote(
      country, weight_grams, subtotal, config.FLAGS.free_shipping_min
  )


@router.get(
    "/shipping/options",
    response_model=list[ShippingQuote],
    operation_id="list_shipping_options",
)
async def list_shipping_options(
    country: str = Query(""),
    weight_grams: int = Query(0),
    subtotal: int = Query(0),
) -> list[ShippingQuote]:
  """List every carrier able to ship the parcel, cheapest first."""
  return shipping_service.options(
      country, weight_grams, subtotal, config.FLAGS.free_shipping_min
  )

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

"""Shipping quote calculation.

This module encapsulates the carrier rate table and the rules for picking a
shipping charge from a destination, a parcel weight and an order subtotal.
Every function here is pure: no database access, no flag reads, and no input
makes them raise.
"""

import logging
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union

from enums import Carrier
from enums import ShippingZone
from models import ShippingQuote

logger = logging.getLogger(__name__)

UNAVAILABLE_LABEL = "Shipping calculated separately"

DOMESTIC_COUNTRY = "AT"

REGIONAL_COUNTRIES = frozenset({
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR",
    "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK",
    "SI", "ES", "SE",
})

CARRIER_NAMES = {
    Carrier.POST: "Austrian Post",
    Carrier.DPD: "DPD",
    Carrier.GLS: "GLS",
}

ZONE_SUFFIXES = {
    ShippingZone.DOMESTIC: "AT",
    ShippingZone.REGIONAL: "EU",
    ShippingZone.WORLD: "World",
}

# (max weight in grams, price in cents), ascending per carrier. Carriers are
# listed in declaration order, which breaks ties between equal prices.
RATE_TABLE: Dict[ShippingZone, Dict[Carrier, List[Tuple[int, int]]]] = {
    ShippingZone.DOMESTIC: {
        Carrier.POST: [(500, 450), (2000, 690), (5000, 890), (10000, 1190)],
        Carrier.DPD: [(2000, 650), (5000, 850), (10000, 1090)],
        Carrier.GLS: [(2000, 690), (5000, 890), (10000, 1190)],
    },
    ShippingZone.REGIONAL: {
        Carrier.POST: [(500, 990), (2000, 1490), (5000, 1990), (10000, 2990)],
        Carrier.DPD: [(2000, 1290), (5000, 1790), (10000, 2490)],
        Carrier.GLS: [(2000, 1390), (5000, 1890), (10000, 2690)],
    },
    ShippingZone.WORLD: {
        Carrier.POST: [(500, 1590), (2000, 2990), (5000, 4490), (10000, 6490)],
        Carrier.DPD: [(2000, 3490), (5000, 4990), (10000, 7490)],
        Carrier.GLS: [(2000, 3690), (5000, 5290), (10000, 7990)],
    },
}


def resolve_zone(country: Optional[str]) -> ShippingZone:
  """Maps an ISO 3166-1 alpha-2 country code to a shipping zone.

  Unknown, empty or malformed codes resolve to the most expensive zone.
  """
  code = str(country or "").strip().upper()
  if code == DOMESTIC_COUNTRY:
    return ShippingZone.DOMESTIC
  if code in REGIONAL_COUNTRIES:
    return ShippingZone.REGIONAL
  return ShippingZone.WORLD


def _as_int(value) -> int:
  """Coerces a weight or money value to int; anything unusable is 0."""
  try:
    return int(value or 0)
  except (TypeError, ValueError):
    return 0


def _to_zone(region: Union[str, ShippingZone, None]) -> ShippingZone:
  if isinstance(region, ShippingZone):
    return region
  return resolve_zone(region)


def label_for(carrier: Carrier, zone: ShippingZone) -> str:
  return f"{CARRIER_NAMES[carrier]} ({ZONE_SUFFIXES[zone]})"


def _bracket_price(
    brackets: List[Tuple[int, int]], weight_grams: int
) -> Optional[int]:
  for max_weight, price in brackets:
    if max_weight >= weight_grams:
      return price
  return None


def _is_free(subtotal: int, free_shipping_min: Optional[int]) -> bool:
  threshold = _as_int(free_shipping_min)
  return threshold > 0 and _as_int(subtotal) >= threshold


def options(
    region: Union[str, ShippingZone, None],
    total_weight_grams: int,
    subtotal: int,
    free_shipping_min: Optional[int] = None,
) -> List[ShippingQuote]:
  """Returns one quote per carrier able to ship the parcel, cheapest first.

  Args:
    region: Destination country code, or an already resolved zone.
    total_weight_grams: Parcel weight. Values <= 0 count as 1 gram.
    subtotal: Product subtotal in cents.
    free_shipping_min: Subtotal from which shipping is free. None or 0
      disables the rule.

  Returns:
    Quotes sorted by amount; carriers with equal amounts keep declaration
    order. Empty if the weight exceeds every bracket.
  """
  zone = _to_zone(region)
  weight = max(1, _as_int(total_weight_grams))
  free = _is_free(subtotal, free_shipping_min)

  quotes = []
  for carrier, brackets in RATE_TABLE[zone].items():
    price = _bracket_price(brackets, weight)
    if price is None:
      continue
    quotes.append(
        ShippingQuote(
            zone=zone,
            carrier=carrier,
            label=label_for(carrier, zone),
            amount=0 if free else price,
            base_amount=price,
            weight_grams=weight,
            available=True,
            free_by_threshold=free,
        )
    )
  # sorted() is stable, so ties stay in declaration order.
  return sorted(quotes, key=lambda q: q.base_amount)


def quote(
    region: Union[str, ShippingZone, None],
    total_weight_grams: int,
    subtotal: int,
    free_shipping_min: Optional[int] = None,
) -> ShippingQuote:
  """Returns the cheapest shipping quote for a parcel.

  If the weight exceeds every bracket of the zone, an unavailable sentinel
  with amount 0 is returned so the charge can be settled manually.
  """
  candidates = options(region, total_weight_grams, subtotal, free_shipping_min)
  if candidates:
    return candidates[0]

  zone = _to_zone(region)
  logger.info(
      "No shipping bracket for %s g to zone %s, quoting manually",
      total_weight_grams,
      zone.value,
  )
  return ShippingQuote(
      zone=zone,
      carrier=None,
      label=UNAVAILABLE_LABEL,
      amount=0,
      base_amount=0,
      weight_grams=max(1, _as_int(total_weight_grams)),
      available=False,
      free_by_threshold=False,
  )


def total_weight(lines: Iterable[Tuple[Optional[int], int]]) -> int:
  """Sums (weight_grams, qty) pairs, treating missing weights as 0."""
  return sum(max(0, weight or 0) * max(0, qty) for weight, qty in lines)

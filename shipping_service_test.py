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

"""Tests for the shipping quote calculator."""

from absl.testing import absltest
from absl.testing import parameterized
from enums import Carrier
from enums import ShippingZone
from services import shipping_service


class ResolveZoneTest(parameterized.TestCase):

  @parameterized.parameters(
      ("AT", ShippingZone.DOMESTIC),
      (" at ", ShippingZone.DOMESTIC),
      ("DE", ShippingZone.REGIONAL),
      ("fr", ShippingZone.REGIONAL),
      ("US", ShippingZone.WORLD),
      ("CH", ShippingZone.WORLD),
      ("", ShippingZone.WORLD),
      (None, ShippingZone.WORLD),
      ("not-a-country", ShippingZone.WORLD),
  )
  def test_resolve_zone(self, country, expected):
    self.assertEqual(shipping_service.resolve_zone(country), expected)


class QuoteTest(parameterized.TestCase):

  def test_picks_smallest_bracket_of_cheapest_carrier(self):
    quote = shipping_service.quote("AT", 1500, 1000, free_shipping_min=5000)
    self.assertEqual(quote.carrier, Carrier.DPD)
    self.assertEqual(quote.amount, 650)
    self.assertEqual(quote.label, "DPD (AT)")
    self.assertTrue(quote.available)
    self.assertFalse(quote.free_by_threshold)

  def test_light_parcel_uses_only_carrier_with_small_bracket(self):
    quote = shipping_service.quote("AT", 300, 1000)
    self.assertEqual(quote.carrier, Carrier.POST)
    self.assertEqual(quote.amount, 450)

  def test_bracket_ceiling_is_inclusive(self):
    self.assertEqual(shipping_service.quote("AT", 500, 0).amount, 450)
    self.assertEqual(shipping_service.quote("AT", 501, 0).amount, 650)

  @parameterized.parameters(0, -20)
  def test_non_positive_weight_counts_as_one_gram(self, weight):
    quote = shipping_service.quote("AT", weight, 0)
    self.assertEqual(quote.weight_grams, 1)
    self.assertEqual(quote.amount, 450)

  def test_regional_zone(self):
    quote = shipping_service.quote("DE", 1500, 0)
    self.assertEqual(quote.zone, ShippingZone.REGIONAL)
    self.assertEqual(quote.carrier, Carrier.DPD)
    self.assertEqual(quote.amount, 1290)

  def test_unmapped_country_quotes_most_expensive_zone(self):
    quote = shipping_service.quote("ZZ", 300, 0)
    self.assertEqual(quote.zone, ShippingZone.WORLD)
    self.assertEqual(quote.amount, 1590)

  @parameterized.parameters(1, 500, 1500, 2000, 4000, 7000, 10000)
  def test_world_zone_is_most_expensive(self, weight):
    domestic = shipping_service.quote("AT", weight, 0).amount
    regional = shipping_service.quote("DE", weight, 0).amount
    world = shipping_service.quote("US", weight, 0).amount
    self.assertLess(domestic, regional)
    self.assertLess(regional, world)

  def test_weight_above_every_bracket_returns_unavailable_sentinel(self):
    quote = shipping_service.quote("AT", 12000, 1000)
    self.assertFalse(quote.available)
    self.assertIsNone(quote.carrier)
    self.assertEqual(quote.amount, 0)
    self.assertEqual(quote.label, shipping_service.UNAVAILABLE_LABEL)

  def test_free_shipping_keeps_carrier_and_label(self):
    quote = shipping_service.quote("AT", 1500, 6000, free_shipping_min=5000)
    self.assertEqual(quote.amount, 0)
    self.assertTrue(quote.free_by_threshold)
    self.assertEqual(quote.carrier, Carrier.DPD)
    self.assertEqual(quote.label, "DPD (AT)")
    self.assertEqual(quote.base_amount, 650)

  def test_free_shipping_applies_at_exact_threshold(self):
    quote = shipping_service.quote("DE", 300, 5000, free_shipping_min=5000)
    self.assertTrue(quote.free_by_threshold)
    self.assertEqual(quote.amount, 0)

  @parameterized.parameters(None, 0)
  def test_free_shipping_disabled(self, threshold):
    quote = shipping_service.quote("AT", 1500, 100000, threshold)
    self.assertFalse(quote.free_by_threshold)
    self.assertEqual(quote.amount, 650)

  def test_unavailable_quote_is_never_free(self):
    quote = shipping_service.quote("AT", 20000, 100000, free_shipping_min=5000)
    self.assertFalse(quote.available)
    self.assertFalse(quote.free_by_threshold)

  def test_zone_can_be_passed_directly(self):
    quote = shipping_service.quote(ShippingZone.REGIONAL, 300, 0)
    self.assertEqual(quote.amount, 990)


class OptionsTest(absltest.TestCase):

  def test_options_sorted_with_ties_in_declaration_order(self):
    options = shipping_service.options("AT", 1500, 0)
    self.assertEqual(
        [(o.carrier, o.amount) for o in options],
        [(Carrier.DPD, 650), (Carrier.POST, 690), (Carrier.GLS, 690)],
    )

  def test_options_empty_above_every_bracket(self):
    self.assertEqual(shipping_service.options("AT", 10001, 0), [])

  def test_free_options_keep_price_order(self):
    options = shipping_service.options("AT", 1500, 9000, 5000)
    self.assertEqual(options[0].carrier, Carrier.DPD)
    self.assertTrue(all(o.amount == 0 for o in options))


class TotalWeightTest(absltest.TestCase):

  def test_total_weight(self):
    self.assertEqual(
        shipping_service.total_weight([(320, 2), (None, 1), (110, 0)]), 640
    )

  def test_total_weight_ignores_negative_values(self):
    self.assertEqual(shipping_service.total_weight([(-5, 3), (100, -1)]), 0)


class LooseInputTest(parameterized.TestCase):

  @parameterized.named_parameters(
      ("missing_subtotal", None, 100, None, 5000, ShippingZone.WORLD, 1590),
      ("numeric_country", 42, 100, 0, 5000, ShippingZone.WORLD, 1590),
      ("string_weight", "AT", "1500", 0, None, ShippingZone.DOMESTIC, 650),
      ("garbage_weight", "AT", "heavy", 0, None, ShippingZone.DOMESTIC, 450),
      ("string_threshold", "AT", 100, 6000, "5000", ShippingZone.DOMESTIC, 0),
  )
  def test_quote_coerces_inputs(
      self, country, weight, subtotal, threshold, zone, amount
  ):
    quote = shipping_service.quote(country, weight, subtotal, threshold)
    self.assertEqual(quote.zone, zone)
    self.assertEqual(quote.amount, amount)
    self.assertTrue(quote.available)


if __name__ == "__main__":
  absltest.main()

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

"""Custom exceptions for the storefront order server."""


class ShopError(Exception):
  """Base class for all storefront exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class ValidationError(ShopError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class NotFoundError(ShopError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str, code: str = "RESOURCE_NOT_FOUND"):
    super().__init__(message, code=code, status_code=404)


class OrderNotFoundError(NotFoundError):
  """Raised when an order id is well formed but unknown."""

  def __init__(self, order_id: str):
    self.order_id = order_id
    super().__init__(f"Order {order_id} not found", code="ORDER_NOT_FOUND")


class IdempotencyConflictError(ShopError):
  """Raised when an idempotency key is reused with different parameters."""

  def __init__(self, message: str):
    super().__init__(message, code="IDEMPOTENCY_CONFLICT", status_code=409)


class InvalidStatusTransitionError(ShopError):
  """Raised when an order status change is not allowed."""

  def __init__(self, message: str):
    super().__init__(
        message, code="INVALID_STATUS_TRANSITION", status_code=409
    )


class ProviderSignatureError(ShopError):
  """Raised when a provider notification fails authentication."""

  def __init__(self, message: str = "Invalid signature"):
    super().__init__(message, code="INVALID_SIGNATURE", status_code=400)


class ProviderError(ShopError):
  """Raised when a payment provider call fails."""

  def __init__(self, message: str, status_code: int = 502):
    super().__init__(message, code="PROVIDER_ERROR", status_code=status_code)


class PaymentStartError(ShopError):
  """Raised when a payment session could not be created.

  The message is generic; provider details are only logged.
  """

  def __init__(self, message: str = "Payment could not be started"):
    super().__init__(message, code="PAYMENT_NOT_STARTED", status_code=502)


class PartialLineError(ShopError):
  """Describes an order line whose stock step could not be applied."""

  def __init__(self, order_id: str, product_id: str):
    self.order_id = order_id
    self.product_id = product_id
    super().__init__(
        f"Order {order_id}: no inventory for product {product_id}",
        code="PARTIAL_LINE",
    )


class TransientStoreError(ShopError):
  """Raised when the store is temporarily unavailable (locked, busy)."""

  def __init__(self, message: str = "Store temporarily unavailable"):
    super().__init__(message, code="TRANSIENT_STORE_ERROR", status_code=503)

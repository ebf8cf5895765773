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

"""Async retry helper with exponential backoff and jitter."""

import asyncio
import logging
import random
from typing import Awaitable
from typing import Callable
from typing import Tuple
from typing import Type
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 0.05,
    max_delay: float = 2.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
  """Awaits `func()` until it succeeds or the retries are exhausted.

  `func` is called again from scratch on every attempt, so it must be safe to
  repeat (each attempt opens its own transaction).

  Args:
    func: Zero-argument coroutine factory.
    max_retries: Attempts after the first one; 0 disables retrying.
    initial_delay: Delay in seconds before the first retry.
    max_delay: Upper bound for a single delay.
    exponential_base: Growth factor of the delay between attempts.
    jitter: Whether to add up to 25% random jitter to each delay.
    exceptions: Exception types that trigger a retry. Others propagate.

  Returns:
    The result of the first successful attempt.
  """
  delay = initial_delay
  attempt = 0
  while True:
    try:
      return await func()
    except exceptions as e:
      if attempt >= max_retries:
        raise
      attempt += 1

      actual_delay = delay
      if jitter:
        actual_delay += delay * 0.25 * random.random()
      actual_delay = min(actual_delay, max_delay)
      logger.warning(
          "Attempt %s failed with %s, retrying in %.2fs",
          attempt,
          e,
          actual_delay,
      )
      await asyncio.sleep(actual_delay)
      delay *= exponential_base

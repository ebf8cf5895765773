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

"""Invoice number issuing."""

import datetime
from typing import Callable
from typing import Optional

import db
from sqlalchemy.ext.asyncio import AsyncSession


class InvoiceNumberAuthority:
  """Issues unique, strictly increasing invoice numbers.

  Numbers look like `S26-000123`: the two-digit year of issue followed by a
  global sequence that is never reset, so a later number always sorts after
  an earlier one. The sequence is an atomic increment of a single counter row
  inside the caller's transaction; if that transaction rolls back the number
  is never used and a gap remains.
  """

  def __init__(
      self,
      counter_name: str = db.INVOICE_COUNTER,
      clock: Optional[Callable[[], datetime.datetime]] = None,
  ):
    self.counter_name = counter_name
    self.clock = clock or (
        lambda: datetime.datetime.now(datetime.timezone.utc)
    )

  async def next_invoice_number(self, session: AsyncSession) -> str:
    sequence = await db.increment_counter(session, self.counter_name)
    return self.format(sequence, self.clock().year)

  @staticmethod
  def format(sequence: int, year: int) -> str:
    return f"S{year % 100:02d}-{sequence:06d}"

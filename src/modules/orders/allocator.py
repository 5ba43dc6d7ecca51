"""Token sequence allocation.

Serial numbers restart at 1 for every store each business day.  The
allocator reads the current maximum and proposes the next value; the
unique ``(store, business_date, serial_number)`` constraint turns a
concurrent duplicate into an ``IntegrityError``, upon which the next
serial is re-read and the insert retried inside a fresh savepoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Callable, Tuple, TypeVar
from zoneinfo import ZoneInfo

import structlog
from django.db import IntegrityError, transaction

from modules.orders.constants import SERIAL_PAD_WIDTH, TOKEN_PREFIX
from modules.orders.exceptions import AllocationExhausted

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AllocatedToken:
    token_number: str
    serial_number: int
    business_date: date


def business_day_window(
    reference: datetime, day_timezone: str
) -> Tuple[date, datetime, datetime]:
    """``(business_date, start, end)`` of the day containing *reference*.

    ``start`` is inclusive and ``end`` exclusive, both timezone-aware in
    *day_timezone*.
    """
    if reference.tzinfo is None:
        raise ValueError("reference must be timezone-aware")
    zone = ZoneInfo(day_timezone)
    business_date = reference.astimezone(zone).date()
    start = datetime.combine(business_date, time.min, tzinfo=zone)
    end = datetime.combine(business_date + timedelta(days=1), time.min, tzinfo=zone)
    return business_date, start, end


def format_token_number(business_date: date, serial_number: int) -> str:
    return f"{TOKEN_PREFIX}{business_date:%Y%m%d}{serial_number:0{SERIAL_PAD_WIDTH}d}"


class TokenAllocator:
    """Issues ``(token_number, serial_number)`` pairs per store and day.

    The store and the reference instant are always passed in; nothing is
    read from the clock or from request globals.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        day_timezone: str,
        max_retries: int = 5,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._order_repo = order_repository
        self._day_timezone = day_timezone
        self._max_retries = max_retries

    def next_token(self, store: str, reference: datetime) -> AllocatedToken:
        """Propose the next serial; only a committed insert makes it final."""
        business_date, _, _ = business_day_window(reference, self._day_timezone)
        serial_number = self._order_repo.max_serial(store, business_date) + 1
        return AllocatedToken(
            token_number=format_token_number(business_date, serial_number),
            serial_number=serial_number,
            business_date=business_date,
        )

    def allocate(
        self,
        store: str,
        reference: datetime,
        persist: Callable[[AllocatedToken], T],
    ) -> T:
        """Allocate a serial and run *persist* with it until the insert sticks.

        *persist* runs inside a savepoint, so a losing attempt leaves no
        partial rows behind.

        Raises:
            AllocationExhausted: every attempt collided with a committed serial.
        """
        log = logger.bind(store_id=store)
        token = None
        for attempt in range(1, self._max_retries + 1):
            token = self.next_token(store, reference)
            try:
                with transaction.atomic():
                    result = persist(token)
            except IntegrityError:
                if not self._order_repo.serial_taken(
                    store, token.business_date, token.serial_number
                ):
                    raise
                log.warning(
                    "order.serial_conflict",
                    attempt=attempt,
                    serial_number=token.serial_number,
                )
                continue
            log.info(
                "order.serial_allocated",
                attempt=attempt,
                token_number=token.token_number,
            )
            return result

        log.error("order.serial_exhausted", attempts=self._max_retries)
        raise AllocationExhausted(
            f"Could not allocate a serial for store {store} after "
            f"{self._max_retries} attempts.",
            {
                "store": store,
                "attempts": self._max_retries,
                "business_date": token.business_date.isoformat() if token else None,
            },
        )

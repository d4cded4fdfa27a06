"""
Human readable order ids: ``YYYYMMDD`` followed by a two digit daily sequence,
e.g. the third order on 2025-11-18 is ``2025111803``.

Ids are derived from the orders already stored for the day rather than a
counter, so two concurrent checkouts can pick the same id. The second insert
then fails on the primary key and the customer re-submits. Past the 99th
order of a day the suffix keeps counting (``20251118100``); ids stay unique
but are no longer ten digits.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

SCAN_LIMIT = 100


def date_prefix(now: datetime) -> str:
    return now.strftime("%Y%m%d")


def next_sequence(existing_ids, prefix: str) -> int:
    highest = 0
    for order_id in existing_ids:
        if not order_id.startswith(prefix):
            continue
        suffix = order_id[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest + 1


def generate_order_id(ledger, now: Optional[datetime] = None) -> str:
    """Next order id for ``now``'s date.

    A failing lookup degrades to a timestamp-derived suffix instead of
    blocking checkout.
    """
    now = now or datetime.now(timezone.utc)
    prefix = date_prefix(now)
    try:
        existing = ledger.find_ids_with_prefix(prefix, limit=SCAN_LIMIT)
    except PyMongoError as exc:
        logger.warning("Order id lookup failed, using timestamp suffix: %s", exc)
        return f"{prefix}{str(int(time.time() * 1000))[-2:]}"
    return f"{prefix}{next_sequence(existing, prefix):02d}"

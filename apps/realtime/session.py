import logging
from typing import Dict, Iterable, Optional, Tuple

from django.utils.dateparse import parse_datetime

logger = logging.getLogger("realtime")

OFFERS = "offers"
ORDERS = "orders"
ESCROW_HOLDS = "escrow_holds"
DISPUTES = "disputes"
CHAT_MESSAGES = "chat_messages"

TABLES = (OFFERS, ORDERS, ESCROW_HOLDS, DISPUTES, CHAT_MESSAGES)

# Statuses only move forward within these ranks; equal ranks cannot be
# ordered and fall back to the timestamp alone.
STATUS_RANK = {
    OFFERS: {
        "pending": 0,
        "countered": 1,
        "accepted": 2,
        "declined": 2,
        "withdrawn": 2,
    },
    ORDERS: {
        "pending_payment": 0,
        "paid": 1,
        "shipped": 2,
        "delivered": 3,
        "cancelled": 4,
        "refunded": 4,
    },
    ESCROW_HOLDS: {"pending": 0, "disputed": 1, "released": 2},
    DISPUTES: {
        "open": 0,
        "under_review": 1,
        "resolved_refund": 2,
        "resolved_partial_refund": 2,
        "resolved_no_refund": 2,
        "closed": 2,
    },
}


class SessionView:
    """
    One session's local copy of the rows it cares about, keyed by
    ``(table, id)``.

    Change events are applied as whole-row replacements. Events that do not
    concern this session, and events older than what the view already holds,
    are dropped. A snapshot replaces the view wholesale.
    """

    def __init__(self, user_id, listing_id=None):
        self.user_id = user_id
        self.listing_id = listing_id
        self.rows: Dict[Tuple[str, str], dict] = {}

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get(self, table: str, row_id) -> Optional[dict]:
        return self.rows.get((table, str(row_id)))

    def rows_for(self, table: str) -> Iterable[dict]:
        return [row for (t, _), row in self.rows.items() if t == table]

    def known_order_ids(self):
        return {row_id for (table, row_id) in self.rows if table == ORDERS}

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def replace(self, snapshot: Dict[str, list]):
        """Drop everything and load a full snapshot."""
        self.rows = {}
        for table in TABLES:
            for row in snapshot.get(table, []):
                self.rows[(table, str(row["id"]))] = row

    def is_relevant(self, table: str, row: dict) -> bool:
        if table in (OFFERS, ORDERS, CHAT_MESSAGES):
            if self.user_id not in (row.get("buyer"), row.get("seller")):
                return False
            if self.listing_id is not None:
                return str(row.get("listing")) == str(self.listing_id)
            return True
        if table in (ESCROW_HOLDS, DISPUTES):
            return str(row.get("order")) in self.known_order_ids()
        return False

    def apply(self, event: dict) -> bool:
        """
        Merge one ``{event, table, row}`` change. Returns True when the view
        changed and the client should hear about it.
        """
        table = event.get("table")
        row = event.get("row") or {}
        if table not in TABLES or "id" not in row:
            return False
        if not self.is_relevant(table, row):
            return False

        key = (table, str(row["id"]))
        existing = self.rows.get(key)
        if existing is not None and not self._is_newer(table, existing, row):
            return False

        self.rows[key] = row
        return True

    @staticmethod
    def _is_newer(table: str, existing: dict, incoming: dict) -> bool:
        current_ts = parse_datetime(existing.get("updated_at") or "")
        incoming_ts = parse_datetime(incoming.get("updated_at") or "")
        if current_ts and incoming_ts and incoming_ts != current_ts:
            return incoming_ts > current_ts

        ranks = STATUS_RANK.get(table)
        if not ranks:
            return False
        current_rank = ranks.get(existing.get("status"), -1)
        incoming_rank = ranks.get(incoming.get("status"), -1)
        return incoming_rank > current_rank

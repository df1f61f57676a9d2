from apps.realtime.session import (
    CHAT_MESSAGES,
    DISPUTES,
    ESCROW_HOLDS,
    OFFERS,
    ORDERS,
    SessionView,
)

BUYER = 1
SELLER = 2
OUTSIDER = 3


def offer_row(status="pending", updated_at="2026-03-02T09:00:00Z", listing=10, **extra):
    row = {
        "id": "a1b2",
        "listing": listing,
        "buyer": BUYER,
        "seller": SELLER,
        "amount": 80_000,
        "counter_amount": None,
        "status": status,
        "updated_at": updated_at,
    }
    row.update(extra)
    return row


def event(table, row, kind="update"):
    return {"type": "row.changed", "event": kind, "table": table, "row": row}


class TestSessionView:
    def test_snapshot_replaces_everything(self):
        view = SessionView(BUYER)
        view.apply(event(OFFERS, offer_row(), "insert"))
        view.replace({ORDERS: [{"id": "o1", "buyer": BUYER, "seller": SELLER}]})

        assert view.get(OFFERS, "a1b2") is None
        assert view.get(ORDERS, "o1") is not None

    def test_newer_row_replaces_older(self):
        view = SessionView(BUYER)
        assert view.apply(event(OFFERS, offer_row(), "insert"))
        assert view.apply(
            event(OFFERS, offer_row("countered", "2026-03-02T09:05:00Z", counter_amount=90_000))
        )
        assert view.get(OFFERS, "a1b2")["counter_amount"] == 90_000

    def test_late_older_event_is_dropped(self):
        view = SessionView(BUYER)
        view.apply(event(OFFERS, offer_row("accepted", "2026-03-02T09:10:00Z")))

        assert not view.apply(event(OFFERS, offer_row("pending", "2026-03-02T09:00:00Z")))
        assert view.get(OFFERS, "a1b2")["status"] == "accepted"

    def test_same_timestamp_falls_back_to_status_order(self):
        view = SessionView(BUYER)
        view.apply(event(OFFERS, offer_row("pending")))

        assert view.apply(event(OFFERS, offer_row("withdrawn")))
        assert not view.apply(event(OFFERS, offer_row("pending")))
        assert not view.apply(event(OFFERS, offer_row("withdrawn")))

    def test_rows_for_other_users_are_ignored(self):
        view = SessionView(OUTSIDER)
        assert not view.apply(event(OFFERS, offer_row(), "insert"))
        assert view.rows_for(OFFERS) == []

    def test_listing_scope(self):
        view = SessionView(BUYER, listing_id=10)
        assert view.apply(event(OFFERS, offer_row(), "insert"))
        assert not view.apply(event(OFFERS, offer_row(listing=11, id="other"), "insert"))

    def test_holds_and_disputes_follow_known_orders(self):
        view = SessionView(BUYER)
        hold = {"id": "h1", "order": "o1", "status": "pending", "updated_at": "2026-03-02T09:00:00Z"}
        assert not view.apply(event(ESCROW_HOLDS, hold, "insert"))

        view.apply(event(ORDERS, {"id": "o1", "buyer": BUYER, "seller": SELLER}, "insert"))
        assert view.apply(event(ESCROW_HOLDS, hold, "insert"))
        assert view.apply(
            event(DISPUTES, {"id": "d1", "order": "o1", "status": "open"}, "insert")
        )

    def test_chat_messages(self):
        view = SessionView(SELLER, listing_id=10)
        message = {"id": 5, "listing": 10, "buyer": BUYER, "seller": SELLER, "body": "hi"}
        assert view.apply(event(CHAT_MESSAGES, message, "insert"))
        assert not view.apply(event(CHAT_MESSAGES, message, "insert"))

    def test_unknown_table_or_missing_id(self):
        view = SessionView(BUYER)
        assert not view.apply(event("listings", {"id": 1}))
        assert not view.apply(event(OFFERS, {"buyer": BUYER}))

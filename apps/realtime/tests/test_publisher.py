from unittest import mock

import pytest

from apps.chat.services import ChatService
from apps.offers.services import OfferService
from apps.realtime.publisher import publish_row_change, serialize_row, user_group
from apps.realtime.sync import SyncService

pytestmark = pytest.mark.django_db


@pytest.fixture
def channel_layer():
    layer = mock.Mock()
    layer.group_send = mock.AsyncMock()
    with mock.patch("apps.realtime.publisher.get_channel_layer", return_value=layer):
        yield layer


def sent(channel_layer):
    return [c.args for c in channel_layer.group_send.call_args_list]


class TestPublisher:
    def test_new_offer_reaches_both_parties(
        self, channel_layer, django_capture_on_commit_callbacks, listing, buyer, seller
    ):
        with django_capture_on_commit_callbacks(execute=True):
            offer = OfferService.propose(listing, buyer, 80_000)

        offer_events = [
            (group, message)
            for group, message in sent(channel_layer)
            if message["table"] == "offers"
        ]
        assert {group for group, _ in offer_events} == {user_group(buyer.pk), user_group(seller.pk)}
        _, message = offer_events[0]
        assert message["type"] == "row.changed"
        assert message["event"] == "insert"
        assert message["row"]["id"] == str(offer.pk)

    def test_conditional_update_publishes_once_per_party(
        self, channel_layer, django_capture_on_commit_callbacks, listing, buyer, seller
    ):
        offer = OfferService.propose(listing, buyer, 80_000)
        channel_layer.group_send.reset_mock()

        with django_capture_on_commit_callbacks(execute=True):
            OfferService.counter(offer, seller, 90_000)

        updates = [
            message
            for _, message in sent(channel_layer)
            if message["table"] == "offers" and message["event"] == "update"
        ]
        assert len(updates) == 2
        assert updates[0]["row"]["status"] == "countered"

    def test_nothing_sent_before_commit(
        self, channel_layer, django_capture_on_commit_callbacks, listing, buyer
    ):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            OfferService.propose(listing, buyer, 80_000)
        assert callbacks
        channel_layer.group_send.assert_not_called()

    def test_send_failure_is_swallowed(
        self, channel_layer, django_capture_on_commit_callbacks, listing, buyer
    ):
        channel_layer.group_send.side_effect = RuntimeError("redis down")
        with django_capture_on_commit_callbacks(execute=True):
            offer = OfferService.propose(listing, buyer, 80_000)
        assert offer.pk is not None

    def test_rows_are_plain_json(self, listing, buyer):
        offer = OfferService.propose(listing, buyer, 80_000)
        table, row = serialize_row(offer)
        assert table == "offers"
        assert isinstance(row["id"], str)
        assert isinstance(row["created_at"], str)

    def test_unknown_model_is_logged_not_raised(self, listing):
        publish_row_change(listing)


class TestSnapshot:
    def test_snapshot_for_listing_includes_thread(self, listing, buyer, seller, other_buyer):
        offer = OfferService.propose(listing, buyer, 80_000)
        OfferService.propose(listing, other_buyer, 70_000)
        ChatService.send_message(buyer, listing, "Is it still available?")

        snapshot = SyncService.snapshot_for(buyer, listing.pk)

        assert [row["id"] for row in snapshot["offers"]] == [str(offer.pk)]
        bodies = [row["body"] for row in snapshot["chat_messages"]]
        assert "Is it still available?" in bodies
        assert snapshot["orders"] == []

    def test_seller_sees_every_buyer(self, listing, buyer, seller, other_buyer):
        OfferService.propose(listing, buyer, 80_000)
        OfferService.propose(listing, other_buyer, 70_000)

        snapshot = SyncService.snapshot_for(seller)
        assert len(snapshot["offers"]) == 2
        assert snapshot["chat_messages"] == []

    def test_snapshot_includes_order_hold_rows(self, listing, buyer, seller):
        offer = OfferService.propose(listing, buyer, 80_000)
        _, order = OfferService.respond(offer, seller, "accept")

        snapshot = SyncService.snapshot_for(buyer, listing.pk)
        assert [row["id"] for row in snapshot["orders"]] == [str(order.pk)]
        assert snapshot["escrow_holds"] == []

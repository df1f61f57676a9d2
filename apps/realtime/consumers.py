import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import InterfaceError, OperationalError
from django.db.models import Q

from apps.chat.services import ChatService
from apps.core.exceptions import (
    ActionNotPermitted,
    MarketplaceError,
    ResourceNotFound,
    StaleOfferState,
    UpstreamUnavailable,
)
from apps.escrow.serializers import (
    EscrowHoldSerializer,
    ReleaseDecisionSerializer,
    escrow_status_payload,
)
from apps.escrow.services import EscrowHoldService
from apps.listings.models import Listing
from apps.offers.models import Offer
from apps.offers.services import OfferService
from apps.orders.models import Order

from .publisher import serialize_row, to_primitive, user_group
from .session import SessionView
from .sync import SyncService

logger = logging.getLogger("realtime")


class NegotiationSessionConsumer(AsyncJsonWebsocketConsumer):
    """
    One negotiation session per websocket connection.

    Client commands and channel-layer change events are handled one at a
    time by this consumer. The session keeps its own ``SessionView``; it is
    rebuilt from a snapshot on connect and whenever the client asks for a
    ``resync``.

    Inbound:  ``{"command": str, "request_id": any, "payload": {...}}``
    Outbound: ``{"type": "snapshot", "tables": {...}}``,
              ``{"type": "row.changed", "event", "table", "row"}`` and
              ``{"type": "command.result", "command", "request_id", "ok",
              "data" | "error"}``.
    """

    COMMANDS = {
        "resync": "cmd_resync",
        "propose_offer": "cmd_propose_offer",
        "counter_offer": "cmd_counter_offer",
        "respond_offer": "cmd_respond_offer",
        "withdraw_offer": "cmd_withdraw_offer",
        "send_message": "cmd_send_message",
        "escrow_status": "cmd_escrow_status",
        "request_release": "cmd_request_release",
    }

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return

        self.user = user
        self.listing_id = self._listing_from_query()
        self.group_name = user_group(user.pk)
        self.view = SessionView(user.pk, self.listing_id)

        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        snapshot = await self.load_snapshot()
        await self.send_json({"type": "snapshot", "tables": snapshot})

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    def _listing_from_query(self):
        query = parse_qs(self.scope.get("query_string", b"").decode())
        values = query.get("listing")
        if not values:
            return None
        try:
            return int(values[0])
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # inbound commands
    # ------------------------------------------------------------------
    async def receive_json(self, content, **kwargs):
        if not isinstance(content, dict):
            content = {}
        command = content.get("command")
        request_id = content.get("request_id")
        payload = content.get("payload") or {}

        handler_name = self.COMMANDS.get(command)
        if handler_name is None:
            await self.send_error(
                command,
                request_id,
                {
                    "code": "unknown_command",
                    "message": f"Unknown command: {command}",
                    "retryable": False,
                },
            )
            return

        try:
            data = await getattr(self, handler_name)(payload)
        except StaleOfferState as exc:
            error = exc.to_dict()
            if exc.current is not None:
                current = await database_sync_to_async(serialize_row)(exc.current)
                error["current"] = current[1]
            await self.send_error(command, request_id, error)
        except MarketplaceError as exc:
            error = exc.to_dict()
            if exc.details:
                error["details"] = to_primitive(exc.details)
            await self.send_error(command, request_id, error)
        except (OperationalError, InterfaceError) as exc:
            logger.error(f"Store unavailable during {command} for user {self.user.pk}: {exc}")
            await self.send_error(command, request_id, UpstreamUnavailable().to_dict())
        else:
            await self.send_json(
                {
                    "type": "command.result",
                    "command": command,
                    "request_id": request_id,
                    "ok": True,
                    "data": data,
                }
            )

    async def send_error(self, command, request_id, error):
        await self.send_json(
            {
                "type": "command.result",
                "command": command,
                "request_id": request_id,
                "ok": False,
                "error": error,
            }
        )

    async def cmd_resync(self, payload):
        snapshot = await self.load_snapshot()
        return {"tables": snapshot}

    async def cmd_propose_offer(self, payload):
        return await self.propose_offer(payload)

    async def cmd_counter_offer(self, payload):
        return await self.counter_offer(payload)

    async def cmd_respond_offer(self, payload):
        return await self.respond_offer(payload)

    async def cmd_withdraw_offer(self, payload):
        return await self.withdraw_offer(payload)

    async def cmd_send_message(self, payload):
        return await self.send_message(payload)

    async def cmd_escrow_status(self, payload):
        return await self.escrow_status(payload)

    async def cmd_request_release(self, payload):
        return await self.request_release(payload)

    # ------------------------------------------------------------------
    # channel layer events
    # ------------------------------------------------------------------
    async def row_changed(self, event):
        """Handles ``row.changed`` events published for this user."""
        if not self.view.apply(event):
            return
        await self.send_json(
            {
                "type": "row.changed",
                "event": event.get("event"),
                "table": event.get("table"),
                "row": event.get("row"),
            }
        )

    # ------------------------------------------------------------------
    # store access
    # ------------------------------------------------------------------
    async def load_snapshot(self):
        snapshot = await database_sync_to_async(SyncService.snapshot_for)(
            self.user, self.listing_id
        )
        self.view.replace(snapshot)
        return snapshot

    def _get_offer(self, offer_id):
        try:
            return Offer.objects.select_related("listing").get(
                Q(buyer=self.user) | Q(seller=self.user), pk=offer_id
            )
        except (Offer.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise ResourceNotFound("Offer not found.")

    def _get_order(self, order_id):
        try:
            return Order.objects.get(Q(buyer=self.user) | Q(seller=self.user), pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise ResourceNotFound("Order not found.")

    def _get_listing(self, listing_id):
        try:
            return Listing.objects.get(pk=listing_id)
        except (Listing.DoesNotExist, ValueError, TypeError):
            raise ResourceNotFound("Listing not found.")

    @database_sync_to_async
    def propose_offer(self, payload):
        listing = self._get_listing(payload.get("listing"))
        offer = OfferService.propose(
            listing, self.user, payload.get("amount"), payload.get("message")
        )
        return {"offer": serialize_row(offer)[1]}

    @database_sync_to_async
    def counter_offer(self, payload):
        offer = self._get_offer(payload.get("offer"))
        offer = OfferService.counter(offer, self.user, payload.get("counter_amount"))
        return {"offer": serialize_row(offer)[1]}

    @database_sync_to_async
    def respond_offer(self, payload):
        offer = self._get_offer(payload.get("offer"))
        offer, order = OfferService.respond(offer, self.user, payload.get("decision"))
        return {
            "offer": serialize_row(offer)[1],
            "order": serialize_row(order)[1] if order is not None else None,
        }

    @database_sync_to_async
    def withdraw_offer(self, payload):
        offer = self._get_offer(payload.get("offer"))
        offer = OfferService.withdraw(offer, self.user)
        return {"offer": serialize_row(offer)[1]}

    @database_sync_to_async
    def send_message(self, payload):
        listing = self._get_listing(payload.get("listing"))
        message, result = ChatService.send_message(
            self.user,
            listing,
            payload.get("body") or "",
            buyer_id=payload.get("buyer"),
            override=bool(payload.get("override", False)),
        )
        if message is None:
            raise result.as_exception()
        return {"message": serialize_row(message)[1], "guard": result.to_dict()}

    @database_sync_to_async
    def escrow_status(self, payload):
        order = self._get_order(payload.get("order"))
        status = EscrowHoldService.get_escrow_status(order)
        return to_primitive(escrow_status_payload(status))

    @database_sync_to_async
    def request_release(self, payload):
        order = self._get_order(payload.get("order"))
        if self.user.pk not in (order.buyer_id, order.seller_id):
            raise ActionNotPermitted()
        hold, decision = EscrowHoldService.request_release(order)
        return to_primitive(
            {
                "hold": EscrowHoldSerializer(hold).data,
                "decision": ReleaseDecisionSerializer(decision).data,
            }
        )

import logging

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.viewsets import GenericViewSet

from apps.core.views import BaseResponseMixin

from .serializers import ChatMessageCreateSerializer, ChatMessageSerializer
from .services import ChatService
from .utils.rate_limiting import ChatMessageRateThrottle

logger = logging.getLogger("chat_performance")


class ChatMessageViewSet(GenericViewSet, BaseResponseMixin):
    """
    Negotiation chat for a listing.

    - Thread: GET /chat/messages/?listing=<id>[&buyer=<id>]
    - Send:   POST /chat/messages/

    A message stopped by the guard is answered with the guard result so the
    client can show why, and whether "send anyway" is possible.
    """

    permission_classes = [IsAuthenticated]
    throttle_classes = [ChatMessageRateThrottle]

    def get_serializer_class(self):
        if self.action == "create":
            return ChatMessageCreateSerializer
        return ChatMessageSerializer

    def list(self, request):
        listing_id = request.query_params.get("listing")
        if not listing_id or not listing_id.isdigit():
            return self.error_response(message="The listing query parameter is required")

        messages = ChatService.thread_for(request.user, int(listing_id))
        buyer_id = request.query_params.get("buyer")
        if buyer_id and buyer_id.isdigit():
            messages = messages.filter(buyer_id=int(buyer_id))

        serializer = ChatMessageSerializer(messages.order_by("created_at"), many=True)
        return self.success_response(data=serializer.data)

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        message, result = ChatService.send_message(
            request.user,
            serializer.validated_data["listing"],
            serializer.validated_data["body"],
            buyer_id=serializer.validated_data.get("buyer"),
            override=serializer.validated_data.get("override", False),
        )
        if message is None:
            raise result.as_exception()

        return self.success_response(
            data={
                "message": ChatMessageSerializer(message).data,
                "guard": result.to_dict(),
            },
            message="Message sent",
            status_code=status.HTTP_201_CREATED,
        )

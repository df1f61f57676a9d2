from django.urls import path

from .consumers import NegotiationSessionConsumer

websocket_urlpatterns = [
    path("ws/negotiations/", NegotiationSessionConsumer.as_asgi()),
]

import logging
from http.cookies import SimpleCookie
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger("realtime")


class CookieJWTAuthentication(JWTAuthentication):
    """
    JWT authentication that checks for the access token in a cookie first.
    Falls back to the standard Authorization header if no cookie is present.
    """

    def authenticate(self, request):
        access_token = request.COOKIES.get(settings.JWT_AUTH_COOKIE)

        if access_token:
            validated_token = self.get_validated_token(access_token)
            return self.get_user(validated_token), validated_token

        return super().authenticate(request)


@database_sync_to_async
def get_user_for_token(raw_token):
    authenticator = JWTAuthentication()
    try:
        validated_token = authenticator.get_validated_token(raw_token)
        return authenticator.get_user(validated_token)
    except (InvalidToken, TokenError) as e:
        logger.warning(f"Rejected websocket token: {str(e)}")
        return AnonymousUser()


class JWTCookieAuthMiddleware(BaseMiddleware):
    """
    Websocket counterpart of CookieJWTAuthentication. Reads the access token
    from the auth cookie or a ``token`` query parameter. A user already set
    by the session middleware is left alone.
    """

    async def __call__(self, scope, receive, send):
        user = scope.get("user")
        if user is None or not user.is_authenticated:
            raw_token = self._token_from_scope(scope)
            if raw_token:
                scope["user"] = await get_user_for_token(raw_token)
            else:
                scope.setdefault("user", AnonymousUser())
        return await super().__call__(scope, receive, send)

    @staticmethod
    def _token_from_scope(scope):
        for name, value in scope.get("headers", []):
            if name == b"cookie":
                cookie = SimpleCookie()
                cookie.load(value.decode("latin1"))
                morsel = cookie.get(settings.JWT_AUTH_COOKIE)
                if morsel is not None and morsel.value:
                    return morsel.value

        query = parse_qs(scope.get("query_string", b"").decode())
        tokens = query.get("token")
        return tokens[0] if tokens else None

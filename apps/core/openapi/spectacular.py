from django.conf import settings
from drf_spectacular.extensions import OpenApiAuthenticationExtension


class CookieJWTAuthenticationExtension(OpenApiAuthenticationExtension):
    """Documents the access-token cookie read by CookieJWTAuthentication."""

    target_class = "apps.core.authentication.CookieJWTAuthentication"
    name = "cookieAuth"

    def get_security_definition(self, auto_schema):
        return {
            "type": "apiKey",
            "in": "cookie",
            "name": getattr(settings, "JWT_AUTH_COOKIE", "access_token"),
            "description": "Short-lived access token issued by /api/v1/auth/token/.",
        }

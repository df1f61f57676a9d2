import logging

from django.db import InterfaceError, OperationalError
from rest_framework import status
from rest_framework.exceptions import Throttled
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """
    Base class for every domain failure raised by the marketplace services.

    Each subclass carries the HTTP status it maps to and whether a client
    may retry the same command unchanged.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "marketplace_error"
    default_message = "The request could not be completed."
    retryable = False

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------
class InvalidAmount(MarketplaceError):
    default_code = "invalid_amount"
    default_message = "Offer amount must be positive and below the asking price."


class InvalidCounter(MarketplaceError):
    default_code = "invalid_counter"
    default_message = (
        "Counter amount must exceed the offer and not exceed the asking price."
    )


class ContentBlocked(MarketplaceError):
    default_code = "content_blocked"
    default_message = "Message contains content that cannot be sent."


class ContentWarned(MarketplaceError):
    default_code = "content_warned"
    default_message = "Message was flagged. Edit it or send anyway."


# ---------------------------------------------------------------------------
# State errors
# ---------------------------------------------------------------------------
class DuplicateActiveOffer(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "duplicate_active_offer"
    default_message = "You already have an active offer on this listing."


class InvalidOfferTransition(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_offer_transition"
    default_message = "This offer cannot make that transition."


class OrderStateError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "order_state_error"
    default_message = "The order is not in a state that allows this action."


class DisputeError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "dispute_error"
    default_message = "The dispute cannot be processed."


class ActionNotPermitted(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "action_not_permitted"
    default_message = "You are not allowed to perform this action."


class ResourceNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_message = "The requested record does not exist."


class StaleOfferState(MarketplaceError):
    """The offer changed underneath the caller; ``current`` is the fresh row."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "stale_offer_state"
    default_message = "The offer was changed by the other party. Refresh and retry."
    retryable = True

    def __init__(self, current=None, message=None, code=None, details=None):
        self.current = current
        super().__init__(message=message, code=code, details=details)


class AlreadyMaterialized(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "already_materialized"
    default_message = "An order already exists for this offer."


class AlreadyHeld(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "already_held"
    default_message = "An escrow hold already exists for this order."


class HoldDisputeActive(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "hold_dispute_active"
    default_message = "Escrow release is paused while a dispute is open."


# ---------------------------------------------------------------------------
# Transient errors
# ---------------------------------------------------------------------------
class RateLimited(MarketplaceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "rate_limited"
    default_message = "You are sending messages too quickly."
    retryable = True

    def __init__(self, retry_after=None, message=None, code=None, details=None):
        self.retry_after = retry_after
        super().__init__(message=message, code=code, details=details)


class UpstreamUnavailable(MarketplaceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "upstream_unavailable"
    default_message = "The service is temporarily unavailable. Please retry."
    retryable = True


def marketplace_error_response(exc):
    """Render a MarketplaceError in the project's error envelope."""
    data = dict(exc.details)
    if isinstance(exc, StaleOfferState) and exc.current is not None:
        # Imported lazily, offers depends on core.
        from apps.offers.serializers import OfferSerializer

        data["current"] = OfferSerializer(exc.current).data

    body = {
        "status": "error",
        "code": exc.code,
        "message": exc.message,
        "retryable": exc.retryable,
        "data": data or None,
    }
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        body["retry_after"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}
    return Response(body, status=exc.status_code, headers=headers)


def custom_exception_handler(exc, context):
    """
    Intercept any DRF exception. Domain errors and database outages are
    rendered in the project's error envelope; throttling is converted to a
    JSON response with a dynamic message based on `scope`. Everything else
    falls back to DRF's default behavior.
    """
    if isinstance(exc, (OperationalError, InterfaceError)):
        logger.error(f"Database unavailable while handling request: {exc}")
        exc = UpstreamUnavailable()

    if isinstance(exc, MarketplaceError):
        return marketplace_error_response(exc)

    # Let DRF build the default error response first (it will include a 429
    # status code and a Retry-After header for Throttled exceptions).
    response = exception_handler(exc, context)

    if isinstance(exc, Throttled) and response is not None:
        view = context.get("view", None)
        throttles = [] if view is None else getattr(view, "get_throttles", lambda: [])()
        scope = None
        if throttles:
            scope = getattr(throttles[0], "scope", None)

        wait_seconds = int(exc.wait) if exc.wait is not None else None

        if scope == "offer_propose":
            detail = "Too many offers. Please wait before making another offer."
        elif scope == "offer_respond":
            detail = "Too many offer responses. Please slow down."
        elif scope == "dispute_create":
            detail = "Too many disputes opened. Please wait before opening another."
        elif scope == "chat_message":
            detail = "Too many messages. Please wait before sending more."
        else:
            if wait_seconds is not None:
                detail = f"Request rate limit exceeded. Please wait {wait_seconds} seconds and try again."
            else:
                detail = "Request rate limit exceeded. Please try again later."

        response.data = {
            "status": "error",
            "message": detail,
            "retry_after": wait_seconds,
        }
        response.status_code = 429

    return response

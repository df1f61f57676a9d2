from apps.core.throttle import BaseCacheThrottle


class OrderRateThrottle(BaseCacheThrottle):
    scope = "order"


class OrderUpdateRateThrottle(BaseCacheThrottle):
    """Ship, cancel and confirm-delivery"""

    scope = "order_update"


class EscrowStatusRateThrottle(BaseCacheThrottle):
    """Escrow status polling and release checks from client countdowns"""

    scope = "escrow_status"

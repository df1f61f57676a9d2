from apps.core.throttle import BaseCacheThrottle


class DisputeRateThrottle(BaseCacheThrottle):
    """Custom throttle for dispute creation"""

    scope = "dispute_create"

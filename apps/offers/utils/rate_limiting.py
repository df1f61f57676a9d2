from apps.core.throttle import BaseCacheThrottle


class OfferRateThrottle(BaseCacheThrottle):
    """General offer endpoints (list/retrieve)"""

    scope = "offer"


class OfferProposeRateThrottle(BaseCacheThrottle):
    """New offers per user"""

    scope = "offer_propose"


class OfferRespondRateThrottle(BaseCacheThrottle):
    """Counter, respond and withdraw"""

    scope = "offer_respond"

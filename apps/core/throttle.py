import logging

from django.core.cache import cache as default_cache
from rest_framework.throttling import SimpleRateThrottle

logger = logging.getLogger("throttle")


class BaseCacheThrottle(SimpleRateThrottle):
    """
    Per-user sliding window kept in the default Django cache. Anonymous
    requests fall back to the client address. Subclasses set ``scope``;
    the rate is read from ``DEFAULT_THROTTLE_RATES``. A scope without a
    configured rate is not throttled.
    """

    cache = default_cache

    def get_rate(self):
        return self.THROTTLE_RATES.get(self.scope)

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            ident = request.user.pk
        else:
            ident = self.get_ident(request)
        return self.cache_format % {"scope": self.scope, "ident": ident}

    def throttle_failure(self):
        logger.warning(
            f"Rate limit exceeded for {self.scope}: key={self.key}, "
            f"requests={len(self.history)}, limit={self.num_requests}, "
            f"window={self.duration}s"
        )
        return False

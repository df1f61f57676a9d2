from apps.core.throttle import BaseCacheThrottle


class ChatMessageRateThrottle(BaseCacheThrottle):
    """Request-level limit on the message endpoint; content rules live in the guard"""

    scope = "chat_message"

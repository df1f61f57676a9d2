from .get_env import env

# Offer / negotiation rules
NEGOTIATION_SETTINGS = {
    "OFFER_NOTICES_ENABLED": True,  # Post a chat notice for each offer transition
    "MAX_MESSAGE_LENGTH": 500,
}

# Escrow hold timing
ESCROW_SETTINGS = {
    "HOLD_HOURS": env.get("ESCROW_HOLD_HOURS", default=48, cast_to=int),
    "RELEASE_SWEEP_BATCH_SIZE": 200,
    "HOLD_RETRY_COUNTDOWN_SECONDS": 60,  # First retry after a failed hold creation
    "REPAIR_LOOKBACK_DAYS": 14,
}

# Commission schedule. Thresholds are minor units (cents), rates are
# fractions of the sale price. Prices below LOW_THRESHOLD pay LOW_RATE,
# prices up to and including MID_THRESHOLD pay MID_RATE, the rest HIGH_RATE.
COMMISSION_SETTINGS = {
    "LOW_THRESHOLD": 50_000,  # R500
    "LOW_RATE": "0.12",
    "MID_THRESHOLD": 200_000,  # R2,000
    "MID_RATE": "0.10",
    "HIGH_RATE": "0.05",
    "PROMO_ACTIVE": False,
}

# Chat rate/content guard
CHAT_GUARD = {
    "MAX_MESSAGES": 5,  # per sender
    "WINDOW_SECONDS": 60,  # sliding window
    "CACHE_PREFIX": "chat_guard",
}

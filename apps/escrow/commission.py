from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

TIER_STANDARD = "standard"
TIER_MID = "mid"
TIER_PREMIUM = "premium"


@dataclass(frozen=True)
class FeeBreakdown:
    """Commission on a sale price. Money fields are minor units."""

    amount: int
    fee: int
    net: int
    rate: Decimal
    tier: str


class CommissionSchedule:
    """
    Tiered platform commission, configured by ``COMMISSION_SETTINGS``.

    Prices below LOW_THRESHOLD pay LOW_RATE, prices up to and including
    MID_THRESHOLD pay MID_RATE and anything above pays HIGH_RATE. While a
    promotion is active no commission is charged.
    """

    @staticmethod
    def _config():
        return settings.COMMISSION_SETTINGS

    @classmethod
    def tier_for(cls, amount: int) -> str:
        config = cls._config()
        if amount < config["LOW_THRESHOLD"]:
            return TIER_STANDARD
        if amount <= config["MID_THRESHOLD"]:
            return TIER_MID
        return TIER_PREMIUM

    @classmethod
    def rate_for(cls, amount: int) -> Decimal:
        config = cls._config()
        if config.get("PROMO_ACTIVE"):
            return Decimal("0")
        tier = cls.tier_for(amount)
        if tier == TIER_STANDARD:
            return Decimal(config["LOW_RATE"])
        if tier == TIER_MID:
            return Decimal(config["MID_RATE"])
        return Decimal(config["HIGH_RATE"])

    @classmethod
    def compute_fee(cls, amount: int) -> FeeBreakdown:
        if amount < 0:
            raise ValueError("amount must not be negative")
        rate = cls.rate_for(amount)
        fee = int((Decimal(amount) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return FeeBreakdown(
            amount=amount,
            fee=fee,
            net=amount - fee,
            rate=rate,
            tier=cls.tier_for(amount),
        )

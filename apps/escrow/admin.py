from django.contrib import admin

from .models import EscrowHold


@admin.register(EscrowHold)
class EscrowHoldAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "order",
        "status",
        "amount",
        "commission_amount",
        "release_at",
        "released_at",
    )
    list_filter = ("status",)
    readonly_fields = ("release_at", "delivery_confirmed_at", "release_conditions")

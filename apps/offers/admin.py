from django.contrib import admin

from .models import Offer, OfferHistory


class OfferHistoryInline(admin.TabularInline):
    model = OfferHistory
    extra = 0
    readonly_fields = ("action", "user", "amount", "timestamp", "notes")


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    list_display = ("id", "listing", "buyer", "amount", "counter_amount", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("listing__title", "buyer__username")
    inlines = [OfferHistoryInline]

from django.contrib import admin

from .models import Order, OrderTracking


class OrderTrackingInline(admin.TabularInline):
    model = OrderTracking
    extra = 0
    readonly_fields = ("status", "notes", "photo_url", "created_by", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "listing", "buyer", "seller", "amount", "service_fee", "status")
    list_filter = ("status",)
    search_fields = ("listing__title", "payment_reference", "tracking_number")
    readonly_fields = ("offer", "amount", "service_fee", "total")
    inlines = [OrderTrackingInline]

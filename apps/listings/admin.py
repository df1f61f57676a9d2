from django.contrib import admin

from .models import Listing


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "seller", "price", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("title",)

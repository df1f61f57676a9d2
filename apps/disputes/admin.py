from django.contrib import admin

from .models import Dispute


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "raised_by", "reason", "status", "created_at")
    list_filter = ("status", "reason")
    readonly_fields = ("order", "raised_by", "evidence_urls", "resolved_by", "resolved_at")

from django.contrib import admin

from .models import ChatMessage


@admin.register(ChatMessage)
class ChatMessageAdmin(admin.ModelAdmin):
    list_display = ("id", "listing", "sender", "kind", "severity", "overridden", "created_at")
    list_filter = ("kind", "severity", "overridden")
    search_fields = ("body",)

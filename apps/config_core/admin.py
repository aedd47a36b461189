"""
apps.config_core.admin
"""
from django.contrib import admin

from .models import SettingsRevision


@admin.register(SettingsRevision)
class SettingsRevisionAdmin(admin.ModelAdmin):
    list_display = ["instance", "number", "source", "acting_role", "environment", "created_at"]
    list_filter = ["source", "environment", "instance"]
    search_fields = ["instance__name", "acting_role"]
    readonly_fields = [
        "instance",
        "number",
        "settings",
        "source",
        "source_text",
        "acting_role",
        "environment",
        "created_at",
    ]
    ordering = ["instance", "-number"]

    def has_add_permission(self, request):
        # Revisions are only written by instance_service.
        return False

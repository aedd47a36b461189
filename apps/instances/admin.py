"""
apps.instances.admin
"""
from django.contrib import admin

from .models import OmnibusInstance


@admin.register(OmnibusInstance)
class OmnibusInstanceAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "slug", "updated_at"]
    search_fields = ["name", "slug"]
    readonly_fields = ["id", "slug", "created_at", "updated_at"]
    ordering = ["id"]

"""
apps.schema_registry.admin
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Django admin registrations for the Schema Registry application.
"""
from django.contrib import admin

from .models import SettingsSchema


@admin.register(SettingsSchema)
class SettingsSchemaAdmin(admin.ModelAdmin):
    """
    Admin interface for SettingsSchema.

    Activating a record here deactivates all others (see
    :meth:`~apps.schema_registry.models.SettingsSchema.save`).
    """

    list_display = ["schema_version", "id", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["schema_version", "description"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        """Freeze ``schema_version`` and ``schema_definition`` once saved."""
        if obj is not None:
            return list(self.readonly_fields) + ["schema_version", "schema_definition"]
        return self.readonly_fields

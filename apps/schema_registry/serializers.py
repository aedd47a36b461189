"""
apps.schema_registry.serializers
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
I/O serializers for SettingsSchema – no business logic.
"""
from rest_framework import serializers

from .models import SettingsSchema


class SettingsSchemaSerializer(serializers.ModelSerializer):
    class Meta:
        model = SettingsSchema
        fields = [
            "id",
            "schema_version",
            "schema_definition",
            "description",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class SettingsSchemaCreateSerializer(serializers.Serializer):
    schema_version = serializers.RegexField(
        r"^\d+\.\d+\.\d+$",
        max_length=20,
        error_messages={"invalid": "schema_version must look like MAJOR.MINOR.PATCH."},
    )
    schema_definition = serializers.JSONField()
    description = serializers.CharField(required=False, default="", allow_blank=True)
    is_active = serializers.BooleanField(required=False, default=False)


class SettingsSchemaUpdateSerializer(serializers.Serializer):
    description = serializers.CharField(required=False, allow_blank=True)
    schema_definition = serializers.JSONField(required=False)
    is_active = serializers.BooleanField(required=False)


class SchemaErrorResponseSerializer(serializers.Serializer):
    """Response shape for a 400 schema validation failure."""

    errors = serializers.ListField(child=serializers.DictField())

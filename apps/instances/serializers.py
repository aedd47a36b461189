"""
apps.instances.serializers
~~~~~~~~~~~~~~~~~~~~~~~~~~
I/O-only serializers for the Instances API.
No business logic; shape validation only.
"""
from django.conf import settings
from rest_framework import serializers

from apps.config_core.models import SettingsRevision
from .models import OmnibusInstance


def _default_environment() -> str:
    return settings.OMNIBUS_DEFAULT_ENVIRONMENT


# ---------------------------------------------------------------------------
# Instance
# ---------------------------------------------------------------------------

class OmnibusInstanceSerializer(serializers.ModelSerializer):
    """Read serializer for a full OmnibusInstance object."""

    class Meta:
        model = OmnibusInstance
        fields = ["id", "name", "slug", "settings_overrides", "created_at", "updated_at"]
        read_only_fields = fields


class OmnibusInstanceCreateSerializer(serializers.Serializer):
    """Validates POST /instances/ request body."""

    name = serializers.CharField(max_length=255)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class PutSettingsRequestSerializer(serializers.Serializer):
    """Validates PUT /instances/{id}/settings/ request body."""

    settings = serializers.DictField()
    acting_role = serializers.CharField(max_length=100)
    environment = serializers.CharField(max_length=50, default=_default_environment)


class GitlabRbSourceRequestSerializer(serializers.Serializer):
    """Validates a request carrying raw ``gitlab.rb`` text."""

    source = serializers.CharField(allow_blank=True, trim_whitespace=False)
    acting_role = serializers.CharField(max_length=100)
    environment = serializers.CharField(max_length=50, default=_default_environment)


class EffectiveSettingsResponseSerializer(serializers.Serializer):
    """Response shape for a successful settings update or GET /effective-settings/."""

    effective_settings = serializers.JSONField()


class ValidationErrorResponseSerializer(serializers.Serializer):
    """Response shape for a 400 validation or parse failure."""

    errors = serializers.ListField(child=serializers.DictField())


# ---------------------------------------------------------------------------
# Revisions
# ---------------------------------------------------------------------------

class SettingsRevisionSerializer(serializers.ModelSerializer):
    class Meta:
        model = SettingsRevision
        fields = [
            "number",
            "settings",
            "source",
            "source_text",
            "acting_role",
            "environment",
            "created_at",
        ]
        read_only_fields = fields


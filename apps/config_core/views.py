"""
apps.config_core.views
~~~~~~~~~~~~~~~~~~~~~~~
Stateless gitlab.rb endpoints.

POST /gitlab-rb/parse/ – parse and validate a gitlab.rb against the active
schema without touching any instance.
"""
from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.config_core.services import gitlab_rb_preview
from apps.config_core.services.gitlab_rb_parser import GitlabRbParseError
from apps.instances.serializers import (
    GitlabRbSourceRequestSerializer,
    ValidationErrorResponseSerializer,
)


class GitlabRbParseView(APIView):
    """POST /gitlab-rb/parse/ – dry-run a gitlab.rb upload."""

    @extend_schema(
        summary="Preview gitlab.rb",
        description=(
            "Parses gitlab.rb text and validates the result against the active "
            "SettingsSchema.  Nothing is stored.  Syntax errors return 400; "
            "validation problems are reported in the 200 body with valid=false."
        ),
        request=GitlabRbSourceRequestSerializer,
        responses={
            200: inline_serializer(
                name="GitlabRbPreviewResponse",
                fields={
                    "settings": serializers.JSONField(),
                    "effective_settings": serializers.JSONField(allow_null=True),
                    "duplicates": serializers.ListField(child=serializers.DictField()),
                    "valid": serializers.BooleanField(),
                    "errors": serializers.ListField(child=serializers.DictField()),
                },
            ),
            400: ValidationErrorResponseSerializer,
            404: OpenApiResponse(description="No active schema found."),
            413: OpenApiResponse(description="Source exceeds OMNIBUS_MAX_SOURCE_BYTES."),
        },
        tags=["gitlab.rb"],
    )
    def post(self, request: Request) -> Response:
        serializer = GitlabRbSourceRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data

        try:
            preview = gitlab_rb_preview.preview_gitlab_rb(
                text=vd["source"],
                acting_role=vd["acting_role"],
                environment=vd["environment"],
            )
        except GitlabRbParseError as exc:
            result = gitlab_rb_preview.parse_errors_result(exc)
            return Response({"errors": result.errors}, status=status.HTTP_400_BAD_REQUEST)

        return Response(preview, status=status.HTTP_200_OK)

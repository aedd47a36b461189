"""
apps.instances.views
~~~~~~~~~~~~~~~~~~~~
Thin DRF API views for the Instances application.
All business logic is delegated to
:mod:`apps.instances.services.instance_service`.

Endpoints
---------
GET    /instances/                                – List instances
POST   /instances/                                – Create instance
PUT    /instances/{id}/settings/                  – Validate + apply JSON settings
POST   /instances/{id}/gitlab-rb/                 – Import a gitlab.rb file
GET    /instances/{id}/gitlab-rb/                 – Render gitlab.rb (``?effective=1``)
GET    /instances/{id}/effective-settings/        – Resolve effective settings
GET    /instances/{id}/revisions/                 – Revision history
GET    /instances/{id}/revisions/{a}/diff/{b}/    – Field-level diff of two revisions
"""
from __future__ import annotations

from django.http import HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.instances.services import instance_service
from .serializers import (
    EffectiveSettingsResponseSerializer,
    GitlabRbSourceRequestSerializer,
    OmnibusInstanceCreateSerializer,
    OmnibusInstanceSerializer,
    PutSettingsRequestSerializer,
    SettingsRevisionSerializer,
    ValidationErrorResponseSerializer,
)


def _settings_response(result, effective_settings) -> Response:
    if not result.valid:
        return Response({"errors": result.errors}, status=status.HTTP_400_BAD_REQUEST)
    return Response({"effective_settings": effective_settings}, status=status.HTTP_200_OK)


class InstanceListCreateView(APIView):
    """GET / POST /instances/"""

    @extend_schema(
        summary="List Instances",
        responses={200: OmnibusInstanceSerializer(many=True)},
        tags=["Instances"],
    )
    def get(self, request: Request) -> Response:
        instances = instance_service.list_instances()
        return Response(OmnibusInstanceSerializer(instances, many=True).data)

    @extend_schema(
        summary="Create Instance",
        description="Registers an Omnibus installation with no settings.",
        request=OmnibusInstanceCreateSerializer,
        responses={
            201: OmnibusInstanceSerializer,
            400: OpenApiResponse(description="Validation error – name missing or blank."),
            409: OpenApiResponse(description="An instance with that name already exists."),
            422: OpenApiResponse(description="The name has no letter or digit to build a slug from."),
        },
        tags=["Instances"],
    )
    def post(self, request: Request) -> Response:
        serializer = OmnibusInstanceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        instance = instance_service.create_instance(name=serializer.validated_data["name"])
        return Response(
            OmnibusInstanceSerializer(instance).data,
            status=status.HTTP_201_CREATED,
        )


class InstanceSettingsView(APIView):
    """PUT /instances/{id}/settings/ – validate and apply a JSON settings tree."""

    @extend_schema(
        summary="Apply Settings",
        description=(
            "Validates the settings tree against the active SettingsSchema.  On "
            "success the tree replaces the instance's settings, a revision is "
            "recorded and the effective settings are returned.  On failure, "
            "returns 400 with every validation error."
        ),
        request=PutSettingsRequestSerializer,
        responses={
            200: EffectiveSettingsResponseSerializer,
            400: ValidationErrorResponseSerializer,
            404: OpenApiResponse(description="Instance not found or no active schema."),
        },
        tags=["Instances"],
    )
    def put(self, request: Request, instance_id: str) -> Response:
        serializer = PutSettingsRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data

        result, effective_settings = instance_service.apply_settings_overrides(
            instance_id=instance_id,
            overrides=vd["settings"],
            acting_role=vd["acting_role"],
            environment=vd["environment"],
        )
        return _settings_response(result, effective_settings)


class InstanceGitlabRbView(APIView):
    """POST / GET /instances/{id}/gitlab-rb/ – import or render gitlab.rb."""

    @extend_schema(
        summary="Import gitlab.rb",
        description=(
            "Parses the supplied gitlab.rb text and applies the resulting "
            "settings exactly like PUT /settings/.  Syntax errors are returned "
            "as parse_error entries with line and column."
        ),
        request=GitlabRbSourceRequestSerializer,
        responses={
            200: EffectiveSettingsResponseSerializer,
            400: ValidationErrorResponseSerializer,
            404: OpenApiResponse(description="Instance not found or no active schema."),
            413: OpenApiResponse(description="Source exceeds OMNIBUS_MAX_SOURCE_BYTES."),
        },
        tags=["Instances"],
    )
    def post(self, request: Request, instance_id: str) -> Response:
        serializer = GitlabRbSourceRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data

        result, effective_settings = instance_service.import_gitlab_rb(
            instance_id=instance_id,
            text=vd["source"],
            acting_role=vd["acting_role"],
            environment=vd["environment"],
        )
        return _settings_response(result, effective_settings)

    @extend_schema(
        summary="Render gitlab.rb",
        description=(
            "Returns the stored settings as gitlab.rb text.  With ?effective=1 "
            "schema defaults are included and nil values left out."
        ),
        parameters=[OpenApiParameter("effective", bool, required=False)],
        responses={
            (200, "text/plain"): OpenApiTypes.STR,
            404: OpenApiResponse(description="Instance not found."),
        },
        tags=["Instances"],
    )
    def get(self, request: Request, instance_id: str) -> HttpResponse:
        effective = request.query_params.get("effective", "").lower() in ("1", "true", "yes")
        text = instance_service.render_instance_gitlab_rb(
            instance_id=instance_id,
            effective=effective,
        )
        return HttpResponse(text, content_type="text/plain; charset=utf-8")


class InstanceEffectiveSettingsView(APIView):
    """GET /instances/{id}/effective-settings/ – resolve effective settings."""

    @extend_schema(
        summary="Get Effective Settings",
        description=(
            "Merges the instance's settings over the active SettingsSchema "
            "defaults to produce the fully-resolved settings tree."
        ),
        responses={
            200: EffectiveSettingsResponseSerializer,
            404: OpenApiResponse(description="Instance not found or no active schema."),
        },
        tags=["Instances"],
    )
    def get(self, request: Request, instance_id: str) -> Response:
        effective_settings = instance_service.get_effective_settings(instance_id=instance_id)
        return Response(
            {"effective_settings": effective_settings},
            status=status.HTTP_200_OK,
        )


class InstanceRevisionListView(APIView):
    """GET /instances/{id}/revisions/"""

    @extend_schema(
        summary="List Revisions",
        responses={200: SettingsRevisionSerializer(many=True)},
        tags=["Instances"],
    )
    def get(self, request: Request, instance_id: str) -> Response:
        revisions = instance_service.list_revisions(instance_id=instance_id)
        return Response(SettingsRevisionSerializer(revisions, many=True).data)


class InstanceRevisionDiffView(APIView):
    """GET /instances/{id}/revisions/{from}/diff/{to}/"""

    @extend_schema(
        summary="Diff Revisions",
        description="Field-level changes between two revisions of the same instance.",
        responses={
            200: OpenApiResponse(description='{"from": n, "to": m, "changes": [...]}'),
            404: OpenApiResponse(description="Instance or revision not found."),
        },
        tags=["Instances"],
    )
    def get(self, request: Request, instance_id: str, from_number: int, to_number: int) -> Response:
        diff = instance_service.diff_revisions(
            instance_id=instance_id,
            from_number=from_number,
            to_number=to_number,
        )
        return Response(diff)

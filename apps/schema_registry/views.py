"""
apps.schema_registry.views
~~~~~~~~~~~~~~~~~~~~~~~~~~~
DRF views for SettingsSchema – thin layer; all logic delegated to services.

Endpoints
---------
GET    /schemas/                 – List schemas (``?is_active=``)
POST   /schemas/                 – Register a schema version
GET    /schemas/{id}/            – Fetch one schema
PATCH  /schemas/{id}/            – Update description / definition / status
POST   /schemas/{id}/activate/   – Make a schema the active one
GET    /schema/active/           – Return the active schema
"""
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .serializers import (
    SchemaErrorResponseSerializer,
    SettingsSchemaCreateSerializer,
    SettingsSchemaSerializer,
    SettingsSchemaUpdateSerializer,
)
from .validators import SchemaValidationError


class SettingsSchemaListCreateView(APIView):
    """GET /api/v1/schemas/  –  POST /api/v1/schemas/"""

    @extend_schema(
        summary="List Settings Schemas",
        parameters=[OpenApiParameter("is_active", bool, required=False)],
        responses={200: SettingsSchemaSerializer(many=True)},
        tags=["Schema"],
    )
    def get(self, request: Request) -> Response:
        is_active_param = request.query_params.get("is_active")
        is_active = None
        if is_active_param is not None:
            is_active = is_active_param.lower() in ("1", "true", "yes")
        schemas = services.list_schemas(is_active=is_active)
        return Response(SettingsSchemaSerializer(schemas, many=True).data)

    @extend_schema(
        summary="Register Settings Schema",
        request=SettingsSchemaCreateSerializer,
        responses={
            201: SettingsSchemaSerializer,
            400: SchemaErrorResponseSerializer,
            409: OpenApiResponse(description="That schema_version already exists."),
        },
        tags=["Schema"],
    )
    def post(self, request: Request) -> Response:
        serializer = SettingsSchemaCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vd = serializer.validated_data
        try:
            schema = services.create_schema(
                schema_version=vd["schema_version"],
                schema_definition=vd["schema_definition"],
                description=vd.get("description", ""),
                is_active=vd.get("is_active", False),
            )
        except SchemaValidationError as exc:
            return Response({"errors": exc.errors}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            SettingsSchemaSerializer(schema).data,
            status=status.HTTP_201_CREATED,
        )


class SettingsSchemaDetailView(APIView):
    """GET / PATCH /api/v1/schemas/<pk>/"""

    @extend_schema(
        summary="Get Settings Schema",
        responses={200: SettingsSchemaSerializer, 404: OpenApiResponse(description="Not found.")},
        tags=["Schema"],
    )
    def get(self, request: Request, pk: str) -> Response:
        schema = services.get_schema(pk)
        return Response(SettingsSchemaSerializer(schema).data)

    @extend_schema(
        summary="Update Settings Schema",
        request=SettingsSchemaUpdateSerializer,
        responses={
            200: SettingsSchemaSerializer,
            400: SchemaErrorResponseSerializer,
            404: OpenApiResponse(description="Not found."),
        },
        tags=["Schema"],
    )
    def patch(self, request: Request, pk: str) -> Response:
        serializer = SettingsSchemaUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            schema = services.update_schema(pk, data=serializer.validated_data)
        except SchemaValidationError as exc:
            return Response({"errors": exc.errors}, status=status.HTTP_400_BAD_REQUEST)
        return Response(SettingsSchemaSerializer(schema).data)


class SettingsSchemaActivateView(APIView):
    """POST /api/v1/schemas/<pk>/activate/"""

    @extend_schema(
        summary="Activate Settings Schema",
        description="Makes this schema the active one; the previously active schema is deactivated.",
        request=None,
        responses={200: SettingsSchemaSerializer, 404: OpenApiResponse(description="Not found.")},
        tags=["Schema"],
    )
    def post(self, request: Request, pk: str) -> Response:
        schema = services.activate_schema(pk)
        return Response(SettingsSchemaSerializer(schema).data)


class ActiveSchemaView(APIView):
    """GET /api/v1/schema/active/ – return the currently active SettingsSchema."""

    @extend_schema(
        summary="Get Active Schema",
        description=(
            "Returns the SettingsSchema that settings are currently validated "
            "against.  Returns 404 if no schema has been activated."
        ),
        responses={
            200: SettingsSchemaSerializer,
            404: OpenApiResponse(description="No active schema found."),
        },
        tags=["Schema"],
    )
    def get(self, request: Request) -> Response:
        schema = services.get_active_schema()
        return Response(SettingsSchemaSerializer(schema).data)

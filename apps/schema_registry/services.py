"""
apps.schema_registry.services
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Business logic for SettingsSchema management.
"""
from __future__ import annotations

import structlog
from django.db import IntegrityError, transaction

from common.exceptions import ConflictError, NotFoundError
from .defaults import DEFAULT_SCHEMA_VERSION, omnibus_settings_schema
from .models import SettingsSchema
from .validators import SchemaValidator

logger = structlog.get_logger(__name__)


def list_schemas(*, is_active: bool | None = None) -> list[SettingsSchema]:
    """Return all schemas, newest first, optionally filtered by active status."""
    qs = SettingsSchema.objects.all()
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return list(qs)


def get_schema(schema_id: str | int) -> SettingsSchema:
    """Fetch a single SettingsSchema by id, raise NotFoundError if missing."""
    if not str(schema_id).isdigit():
        raise NotFoundError(f"SettingsSchema '{schema_id}' not found.")
    try:
        return SettingsSchema.objects.get(pk=int(schema_id))
    except SettingsSchema.DoesNotExist:
        raise NotFoundError(f"SettingsSchema '{schema_id}' not found.")


def get_active_schema() -> SettingsSchema:
    """
    Return the currently active :class:`SettingsSchema`.

    Raises:
        NotFoundError: When no schema has been activated.
    """
    schema = SettingsSchema.objects.filter(is_active=True).first()
    if schema is None:
        raise NotFoundError("No active SettingsSchema found.")
    return schema


def create_schema(
    *,
    schema_version: str,
    schema_definition: dict,
    description: str = "",
    is_active: bool = False,
) -> SettingsSchema:
    """
    Validate and store a new schema version.

    Raises:
        SchemaValidationError: If *schema_definition* breaks the contract.
        ConflictError: If *schema_version* already exists.
    """
    SchemaValidator.validate(schema_definition)

    if SettingsSchema.objects.filter(schema_version=schema_version).exists():
        raise ConflictError(f"SettingsSchema v{schema_version} already exists.")

    try:
        schema = SettingsSchema.objects.create(
            schema_version=schema_version,
            schema_definition=schema_definition,
            description=description,
            is_active=is_active,
        )
    except IntegrityError as exc:
        raise ConflictError(f"SettingsSchema v{schema_version} already exists.") from exc

    logger.info(
        "schema_created",
        schema_id=schema.id,
        schema_version=schema_version,
        is_active=is_active,
    )
    return schema


def update_schema(schema_id: str | int, *, data: dict) -> SettingsSchema:
    """Partial-update a SettingsSchema (description, is_active, schema_definition)."""
    schema = get_schema(schema_id)
    if "schema_definition" in data:
        SchemaValidator.validate(data["schema_definition"])

    updatable_fields = {"description", "schema_definition", "is_active"}
    for field, value in data.items():
        if field in updatable_fields:
            setattr(schema, field, value)
    schema.save()
    logger.info("schema_updated", schema_id=schema.id, fields=sorted(set(data) & updatable_fields))
    return schema


def activate_schema(schema_id: str | int) -> SettingsSchema:
    """Make *schema_id* the active schema, deactivating whichever was active."""
    schema = get_schema(schema_id)
    schema.is_active = True
    schema.save()
    logger.info("schema_activated", schema_id=schema.id, schema_version=schema.schema_version)
    return schema


def install_default_schema(
    schema_version: str = DEFAULT_SCHEMA_VERSION,
    *,
    activate: bool = True,
) -> SettingsSchema:
    """
    Store the built-in Omnibus schema under *schema_version*.

    Idempotent: when that version already exists it is returned as is
    (and activated if *activate* is set).
    """
    with transaction.atomic():
        schema = SettingsSchema.objects.filter(schema_version=schema_version).first()
        if schema is None:
            return create_schema(
                schema_version=schema_version,
                schema_definition=omnibus_settings_schema(),
                description="Built-in Omnibus settings schema.",
                is_active=activate,
            )
        if activate and not schema.is_active:
            return activate_schema(schema.id)
    return schema

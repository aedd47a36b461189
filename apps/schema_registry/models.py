"""
apps.schema_registry.models
~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Models for the Schema Registry application.

Models
------
SettingsSchema
    Versioned description of the Omnibus settings the engine manages, with a
    partial unique constraint ensuring only one row can be active at any time.
"""
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.db import models, transaction
from django.db.models import Q


#: Validator that enforces semantic versioning format ``MAJOR.MINOR.PATCH``.
_semver_validator = RegexValidator(
    regex=r"^\d+\.\d+\.\d+$",
    message=(
        'schema_version must follow semantic versioning: "MAJOR.MINOR.PATCH" '
        "(e.g. 1.0.0, 2.3.14).  Only digits and dots are allowed."
    ),
    code="invalid_semver",
)


class SettingsSchema(models.Model):
    """
    System-wide description of the known ``gitlab.rb`` settings.

    At most **one** ``SettingsSchema`` row may be active at a given time.
    This is enforced at two levels:

    1. Database level – a partial :class:`~django.db.models.UniqueConstraint`
       on rows where ``is_active=True`` (named ``"unique_active_settings_schema"``).
    2. Application level – :meth:`save` runs inside a ``SELECT FOR UPDATE``
       transaction that deactivates all other active rows before persisting
       this one.

    Fields
    ------
    schema_version
        Semantic version string (``MAJOR.MINOR.PATCH``), unique across rows.
    schema_definition
        ``{"namespaces": {...}}`` blob.  Validated in :meth:`clean` via
        :class:`~apps.schema_registry.validators.SchemaValidator`.
    description
        Free-form notes, e.g. the Omnibus release the schema tracks.
    is_active
        Whether settings are currently validated against this schema.
    created_at / updated_at
        Automatic timestamps.

    Example usage::

        schema = SettingsSchema(
            schema_version="1.0.0",
            schema_definition=omnibus_settings_schema(),
            is_active=True,
        )
        schema.full_clean()  # runs validators + clean()
        schema.save()
    """

    schema_version = models.CharField(
        max_length=20,
        unique=True,
        validators=[_semver_validator],
        help_text=(
            "Semantic version of this schema (MAJOR.MINOR.PATCH). "
            "Must match the regex ^\\d+\\.\\d+\\.\\d+$."
        ),
    )
    schema_definition = models.JSONField(
        help_text=(
            "Namespaces contract describing every managed gitlab.rb key. "
            "Validated by SchemaValidator before every save."
        ),
    )
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(
        default=False,
        help_text=(
            "Marks this schema as the one settings are validated against. "
            "Only one row may be active at a time."
        ),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "Settings Schema"
        verbose_name_plural = "Settings Schemas"
        constraints = [
            models.UniqueConstraint(
                fields=["is_active"],
                condition=Q(is_active=True),
                name="unique_active_settings_schema",
                violation_error_message=(
                    "Another SettingsSchema is already active. "
                    "Deactivate it before activating a new one."
                ),
            ),
        ]

    def __str__(self) -> str:
        status = "active" if self.is_active else "inactive"
        return f"SettingsSchema v{self.schema_version} [{status}]"

    def clean(self) -> None:
        """
        Validate ``schema_definition`` against the namespaces contract.

        Raises:
            django.core.exceptions.ValidationError: One message per problem
                found by :class:`~apps.schema_registry.validators.SchemaValidator`.
        """
        from apps.schema_registry.validators import (  # noqa: PLC0415
            SchemaValidationError,
            SchemaValidator,
        )

        try:
            SchemaValidator.validate(self.schema_definition)
        except SchemaValidationError as exc:
            raise ValidationError(
                {
                    "schema_definition": [
                        f"{err['field']}: {err['message']}" for err in exc.errors
                    ]
                }
            ) from exc

    def save(self, *args, **kwargs) -> None:
        """
        Persist the row, keeping the "only one active row" invariant.

        Other active rows are locked and deactivated **before** this one is
        written so ``unique_active_settings_schema`` is never violated.
        """
        with transaction.atomic():
            if self.is_active:
                (
                    SettingsSchema.objects
                    .select_for_update()
                    .filter(is_active=True)
                    .exclude(pk=self.pk)
                    .update(is_active=False)
                )
            super().save(*args, **kwargs)

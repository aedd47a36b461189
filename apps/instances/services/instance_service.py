"""
apps.instances.services.instance_service
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
All business logic for the Instances application.

Views must call only these functions.  No business logic lives in views or
serializers.

Responsibilities
----------------
- Creating and looking up :class:`~apps.instances.models.OmnibusInstance`.
- Applying settings (JSON or an uploaded ``gitlab.rb``) after validation by
  :class:`~apps.config_core.services.override_validator.OverrideValidationService`,
  and recording each accepted change as a
  :class:`~apps.config_core.models.SettingsRevision`.
- Resolving effective settings via
  :class:`~apps.config_core.services.config_resolver.ConfigResolver` and
  rendering them with
  :class:`~apps.config_core.services.gitlab_rb_renderer.GitlabRbRenderer`.
"""
from __future__ import annotations

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils.text import slugify

from apps.config_core.models import SettingsRevision
from apps.config_core.services.config_resolver import ConfigResolver
from apps.config_core.services.gitlab_rb_parser import GitlabRbParseError, GitlabRbParser
from apps.config_core.services.gitlab_rb_preview import check_source_size, parse_errors_result
from apps.config_core.services.gitlab_rb_renderer import GitlabRbRenderer
from apps.config_core.services.override_validator import (
    OverrideValidationRequest,
    OverrideValidationResult,
    OverrideValidationService,
)
from apps.config_core.services.settings_diff import diff_settings
from apps.instances.models import OmnibusInstance
from apps.schema_registry.services import get_active_schema
from common.exceptions import ConflictError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


def _allow_unknown() -> bool:
    return not settings.OMNIBUS_STRICT_IMPORT


# ---------------------------------------------------------------------------
# Instance CRUD
# ---------------------------------------------------------------------------

def create_instance(*, name: str) -> OmnibusInstance:
    """
    Create a new :class:`OmnibusInstance` with no settings.

    Raises:
        ValidationError: If the name has no letter or digit to build a slug from.
        ConflictError: If the name (or the slug derived from it) is taken.
    """
    if not slugify(name):
        raise ValidationError(
            f"Instance name '{name}' must contain at least one letter or digit."
        )
    try:
        with transaction.atomic():
            instance = OmnibusInstance.objects.create(name=name, settings_overrides={})
    except IntegrityError as exc:
        raise ConflictError(f"An instance named '{name}' already exists.") from exc

    logger.info("instance_created", instance_id=instance.id, name=instance.name)
    return instance


def get_instance(instance_id: str | int) -> OmnibusInstance:
    """
    Fetch an :class:`OmnibusInstance` by integer ID or slug.

    An all-digit value is tried as an ID first, then as a slug.

    Raises:
        NotFoundError: If no instance matches.
    """
    instance = None
    if str(instance_id).isdigit():
        instance = OmnibusInstance.objects.filter(id=int(instance_id)).first()
    if instance is None:
        instance = OmnibusInstance.objects.filter(slug=str(instance_id)).first()
    if instance is None:
        raise NotFoundError(f"Instance '{instance_id}' not found.")
    return instance


def list_instances() -> list[OmnibusInstance]:
    return list(OmnibusInstance.objects.all())


# ---------------------------------------------------------------------------
# Applying settings
# ---------------------------------------------------------------------------

def apply_settings_overrides(
    *,
    instance_id: str | int,
    overrides: dict,
    acting_role: str,
    environment: str,
    source: str = SettingsRevision.Source.API,
    source_text: str = "",
) -> tuple[OverrideValidationResult, dict | None]:
    """
    Validate *overrides* against the active schema and, if valid, store them
    as the instance's settings and append a revision.

    Steps:

    1. Drop namespaces with no fields, then fetch the active ``SettingsSchema`` and the instance (404 if absent).
    2. Run :class:`OverrideValidationService` (unknown keys are accepted
       when ``OMNIBUS_STRICT_IMPORT`` is off; ``must_exist`` paths are
       checked when ``OMNIBUS_CHECK_PATHS`` is on).
    3. On failure, return the result so the view can answer 400.
    4. On success, lock the instance row, replace its settings, write the
       next :class:`SettingsRevision` and return the effective settings.

    Returns:
        ``(result, effective_settings)``; *effective_settings* is ``None``
        when validation failed.
    """
    # An empty namespace renders to nothing, so it is not stored either.
    overrides = {ns: fields for ns, fields in overrides.items() if fields != {}}
    active_schema = get_active_schema()
    instance = get_instance(instance_id)
    allow_unknown = _allow_unknown()

    result = OverrideValidationService.validate(
        OverrideValidationRequest(
            schema=active_schema.schema_definition,
            overrides=overrides,
            acting_role=acting_role,
            environment=environment,
            allow_unknown=allow_unknown,
            check_paths=settings.OMNIBUS_CHECK_PATHS,
        )
    )

    if not result.valid:
        logger.warning(
            "settings_validation_failed",
            instance_id=instance.id,
            source=str(source),
            error_count=len(result.errors),
        )
        return result, None

    with transaction.atomic():
        locked = OmnibusInstance.objects.select_for_update().get(pk=instance.pk)
        locked.settings_overrides = overrides
        locked.save(update_fields=["settings_overrides", "updated_at"])

        last_number = locked.revisions.aggregate(last=Max("number"))["last"] or 0
        revision = SettingsRevision.objects.create(
            instance=locked,
            number=last_number + 1,
            settings=overrides,
            source=source,
            source_text=source_text,
            acting_role=acting_role,
            environment=environment,
        )

    logger.info(
        "settings_applied",
        instance_id=instance.id,
        revision=revision.number,
        source=str(source),
        environment=environment,
        acting_role=acting_role,
    )

    effective_settings = ConfigResolver.resolve(
        active_schema.schema_definition,
        overrides,
        include_unmanaged=allow_unknown,
    )
    return result, effective_settings


def import_gitlab_rb(
    *,
    instance_id: str | int,
    text: str,
    acting_role: str,
    environment: str,
) -> tuple[OverrideValidationResult, dict | None]:
    """
    Parse an uploaded ``gitlab.rb`` and apply it as the instance's settings.

    Parse errors are reported as ``parse_error`` entries of a failed result
    (with ``line`` and ``column``) and nothing is stored.

    Raises:
        PayloadTooLargeError: If *text* exceeds ``OMNIBUS_MAX_SOURCE_BYTES``.
        NotFoundError: If the instance or an active schema is missing.
    """
    instance = get_instance(instance_id)
    check_source_size(text)

    try:
        parsed = GitlabRbParser.parse(text)
    except GitlabRbParseError as exc:
        logger.warning(
            "gitlab_rb_parse_failed",
            instance_id=instance.id,
            error_count=len(exc.errors),
        )
        return parse_errors_result(exc), None

    if parsed.duplicates:
        logger.info(
            "gitlab_rb_duplicate_keys",
            instance_id=instance.id,
            fields=[dup["field"] for dup in parsed.duplicates],
        )

    return apply_settings_overrides(
        instance_id=instance.id,
        overrides=parsed.settings,
        acting_role=acting_role,
        environment=environment,
        source=SettingsRevision.Source.GITLAB_RB,
        source_text=text,
    )


# ---------------------------------------------------------------------------
# Effective settings & rendering
# ---------------------------------------------------------------------------

def get_effective_settings(*, instance_id: str | int) -> dict:
    """
    Return schema defaults merged with the instance's stored settings.

    Raises:
        NotFoundError: If no active schema or no instance is found.
    """
    active_schema = get_active_schema()
    instance = get_instance(instance_id)

    return ConfigResolver.resolve(
        active_schema.schema_definition,
        instance.settings_overrides,
        include_unmanaged=_allow_unknown(),
    )


def render_instance_gitlab_rb(*, instance_id: str | int, effective: bool = False) -> str:
    """
    Render the instance's settings as ``gitlab.rb`` text.

    With *effective* the schema defaults are included too, leaving out
    anything that resolves to ``nil``.
    """
    instance = get_instance(instance_id)
    header = f"gitlab.rb for {instance.name}; generated by omnibus-config-engine."

    if effective:
        return GitlabRbRenderer.render(
            get_effective_settings(instance_id=instance.id),
            omit_nil=True,
            header=header,
        )
    return GitlabRbRenderer.render(instance.settings_overrides, header=header)


# ---------------------------------------------------------------------------
# Revisions
# ---------------------------------------------------------------------------

def list_revisions(*, instance_id: str | int) -> list[SettingsRevision]:
    instance = get_instance(instance_id)
    return list(instance.revisions.order_by("number"))


def get_revision(instance: OmnibusInstance, number: int) -> SettingsRevision:
    revision = instance.revisions.filter(number=number).first()
    if revision is None:
        raise NotFoundError(f"Revision {number} of instance '{instance.slug}' not found.")
    return revision


def diff_revisions(
    *,
    instance_id: str | int,
    from_number: int,
    to_number: int,
) -> dict:
    """
    Compare two revisions of an instance field by field.

    Returns:
        ``{"from": n, "to": m, "changes": [...]}`` where ``changes`` comes
        from :func:`~apps.config_core.services.settings_diff.diff_settings`.
    """
    instance = get_instance(instance_id)
    old = get_revision(instance, from_number)
    new = get_revision(instance, to_number)
    return {
        "from": old.number,
        "to": new.number,
        "changes": diff_settings(old.settings, new.settings),
    }

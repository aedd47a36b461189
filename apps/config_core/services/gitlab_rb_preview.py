"""
apps.config_core.services.gitlab_rb_preview
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Dry-run of a ``gitlab.rb`` upload: parse, then validate against the active
``SettingsSchema`` without storing anything.

Unlike the sibling modules this one reads Django settings and the database.
"""
from __future__ import annotations

import structlog
from django.conf import settings

from apps.config_core.services.config_resolver import ConfigResolver
from apps.config_core.services.gitlab_rb_parser import GitlabRbParseError, GitlabRbParser
from apps.config_core.services.override_validator import (
    OverrideValidationRequest,
    OverrideValidationResult,
    OverrideValidationService,
)
from apps.schema_registry.services import get_active_schema
from common.exceptions import PayloadTooLargeError

logger = structlog.get_logger(__name__)


def check_source_size(text: str) -> None:
    """Raise :class:`PayloadTooLargeError` for oversized ``gitlab.rb`` text."""
    limit = settings.OMNIBUS_MAX_SOURCE_BYTES
    size = len(text.encode("utf-8"))
    if size > limit:
        raise PayloadTooLargeError(
            f"gitlab.rb source is {size} bytes; the limit is {limit} bytes."
        )


def parse_errors_result(exc: GitlabRbParseError) -> OverrideValidationResult:
    """Express parser errors in the same shape as validation errors."""
    return OverrideValidationResult(
        valid=False,
        errors=[
            {
                "field": "source",
                "code": "parse_error",
                "message": err["message"],
                "line": err["line"],
                "column": err["column"],
            }
            for err in exc.errors
        ],
    )


def preview_gitlab_rb(*, text: str, acting_role: str, environment: str) -> dict:
    """
    Parse and validate *text* against the active schema.

    Returns:
        ``{"settings", "effective_settings", "duplicates", "valid", "errors"}``.
        ``effective_settings`` is ``None`` when validation fails.

    Raises:
        GitlabRbParseError: On syntax errors.
        PayloadTooLargeError: If *text* exceeds ``OMNIBUS_MAX_SOURCE_BYTES``.
        NotFoundError: If no schema is active.
    """
    check_source_size(text)
    active_schema = get_active_schema()
    parsed = GitlabRbParser.parse(text)
    allow_unknown = not settings.OMNIBUS_STRICT_IMPORT

    result = OverrideValidationService.validate(
        OverrideValidationRequest(
            schema=active_schema.schema_definition,
            overrides=parsed.settings,
            acting_role=acting_role,
            environment=environment,
            allow_unknown=allow_unknown,
            check_paths=settings.OMNIBUS_CHECK_PATHS,
        )
    )
    effective = None
    if result.valid:
        effective = ConfigResolver.resolve(
            active_schema.schema_definition,
            parsed.settings,
            include_unmanaged=allow_unknown,
        )

    logger.info(
        "gitlab_rb_previewed",
        schema_version=active_schema.schema_version,
        assignments=len(parsed.assignments),
        duplicates=len(parsed.duplicates),
        valid=result.valid,
    )
    return {
        "settings": parsed.settings,
        "effective_settings": effective,
        "duplicates": parsed.duplicates,
        "valid": result.valid,
        "errors": result.errors,
    }

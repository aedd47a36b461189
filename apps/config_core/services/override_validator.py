"""
apps.config_core.services.override_validator
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Validates a proposed Omnibus settings tree (parsed from ``gitlab.rb`` or
supplied as JSON) against a ``SettingsSchema`` definition.

This module is **pure Python**: it has zero Django view, serializer, or ORM
imports and can be exercised in plain ``pytest`` tests without any Django
setup.

Public API
----------
OverrideValidationRequest   – Input dataclass
OverrideValidationResult    – Output dataclass
OverrideValidationService   – Single-entry-point validator
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

from apps.config_core.services.config_resolver import ConfigResolver
from apps.config_core.services.gitlab_rb_parser import TOP_LEVEL
from apps.schema_registry.validators import is_identifier, type_error


# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

#: A single validation error dict with "field", "code", and "message" keys.
ErrorDict = dict[str, str]


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class OverrideValidationRequest:
    """
    Encapsulates all inputs required to validate a settings tree.

    Attributes:
        schema: The ``schema_definition`` dict from a ``SettingsSchema``;
            must already be structurally valid.
        overrides: The proposed settings, shaped as
            ``{namespace: {field: value}}``.
        acting_role: Role string of the actor proposing the settings
            (e.g. ``"admin"``, ``"operator"``).
        environment: Deployment environment the settings are for
            (e.g. ``"production"``, ``"staging"``).
        allow_unknown: Accept namespaces and fields the schema does not
            describe instead of reporting them.
        check_paths: Verify on the local filesystem that paths whose field
            declares ``constraints.must_exist`` are present.
    """

    schema: dict
    overrides: dict
    acting_role: str
    environment: str
    allow_unknown: bool = False
    check_paths: bool = False


@dataclass
class OverrideValidationResult:
    """
    Result of a validation run performed by
    :class:`OverrideValidationService`.

    Attributes:
        valid: ``True`` iff no errors were found.
        errors: List of error dicts, each with keys:

            - ``"field"``   – dot-separated path, e.g. ``"registry.enable"``
            - ``"code"``    – machine-readable error code (see below)
            - ``"message"`` – human-readable description

            Error codes used by this service:

            ========================  ==============================================
            Code                      Meaning
            ========================  ==============================================
            ``unknown_namespace``     Namespace not in schema (unless allowed).
            ``unknown_field``         Field not in that namespace (unless allowed).
            ``missing_required``      Required field absent from a supplied namespace.
            ``immutable_field``       Field is ``editable: false``.
            ``role_forbidden``        ``acting_role`` not in ``editable_by_roles``.
            ``env_forbidden``         ``environment`` not in ``environment_restrictions``.
            ``type_mismatch``         Wrong type, malformed URL, relative path, bad env map.
            ``constraint_violation``  min/max/allowed_values/pattern/schemes violated.
            ``missing_file``          ``must_exist`` path absent (with ``check_paths``).
            ``incomplete_tls_pair``   Only one of certificate / key set for an nginx.
            ``https_required``        HTTPS redirect enabled for a non-https URL.
            ========================  ==============================================
    """

    valid: bool
    errors: list[ErrorDict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Cross-field helpers
# ---------------------------------------------------------------------------

_DEFAULT_URL_SCHEMES = ("http", "https")


def _is_nginx_namespace(name: str) -> bool:
    return name == "nginx" or name.endswith("_nginx")


def _external_url_field(nginx_namespace: str) -> str:
    """``nginx`` → ``external_url``; ``pages_nginx`` → ``pages_external_url``."""
    if nginx_namespace == "nginx":
        return "external_url"
    return nginx_namespace[: -len("_nginx")] + "_external_url"


def _url_scheme(url: str) -> str | None:
    """Lower-cased scheme of *url*, or ``None`` if it cannot be split."""
    try:
        return urlsplit(url).scheme.lower()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class OverrideValidationService:
    """
    Validates that a settings tree conforms to a ``SettingsSchema``
    definition.

    All rules are evaluated and **all errors are accumulated** before
    returning; the validator never short-circuits on the first failure.

    Usage::

        request = OverrideValidationRequest(
            schema=active_schema.schema_definition,
            overrides=parse_result.settings,
            acting_role="admin",
            environment="production",
        )
        result = OverrideValidationService.validate(request)
        if not result.valid:
            for err in result.errors:
                print(err["field"], err["code"], err["message"])
    """

    @staticmethod
    def validate(request: OverrideValidationRequest) -> OverrideValidationResult:
        """
        Validate *request.overrides* against *request.schema*.

        Enforces, in order:

        1. Unknown namespaces / fields (skipped with ``allow_unknown``).
        2. Required fields that are absent when their namespace is supplied.
        3. Non-editable (``editable: false``) fields.
        4. Role restrictions (``policy.editable_by_roles``).
        5. Environment restrictions (``policy.environment_restrictions``).
        6. Type consistency, including URL / path / env checks.
        7. Constraints (``min``, ``max``, ``allowed_values``, ``pattern``,
           ``schemes``, ``must_exist``).
        8. Cross-field rules on the effective settings: TLS certificate and
           key pairs, and HTTPS redirects.
        """
        errors: list[ErrorDict] = []
        schema_namespaces: dict = request.schema.get("namespaces", {})
        overrides: dict = request.overrides or {}

        for ns_name, ns_overrides in overrides.items():
            if not isinstance(ns_overrides, dict):
                errors.append({
                    "field": ns_name,
                    "code": "type_mismatch",
                    "message": f'Settings for namespace "{ns_name}" must be a mapping.',
                })
                continue

            if ns_name not in schema_namespaces:
                if not request.allow_unknown:
                    errors.append({
                        "field": ns_name,
                        "code": "unknown_namespace",
                        "message": f'Namespace "{ns_name}" does not exist in the schema.',
                    })
                else:
                    OverrideValidationService._validate_unmanaged_names(
                        ns_name, ns_overrides, {}, errors
                    )
                continue

            schema_fields: dict = schema_namespaces[ns_name]

            if not request.allow_unknown:
                for field_name in ns_overrides:
                    if field_name not in schema_fields:
                        errors.append({
                            "field": f"{ns_name}.{field_name}",
                            "code": "unknown_field",
                            "message": (
                                f'Field "{field_name}" does not exist in '
                                f'namespace "{ns_name}".'
                            ),
                        })
            else:
                OverrideValidationService._validate_unmanaged_names(
                    ns_name, ns_overrides, schema_fields, errors
                )

            for field_name, field_def in schema_fields.items():
                if field_def.get("required") is True and field_name not in ns_overrides:
                    errors.append({
                        "field": f"{ns_name}.{field_name}",
                        "code": "missing_required",
                        "message": (
                            f'Field "{ns_name}.{field_name}" is required whenever '
                            f'namespace "{ns_name}" is configured.'
                        ),
                    })

            for field_name, override_value in ns_overrides.items():
                if field_name not in schema_fields:
                    continue

                OverrideValidationService._validate_field_override(
                    field_path=f"{ns_name}.{field_name}",
                    field_def=schema_fields[field_name],
                    override_value=override_value,
                    request=request,
                    errors=errors,
                )

        effective = ConfigResolver.resolve(
            request.schema,
            {ns: v for ns, v in overrides.items() if isinstance(v, dict)},
            include_unmanaged=True,
        )
        OverrideValidationService._validate_consistency(effective, errors)

        return OverrideValidationResult(valid=len(errors) == 0, errors=errors)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_unmanaged_names(
        ns_name: str,
        ns_overrides: dict,
        schema_fields: dict,
        errors: list[ErrorDict],
    ) -> None:
        """
        Names the schema does not describe must still be writable as
        ``gitlab.rb``: the namespace itself, and directive names under
        ``top_level``.
        """
        if not schema_fields and not is_identifier(ns_name):
            errors.append({
                "field": ns_name,
                "code": "type_mismatch",
                "message": f'Namespace "{ns_name}" is not a valid gitlab.rb name.',
            })
            return

        if ns_name != TOP_LEVEL:
            return
        for field_name in ns_overrides:
            if field_name not in schema_fields and not is_identifier(field_name):
                errors.append({
                    "field": f"{ns_name}.{field_name}",
                    "code": "type_mismatch",
                    "message": f'Directive "{field_name}" is not a valid gitlab.rb name.',
                })

    @staticmethod
    def _validate_field_override(
        field_path: str,
        field_def: dict,
        override_value: object,
        request: OverrideValidationRequest,
        errors: list[ErrorDict],
    ) -> None:
        """Run rules 3-7 for a single field.  Appends to *errors*."""
        declared_type: str = field_def.get("type", "")

        if field_def.get("editable") is False:
            errors.append({
                "field": field_path,
                "code": "immutable_field",
                "message": f'"{field_path}" is immutable (editable=false) and cannot be set.',
            })

        policy: dict = field_def.get("policy", {})
        editable_by_roles: list | None = policy.get("editable_by_roles")
        if editable_by_roles is not None and request.acting_role not in editable_by_roles:
            errors.append({
                "field": field_path,
                "code": "role_forbidden",
                "message": (
                    f'Role "{request.acting_role}" is not authorised to set '
                    f'"{field_path}". Allowed roles: {editable_by_roles}.'
                ),
            })

        env_restrictions: list | None = policy.get("environment_restrictions")
        if env_restrictions is not None and request.environment not in env_restrictions:
            errors.append({
                "field": field_path,
                "code": "env_forbidden",
                "message": (
                    f'Environment "{request.environment}" is not permitted for '
                    f'"{field_path}". Allowed environments: {env_restrictions}.'
                ),
            })

        if override_value is None:
            if not field_def.get("nullable"):
                errors.append({
                    "field": field_path,
                    "code": "type_mismatch",
                    "message": f'"{field_path}" cannot be nil.',
                })
            return

        if declared_type:
            problem = type_error(declared_type, override_value)
            if problem is not None:
                errors.append({
                    "field": field_path,
                    "code": "type_mismatch",
                    "message": f'"{field_path}": {problem}.',
                })
                return

        constraints: dict = field_def.get("constraints", {})
        if constraints or declared_type == "url":
            OverrideValidationService._validate_constraints(
                field_path=field_path,
                declared_type=declared_type,
                override_value=override_value,
                constraints=constraints,
                check_paths=request.check_paths,
                errors=errors,
            )

    @staticmethod
    def _validate_constraints(
        field_path: str,
        declared_type: str,
        override_value: object,
        constraints: dict,
        check_paths: bool,
        errors: list[ErrorDict],
    ) -> None:
        """
        Enforce the ``constraints`` block of a field.

        ``min`` / ``max`` apply to the value for ``integer`` and ``float``
        fields and to the number of entries for ``list``, ``dict`` and
        ``env`` fields.  ``pattern`` applies to string-like fields as a full
        match.  ``schemes`` narrows the accepted URL schemes (``http`` and
        ``https`` when absent).
        """
        min_val = constraints.get("min")
        max_val = constraints.get("max")

        if min_val is not None or max_val is not None:
            if declared_type in ("integer", "float"):
                comparable: float | int | None = override_value  # type: ignore[assignment]
            elif declared_type in ("list", "dict", "env"):
                comparable = len(override_value)  # type: ignore[arg-type]
            else:
                comparable = None

            if comparable is not None:
                if min_val is not None and comparable < min_val:
                    errors.append({
                        "field": field_path,
                        "code": "constraint_violation",
                        "message": (
                            f'"{field_path}" value {comparable!r} is below '
                            f"the minimum of {min_val}."
                        ),
                    })
                if max_val is not None and comparable > max_val:
                    errors.append({
                        "field": field_path,
                        "code": "constraint_violation",
                        "message": (
                            f'"{field_path}" value {comparable!r} exceeds '
                            f"the maximum of {max_val}."
                        ),
                    })

        allowed_values = constraints.get("allowed_values")
        if allowed_values is not None and override_value not in allowed_values:
            errors.append({
                "field": field_path,
                "code": "constraint_violation",
                "message": (
                    f'"{field_path}" value {override_value!r} is not in the '
                    f"allowed values: {allowed_values}."
                ),
            })

        pattern = constraints.get("pattern")
        if pattern is not None and isinstance(override_value, str):
            if re.fullmatch(pattern, override_value) is None:
                errors.append({
                    "field": field_path,
                    "code": "constraint_violation",
                    "message": f'"{field_path}" does not match the pattern {pattern!r}.',
                })

        if declared_type == "url":
            schemes = constraints.get("schemes") or _DEFAULT_URL_SCHEMES
            scheme = _url_scheme(override_value)  # type: ignore[arg-type]
            if scheme is not None and scheme not in schemes:
                errors.append({
                    "field": field_path,
                    "code": "constraint_violation",
                    "message": (
                        f'"{field_path}" uses scheme "{scheme}"; allowed schemes: '
                        f"{list(schemes)}."
                    ),
                })

        if check_paths and constraints.get("must_exist") is True:
            if not Path(override_value).exists():  # type: ignore[arg-type]
                errors.append({
                    "field": field_path,
                    "code": "missing_file",
                    "message": f'"{field_path}" points to {override_value!r}, which does not exist.',
                })

    @staticmethod
    def _validate_consistency(effective: dict, errors: list[ErrorDict]) -> None:
        """
        Cross-field rules evaluated on the effective settings.

        - An nginx namespace (``nginx`` or ``<service>_nginx``) must set both
          ``ssl_certificate`` and ``ssl_certificate_key`` or neither.
        - ``redirect_http_to_https = true`` needs the matching external URL
          (``external_url`` / ``<service>_external_url``) to be ``https://``
          when that URL is set.
        """
        top_level = effective.get(TOP_LEVEL) or {}

        for ns_name in sorted(effective):
            fields = effective[ns_name]
            if not _is_nginx_namespace(ns_name) or not isinstance(fields, dict):
                continue

            cert = fields.get("ssl_certificate")
            key = fields.get("ssl_certificate_key")
            if bool(cert) != bool(key):
                missing = "ssl_certificate_key" if cert else "ssl_certificate"
                present = "ssl_certificate" if cert else "ssl_certificate_key"
                errors.append({
                    "field": f"{ns_name}.{missing}",
                    "code": "incomplete_tls_pair",
                    "message": (
                        f'"{ns_name}.{present}" is set but "{ns_name}.{missing}" '
                        "is not; both are required for TLS."
                    ),
                })

            if fields.get("redirect_http_to_https") is True:
                url_field = _external_url_field(ns_name)
                url = top_level.get(url_field)
                if isinstance(url, str) and _url_scheme(url) not in (None, "https"):
                    errors.append({
                        "field": f"{ns_name}.redirect_http_to_https",
                        "code": "https_required",
                        "message": (
                            f'"{ns_name}.redirect_http_to_https" is enabled but '
                            f'"{TOP_LEVEL}.{url_field}" ({url!r}) is not an https URL.'
                        ),
                    })

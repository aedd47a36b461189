"""
apps.schema_registry.validators
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Pure-Python schema validation engine for SettingsSchema.

No Django view, serializer, or model imports are allowed here so that this
module can be used as a standalone utility and tested without Django setup.

Public API:
    SchemaValidationError   – raised when validation finds one or more errors
    SchemaValidator.validate(schema_definition) – validates the full schema dict
    type_error(declared_type, value) – shared value/type check
    is_identifier(name) – whether a name can appear in gitlab.rb
"""
from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from apps.config_core.services.gitlab_rb_parser import TOP_LEVEL


# ---------------------------------------------------------------------------
# Exception
# ---------------------------------------------------------------------------

class SchemaValidationError(Exception):
    """
    Raised by :meth:`SchemaValidator.validate` when the supplied
    ``schema_definition`` dict contains one or more structural or semantic
    errors.

    All errors are collected before this exception is raised so callers
    receive a complete picture of every problem at once.

    Attributes:
        errors (list[dict]): Non-empty list of error dicts, each with the
            shape ``{"field": "<dot-separated path>", "message": "<reason>"}``.
    """

    def __init__(self, errors: list[dict]) -> None:
        self.errors: list[dict] = errors
        super().__init__(str(errors))


# ---------------------------------------------------------------------------
# Field types
# ---------------------------------------------------------------------------

#: Plain ``isinstance`` checks.  ``integer``, ``float``, ``url``, ``path`` and
#: ``env`` need more than that and are handled in :func:`type_error`.
_TYPE_CHECKERS: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "boolean": bool,
    "list": list,
    "dict": dict,
}

#: Complete set of valid field type names.
VALID_TYPES: frozenset[str] = frozenset(_TYPE_CHECKERS) | {
    "integer",
    "float",
    "url",
    "path",
    "env",
}

#: Allowed keys inside a ``constraints`` block.
_VALID_CONSTRAINT_KEYS: frozenset[str] = frozenset(
    {"min", "max", "allowed_values", "pattern", "schemes", "must_exist"}
)

#: Allowed keys inside a ``policy`` block.
_VALID_POLICY_KEYS: frozenset[str] = frozenset({"editable_by_roles", "environment_restrictions"})

#: Flags that must be booleans when present.
_BOOLEAN_FLAGS: tuple[str, ...] = ("nullable", "required", "editable")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_identifier(name: object) -> bool:
    """Return True if *name* can be written as a gitlab.rb receiver or directive."""
    return isinstance(name, str) and _IDENTIFIER_RE.fullmatch(name) is not None


def type_error(declared_type: str, value: object) -> str | None:
    """
    Return a short description of why *value* is not a valid
    *declared_type*, or ``None`` when it is.

    Used for schema defaults here and for submitted settings in
    :mod:`apps.config_core.services.override_validator`.

    Special cases:
    - ``"integer"`` rejects :class:`bool` (bool is a subclass of int).
    - ``"float"`` rejects :class:`bool` but accepts :class:`int`.
    - ``"url"`` needs a scheme and a host.
    - ``"path"`` needs an absolute POSIX path.
    - ``"env"`` needs a mapping of strings to strings.
    """
    got = type(value).__name__

    if declared_type == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return None
        return f"expected an integer; got {got}"
    if declared_type == "float":
        if isinstance(value, (float, int)) and not isinstance(value, bool):
            return None
        return f"expected a number; got {got}"
    if declared_type == "url":
        if not isinstance(value, str):
            return f"expected a URL string; got {got}"
        try:
            parts = urlsplit(value)
        except ValueError as exc:
            return f"{value!r} is not a valid URL: {exc}"
        if not parts.scheme or not parts.netloc:
            return f"{value!r} is not an absolute URL with a scheme and host"
        return None
    if declared_type == "path":
        if not isinstance(value, str):
            return f"expected a path string; got {got}"
        if not PurePosixPath(value).is_absolute():
            return f"{value!r} is not an absolute path"
        return None
    if declared_type == "env":
        if not isinstance(value, dict):
            return f"expected a mapping of environment variables; got {got}"
        bad = sorted(
            str(k) for k, v in value.items()
            if not isinstance(k, str) or not isinstance(v, str)
        )
        if bad:
            return f"environment variable names and values must be strings: {bad}"
        return None

    checker = _TYPE_CHECKERS.get(declared_type)
    if checker is None:
        return f"unknown type {declared_type!r}"
    if isinstance(value, checker):
        return None
    return f"expected {declared_type}; got {got}"


def _is_numeric(value: object) -> bool:
    """Return True if *value* is an :class:`int` (but not :class:`bool`) or a
    :class:`float`."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class SchemaValidator:
    """
    Stateless validator for the ``schema_definition`` JSON contract used by
    :class:`~apps.schema_registry.models.SettingsSchema`.

    Contract::

        {
            "namespaces": {
                "<namespace>": {
                    "<field>": {
                        "type": "url",
                        "default": None,
                        "nullable": True,
                        "required": False,
                        "editable": True,
                        "description": "...",
                        "constraints": {"schemes": ["https"]},
                        "policy": {"editable_by_roles": ["admin"]},
                    }
                }
            }
        }

    Namespace names (and field names under ``top_level``) must be valid
    ``gitlab.rb`` identifiers so that every schema key can be rendered.
    """

    @staticmethod
    def validate(schema_definition: dict) -> None:
        """
        Validate *schema_definition*, accumulating every error.

        Raises:
            SchemaValidationError: If one or more rules are violated.
                ``exc.errors`` contains the complete list.

        Returns:
            None on success.
        """
        errors: list[dict] = []

        if not isinstance(schema_definition, dict) or "namespaces" not in schema_definition:
            errors.append({
                "field": "namespaces",
                "message": 'Top-level key "namespaces" is required.',
            })
            raise SchemaValidationError(errors)

        namespaces = schema_definition["namespaces"]

        if not isinstance(namespaces, dict) or len(namespaces) == 0:
            errors.append({
                "field": "namespaces",
                "message": '"namespaces" must be a non-empty dict.',
            })
            raise SchemaValidationError(errors)

        for ns_name, ns_value in namespaces.items():
            ns_path = f"namespaces.{ns_name}"

            if not is_identifier(ns_name):
                errors.append({
                    "field": ns_path,
                    "message": f'Namespace "{ns_name}" is not a valid gitlab.rb identifier.',
                })

            if not isinstance(ns_value, dict):
                errors.append({
                    "field": ns_path,
                    "message": f'Namespace "{ns_name}" must be a dict of field definitions.',
                })
                continue

            for field_name, field_def in ns_value.items():
                field_path = f"{ns_path}.{field_name}"

                if ns_name == TOP_LEVEL and not is_identifier(field_name):
                    errors.append({
                        "field": field_path,
                        "message": (
                            f'Top-level directive "{field_name}" is not a valid '
                            "gitlab.rb identifier."
                        ),
                    })

                if not isinstance(field_def, dict):
                    errors.append({
                        "field": field_path,
                        "message": "Field definition must be a dict.",
                    })
                    continue

                SchemaValidator._validate_field(
                    field_path=field_path,
                    field_def=field_def,
                    errors=errors,
                )

        if errors:
            raise SchemaValidationError(errors)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_field(
        field_path: str,
        field_def: dict,
        errors: list[dict],
    ) -> None:
        """Validate a single field definition, appending to *errors*."""
        declared_type = field_def.get("type")
        type_valid = False

        if declared_type is None:
            errors.append({"field": field_path, "message": '"type" is required.'})
        elif declared_type not in VALID_TYPES:
            errors.append({
                "field": field_path,
                "message": (
                    f'"type" must be one of {sorted(VALID_TYPES)}; '
                    f'got "{declared_type}".'
                ),
            })
        else:
            type_valid = True

        for flag in _BOOLEAN_FLAGS:
            if flag in field_def and not isinstance(field_def[flag], bool):
                errors.append({
                    "field": f"{field_path}.{flag}",
                    "message": f'"{flag}" must be a boolean.',
                })

        if "description" in field_def and not isinstance(field_def["description"], str):
            errors.append({
                "field": f"{field_path}.description",
                "message": '"description" must be a string.',
            })

        if "default" not in field_def:
            errors.append({"field": field_path, "message": '"default" is required.'})
        elif field_def["default"] is None:
            if field_def.get("nullable") is not True:
                errors.append({
                    "field": field_path,
                    "message": '"default" may only be null when "nullable" is true.',
                })
        elif type_valid:
            problem = type_error(declared_type, field_def["default"])  # type: ignore[arg-type]
            if problem is not None:
                errors.append({
                    "field": field_path,
                    "message": f'"default" does not match type "{declared_type}": {problem}.',
                })

        if "constraints" in field_def:
            SchemaValidator._validate_constraints(
                field_path=field_path,
                declared_type=declared_type if type_valid else None,
                constraints=field_def["constraints"],
                errors=errors,
            )

        if "policy" in field_def:
            SchemaValidator._validate_policy(
                field_path=field_path,
                policy=field_def["policy"],
                errors=errors,
            )

    @staticmethod
    def _validate_constraints(
        field_path: str,
        declared_type: str | None,
        constraints: object,
        errors: list[dict],
    ) -> None:
        """
        Validate the optional ``constraints`` block of a field definition.

        Rules:
        - Must be a dict with keys from ``_VALID_CONSTRAINT_KEYS``.
        - ``min`` and ``max`` must be numeric with ``min <= max``.
        - ``allowed_values`` must be a non-empty list.
        - ``pattern`` must be a compilable regular expression.
        - ``schemes`` must be a non-empty list of strings; ``url`` fields only.
        - ``must_exist`` must be a boolean; ``path`` fields only.
        """
        c_path = f"{field_path}.constraints"

        if not isinstance(constraints, dict):
            errors.append({"field": c_path, "message": '"constraints" must be a dict.'})
            return

        invalid_keys = set(constraints) - _VALID_CONSTRAINT_KEYS
        if invalid_keys:
            errors.append({
                "field": c_path,
                "message": (
                    f"Unknown constraint key(s): {sorted(invalid_keys)}. "
                    f"Allowed: {sorted(_VALID_CONSTRAINT_KEYS)}."
                ),
            })

        min_val = constraints.get("min")
        max_val = constraints.get("max")

        if "min" in constraints and not _is_numeric(min_val):
            errors.append({
                "field": f"{c_path}.min",
                "message": '"min" must be a numeric value (int or float, not bool).',
            })
            min_val = None

        if "max" in constraints and not _is_numeric(max_val):
            errors.append({
                "field": f"{c_path}.max",
                "message": '"max" must be a numeric value (int or float, not bool).',
            })
            max_val = None

        if min_val is not None and max_val is not None and min_val > max_val:
            errors.append({
                "field": c_path,
                "message": f'"min" ({min_val}) must be <= "max" ({max_val}).',
            })

        if "allowed_values" in constraints:
            av = constraints["allowed_values"]
            if not isinstance(av, list) or len(av) == 0:
                errors.append({
                    "field": f"{c_path}.allowed_values",
                    "message": '"allowed_values" must be a non-empty list.',
                })

        if "pattern" in constraints:
            pattern = constraints["pattern"]
            try:
                if not isinstance(pattern, str):
                    raise TypeError
                re.compile(pattern)
            except (re.error, TypeError):
                errors.append({
                    "field": f"{c_path}.pattern",
                    "message": '"pattern" must be a valid regular expression string.',
                })

        if "schemes" in constraints:
            schemes = constraints["schemes"]
            if (
                not isinstance(schemes, list)
                or not schemes
                or not all(isinstance(s, str) and s for s in schemes)
            ):
                errors.append({
                    "field": f"{c_path}.schemes",
                    "message": '"schemes" must be a non-empty list of strings.',
                })
            elif declared_type is not None and declared_type != "url":
                errors.append({
                    "field": f"{c_path}.schemes",
                    "message": '"schemes" only applies to fields of type "url".',
                })

        if "must_exist" in constraints:
            if not isinstance(constraints["must_exist"], bool):
                errors.append({
                    "field": f"{c_path}.must_exist",
                    "message": '"must_exist" must be a boolean.',
                })
            elif declared_type is not None and declared_type != "path":
                errors.append({
                    "field": f"{c_path}.must_exist",
                    "message": '"must_exist" only applies to fields of type "path".',
                })

    @staticmethod
    def _validate_policy(
        field_path: str,
        policy: object,
        errors: list[dict],
    ) -> None:
        """
        Validate the optional ``policy`` block of a field definition.

        Both keys, if present, must be non-empty lists of strings.
        """
        p_path = f"{field_path}.policy"

        if not isinstance(policy, dict):
            errors.append({"field": p_path, "message": '"policy" must be a dict.'})
            return

        invalid_keys = set(policy) - _VALID_POLICY_KEYS
        if invalid_keys:
            errors.append({
                "field": p_path,
                "message": (
                    f"Unknown policy key(s): {sorted(invalid_keys)}. "
                    f"Allowed: {sorted(_VALID_POLICY_KEYS)}."
                ),
            })

        for key in ("editable_by_roles", "environment_restrictions"):
            if key not in policy:
                continue
            value = policy[key]
            key_path = f"{p_path}.{key}"

            if not isinstance(value, list) or len(value) == 0:
                errors.append({"field": key_path, "message": f'"{key}" must be a non-empty list.'})
                continue

            non_strings = [item for item in value if not isinstance(item, str)]
            if non_strings:
                errors.append({
                    "field": key_path,
                    "message": (
                        f'All items in "{key}" must be strings; '
                        f"found non-string items: {non_strings}."
                    ),
                })

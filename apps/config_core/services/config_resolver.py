"""
apps.config_core.services.config_resolver
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Deterministic, pure-function settings resolver.

Merge precedence (lowest → highest priority):
    1. **Schema defaults** - every field's ``"default"`` value declared in the
       active ``SettingsSchema.schema_definition``.
    2. **Instance overrides** - the settings stored on an
       ``OmnibusInstance`` (typically imported from its ``gitlab.rb``).
    3. **Request overrides** - ad-hoc values supplied for a single preview,
       never persisted.

Keys that the schema does not know about ("unmanaged" Omnibus settings) are
dropped by default.  With ``include_unmanaged=True`` they are carried through
unchanged so that a rendered ``gitlab.rb`` does not lose them.

This module is **pure Python**: it has zero Django view, serializer,
or ORM imports.  Input dicts are never mutated.

Public API
----------
ConfigResolver.resolve(schema, instance_overrides, request_overrides) -> dict
"""
from __future__ import annotations

import copy


class ConfigResolver:
    """
    Merges a settings schema with optional instance- and request-level
    override trees to produce the effective Omnibus settings.

    Example::

        schema = {
            "namespaces": {
                "registry": {
                    "enable": {"type": "boolean", "default": False},
                },
                "gitlab_rails": {
                    "application_settings_cache_seconds": {"type": "integer", "default": 60},
                },
            }
        }
        instance_overrides = {"registry": {"enable": True}}

        ConfigResolver.resolve(schema, instance_overrides)
        # → {"registry": {"enable": True},
        #    "gitlab_rails": {"application_settings_cache_seconds": 60}}
    """

    @staticmethod
    def resolve(
        schema: dict,
        instance_overrides: dict | None = None,
        request_overrides: dict | None = None,
        *,
        include_unmanaged: bool = False,
    ) -> dict:
        """
        Produce the effective settings tree.

        Field values are treated as **atomic**: a mapping value such as
        ``gitlab_rails.env`` is replaced wholesale by an override, never
        merged key by key.  This matches how a later ``gitlab.rb`` assignment
        replaces an earlier one.

        Args:
            schema: A structurally valid ``schema_definition`` dict (must
                contain a ``"namespaces"`` key).
            instance_overrides: ``{namespace: {field: value}}`` stored for the
                instance.  ``None`` or ``{}`` means pure schema defaults.
            request_overrides: Same shape; applied last.
            include_unmanaged: Carry keys unknown to the schema into the
                result instead of dropping them.

        Returns:
            A new dict independent of all inputs.

        Raises:
            KeyError: If *schema* has no ``"namespaces"`` key.
        """
        namespaces: dict[str, dict] = schema["namespaces"]

        base: dict[str, dict] = {
            namespace: {
                fname: copy.deepcopy(fdef["default"])
                for fname, fdef in fields.items()
            }
            for namespace, fields in namespaces.items()
        }

        for override_layer in (instance_overrides, request_overrides):
            ConfigResolver._apply_overrides(
                base, namespaces, override_layer, include_unmanaged
            )

        return base

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_overrides(
        base: dict[str, dict],
        schema_namespaces: dict[str, dict],
        overrides: dict | None,
        include_unmanaged: bool,
    ) -> None:
        """Mutate *base* in place with one override layer."""
        if not overrides:
            return

        for ns_name, ns_overrides in overrides.items():
            if not isinstance(ns_overrides, dict):
                continue

            schema_fields: dict | None = schema_namespaces.get(ns_name)
            if schema_fields is None and not include_unmanaged:
                continue

            target = base.setdefault(ns_name, {})
            for field_name, override_value in ns_overrides.items():
                if field_name not in (schema_fields or {}) and not include_unmanaged:
                    continue
                target[field_name] = copy.deepcopy(override_value)

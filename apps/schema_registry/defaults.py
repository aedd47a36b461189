"""
apps.schema_registry.defaults
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Built-in ``schema_definition`` for the Omnibus settings this engine manages.

Used by :func:`apps.schema_registry.services.install_default_schema` and by
the ``check_gitlab_rb`` management command, which validates without a
database.
"""
from __future__ import annotations

import copy

DEFAULT_SCHEMA_VERSION = "1.0.0"


def _external_url(description: str) -> dict:
    return {
        "type": "url",
        "default": None,
        "nullable": True,
        "description": description,
    }


def _nginx_fields(service: str) -> dict:
    return {
        "redirect_http_to_https": {
            "type": "boolean",
            "default": False,
            "description": f"Redirect plain HTTP requests for {service} to HTTPS.",
        },
        "ssl_certificate": {
            "type": "path",
            "default": None,
            "nullable": True,
            "description": f"PEM certificate served by nginx for {service}.",
            "constraints": {"must_exist": True},
        },
        "ssl_certificate_key": {
            "type": "path",
            "default": None,
            "nullable": True,
            "description": f"Private key matching the {service} certificate.",
            "constraints": {"must_exist": True},
        },
    }


OMNIBUS_SETTINGS_SCHEMA: dict = {
    "namespaces": {
        "top_level": {
            "external_url": _external_url("URL users reach GitLab on."),
            "pages_external_url": _external_url("URL GitLab Pages is served from."),
            "registry_external_url": _external_url("URL of the container registry."),
        },
        "nginx": _nginx_fields("GitLab"),
        "pages_nginx": _nginx_fields("GitLab Pages"),
        "registry_nginx": _nginx_fields("the container registry"),
        "registry": {
            "enable": {
                "type": "boolean",
                "default": False,
                "description": "Run the bundled container registry.",
            },
        },
        "gitlab_rails": {
            "initial_shared_runners_registration_token": {
                "type": "string",
                "default": None,
                "nullable": True,
                "description": "Registration token seeded for shared runners on first boot.",
                "constraints": {"pattern": r"[A-Za-z0-9_\-]{8,}"},
                "policy": {"editable_by_roles": ["admin"]},
            },
            "application_settings_cache_seconds": {
                "type": "integer",
                "default": 60,
                "description": "Lifetime of the application settings cache; 0 disables it.",
                "constraints": {"min": 0, "max": 86400},
            },
            "env": {
                "type": "env",
                "default": {},
                "description": "Extra environment variables for the Rails processes.",
            },
        },
    }
}


def omnibus_settings_schema() -> dict:
    """Return a private copy of :data:`OMNIBUS_SETTINGS_SCHEMA`."""
    return copy.deepcopy(OMNIBUS_SETTINGS_SCHEMA)

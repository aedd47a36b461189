"""
tests.test_config_engine
~~~~~~~~~~~~~~~~~~~~~~~~~
Unit tests for the pure settings engine.

Covers:
- SchemaValidator            (no DB)
- OverrideValidationService  (no DB)
- ConfigResolver             (no DB)
- diff_settings              (no DB)
"""
from __future__ import annotations

import copy

import pytest

from apps.config_core.services.config_resolver import ConfigResolver
from apps.config_core.services.gitlab_rb_parser import GitlabRbParser
from apps.config_core.services.override_validator import (
    OverrideValidationRequest,
    OverrideValidationService,
)
from apps.config_core.services.settings_diff import diff_settings
from apps.schema_registry.defaults import OMNIBUS_SETTINGS_SCHEMA, omnibus_settings_schema
from apps.schema_registry.validators import SchemaValidationError, SchemaValidator, type_error


# ===========================================================================
# Shared schema
# ===========================================================================

def _build_test_schema() -> dict:
    """Built-in schema plus a few namespaces exercising every rule."""
    schema = omnibus_settings_schema()
    schema["namespaces"].update({
        "postgresql": {
            # required, pattern-constrained
            "shared_buffers": {
                "type": "string",
                "default": "256MB",
                "required": True,
                "constraints": {"pattern": r"\d+(kB|MB|GB)"},
            },
            # numeric range
            "max_connections": {
                "type": "integer",
                "default": 400,
                "constraints": {"min": 10, "max": 10000},
            },
        },
        "gitlab_workhorse": {
            "listen_network": {
                "type": "string",
                "default": "unix",
                "constraints": {"allowed_values": ["unix", "tcp"]},
            },
        },
        "omnibus": {
            # immutable
            "install_dir": {
                "type": "path",
                "default": "/opt/gitlab",
                "editable": False,
            },
        },
        "letsencrypt": {
            # env-restricted
            "enable": {
                "type": "boolean",
                "default": False,
                "policy": {"environment_restrictions": ["production"]},
            },
            # list length range
            "contact_emails": {
                "type": "list",
                "default": [],
                "constraints": {"max": 2},
            },
        },
    })
    schema["namespaces"]["top_level"]["external_url"]["constraints"] = {
        "schemes": ["https"],
    }
    return schema


TEST_SCHEMA: dict = _build_test_schema()


# ===========================================================================
# TestSchemaValidation  (unit, no DB)
# ===========================================================================

class TestSchemaValidation:
    """Unit tests for SchemaValidator.  No database access required."""

    def test_builtin_schema_is_valid(self):
        SchemaValidator.validate(OMNIBUS_SETTINGS_SCHEMA)

    def test_test_schema_is_valid(self):
        SchemaValidator.validate(TEST_SCHEMA)

    def test_missing_namespaces_key_raises(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"not_namespaces": {}})
        assert [e["field"] for e in exc_info.value.errors] == ["namespaces"]

    def test_empty_namespaces_raises(self):
        with pytest.raises(SchemaValidationError):
            SchemaValidator.validate({"namespaces": {}})

    def test_missing_type_and_default(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"namespaces": {"ns": {"field_a": {}}}})
        messages = [e["message"] for e in exc_info.value.errors]
        assert '"type" is required.' in messages
        assert '"default" is required.' in messages

    def test_unknown_type_raises(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"namespaces": {"ns": {"f": {"type": "uuid", "default": "x"}}}})
        assert exc_info.value.errors[0]["field"] == "namespaces.ns.f"

    @pytest.mark.parametrize(
        "field_def",
        [
            {"type": "integer", "default": "not-an-int"},
            {"type": "integer", "default": True},
            {"type": "url", "default": "gitlab.example.com"},
            {"type": "path", "default": "etc/gitlab/ssl/cert.pem"},
            {"type": "env", "default": {"PORT": 8080}},
        ],
    )
    def test_default_must_match_type(self, field_def):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"namespaces": {"ns": {"f": field_def}}})
        assert "does not match type" in exc_info.value.errors[0]["message"]

    def test_null_default_requires_nullable(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"namespaces": {"ns": {"f": {"type": "url", "default": None}}}})
        assert "nullable" in exc_info.value.errors[0]["message"]

        SchemaValidator.validate(
            {"namespaces": {"ns": {"f": {"type": "url", "default": None, "nullable": True}}}}
        )

    def test_flags_must_be_booleans(self):
        bad = {"namespaces": {"ns": {"f": {"type": "string", "default": "", "required": "yes"}}}}
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        assert exc_info.value.errors[0]["field"] == "namespaces.ns.f.required"

    def test_invalid_constraint_min_gt_max_raises(self):
        bad = {
            "namespaces": {
                "ns": {"n": {"type": "integer", "default": 1, "constraints": {"min": 100, "max": 10}}}
            }
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        assert any('"min"' in e["message"] for e in exc_info.value.errors)

    def test_bad_pattern_and_unknown_constraint(self):
        bad = {
            "namespaces": {
                "ns": {
                    "s": {
                        "type": "string",
                        "default": "",
                        "constraints": {"pattern": "([a-z", "length": 3},
                    }
                }
            }
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"namespaces.ns.s.constraints", "namespaces.ns.s.constraints.pattern"}

    def test_schemes_and_must_exist_need_matching_types(self):
        bad = {
            "namespaces": {
                "ns": {
                    "s": {"type": "string", "default": "", "constraints": {"schemes": ["https"]}},
                    "u": {"type": "url", "default": "https://x.example", "constraints": {"must_exist": True}},
                    "v": {"type": "url", "default": "https://x.example", "constraints": {"schemes": []}},
                }
            }
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        fields = sorted(e["field"] for e in exc_info.value.errors)
        assert fields == [
            "namespaces.ns.s.constraints.schemes",
            "namespaces.ns.u.constraints.must_exist",
            "namespaces.ns.v.constraints.schemes",
        ]

    def test_invalid_policy_empty_roles_raises(self):
        bad = {
            "namespaces": {
                "ns": {"f": {"type": "boolean", "default": False, "policy": {"editable_by_roles": []}}}
            }
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        assert any("editable_by_roles" in e["field"] for e in exc_info.value.errors)

    def test_names_must_be_renderable(self):
        bad = {
            "namespaces": {
                "pages-nginx": {"enable": {"type": "boolean", "default": False}},
                "top_level": {"external-url": {"type": "string", "default": ""}},
            }
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"namespaces.pages-nginx", "namespaces.top_level.external-url"}

    def test_all_errors_collected(self):
        bad = {
            "namespaces": {
                "ns": {
                    "field_x": {},
                    "field_y": {"type": "integer", "default": "oops"},
                }
            }
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        assert len(exc_info.value.errors) >= 3


class TestTypeChecks:
    @pytest.mark.parametrize(
        "declared, value",
        [
            ("integer", 0),
            ("float", 3),
            ("float", 0.5),
            ("boolean", False),
            ("url", "http://127.0.0.1:5051"),
            ("path", "/etc/gitlab/ssl/gitlab-registry.pem"),
            ("env", {"RAILS_ENV": "production"}),
            ("env", {}),
            ("list", ["a"]),
            ("dict", {"a": 1}),
        ],
    )
    def test_accepts(self, declared, value):
        assert type_error(declared, value) is None

    @pytest.mark.parametrize(
        "declared, value",
        [
            ("integer", True),
            ("integer", 1.0),
            ("float", False),
            ("boolean", 1),
            ("string", 5),
            ("url", "/relative/only"),
            ("url", "https://"),
            ("url", "http://[::1"),
            ("path", "relative/cert.pem"),
            ("path", 42),
            ("env", {"PORT": 8080}),
            ("env", ["PORT=8080"]),
            ("mystery", "x"),
        ],
    )
    def test_rejects(self, declared, value):
        assert type_error(declared, value) is not None


# ===========================================================================
# TestOverrideValidation  (unit, no DB)
# ===========================================================================

class TestOverrideValidation:
    """Unit tests for OverrideValidationService.  No database access required."""

    def _validate(self, overrides: dict, role: str = "admin", env: str = "production", **kwargs):
        return OverrideValidationService.validate(
            OverrideValidationRequest(
                schema=TEST_SCHEMA,
                overrides=overrides,
                acting_role=role,
                environment=env,
                **kwargs,
            )
        )

    @staticmethod
    def _codes(result) -> set[str]:
        return {e["code"] for e in result.errors}

    def test_sample_file_is_valid(self, sample_gitlab_rb):
        result = self._validate(GitlabRbParser.parse(sample_gitlab_rb).settings)
        assert result.valid is True
        assert result.errors == []

    def test_unknown_namespace_and_field(self):
        result = self._validate({
            "mattermost": {"enable": True},
            "registry": {"enable": True, "storage_driver": "s3"},
        })
        assert result.valid is False
        fields = {(e["field"], e["code"]) for e in result.errors}
        assert fields == {
            ("mattermost", "unknown_namespace"),
            ("registry.storage_driver", "unknown_field"),
        }

    def test_allow_unknown(self):
        result = self._validate(
            {"mattermost": {"enable": True}, "registry": {"storage_driver": "s3"}},
            allow_unknown=True,
        )
        assert result.valid is True

    def test_unmanaged_names_must_be_renderable(self):
        result = self._validate(
            {"bad-ns": {"x": 1}, "top_level": {"bad-name": "x", "gitlab_kas": 1}},
            allow_unknown=True,
        )
        assert {(e["field"], e["code"]) for e in result.errors} == {
            ("bad-ns", "type_mismatch"),
            ("top_level.bad-name", "type_mismatch"),
        }

        quoted_keys = self._validate({"mattermost": {"env-name": 1}}, allow_unknown=True)
        assert quoted_keys.valid is True

    def test_namespace_must_be_mapping(self):
        result = self._validate({"registry": True})
        assert result.errors == [{
            "field": "registry",
            "code": "type_mismatch",
            "message": 'Settings for namespace "registry" must be a mapping.',
        }]

    def test_missing_required(self):
        result = self._validate({"postgresql": {"max_connections": 200}})
        assert [(e["field"], e["code"]) for e in result.errors] == [
            ("postgresql.shared_buffers", "missing_required"),
        ]

    def test_immutable_field(self):
        result = self._validate({"omnibus": {"install_dir": "/srv/gitlab"}})
        assert self._codes(result) == {"immutable_field"}

    def test_role_forbidden(self):
        result = self._validate(
            {"gitlab_rails": {"initial_shared_runners_registration_token": "abcdefgh1234"}},
            role="maintainer",
        )
        assert [(e["field"], e["code"]) for e in result.errors] == [
            ("gitlab_rails.initial_shared_runners_registration_token", "role_forbidden"),
        ]

    def test_env_forbidden(self):
        result = self._validate({"letsencrypt": {"enable": True}}, env="staging")
        assert self._codes(result) == {"env_forbidden"}
        assert self._validate({"letsencrypt": {"enable": True}}).valid is True

    def test_nil_only_for_nullable(self):
        assert self._validate({"top_level": {"external_url": None}}).valid is True
        result = self._validate({"registry": {"enable": None}})
        assert self._codes(result) == {"type_mismatch"}

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"registry": {"enable": "true"}}, "registry.enable"),
            ({"gitlab_rails": {"application_settings_cache_seconds": False}},
             "gitlab_rails.application_settings_cache_seconds"),
            ({"top_level": {"pages_external_url": "127.0.0.1:5051"}}, "top_level.pages_external_url"),
            ({"pages_nginx": {"ssl_certificate": "ssl/cert.pem", "ssl_certificate_key": "/k"}},
             "pages_nginx.ssl_certificate"),
            ({"gitlab_rails": {"env": {"WORKERS": 4}}}, "gitlab_rails.env"),
        ],
    )
    def test_type_mismatch(self, overrides, field):
        result = self._validate(overrides)
        assert {(e["field"], e["code"]) for e in result.errors} == {(field, "type_mismatch")}

    def test_numeric_range(self):
        low = self._validate({"gitlab_rails": {"application_settings_cache_seconds": -1}})
        high = self._validate({"gitlab_rails": {"application_settings_cache_seconds": 86401}})
        assert self._codes(low) == {"constraint_violation"}
        assert self._codes(high) == {"constraint_violation"}
        assert self._validate({"gitlab_rails": {"application_settings_cache_seconds": 0}}).valid

    def test_list_length_range(self):
        result = self._validate({"letsencrypt": {"contact_emails": ["a@x.io", "b@x.io", "c@x.io"]}})
        assert self._codes(result) == {"constraint_violation"}

    def test_allowed_values(self):
        result = self._validate({"gitlab_workhorse": {"listen_network": "udp"}})
        assert self._codes(result) == {"constraint_violation"}

    def test_pattern_is_full_match(self):
        result = self._validate({"postgresql": {"shared_buffers": "256MBx"}})
        assert self._codes(result) == {"constraint_violation"}
        assert self._validate({"postgresql": {"shared_buffers": "1GB"}}).valid is True

    def test_url_schemes(self):
        default_schemes = self._validate({"top_level": {"registry_external_url": "ftp://registry.example"}})
        narrowed = self._validate({"top_level": {"external_url": "http://gitlab.example.com"}})
        assert self._codes(default_schemes) == {"constraint_violation"}
        assert self._codes(narrowed) == {"constraint_violation"}

    def test_malformed_url(self):
        result = self._validate({
            "top_level": {"external_url": "http://[::1", "pages_external_url": "http://[::1"},
            "pages_nginx": {"redirect_http_to_https": True},
        })
        assert {(e["field"], e["code"]) for e in result.errors} == {
            ("top_level.external_url", "type_mismatch"),
            ("top_level.pages_external_url", "type_mismatch"),
        }
        assert "not a valid URL" in result.errors[0]["message"]

    def test_must_exist_only_with_check_paths(self, tmp_path):
        cert = tmp_path / "gitlab.pem"
        cert.write_text("cert")
        overrides = {
            "registry_nginx": {
                "ssl_certificate": str(cert),
                "ssl_certificate_key": str(tmp_path / "missing.key"),
            }
        }
        assert self._validate(overrides).valid is True

        result = self._validate(overrides, check_paths=True)
        assert [(e["field"], e["code"]) for e in result.errors] == [
            ("registry_nginx.ssl_certificate_key", "missing_file"),
        ]

    def test_incomplete_tls_pair(self):
        result = self._validate({"registry_nginx": {"ssl_certificate": "/etc/gitlab/ssl/r.pem"}})
        assert [(e["field"], e["code"]) for e in result.errors] == [
            ("registry_nginx.ssl_certificate_key", "incomplete_tls_pair"),
        ]

    def test_https_required_for_redirect(self):
        result = self._validate({
            "top_level": {"pages_external_url": "http://pages.example.com"},
            "pages_nginx": {"redirect_http_to_https": True},
        })
        assert [(e["field"], e["code"]) for e in result.errors] == [
            ("pages_nginx.redirect_http_to_https", "https_required"),
        ]

        ok = self._validate({
            "top_level": {"pages_external_url": "https://pages.example.com"},
            "pages_nginx": {"redirect_http_to_https": True},
        })
        assert ok.valid is True

    def test_redirect_without_url_is_allowed(self):
        assert self._validate({"nginx": {"redirect_http_to_https": True}}).valid is True

    def test_multiple_errors_all_returned(self):
        result = self._validate(
            {
                "omnibus": {"install_dir": "/srv"},
                "gitlab_workhorse": {"listen_network": "udp"},
                "gitlab_rails": {"initial_shared_runners_registration_token": "x"},
                "pages_nginx": {"ssl_certificate_key": "/etc/gitlab/ssl/p.key"},
            },
            role="viewer",
        )
        assert self._codes(result) == {
            "immutable_field",
            "constraint_violation",
            "role_forbidden",
            "incomplete_tls_pair",
        }
        assert len(result.errors) >= 5


# ===========================================================================
# TestConfigResolver  (unit, no DB)
# ===========================================================================

class TestConfigResolver:
    """Unit tests for ConfigResolver.  No database access required."""

    def test_defaults_only(self):
        result = ConfigResolver.resolve(OMNIBUS_SETTINGS_SCHEMA)
        assert result["registry"]["enable"] is False
        assert result["gitlab_rails"]["application_settings_cache_seconds"] == 60
        assert result["top_level"]["external_url"] is None
        assert result["gitlab_rails"]["env"] == {}

    def test_every_schema_field_present(self, sample_gitlab_rb):
        settings = GitlabRbParser.parse(sample_gitlab_rb).settings
        result = ConfigResolver.resolve(OMNIBUS_SETTINGS_SCHEMA, settings)
        for ns, fields in OMNIBUS_SETTINGS_SCHEMA["namespaces"].items():
            assert set(fields) <= set(result[ns])
        assert result["registry"]["enable"] is True
        assert result["nginx"]["ssl_certificate"] is None

    def test_request_layer_wins(self):
        result = ConfigResolver.resolve(
            OMNIBUS_SETTINGS_SCHEMA,
            {"gitlab_rails": {"application_settings_cache_seconds": 0}},
            {"gitlab_rails": {"application_settings_cache_seconds": 30}},
        )
        assert result["gitlab_rails"]["application_settings_cache_seconds"] == 30

    def test_mapping_values_replaced_whole(self):
        result = ConfigResolver.resolve(
            OMNIBUS_SETTINGS_SCHEMA,
            {"gitlab_rails": {"env": {"A": "1", "B": "2"}}},
            {"gitlab_rails": {"env": {"C": "3"}}},
        )
        assert result["gitlab_rails"]["env"] == {"C": "3"}

    def test_unmanaged_keys_dropped_or_carried(self):
        overrides = {"mattermost": {"enable": True}, "registry": {"storage": {"s3": {}}}}
        dropped = ConfigResolver.resolve(OMNIBUS_SETTINGS_SCHEMA, overrides)
        carried = ConfigResolver.resolve(OMNIBUS_SETTINGS_SCHEMA, overrides, include_unmanaged=True)

        assert "mattermost" not in dropped
        assert "storage" not in dropped["registry"]
        assert carried["mattermost"] == {"enable": True}
        assert carried["registry"]["storage"] == {"s3": {}}

    def test_inputs_not_mutated(self):
        schema = copy.deepcopy(OMNIBUS_SETTINGS_SCHEMA)
        overrides = {"gitlab_rails": {"env": {"A": "1"}}}
        result = ConfigResolver.resolve(schema, overrides)
        result["gitlab_rails"]["env"]["B"] = "2"
        result["registry"]["enable"] = True

        assert overrides == {"gitlab_rails": {"env": {"A": "1"}}}
        assert schema == OMNIBUS_SETTINGS_SCHEMA

    def test_none_overrides_treated_as_empty(self):
        assert ConfigResolver.resolve(OMNIBUS_SETTINGS_SCHEMA, None, None) == ConfigResolver.resolve(
            OMNIBUS_SETTINGS_SCHEMA, {}, {}
        )


# ===========================================================================
# TestSettingsDiff  (unit, no DB)
# ===========================================================================

class TestSettingsDiff:
    def test_added_removed_changed(self):
        old = {
            "registry": {"enable": False},
            "top_level": {"pages_external_url": "http://127.0.0.1:5051"},
        }
        new = {
            "registry": {"enable": True},
            "gitlab_rails": {"application_settings_cache_seconds": 0},
        }
        assert diff_settings(old, new) == [
            {
                "field": "gitlab_rails.application_settings_cache_seconds",
                "change": "added",
                "old": None,
                "new": 0,
            },
            {"field": "registry.enable", "change": "changed", "old": False, "new": True},
            {
                "field": "top_level.pages_external_url",
                "change": "removed",
                "old": "http://127.0.0.1:5051",
                "new": None,
            },
        ]

    def test_identical_trees(self, sample_gitlab_rb):
        settings = GitlabRbParser.parse(sample_gitlab_rb).settings
        assert diff_settings(settings, copy.deepcopy(settings)) == []

    def test_type_change_counts(self):
        assert diff_settings({"a": {"x": 1}}, {"a": {"x": True}})[0]["change"] == "changed"
        assert diff_settings({"a": {"x": 0}}, {"a": {"x": 0.0}})[0]["change"] == "changed"

    def test_mapping_compared_whole(self):
        changes = diff_settings(
            {"gitlab_rails": {"env": {"A": "1"}}},
            {"gitlab_rails": {"env": {"A": "2"}}},
        )
        assert [c["field"] for c in changes] == ["gitlab_rails.env"]

    def test_none_inputs(self):
        assert diff_settings(None, None) == []
        assert diff_settings(None, {"a": {"x": 1}})[0]["change"] == "added"
